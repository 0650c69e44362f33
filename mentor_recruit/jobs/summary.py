from flask import current_app

from ..errors import NotFound
from ..services.evaluation import recompute_summary


def recompute_summary_job(user_id: int):
    """RQ entry point: rebuild one user's evaluation summary.

    AggregationFailed propagates so RQ records the job as failed.
    """
    try:
        summary = recompute_summary(user_id)
    except NotFound:
        current_app.logger.warning("summary retry skipped, user %s no longer exists", user_id)
        return None
    return summary["total_evaluations"] if summary else 0
