#!/usr/bin/env python3
"""Recompute every user's evaluation summary from the evaluations table.

Repairs summaries left stale by a failed recomputation. Users that have a
summary but no evaluations get it cleared; users with evaluations get it
rebuilt. Failures are reported per user and do not stop the run.

Run from project root: python scripts/reconcile_evaluation_summaries.py
"""
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from mentor_recruit import create_app
from mentor_recruit.errors import AggregationFailed
from mentor_recruit.extensions import db
from mentor_recruit.models.evaluation import Evaluation
from mentor_recruit.models.user import User
from mentor_recruit.models.user_evaluation_summary import UserEvaluationSummary
from mentor_recruit.services.evaluation import recompute_summary


def candidate_user_ids():
    evaluated = {row[0] for row in db.session.query(Evaluation.ref_user_id).distinct()}
    summarized = {row[0] for row in db.session.query(User.id).filter(User.evaluation_summary.isnot(None))}
    mirrored = {row[0] for row in db.session.query(UserEvaluationSummary.user_id)}
    return sorted(evaluated | summarized | mirrored)


def main():
    app = create_app()
    with app.app_context():
        total = 0
        failed = 0
        for user_id in candidate_user_ids():
            total += 1
            try:
                recompute_summary(user_id)
            except AggregationFailed as e:
                failed += 1
                print(f"user {user_id}: {e}")

        print(f"Processed {total} users, {failed} failed.")
        return 1 if failed else 0


if __name__ == '__main__':
    sys.exit(main())
