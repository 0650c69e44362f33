"""Admin-facing statistics over a set of evaluations."""
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import StoreFailure, ValidationFailed
from ..models.evaluation import Evaluation, EVALUATION_STAGES
from ..models.evaluation_criteria import EvaluationCriteria

# (label, lower bound inclusive); checked top-down
SCORE_BANDS = [
    ("9-10", 9.0),
    ("7-8", 7.0),
    ("5-6", 5.0),
    ("3-4", 3.0),
    ("0-2", 0.0),
]


def _band(score):
    for label, lower in SCORE_BANDS:
        if score >= lower:
            return label
    return SCORE_BANDS[-1][0]


def _mean(values):
    return sum(values) / len(values) if values else 0.0


def compute_evaluation_stats(evaluations, templates=None):
    """Summarize evaluations for the admin dashboard.

    Returns total count, mean total_score, the score distribution by band,
    per-evaluator counts/means and per-criterion counts/means. Criterion names
    come from ``templates`` when given, otherwise the criterion id is used.
    """
    evaluations = list(evaluations)
    totals = [float(e.total_score or 0.0) for e in evaluations]
    total = len(evaluations)

    band_counts = {label: 0 for label, _ in SCORE_BANDS}
    for score in totals:
        band_counts[_band(score)] += 1
    score_distribution = [
        {
            "range": label,
            "count": band_counts[label],
            "percentage": (band_counts[label] / total * 100) if total else 0.0,
        }
        for label, _ in SCORE_BANDS
    ]

    by_evaluator = {}
    for e in evaluations:
        row = by_evaluator.setdefault(e.evaluator_id, {"name": e.evaluator_name, "scores": []})
        row["scores"].append(float(e.total_score or 0.0))
    evaluator_stats = [
        {
            "evaluator_id": eid,
            "evaluator_name": row["name"],
            "total_evaluations": len(row["scores"]),
            "average_score": _mean(row["scores"]),
        }
        for eid, row in by_evaluator.items()
    ]
    evaluator_stats.sort(key=lambda r: (-r["total_evaluations"], str(r["evaluator_name"] or "")))

    names = {}
    for tpl in templates or []:
        for item in tpl.ordered_items():
            names.setdefault(item["id"], item.get("name") or item["id"])

    by_criteria = {}
    for e in evaluations:
        for cid, entry in (e.scores or {}).items():
            try:
                by_criteria.setdefault(cid, []).append(float(entry["score"]))
            except (KeyError, TypeError, ValueError):
                continue
    criteria_stats = [
        {
            "criteria_id": cid,
            "criteria_name": names.get(cid, cid),
            "average_score": _mean(values),
            "evaluation_count": len(values),
        }
        for cid, values in sorted(by_criteria.items())
    ]

    return {
        "total_evaluations": total,
        "average_score": _mean(totals),
        "score_distribution": score_distribution,
        "evaluator_stats": evaluator_stats,
        "criteria_stats": criteria_stats,
    }


def evaluation_stats(stage=None):
    """Load evaluations (optionally one stage) and templates, then compute stats."""
    if stage and stage not in EVALUATION_STAGES:
        raise ValidationFailed(f"unknown evaluation stage: {stage!r}", errors=[{"field": "stage", "value": stage}])
    try:
        query = Evaluation.query
        if stage:
            query = query.filter_by(evaluation_stage=stage)
        evaluations = query.all()
        templates = EvaluationCriteria.query.all()
    except SQLAlchemyError as e:
        current_app.logger.exception("evaluation stats query failed")
        raise StoreFailure(str(e)) from e
    return compute_evaluation_stats(evaluations, templates)
