"""Evaluation records and the per-user evaluation summary.

Every create/update/delete of an ``Evaluation`` commits the record first and
then rebuilds the owning user's summary from scratch (``recompute_summary``).
The summary is a cache of the evaluations table: it is written onto
``User.evaluation_summary`` and mirrored into ``user_evaluation_summaries``
in the same commit, and it is removed entirely once no evaluations remain.
A failed recomputation never undoes the record write; it is logged and,
when ``SUMMARY_RETRY_ENABLED`` is set, retried through RQ.
"""
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db, rq
from ..errors import AggregationFailed, NotFound, StoreFailure, ValidationFailed
from ..models.evaluation import Evaluation, EVALUATION_STAGES, STAGE_KEYS
from ..models.evaluation_criteria import EvaluationCriteria
from ..models.user import User
from ..models.user_evaluation_summary import UserEvaluationSummary

DEFAULT_EVALUATOR_ROLE = "관리자"

# fields update_evaluation() accepts; everything else is derived or fixed at creation
EDITABLE_FIELDS = {
    "scores", "feedback", "criteria_feedback", "evaluation_stage", "evaluation_date",
    "duration", "is_visible", "is_finalized", "ref_application_id", "ref_job_board_id",
    "criteria_template_id",
}


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _parse_datetime(value):
    if value is None or isinstance(value, datetime):
        return value
    try:
        dt = datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationFailed("invalid evaluation_date", errors=[{"field": "evaluation_date", "value": value}])
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _coerce_score(val):
    if isinstance(val, dict):
        val = val.get("score")
    if val is None or isinstance(val, bool):
        return None
    try:
        return float(val)
    except (TypeError, ValueError):
        return None


def compute_total_score(scores):
    """Unweighted mean of the per-criterion scores ({id: {"score": ..}}); 0 when empty."""
    values = [float(s["score"]) for s in (scores or {}).values()]
    return sum(values) / len(values) if values else 0.0


def compute_percentage(total_score, max_total_score):
    if not max_total_score:
        return 0.0
    return total_score * 100 / max_total_score


def _max_total_score():
    return float(current_app.config.get("EVALUATION_MAX_TOTAL_SCORE", 10))


def validate_form_data(form_data, template):
    """Reject a submission before anything is written.

    Checks that the stage matches the template, every criterion of the
    template has a score within 0..max_score, and overall feedback is present.
    """
    errors = []
    stage = form_data.get("evaluation_stage")
    if stage not in EVALUATION_STAGES:
        errors.append({"field": "evaluation_stage", "message": f"unknown stage {stage!r}"})
    elif stage != template.stage:
        errors.append({"field": "evaluation_stage", "message": f"template {template.id} is for {template.stage!r}"})

    scores = form_data.get("scores") or {}
    for item in template.ordered_items():
        score = _coerce_score(scores.get(item["id"]))
        if score is None:
            errors.append({"field": f"scores.{item['id']}", "message": f"missing score for {item['name']}"})
        elif score < 0 or score > float(item.get("max_score", 10)):
            errors.append({"field": f"scores.{item['id']}", "message": f"score out of range 0..{item.get('max_score', 10)}"})

    feedback = form_data.get("overall_feedback")
    if not feedback or not str(feedback).strip():
        errors.append({"field": "overall_feedback", "message": "overall feedback is required"})

    if errors:
        raise ValidationFailed("evaluation form is invalid", errors=errors)


def _score_entries(template, scores):
    """Map submitted scores onto the template's criteria.

    Returns (scores, criteria_feedback); criteria not in the template are ignored.
    """
    evaluation_scores = {}
    criteria_feedback = {}
    for item in template.ordered_items():
        raw = scores.get(item["id"])
        score = _coerce_score(raw)
        if score is None:
            continue
        evaluation_scores[item["id"]] = {"score": score, "max_score": float(item.get("max_score", 10))}
        if isinstance(raw, dict) and raw.get("comment"):
            criteria_feedback[item["id"]] = raw["comment"]
    return evaluation_scores, criteria_feedback


def _query_user_evaluations(user_id, stage=None):
    query = Evaluation.query.filter_by(ref_user_id=user_id)
    if stage:
        query = query.filter_by(evaluation_stage=stage)
    return query.order_by(Evaluation.evaluation_date.desc(), Evaluation.id.desc())


def get_user_evaluations(user_id, stage=None):
    if stage and stage not in EVALUATION_STAGES:
        raise ValidationFailed(f"unknown evaluation stage: {stage!r}", errors=[{"field": "stage", "value": stage}])
    try:
        return _query_user_evaluations(user_id, stage).all()
    except SQLAlchemyError as e:
        current_app.logger.exception("evaluation lookup failed for user %s", user_id)
        raise StoreFailure(str(e)) from e


def _stage_summary(items):
    # items are already ordered most recent first
    scores = [float(e.total_score) for e in items]
    latest = items[0]
    return {
        "average_score": sum(scores) / len(scores),
        "total_evaluations": len(items),
        "highest_score": max(scores),
        "lowest_score": min(scores),
        "last_evaluated_at": latest.evaluation_date.isoformat() if latest.evaluation_date else None,
        "evaluations": [e.id for e in items],
    }


def build_summary(evaluations):
    """Aggregate evaluations into the summary document, or None when empty.

    ``overall_average`` is the count-weighted mean of the stage averages,
    i.e. the mean over every individual evaluation.
    """
    groups = {key: [] for key in STAGE_KEYS.values()}
    for ev in evaluations:
        key = STAGE_KEYS.get(ev.evaluation_stage)
        if key is not None:
            groups[key].append(ev)

    summary = {}
    score_sum = 0.0
    count = 0
    for key, items in groups.items():
        if not items:
            continue
        items = sorted(items, key=lambda e: (e.evaluation_date or datetime.min, e.id or 0), reverse=True)
        stage = _stage_summary(items)
        summary[key] = stage
        score_sum += stage["average_score"] * stage["total_evaluations"]
        count += stage["total_evaluations"]

    if count == 0:
        return None
    summary["overall_average"] = score_sum / count
    summary["total_evaluations"] = count
    return summary


def recompute_summary(user_id):
    """Rebuild the user's evaluation summary from the current evaluations.

    Writes User.evaluation_summary and the UserEvaluationSummary lookup row in
    one commit. With no evaluations left both are removed (NULL / row deleted)
    rather than zeroed. Returns the summary dict or None.
    """
    try:
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFound(f"user {user_id} not found")
        evaluations = _query_user_evaluations(user_id).all()
        summary = build_summary(evaluations)
        lookup = db.session.get(UserEvaluationSummary, user_id)

        if summary is None:
            user.evaluation_summary = None
            if lookup is not None:
                db.session.delete(lookup)
        else:
            user.evaluation_summary = summary
            if lookup is None:
                lookup = UserEvaluationSummary(user_id=user_id)
                db.session.add(lookup)
            lookup.summary = summary
            lookup.overall_average = summary["overall_average"]
            lookup.total_evaluations = summary["total_evaluations"]
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise AggregationFailed(user_id) from e

    if summary is None:
        current_app.logger.info("no evaluations left for user %s, summary removed", user_id)
    else:
        current_app.logger.info("evaluation summary updated for user %s (%d evaluations, avg %.2f)",
                                user_id, summary["total_evaluations"], summary["overall_average"])
    return summary


def _refresh_summary(user_id):
    # the record write is already committed; a stale summary is repaired later
    try:
        recompute_summary(user_id)
    except AggregationFailed:
        current_app.logger.exception("evaluation summary recomputation failed for user %s", user_id)
        if current_app.config.get("SUMMARY_RETRY_ENABLED"):
            from ..jobs.summary import recompute_summary_job
            delay = timedelta(seconds=int(current_app.config.get("SUMMARY_RETRY_DELAY_SEC", 30)))
            rq.enqueue_in(delay, recompute_summary_job, user_id)


def _commit(action, record_id=None):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception("evaluation %s failed (id=%s)", action, record_id)
        raise StoreFailure(str(e)) from e


def create_evaluation(form_data, evaluator_id, evaluator_name, evaluator_role=DEFAULT_EVALUATOR_ROLE):
    """Score a user against a criteria template and refresh their summary.

    ``form_data`` keys: evaluation_stage, criteria_template_id, target_user_id,
    scores ({criterion_id: {"score": n, "comment": str}}), overall_feedback,
    and optionally ref_application_id, ref_job_board_id, duration.
    Returns the new evaluation id.
    """
    template_id = form_data.get("criteria_template_id")
    target_user_id = form_data.get("target_user_id")
    try:
        template = db.session.get(EvaluationCriteria, template_id) if template_id is not None else None
        user = db.session.get(User, target_user_id) if target_user_id is not None else None
    except SQLAlchemyError as e:
        current_app.logger.exception("evaluation create lookup failed")
        raise StoreFailure(str(e)) from e
    if template is None:
        raise NotFound(f"criteria template {template_id} not found")
    if user is None:
        raise NotFound(f"user {target_user_id} not found")

    validate_form_data(form_data, template)

    scores, criteria_feedback = _score_entries(template, form_data.get("scores") or {})
    total_score = compute_total_score(scores)
    max_total_score = _max_total_score()
    now = _utcnow()

    ev = Evaluation(
        ref_user_id=user.id,
        ref_application_id=form_data.get("ref_application_id"),
        ref_job_board_id=form_data.get("ref_job_board_id"),
        evaluation_stage=form_data["evaluation_stage"],
        criteria_template_id=template.id,
        evaluator_id=evaluator_id,
        evaluator_name=evaluator_name,
        evaluator_role=evaluator_role,
        scores=scores,
        total_score=total_score,
        max_total_score=max_total_score,
        percentage=compute_percentage(total_score, max_total_score),
        feedback=str(form_data["overall_feedback"]).strip(),
        criteria_feedback=criteria_feedback,
        evaluation_date=_parse_datetime(form_data.get("evaluation_date")) or now,
        duration=form_data.get("duration"),
        is_finalized=True,
        is_visible=False,
    )
    db.session.add(ev)
    _commit("create")
    user_id = ev.ref_user_id
    current_app.logger.info("evaluation %s created for user %s by %s", ev.id, user_id, evaluator_name)

    _refresh_summary(user_id)
    return ev.id


def _updated_scores(ev, template, scores):
    """Merge submitted scores over the stored ones and validate against the template.

    Every criterion of the template must end up with a score; ids the template
    does not define are rejected.
    """
    items = template.ordered_items()
    known = {i["id"] for i in items}
    errors = [{"field": f"scores.{cid}", "message": f"not a criterion of template {template.id}"}
              for cid in sorted(set(scores) - known)]
    merged = {cid: entry for cid, entry in (ev.scores or {}).items() if cid in known}
    merged.update({cid: raw for cid, raw in scores.items() if cid in known})

    out = {}
    for item in items:
        cid = item["id"]
        max_score = float(item.get("max_score", 10))
        score = _coerce_score(merged.get(cid))
        if score is None:
            errors.append({"field": f"scores.{cid}", "message": f"missing score for {item['name']}"})
        elif score < 0 or score > max_score:
            errors.append({"field": f"scores.{cid}", "message": f"score out of range 0..{max_score:g}"})
        else:
            out[cid] = {"score": score, "max_score": max_score}
    if errors:
        raise ValidationFailed("invalid scores", errors=errors)
    return out


def _check_field_types(fields):
    errors = []
    for key in ("is_visible", "is_finalized"):
        if key in fields and not isinstance(fields[key], bool):
            errors.append({"field": key, "message": "must be true or false"})
    if "duration" in fields:
        duration = fields["duration"]
        if duration is not None and (isinstance(duration, bool) or not isinstance(duration, int) or duration < 0):
            errors.append({"field": "duration", "message": "must be a non-negative number of minutes"})
    for key in ("ref_application_id", "ref_job_board_id"):
        if key in fields and fields[key] is not None and not isinstance(fields[key], str):
            errors.append({"field": key, "message": "must be a string"})
    if "criteria_feedback" in fields and fields["criteria_feedback"] is not None \
            and not isinstance(fields["criteria_feedback"], dict):
        errors.append({"field": "criteria_feedback", "message": "must be an object"})
    if "scores" in fields and not isinstance(fields["scores"], dict):
        errors.append({"field": "scores", "message": "must be an object"})
    if "criteria_template_id" in fields and \
            (isinstance(fields["criteria_template_id"], bool) or not isinstance(fields["criteria_template_id"], int)):
        errors.append({"field": "criteria_template_id", "message": "must be an integer"})
    if errors:
        raise ValidationFailed("evaluation fields are invalid", errors=errors)


def update_evaluation(record_id, partial_fields):
    """Apply an edit to an evaluation and refresh the owner's summary.

    Submitted ``scores`` are merged over the stored ones and total_score /
    percentage are recomputed with the same unweighted rule used at creation.
    Moving a record to another stage needs a ``criteria_template_id`` for that
    stage; the scores are then validated against the new template.
    """
    unknown = sorted(set(partial_fields) - EDITABLE_FIELDS)
    if unknown:
        raise ValidationFailed("fields cannot be updated", errors=[{"field": f, "message": "not editable"} for f in unknown])

    fields = dict(partial_fields)
    _check_field_types(fields)

    try:
        ev = db.session.get(Evaluation, record_id)
        template_id = fields.pop("criteria_template_id", ev.criteria_template_id if ev else None)
        template = db.session.get(EvaluationCriteria, template_id) if ev is not None and template_id is not None else None
    except SQLAlchemyError as e:
        raise StoreFailure(str(e)) from e
    if ev is None:
        raise NotFound(f"evaluation {record_id} not found")
    if template is None:
        raise NotFound(f"criteria template {template_id} not found")

    stage = fields.get("evaluation_stage", ev.evaluation_stage)
    if stage not in EVALUATION_STAGES:
        raise ValidationFailed(f"unknown evaluation stage: {stage!r}",
                               errors=[{"field": "evaluation_stage", "value": stage}])
    if stage != template.stage:
        raise ValidationFailed("stage does not match the criteria template",
                               errors=[{"field": "evaluation_stage",
                                        "message": f"template {template.id} is for {template.stage!r}"}])
    if "feedback" in fields:
        if not fields["feedback"] or not str(fields["feedback"]).strip():
            raise ValidationFailed("feedback is required", errors=[{"field": "feedback", "message": "blank"}])
        fields["feedback"] = str(fields["feedback"]).strip()
    if "evaluation_date" in fields:
        fields["evaluation_date"] = _parse_datetime(fields["evaluation_date"])
        if fields["evaluation_date"] is None:
            raise ValidationFailed("evaluation_date is required", errors=[{"field": "evaluation_date", "message": "null"}])
    if "scores" in fields or template.id != ev.criteria_template_id:
        scores = _updated_scores(ev, template, fields.pop("scores", None) or {})
        ev.criteria_template_id = template.id
        ev.scores = scores
        ev.total_score = compute_total_score(scores)
        ev.percentage = compute_percentage(ev.total_score, ev.max_total_score or _max_total_score())

    for key, value in fields.items():
        setattr(ev, key, value)

    user_id = ev.ref_user_id
    _commit("update", record_id)
    current_app.logger.info("evaluation %s updated (%s)", record_id, ", ".join(sorted(partial_fields)))

    _refresh_summary(user_id)


def delete_evaluation(record_id):
    try:
        ev = db.session.get(Evaluation, record_id)
    except SQLAlchemyError as e:
        raise StoreFailure(str(e)) from e
    if ev is None:
        raise NotFound(f"evaluation {record_id} not found")

    user_id = ev.ref_user_id
    db.session.delete(ev)
    _commit("delete", record_id)
    current_app.logger.info("evaluation %s deleted for user %s", record_id, user_id)

    _refresh_summary(user_id)


def get_user_summary(user_id):
    """Cached summary as stored on the user (None when never evaluated)."""
    try:
        user = db.session.get(User, user_id)
    except SQLAlchemyError as e:
        raise StoreFailure(str(e)) from e
    if user is None:
        raise NotFound(f"user {user_id} not found")
    return user.evaluation_summary
