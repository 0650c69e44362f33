from flask import jsonify, request, current_app
from flask_login import current_user
from . import bp
from .forms import EvaluationForm
from ...errors import EvaluationError, ValidationFailed
from ...models.evaluation_criteria import EvaluationCriteria
from ...services.criteria import create_default_criteria, get_criteria_by_stage
from ...services.evaluation import (
    DEFAULT_EVALUATOR_ROLE,
    create_evaluation,
    delete_evaluation,
    get_user_evaluations,
    get_user_summary,
    recompute_summary,
    update_evaluation,
)
from ...services.stats import evaluation_stats
from ...utils.decorators import admin_required


@bp.errorhandler(EvaluationError)
def handle_evaluation_error(e):
    if e.status_code >= 500:
        current_app.logger.error("evaluation request failed: %s", e)
    return jsonify(e.to_dict()), e.status_code


def _evaluator():
    """(id, name, role) of the signed-in admin, passed explicitly to the services."""
    name = getattr(current_user, "name", None) or current_user.email
    return current_user.id, name, DEFAULT_EVALUATOR_ROLE


def _json_body():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationFailed("JSON object body required")
    return payload


def _opt_str(val):
    return str(val) if val not in (None, "") else None


@bp.get("/users/<int:user_id>")
@admin_required
def list_user_evaluations(user_id):
    stage = request.args.get("stage") or None
    items = get_user_evaluations(user_id, stage)
    return jsonify([e.to_dict() for e in items])


@bp.get("/users/<int:user_id>/summary")
@admin_required
def user_summary(user_id):
    return jsonify(get_user_summary(user_id))


@bp.post("/users/<int:user_id>/summary/recompute")
@admin_required
def recompute_user_summary(user_id):
    return jsonify(recompute_summary(user_id))


@bp.post("")
@admin_required
def create():
    payload = _json_body()
    form = EvaluationForm(formdata=None, data=payload)
    if not form.validate():
        raise ValidationFailed(
            "evaluation form is invalid",
            errors=[{"field": k, "message": "; ".join(v)} for k, v in form.errors.items()],
        )
    form_data = {
        "evaluation_stage": form.evaluation_stage.data,
        "criteria_template_id": form.criteria_template_id.data,
        "target_user_id": form.target_user_id.data,
        "ref_application_id": _opt_str(form.ref_application_id.data),
        "ref_job_board_id": _opt_str(form.ref_job_board_id.data),
        "duration": form.duration.data,
        "overall_feedback": form.overall_feedback.data,
        "evaluation_date": payload.get("evaluation_date"),
        "scores": payload.get("scores") or {},
    }
    evaluator_id, evaluator_name, evaluator_role = _evaluator()
    ev_id = create_evaluation(form_data, evaluator_id, evaluator_name, payload.get("evaluator_role") or evaluator_role)
    return jsonify({"id": ev_id}), 201


@bp.patch("/<int:evaluation_id>")
@admin_required
def update(evaluation_id):
    update_evaluation(evaluation_id, _json_body())
    return "", 204


@bp.delete("/<int:evaluation_id>")
@admin_required
def delete(evaluation_id):
    delete_evaluation(evaluation_id)
    return "", 204


@bp.get("/stats")
@admin_required
def stats():
    return jsonify(evaluation_stats(request.args.get("stage") or None))


@bp.get("/criteria")
@admin_required
def list_criteria():
    stage = request.args.get("stage")
    if stage:
        rows = get_criteria_by_stage(stage)
    else:
        rows = EvaluationCriteria.query.filter_by(is_active=True).order_by(EvaluationCriteria.stage, EvaluationCriteria.id).all()
    return jsonify([r.to_dict() for r in rows])


@bp.post("/criteria/defaults")
@admin_required
def create_defaults():
    ids = create_default_criteria(created_by=str(current_user.id))
    return jsonify({"created": ids}), 201
