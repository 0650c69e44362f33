import json

import pytest
from sqlalchemy.exc import OperationalError

from conftest import form_for
from mentor_recruit.errors import AggregationFailed, NotFound, ValidationFailed
from mentor_recruit.extensions import rq
from mentor_recruit.jobs.summary import recompute_summary_job
from mentor_recruit.models.evaluation import Evaluation
from mentor_recruit.models.user import User
from mentor_recruit.models.user_evaluation_summary import UserEvaluationSummary
from mentor_recruit.services import evaluation as svc


def _create(template, user, score, admin, **kw):
    return svc.create_evaluation(form_for(template, user, score, **kw), admin.id, admin.name)


def _summary(db, user_id):
    db.session.expire_all()
    return db.session.get(User, user_id).evaluation_summary


def test_create_computes_scores_and_summary(db, admin, subject, templates):
    tpl = templates["면접 전형"]
    ev_id = _create(tpl, subject, [8, 6, 9, 5], admin)

    ev = db.session.get(Evaluation, ev_id)
    assert ev.total_score == 7
    assert ev.percentage == 70
    assert ev.max_total_score == 10
    assert ev.evaluator_name == admin.name
    assert ev.evaluator_role == "관리자"
    assert ev.is_finalized is True and ev.is_visible is False
    assert set(ev.scores) == {"communication", "attitude", "competency", "fit"}

    summary = _summary(db, subject.id)
    assert summary["interview"]["average_score"] == 7
    assert summary["interview"]["evaluations"] == [ev_id]
    assert summary["total_evaluations"] == 1

    lookup = db.session.get(UserEvaluationSummary, subject.id)
    assert lookup.summary == summary
    assert lookup.overall_average == 7
    assert lookup.total_evaluations == 1


def test_criteria_comments_are_kept(db, admin, subject, templates):
    tpl = templates["서류 전형"]
    data = form_for(tpl, subject, 7)
    data["scores"]["motivation"]["comment"] = "지원 동기가 분명함"
    ev = db.session.get(Evaluation, svc.create_evaluation(data, admin.id, admin.name))
    assert ev.criteria_feedback == {"motivation": "지원 동기가 분명함"}


def test_overall_weights_stages_by_count(db, admin, subject, templates):
    _create(templates["서류 전형"], subject, 8, admin, days=0)
    _create(templates["서류 전형"], subject, 6, admin, days=1)
    _create(templates["면접 전형"], subject, 10, admin, days=2)

    summary = _summary(db, subject.id)
    assert summary["document_review"]["average_score"] == 7
    assert summary["interview"]["average_score"] == 10
    assert summary["overall_average"] == 8


@pytest.mark.parametrize("mutate, field", [
    (lambda d: d["scores"].pop("fit"), "scores.fit"),
    (lambda d: d["scores"]["fit"].update(score=11), "scores.fit"),
    (lambda d: d.update(overall_feedback="   "), "overall_feedback"),
    (lambda d: d.update(evaluation_stage="캠프 생활"), "evaluation_stage"),
])
def test_invalid_form_writes_nothing(db, admin, subject, templates, mutate, field):
    data = form_for(templates["면접 전형"], subject, 7)
    mutate(data)
    with pytest.raises(ValidationFailed) as exc:
        svc.create_evaluation(data, admin.id, admin.name)
    assert field in {e["field"] for e in exc.value.errors}
    assert Evaluation.query.count() == 0
    assert _summary(db, subject.id) is None


def test_create_missing_references(admin, subject, templates):
    data = form_for(templates["면접 전형"], subject, 7)
    with pytest.raises(NotFound):
        svc.create_evaluation({**data, "criteria_template_id": 9999}, admin.id, admin.name)
    with pytest.raises(NotFound):
        svc.create_evaluation({**data, "target_user_id": 9999}, admin.id, admin.name)


def test_get_user_evaluations_order_and_filter(admin, subject, templates):
    a = _create(templates["서류 전형"], subject, 5, admin, days=0)
    b = _create(templates["면접 전형"], subject, 6, admin, days=2)
    c = _create(templates["서류 전형"], subject, 7, admin, days=1)

    assert [e.id for e in svc.get_user_evaluations(subject.id)] == [b, c, a]
    assert [e.id for e in svc.get_user_evaluations(subject.id, "서류 전형")] == [c, a]
    assert svc.get_user_evaluations(subject.id, "캠프 생활") == []
    with pytest.raises(ValidationFailed):
        svc.get_user_evaluations(subject.id, "기타")


def test_update_scores_recomputes_total_and_summary(db, admin, subject, templates):
    tpl = templates["캠프 생활"]
    ev_id = _create(tpl, subject, 4, admin)
    _create(tpl, subject, 8, admin, days=1)
    assert _summary(db, subject.id)["camp_life"]["average_score"] == 6

    svc.update_evaluation(ev_id, {
        "scores": {i["id"]: {"score": 10} for i in tpl.ordered_items()},
        "feedback": "크게 성장함",
    })

    ev = db.session.get(Evaluation, ev_id)
    assert ev.total_score == 10
    assert ev.percentage == 100
    assert ev.feedback == "크게 성장함"
    camp = _summary(db, subject.id)["camp_life"]
    assert camp["average_score"] == 9
    assert camp["highest_score"] == 10
    assert camp["lowest_score"] == 8


def test_update_stage_moves_record_between_groups(db, admin, subject, templates):
    camp = templates["캠프 생활"]
    ev_id = _create(templates["대면 교육"], subject, 6, admin)
    svc.update_evaluation(ev_id, {
        "evaluation_stage": "캠프 생활",
        "criteria_template_id": camp.id,
        "scores": {i["id"]: {"score": 9} for i in camp.ordered_items()},
    })
    ev = db.session.get(Evaluation, ev_id)
    assert ev.criteria_template_id == camp.id
    assert set(ev.scores) == {i["id"] for i in camp.ordered_items()}
    summary = _summary(db, subject.id)
    assert "face_to_face_education" not in summary
    assert summary["camp_life"]["evaluations"] == [ev_id]
    assert summary["camp_life"]["average_score"] == 9


def test_update_stage_must_match_template(db, admin, subject, templates):
    ev_id = _create(templates["면접 전형"], subject, 6, admin)
    with pytest.raises(ValidationFailed) as exc:
        svc.update_evaluation(ev_id, {"evaluation_stage": "캠프 생활"})
    assert exc.value.errors[0]["field"] == "evaluation_stage"

    # a new template without scores for its criteria is rejected too
    with pytest.raises(ValidationFailed):
        svc.update_evaluation(ev_id, {"evaluation_stage": "캠프 생활",
                                      "criteria_template_id": templates["캠프 생활"].id})
    with pytest.raises(NotFound):
        svc.update_evaluation(ev_id, {"criteria_template_id": 9999})
    db.session.expire_all()
    assert db.session.get(Evaluation, ev_id).evaluation_stage == "면접 전형"
    assert "camp_life" not in _summary(db, subject.id)


def test_update_partial_scores_merge_over_stored(db, admin, subject, templates):
    ev_id = _create(templates["면접 전형"], subject, [8, 6, 9, 5], admin)
    svc.update_evaluation(ev_id, {"scores": {"fit": {"score": 9}}})

    ev = db.session.get(Evaluation, ev_id)
    assert {cid: s["score"] for cid, s in ev.scores.items()} == {
        "communication": 8, "attitude": 6, "competency": 9, "fit": 9}
    assert ev.total_score == 8
    assert _summary(db, subject.id)["overall_average"] == 8


def test_update_rejects_unknown_criteria(db, admin, subject, templates):
    ev_id = _create(templates["면접 전형"], subject, [8, 6, 9, 5], admin)
    with pytest.raises(ValidationFailed) as exc:
        svc.update_evaluation(ev_id, {"scores": {"bogus": {"score": 10}}})
    assert "scores.bogus" in {e["field"] for e in exc.value.errors}

    db.session.expire_all()
    ev = db.session.get(Evaluation, ev_id)
    assert set(ev.scores) == {"communication", "attitude", "competency", "fit"}
    assert ev.total_score == 7
    assert _summary(db, subject.id)["overall_average"] == 7


def test_update_fills_in_missing_criterion(db, admin, subject, templates):
    data = form_for(templates["면접 전형"], subject, 7)
    ev_id = svc.create_evaluation(data, admin.id, admin.name)
    ev = db.session.get(Evaluation, ev_id)
    # a record stored before "fit" was part of the template
    ev.scores = {k: v for k, v in ev.scores.items() if k != "fit"}
    db.session.commit()

    with pytest.raises(ValidationFailed) as exc:
        svc.update_evaluation(ev_id, {"scores": {"communication": {"score": 9}}})
    assert [e["field"] for e in exc.value.errors] == ["scores.fit"]

    svc.update_evaluation(ev_id, {"scores": {"fit": {"score": 10}}})
    assert db.session.get(Evaluation, ev_id).total_score == 7.75


@pytest.mark.parametrize("fields, field", [
    ({"is_visible": "yes"}, "is_visible"),
    ({"is_finalized": 1}, "is_finalized"),
    ({"duration": "abc"}, "duration"),
    ({"duration": -5}, "duration"),
    ({"ref_application_id": 12}, "ref_application_id"),
    ({"criteria_feedback": "good"}, "criteria_feedback"),
    ({"scores": [8, 6]}, "scores"),
    ({"criteria_template_id": "1"}, "criteria_template_id"),
])
def test_update_rejects_wrong_types(db, admin, subject, templates, fields, field):
    ev_id = _create(templates["면접 전형"], subject, 6, admin)
    with pytest.raises(ValidationFailed) as exc:
        svc.update_evaluation(ev_id, fields)
    assert exc.value.errors[0]["field"] == field
    db.session.expire_all()
    ev = db.session.get(Evaluation, ev_id)
    assert ev.is_visible is False and ev.is_finalized is True
    assert ev.duration is None


def test_update_accepts_typed_fields(db, admin, subject, templates):
    ev_id = _create(templates["면접 전형"], subject, 6, admin)
    svc.update_evaluation(ev_id, {"is_visible": True, "duration": 45, "ref_application_id": "app-7"})
    db.session.expire_all()
    ev = db.session.get(Evaluation, ev_id)
    assert (ev.is_visible, ev.duration, ev.ref_application_id) == (True, 45, "app-7")


def test_update_rejects_bad_input(admin, subject, templates):
    ev_id = _create(templates["면접 전형"], subject, 6, admin)
    with pytest.raises(ValidationFailed):
        svc.update_evaluation(ev_id, {"total_score": 10})
    with pytest.raises(ValidationFailed):
        svc.update_evaluation(ev_id, {"scores": {"fit": {"score": 42}}})
    with pytest.raises(ValidationFailed):
        svc.update_evaluation(ev_id, {"feedback": ""})
    with pytest.raises(NotFound):
        svc.update_evaluation(9999, {"feedback": "x"})


def test_delete_last_record_removes_summary(db, admin, subject, templates):
    first = _create(templates["면접 전형"], subject, 6, admin)
    second = _create(templates["면접 전형"], subject, 8, admin, days=1)

    svc.delete_evaluation(first)
    summary = _summary(db, subject.id)
    assert summary["interview"]["evaluations"] == [second]
    assert summary["overall_average"] == 8

    svc.delete_evaluation(second)
    assert _summary(db, subject.id) is None
    assert db.session.get(UserEvaluationSummary, subject.id) is None
    # SQL NULL, not a JSON null/empty document
    raw = db.session.execute(db.text("SELECT evaluation_summary FROM users WHERE id = :id"), {"id": subject.id}).scalar()
    assert raw is None

    with pytest.raises(NotFound):
        svc.delete_evaluation(second)


def test_recompute_is_idempotent(db, admin, subject, templates):
    _create(templates["서류 전형"], subject, [7, 8, 6, 9], admin)
    _create(templates["대면 교육"], subject, 5, admin, days=1)

    first = svc.recompute_summary(subject.id)
    second = svc.recompute_summary(subject.id)
    assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)
    assert _summary(db, subject.id) == second


def test_recompute_unknown_user(app):
    with pytest.raises(NotFound):
        svc.recompute_summary(4242)


def test_aggregation_failure_keeps_record(db, admin, subject, templates, monkeypatch):
    def broken(evaluations):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(svc, "build_summary", broken)
    ev_id = _create(templates["면접 전형"], subject, 9, admin)

    assert db.session.get(Evaluation, ev_id) is not None
    assert _summary(db, subject.id) is None
    with pytest.raises(AggregationFailed) as exc:
        svc.recompute_summary(subject.id)
    assert exc.value.user_id == subject.id

    monkeypatch.undo()
    assert svc.recompute_summary(subject.id)["overall_average"] == 9


def test_aggregation_failure_enqueues_retry(app, admin, subject, templates, monkeypatch):
    calls = []

    def broken(evaluations):
        raise OperationalError("SELECT", {}, Exception("connection reset"))

    monkeypatch.setattr(svc, "build_summary", broken)
    monkeypatch.setattr(rq, "enqueue_in", lambda delay, func, *args, **kw: calls.append((delay, func, args)))
    app.config["SUMMARY_RETRY_ENABLED"] = True

    _create(templates["면접 전형"], subject, 9, admin)

    assert len(calls) == 1
    delay, func, args = calls[0]
    assert func is recompute_summary_job
    assert args == (subject.id,)
    assert delay.total_seconds() == app.config["SUMMARY_RETRY_DELAY_SEC"]


def test_recompute_summary_job(db, admin, subject, templates):
    _create(templates["면접 전형"], subject, 9, admin)
    _create(templates["면접 전형"], subject, 7, admin, days=1)
    assert recompute_summary_job(subject.id) == 2
    assert recompute_summary_job(4242) is None
