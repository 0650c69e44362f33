from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import StoreFailure, ValidationFailed
from ..models.evaluation import EVALUATION_STAGES
from ..models.evaluation_criteria import EvaluationCriteria


def _item(cid, name, description, order, max_score=10):
    return {"id": cid, "name": name, "description": description, "max_score": max_score, "order": order}


# one default template per stage, four criteria each, scored out of 10
DEFAULT_CRITERIA = [
    {
        "stage": "서류 전형",
        "name": "서류 전형 평가",
        "description": "서류 전형에서 사용되는 평가 기준입니다.",
        "criteria": [
            _item("document_completeness", "서류 완성도", "지원서 작성의 완성도 및 성실성", 1),
            _item("experience_relevance", "경력 적합성", "지원 분야와 관련된 경험 및 역량", 2),
            _item("motivation", "지원 동기", "지원 동기의 명확성 및 진정성", 3),
            _item("potential", "성장 잠재력", "향후 발전 가능성 및 학습 의지", 4),
        ],
    },
    {
        "stage": "면접 전형",
        "name": "면접 전형 평가",
        "description": "면접 전형에서 사용되는 평가 기준입니다.",
        "criteria": [
            _item("communication", "의사소통 능력", "질문 이해도, 답변의 명확성, 표현력", 1),
            _item("attitude", "태도 및 자세", "면접 태도, 적극성, 예의", 2),
            _item("competency", "업무 역량", "관련 경험, 기술적 이해도, 학습 의지", 3),
            _item("fit", "조직 적합성", "팀워크, 조직 문화 적응도, 가치관", 4),
        ],
    },
    {
        "stage": "대면 교육",
        "name": "대면 교육 평가",
        "description": "대면 교육에서 사용되는 평가 기준입니다.",
        "criteria": [
            _item("facial_expression", "표정", "교육 전반에 걸친 표정", 1),
            _item("attitude", "태도", "자세 유지 및 교육에 대한 호응도", 2),
            _item("proactivity", "적극성", "질문 여부", 3),
            _item("basic_manners", "기본 매너", "지각 여부 및 다른 선생님들과의 소통 태도", 4),
        ],
    },
    {
        "stage": "캠프 생활",
        "name": "캠프 생활 평가",
        "description": "캠프 생활에서 사용되는 평가 기준입니다.",
        "criteria": [
            _item("adaptation", "적응력", "새로운 환경에 대한 적응 정도", 1),
            _item("collaboration", "협업 능력", "동료들과의 소통 및 협력", 2),
            _item("responsibility", "책임감", "맡은 역할에 대한 책임감 및 성실성", 3),
            _item("leadership", "리더십", "팀을 이끄는 능력 및 솔선수범", 4),
        ],
    },
]


def _check_stage(stage):
    if stage not in EVALUATION_STAGES:
        raise ValidationFailed(f"unknown evaluation stage: {stage!r}", errors=[{"field": "stage", "value": stage}])


def create_default_criteria(created_by="system"):
    """Insert the default template for every stage that has none yet.

    All templates are written in a single commit. Returns the new ids.
    """
    try:
        existing = {
            row.stage for row in
            EvaluationCriteria.query.filter_by(is_default=True, is_active=True).all()
        }
        rows = []
        for tpl in DEFAULT_CRITERIA:
            if tpl["stage"] in existing:
                continue
            row = EvaluationCriteria(
                stage=tpl["stage"],
                name=tpl["name"],
                description=tpl["description"],
                criteria=[dict(c) for c in tpl["criteria"]],
                version=1,
                is_active=True,
                is_default=True,
                created_by=created_by,
            )
            db.session.add(row)
            rows.append(row)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception("default criteria creation failed")
        raise StoreFailure(str(e)) from e
    current_app.logger.info("created %d default evaluation criteria templates", len(rows))
    return [r.id for r in rows]


def get_criteria_by_stage(stage):
    _check_stage(stage)
    try:
        return (
            EvaluationCriteria.query
            .filter_by(stage=stage, is_active=True)
            .order_by(EvaluationCriteria.created_at.desc(), EvaluationCriteria.id.desc())
            .all()
        )
    except SQLAlchemyError as e:
        raise StoreFailure(str(e)) from e


def get_default_criteria(stage):
    _check_stage(stage)
    try:
        return (
            EvaluationCriteria.query
            .filter_by(stage=stage, is_default=True, is_active=True)
            .order_by(EvaluationCriteria.version.desc())
            .first()
        )
    except SQLAlchemyError as e:
        raise StoreFailure(str(e)) from e


def get_criteria_by_id(criteria_id):
    try:
        return db.session.get(EvaluationCriteria, criteria_id)
    except SQLAlchemyError as e:
        raise StoreFailure(str(e)) from e
