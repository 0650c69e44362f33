from ..extensions import db
from .base import TimestampMixin

# stage value -> key used in the evaluation summary document
STAGE_KEYS = {
    "서류 전형": "document_review",
    "면접 전형": "interview",
    "대면 교육": "face_to_face_education",
    "캠프 생활": "camp_life",
}
EVALUATION_STAGES = list(STAGE_KEYS)


class Evaluation(db.Model, TimestampMixin):
    __tablename__ = "evaluations"
    id = db.Column(db.Integer, primary_key=True)
    ref_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    ref_application_id = db.Column(db.String(64))
    ref_job_board_id = db.Column(db.String(64))

    evaluation_stage = db.Column(db.String(20), nullable=False, index=True)
    criteria_template_id = db.Column(db.Integer, db.ForeignKey("evaluation_criteria.id"), nullable=False)

    evaluator_id = db.Column(db.Integer)  # users.id
    evaluator_name = db.Column(db.String(120))
    evaluator_role = db.Column(db.String(50))

    scores = db.Column(db.JSON, nullable=False, default=dict)  # {"communication": {"score": 8, "max_score": 10}}
    total_score = db.Column(db.Float, nullable=False, default=0.0)
    max_total_score = db.Column(db.Float, nullable=False, default=10.0)
    percentage = db.Column(db.Float, nullable=False, default=0.0)

    feedback = db.Column(db.Text, nullable=False)
    criteria_feedback = db.Column(db.JSON)  # {"communication": "..."}

    evaluation_date = db.Column(db.DateTime, nullable=False, index=True)
    duration = db.Column(db.Integer)  # minutes
    is_finalized = db.Column(db.Boolean, nullable=False, default=True)
    is_visible = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            "id": self.id,
            "ref_user_id": self.ref_user_id,
            "ref_application_id": self.ref_application_id,
            "ref_job_board_id": self.ref_job_board_id,
            "evaluation_stage": self.evaluation_stage,
            "criteria_template_id": self.criteria_template_id,
            "evaluator_id": self.evaluator_id,
            "evaluator_name": self.evaluator_name,
            "evaluator_role": self.evaluator_role,
            "scores": self.scores or {},
            "total_score": self.total_score,
            "max_total_score": self.max_total_score,
            "percentage": self.percentage,
            "feedback": self.feedback,
            "criteria_feedback": self.criteria_feedback or {},
            "evaluation_date": self.evaluation_date.isoformat() if self.evaluation_date else None,
            "duration": self.duration,
            "is_finalized": self.is_finalized,
            "is_visible": self.is_visible,
        }

    def __repr__(self) -> str:
        return f"<Evaluation id={self.id} user={self.ref_user_id} stage={self.evaluation_stage!r} total={self.total_score}>"
