from ..extensions import db
from .base import TimestampMixin

class EvaluationCriteria(db.Model, TimestampMixin):
    __tablename__ = "evaluation_criteria"

    id = db.Column(db.Integer, primary_key=True)
    stage = db.Column(db.String(20), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)
    # [{"id": "communication", "name": "...", "description": "...", "max_score": 10, "order": 1}]
    criteria = db.Column(db.JSON, nullable=False, default=list)
    version = db.Column(db.Integer, nullable=False, default=1)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    created_by = db.Column(db.String(64))

    def ordered_items(self):
        return sorted(self.criteria or [], key=lambda c: c.get("order", 0))

    def to_dict(self):
        return {
            "id": self.id,
            "stage": self.stage,
            "name": self.name,
            "description": self.description,
            "criteria": self.ordered_items(),
            "version": self.version,
            "is_active": self.is_active,
            "is_default": self.is_default,
            "created_by": self.created_by,
        }

    def __repr__(self) -> str:
        return f"<EvaluationCriteria id={self.id} stage={self.stage!r} v{self.version}>"
