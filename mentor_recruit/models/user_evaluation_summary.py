from ..extensions import db
from .base import TimestampMixin

class UserEvaluationSummary(db.Model, TimestampMixin):
    """Lookup copy of User.evaluation_summary, keyed by the evaluated user.

    Derived data: rebuilt from the evaluations table on every write and
    removed when the user has no evaluations left.
    """
    __tablename__ = "user_evaluation_summaries"

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), primary_key=True)
    overall_average = db.Column(db.Float, nullable=False)
    total_evaluations = db.Column(db.Integer, nullable=False)
    summary = db.Column(db.JSON, nullable=False)

    def to_dict(self):
        return {"user_id": self.user_id, **(self.summary or {})}

    def __repr__(self) -> str:
        return f"<UserEvaluationSummary user_id={self.user_id} avg={self.overall_average} n={self.total_evaluations}>"
