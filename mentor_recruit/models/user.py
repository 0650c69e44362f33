from ..extensions import db
from flask_login import UserMixin
from .base import TimestampMixin

class User(db.Model, UserMixin, TimestampMixin):
    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(120))
    phone = db.Column(db.String(40))
    role = db.Column(db.String(50), default="user")  # admin/mentor/user

    # cached copy of UserEvaluationSummary.summary; NULL until the first evaluation
    evaluation_summary = db.Column(db.JSON(none_as_null=True), nullable=True)

    @property
    def is_admin(self):
        return self.role == "admin"

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role!r}>"
