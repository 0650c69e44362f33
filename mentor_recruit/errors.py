class EvaluationError(Exception):
    """Base class for errors raised by the evaluation services."""
    status_code = 500

    def to_dict(self):
        return {"error": str(self)}


class NotFound(EvaluationError):
    status_code = 404


class ValidationFailed(EvaluationError):
    status_code = 400

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = list(errors or [])

    def to_dict(self):
        out = super().to_dict()
        if self.errors:
            out["errors"] = self.errors
        return out


class StoreFailure(EvaluationError):
    """A database read or write failed."""


class AggregationFailed(StoreFailure):
    """A store failure while recomputing a user's evaluation summary."""

    def __init__(self, user_id, message=None):
        super().__init__(message or f"evaluation summary recomputation failed for user {user_id}")
        self.user_id = user_id
