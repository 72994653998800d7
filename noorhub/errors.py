"""
Error taxonomy shared by the workflow services.

Services raise these; the API layer renders them through a single
exception handler registered in ``main.create_app``.
"""


class WorkflowError(Exception):
    kind = "workflow_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "kind": self.kind}


class ValidationError(WorkflowError):
    kind = "validation_error"
    status_code = 400


class InvalidProgress(ValidationError):
    kind = "invalid_progress"


class Forbidden(WorkflowError):
    kind = "forbidden"
    status_code = 403


class InvalidStateTransition(WorkflowError):
    kind = "invalid_state_transition"
    status_code = 409


class NotFound(WorkflowError):
    kind = "not_found"
    status_code = 404


class PersistenceError(WorkflowError):
    kind = "persistence_error"
    status_code = 500
