"""Typed error taxonomy. Callers branch on ``kind``, never on the message."""


class AgentflowError(Exception):
    """Base exception for every failure the store reports."""
    kind = "internal"

    def __init__(self, message: str, details: list = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "details": self.details}


class NotAuthorized(AgentflowError):
    """Missing caller identity or insufficient permission."""
    kind = "not_authorized"


class NotFound(AgentflowError):
    """Entity does not exist, or the caller may not know it exists."""
    kind = "not_found"


class DuplicateName(AgentflowError):
    """The owner already has a workflow with this name."""
    kind = "duplicate_name"

    def __init__(self, message: str, name: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.name = name


class InvalidWorkflow(AgentflowError):
    """A structural precondition failed (e.g. deploying an empty graph)."""
    kind = "invalid_workflow"


class AlreadyShared(AgentflowError):
    kind = "already_shared"


class UserNotFound(AgentflowError):
    kind = "user_not_found"


class ValidationError(AgentflowError):
    """Malformed input shape. ``details`` holds one entry per offending field."""
    kind = "validation_error"

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationError":
        details = [
            {"path": ".".join(str(p) for p in err.get("loc", ())), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        return cls("Invalid input", details=details)
