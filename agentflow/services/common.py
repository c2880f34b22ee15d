"""Helpers shared by every service: caller checks and input validation."""

from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..errors import NotAuthorized, ValidationError

M = TypeVar("M", bound=BaseModel)


def require_caller(caller_id: Optional[str], action: str = "perform this action") -> str:
    if not caller_id:
        raise NotAuthorized(f"You must be logged in to {action}")
    return caller_id


def validate_input(model: Type[M], data: Any) -> M:
    """Coerce ``data`` (model instance, dict or None) into ``model``."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data or {})
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc
