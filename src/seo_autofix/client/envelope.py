"""Tagged results for scan service calls.

Every admin-ajax response is wrapped as ``{"success": bool, "data": ...}``.
The envelope is decoded once, here, into ``Ok(value)`` or ``Err(message)`` so
callers never look at a success flag themselves.
"""

import logging
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ValidationError

from .. import messages

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSPORT = "transport"
SERVICE = "service"
GUARD = "guard"


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful call carrying the decoded payload."""
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed call carrying a user-facing message."""
    message: str
    kind: str = SERVICE

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


def failure_message(data: Any, default: str = messages.ERROR) -> str:
    """Extract the server-supplied message from error data, if any."""
    if isinstance(data, dict):
        message = data.get("message")
        if isinstance(message, str) and message.strip():
            return message
    elif isinstance(data, str) and data.strip():
        return data
    return default


def decode_envelope(
    payload: Any,
    model: Optional[type[BaseModel]] = None,
    default_message: str = messages.ERROR,
) -> Result:
    """Decode a ``{success, data}`` envelope.

    Args:
        payload: Parsed JSON body
        model: Optional pydantic model the success data is validated into
        default_message: Message used when the server gives none

    Returns:
        Ok with the (validated) data, or Err with the message to surface
    """
    if not isinstance(payload, dict) or "success" not in payload:
        logger.warning(f"Malformed response envelope: {str(payload)[:200]}")
        return Err(default_message, SERVICE)

    data = payload.get("data")
    if not payload["success"]:
        return Err(failure_message(data, default_message), SERVICE)

    if model is None:
        return Ok(data)

    try:
        return Ok(model.model_validate(data if data is not None else {}))
    except ValidationError as e:
        logger.warning(f"Invalid {model.__name__} payload: {e}")
        return Err(default_message, SERVICE)
