"""
Response envelopes and chained failure.

Every remote call is wrapped in a ``ResponseEnvelope``. A pipeline stage
decodes the envelope it depends on exactly once with ``decode_payload``:
either it gets a typed ``Ok`` back, or it gets the envelope itself, which
it returns to its own caller untouched. That is the only failure
propagation mechanism in the pipeline; nothing is wrapped or re-annotated
on the way up, so the top-level caller sees the deepest failure as the
node (or transport) produced it.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class ResponseEnvelope(BaseModel):
    """
    Outcome of a single remote call.

    Attributes:
        success: Whether the call succeeded at the transport and HTTP level
        payload: JSON text of the result, present only on success
        raw: The response exactly as received (body text, or the transport
            error description when no response arrived)
        status_code: HTTP status code, when there was one
    """
    model_config = ConfigDict(frozen=True)

    success: bool
    payload: Optional[str] = None
    raw: str = ""
    status_code: Optional[int] = None

    @classmethod
    def ok(cls, body: Any, status_code: Optional[int] = 200) -> "ResponseEnvelope":
        """Build a successful envelope from a JSON-serialisable body."""
        text = body if isinstance(body, str) else json.dumps(body)
        return cls(success=True, payload=text, raw=text, status_code=status_code)

    @classmethod
    def failure(cls, raw: str, status_code: Optional[int] = None) -> "ResponseEnvelope":
        """Build a failed envelope carrying ``raw`` as the error description."""
        return cls(success=False, payload=None, raw=raw, status_code=status_code)

    def json_payload(self) -> Optional[Dict[str, Any]]:
        """
        Parse the payload as a JSON object.

        Returns:
            The decoded object, or None when there is no payload or it is not
            a JSON object
        """
        if self.payload is None:
            return None
        try:
            value = json.loads(self.payload)
        except ValueError:
            return None
        return value if isinstance(value, dict) else None


@dataclass(frozen=True)
class Ok(Generic[T]):
    """A successfully decoded stage payload, with the envelope it came from."""
    value: T
    envelope: ResponseEnvelope


StageResult = Union[Ok[T], ResponseEnvelope]


def is_failure(result: "StageResult") -> bool:
    """True when ``result`` is a propagated envelope rather than an ``Ok``."""
    return isinstance(result, ResponseEnvelope)


def decode_payload(envelope: ResponseEnvelope, model: Type[T]) -> "StageResult[T]":
    """
    Decode ``envelope.payload`` into ``model``.

    Returns ``envelope`` itself (the same object) when the call failed, when
    there is no payload, or when the payload is not JSON or lacks a field
    ``model`` requires.

    Args:
        envelope: Envelope returned by the stage's dependency
        model: Pydantic model describing the fields the stage needs

    Returns:
        ``Ok`` wrapping the decoded model, or the envelope unchanged
    """
    if not envelope.success or envelope.payload is None:
        return envelope

    try:
        value = model.model_validate_json(envelope.payload)
    except ValidationError as e:
        logger.debug(f"Incomplete {model.__name__} payload: {e.error_count()} error(s)")
        return envelope

    return Ok(value=value, envelope=envelope)
