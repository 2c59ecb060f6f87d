"""Wire codec for chat envelopes (one JSON object per WebSocket text frame)."""
import json

from pydantic import BaseModel, ValidationError

from pagichat.shared.models import InboundEnvelope


class EnvelopeDecodeError(ValueError):
    """Raised when an inbound frame is not a valid envelope."""


def encode_envelope(envelope: BaseModel) -> str:
    return envelope.model_dump_json(exclude_none=True)


def decode_envelope(raw: str | bytes) -> InboundEnvelope:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise EnvelopeDecodeError(f"not json: {e}") from e

    if not isinstance(data, dict):
        raise EnvelopeDecodeError(f"envelope must be an object, got {type(data).__name__}")

    try:
        return InboundEnvelope.model_validate(data)
    except ValidationError as e:
        raise EnvelopeDecodeError(f"invalid envelope: {e.error_count()} error(s)") from e
