"""Decoding of JSON-encoded command fields."""

import json

from protean.exceptions import ValidationError


def load_json(raw, field: str, expected: type | None = None):
    """Decode ``raw`` for ``field``, reporting malformed input as a ``ValidationError``."""
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        raise ValidationError({field: [f"{field} must be valid JSON"]}) from None

    if expected is not None and not isinstance(value, expected):
        raise ValidationError({field: [f"Expected a JSON {'list' if expected is list else 'object'}"]})
    return value
