"""
Opaque pagination tokens.

A token is the DynamoDB LastEvaluatedKey of the previous page encoded as
URL-safe base64 JSON. Clients must treat it as opaque.
"""

import base64
import binascii
import json
from decimal import Decimal
from typing import Any, Dict, Optional

from goodbricks_shared.errors import InvalidTokenError, ValidationError


DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


def _default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    raise TypeError(f'Object of type {type(value).__name__} is not JSON serializable')


def encode_token(last_evaluated_key: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Encode a LastEvaluatedKey as a continuation token.

    Returns None when there is no further page.
    """
    if not last_evaluated_key:
        return None
    raw = json.dumps(last_evaluated_key, sort_keys=True, separators=(',', ':'), default=_default)
    return base64.urlsafe_b64encode(raw.encode('utf-8')).decode('ascii')


def decode_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Decode a continuation token back into an ExclusiveStartKey.

    Args:
        token: Token returned with a previous page, or None/empty

    Returns:
        The start key, or None when no token was given

    Raises:
        InvalidTokenError: If the token is not one this module produced
    """
    if token is None or token == '':
        return None
    if not isinstance(token, str):
        raise InvalidTokenError()

    try:
        padded = token + '=' * (-len(token) % 4)
        decoded = json.loads(base64.urlsafe_b64decode(padded.encode('ascii')).decode('utf-8'))
    except (binascii.Error, UnicodeError, ValueError):
        raise InvalidTokenError()

    if not isinstance(decoded, dict):
        raise InvalidTokenError()
    if not isinstance(decoded.get('PK'), str) or not isinstance(decoded.get('SK'), str):
        raise InvalidTokenError()

    return decoded


def parse_limit(value: Any, default: int = DEFAULT_PAGE_SIZE, maximum: int = MAX_PAGE_SIZE) -> int:
    """
    Parse a page size query parameter.

    Raises:
        ValidationError: If the value is not an integer between 1 and ``maximum``
    """
    if value is None or value == '':
        return default
    try:
        limit = int(value)
    except (TypeError, ValueError):
        raise ValidationError(
            'limit must be an integer',
            {'field': 'limit', 'value': value}
        )
    if limit < 1 or limit > maximum:
        raise ValidationError(
            f'limit must be between 1 and {maximum}',
            {'field': 'limit', 'value': limit}
        )
    return limit
