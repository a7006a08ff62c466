"""
Response helper functions for Lambda handlers.

Every response carries JSON content type and CORS headers. Error bodies
always have a stable ``error`` field.
"""

import json
from decimal import Decimal
from typing import Dict, Any, Optional


CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'Content-Type,Authorization',
    'Access-Control-Allow-Methods': 'GET,POST,PUT,PATCH,DELETE,OPTIONS'
}


def _json_default(value: Any) -> Any:
    # DynamoDB returns every number as Decimal and string sets as set
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f'Object of type {type(value).__name__} is not JSON serializable')


def _headers() -> Dict[str, str]:
    return {
        'Content-Type': 'application/json',
        **CORS_HEADERS
    }


def create_success_response(status_code: int, data: Any) -> Dict[str, Any]:
    """
    Create a successful HTTP response.

    Args:
        status_code: HTTP status code (200, 201, etc.)
        data: Response payload to be JSON serialized

    Returns:
        Lambda proxy integration response object
    """
    return {
        'statusCode': status_code,
        'headers': _headers(),
        'body': json.dumps(data, default=_json_default)
    }


def create_error_response(
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Create an error HTTP response with consistent structure.

    All error responses follow the format:
    {
        "error": "Human-readable message",
        "code": "ERROR_CODE",
        "details": { ... }        (only when there are details)
    }

    Args:
        status_code: HTTP status code (400, 404, 409, 500, etc.)
        code: Error code string (VALIDATION_ERROR, NOT_FOUND, CONFLICT, etc.)
        message: Human-readable error message
        details: Additional error context (field errors, conflict info, etc.)

    Returns:
        Lambda proxy integration response object
    """
    body: Dict[str, Any] = {
        'error': message,
        'code': code
    }
    if details:
        body['details'] = details

    return {
        'statusCode': status_code,
        'headers': _headers(),
        'body': json.dumps(body, default=_json_default)
    }
