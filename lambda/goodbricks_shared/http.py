"""
Request parsing and the handler lifecycle shared by every Lambda.

Request flow:
1. Create structured logger with correlation ID
2. Log request start
3. Run the operation (parse, validate, delegate to the service)
4. Map domain errors to HTTP responses
5. Log request completion with latency and publish metrics
"""

import json
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import unquote

from goodbricks_shared.errors import DomainError, ValidationError
from goodbricks_shared.logger import StructuredLogger, create_logger
from goodbricks_shared.responses import create_error_response, create_success_response


class ApiRequest:
    """Accessors over an API Gateway proxy event."""

    def __init__(self, event: Dict[str, Any]):
        self.event = event
        self.path_parameters = event.get('pathParameters') or {}
        self.query_parameters = event.get('queryStringParameters') or {}

    def path_param(self, name: str) -> str:
        """
        Raises:
            ValidationError: If the path parameter is missing or empty
        """
        value = self.path_parameters.get(name)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f'{name} is required', {'field': name})
        return unquote(value)

    def query_param(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self.query_parameters.get(name)
        if value is None or value == '':
            return default
        return value

    def json_body(self, required: bool = True) -> Dict[str, Any]:
        """
        Parse the JSON body. Floats are parsed as Decimal for DynamoDB.

        Raises:
            ValidationError: If the body is missing, not JSON, or not an object
        """
        body = self.event.get('body')
        if body is None or body == '':
            if required:
                raise ValidationError('Request body is required', {'body': 'Request body is required'})
            return {}

        if isinstance(body, str):
            try:
                body = json.loads(body, parse_float=Decimal)
            except json.JSONDecodeError:
                raise ValidationError(
                    'Invalid JSON in request body',
                    {'body': 'Request body must be valid JSON'}
                )

        if not isinstance(body, dict):
            raise ValidationError('Request body must be a JSON object', {'body': 'Expected an object'})
        return body


def require_valid(errors: List[Dict[str, str]]) -> None:
    """Raise ValidationError carrying the field errors when there are any."""
    if errors:
        raise ValidationError('Invalid request data', {'errors': errors})


Operation = Callable[[ApiRequest, StructuredLogger], Any]


def handle_request(
    event: Dict[str, Any],
    operation: str,
    action: Operation,
    success_status: int = 200
) -> Dict[str, Any]:
    """
    Run one API operation with logging, metrics and error mapping.

    Args:
        event: API Gateway Lambda proxy integration event
        operation: Operation name for logs and metrics (e.g. 'campaign-create')
        action: Callable doing the work; returns the success payload
        success_status: Status code of a successful response

    Returns:
        API Gateway Lambda proxy integration response

    Response codes:
        success_status on success, the domain error's status code for domain
        errors, 500 for anything else
    """
    logger = create_logger(event, operation=operation)
    logger.log_request_start(
        path=event.get('path', ''),
        method=event.get('httpMethod', '')
    )

    try:
        data = action(ApiRequest(event), logger)

        if isinstance(data, dict):
            logger.record_orphans(data.get('orphanedKeys'))
        logger.log_request_complete(status_code=success_status)
        logger.publish_metrics()
        return create_success_response(success_status, data)

    except ValidationError as error:
        logger.log_validation_error(errors=error.details, errorCode=error.code)
        logger.metrics.emit_error(error_code=error.code)
        logger.publish_metrics()
        return create_error_response(error.status_code, error.code, error.message, error.details)

    except DomainError as error:
        logger.log_domain_error(error_code=error.code, error_message=error.message)
        logger.publish_metrics()
        return create_error_response(error.status_code, error.code, error.message, error.details)

    except Exception as error:
        # Do not expose internal details to client
        logger.log_unexpected_error(
            error_type=type(error).__name__,
            error_message=str(error)
        )
        logger.publish_metrics()
        return create_error_response(500, 'INTERNAL_ERROR', 'Internal Server Error')
