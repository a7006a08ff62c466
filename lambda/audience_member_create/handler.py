"""
Audience member creation Lambda handler.

This handler implements POST /users/{userId}/audience.
It follows the Lambda-per-operation pattern with clear separation of concerns:
- Handler: Parse request, validate input, map errors to HTTP responses
- Service: Business logic (goodbricks_shared.audience_service)
- Validation: Input validation (goodbricks_shared.validation)
"""

from typing import Any, Dict

from goodbricks_shared.audience_service import AudienceService
from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request, require_valid
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.validation import validate_audience_create_request


# Configuration loaded once at cold start
# This will fail fast if configuration is invalid
config = load_config()

# Initialize service once at cold start
audience_service = AudienceService(create_clients(config))


def _create_member(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    owner_id = request.path_param('userId')
    body = request.json_body()

    # Fail fast - validate before any I/O
    require_valid(validate_audience_create_request(body))

    return audience_service.create_member(owner_id, body, logger.correlation_id)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for audience member creation.

    Args:
        event: API Gateway Lambda proxy integration event
        context: Lambda context object

    Returns:
        API Gateway Lambda proxy integration response

    Response codes:
        201: Member created with its group memberships
        400: Validation error
        409: Member already exists
        500: Internal error
    """
    return handle_request(event, 'audience-member-create', _create_member, success_status=201)
