"""
Campaign creation Lambda handler.

This handler implements POST /users/{userId}/campaigns.
It follows the Lambda-per-operation pattern with clear separation of concerns:
- Handler: Parse request, validate input, map errors to HTTP responses
- Service: Business logic (goodbricks_shared.campaign_service)
- Validation: Input validation (goodbricks_shared.validation)

The layouts bucket is optional here: without it, campaigns that reference a
layout are still created and the template failure is reported under
``sesTemplate.error``.
"""

from typing import Any, Dict

from goodbricks_shared.campaign_service import CampaignService
from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import OPTIONAL_DEFAULTS, load_config
from goodbricks_shared.http import ApiRequest, handle_request, require_valid
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.validation import validate_campaign_create_request


# Configuration loaded once at cold start
# This will fail fast if configuration is invalid
config = load_config(optional_vars={**OPTIONAL_DEFAULTS, 'EMAIL_LAYOUTS_BUCKET_NAME': ''})

# Initialize service once at cold start
campaign_service = CampaignService(create_clients(config), default_from_email=config['default_from_email'])


def _create_campaign(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    owner_id = request.path_param('userId')
    body = request.json_body()

    # Fail fast - validate before any I/O
    require_valid(validate_campaign_create_request(body))

    result = campaign_service.create_campaign(owner_id, body, logger.correlation_id)
    logger.metrics.emit_count('RecordsCreated', result['recordsCreated'])
    return result


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for campaign creation.

    Request flow:
    1. Create structured logger with correlation ID
    2. Parse and validate request body
    3. Delegate to the campaign service
    4. Map domain errors to HTTP responses

    Args:
        event: API Gateway Lambda proxy integration event
        context: Lambda context object

    Returns:
        API Gateway Lambda proxy integration response

    Response codes:
        201: Campaign created
        400: Validation error
        500: Internal error
    """
    return handle_request(event, 'campaign-create', _create_campaign, success_status=201)
