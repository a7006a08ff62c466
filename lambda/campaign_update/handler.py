"""
Campaign update Lambda handler.

This handler implements PUT /users/{userId}/campaigns/{campaignId}.

Payload changes refresh every copy of the campaign. A status change goes
through the campaign state machine; changing target groups moves the group
copies. Copies that could not be cleaned up are reported as ``orphanedKeys``.
"""

from typing import Any, Dict

from goodbricks_shared.campaign_service import CampaignService
from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import OPTIONAL_DEFAULTS, load_config
from goodbricks_shared.http import ApiRequest, handle_request, require_valid
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.validation import validate_campaign_update_request


config = load_config(optional_vars={**OPTIONAL_DEFAULTS, 'EMAIL_LAYOUTS_BUCKET_NAME': ''})

campaign_service = CampaignService(create_clients(config), default_from_email=config['default_from_email'])


def _update_campaign(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    owner_id = request.path_param('userId')
    campaign_id = request.path_param('campaignId')
    body = request.json_body()
    require_valid(validate_campaign_update_request(body))
    return campaign_service.update_campaign(owner_id, campaign_id, body, logger.correlation_id)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for campaign updates.

    Response codes:
        200: Campaign updated
        400: Validation error or illegal status transition
        404: Campaign does not exist
        409: Status changed concurrently
        500: Internal error
    """
    return handle_request(event, 'campaign-update', _update_campaign)
