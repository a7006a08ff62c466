"""
Campaign deletion Lambda handler.

DELETE /users/{userId}/campaigns/{campaignId}
"""

from typing import Any, Dict

from goodbricks_shared.campaign_service import CampaignService
from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request
from goodbricks_shared.logger import StructuredLogger


config = load_config()

campaign_service = CampaignService(create_clients(config))


def _delete_campaign(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    return campaign_service.delete_campaign(
        request.path_param('userId'),
        request.path_param('campaignId'),
        logger.correlation_id
    )


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Response codes:
        200: Campaign deleted; orphanedKeys lists derived copies left behind
        404: Campaign does not exist
        500: Internal error
    """
    return handle_request(event, 'campaign-delete', _delete_campaign)
