"""
One campaign delivery of one audience member.

GET /users/{userId}/audience/{email}/campaigns/{campaignId}
"""

from typing import Any, Dict

from goodbricks_shared.audience_service import AudienceService
from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request
from goodbricks_shared.logger import StructuredLogger


config = load_config()

audience_service = AudienceService(create_clients(config))


def _campaign_details(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    return audience_service.member_campaign_details(
        request.path_param('userId'),
        request.path_param('email'),
        request.path_param('campaignId')
    )


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Response codes:
        200: Delivery record merged with the current campaign
        404: The campaign was never sent to this member
        500: Internal error
    """
    return handle_request(event, 'audience-campaign-get', _campaign_details)
