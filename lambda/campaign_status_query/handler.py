"""
Campaigns in one status across the organization.

GET /users/{userId}/campaigns/status/{status}?limit=&nextToken=
"""

from typing import Any, Dict

from goodbricks_shared.campaign_service import CampaignService
from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request, require_valid
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.pagination import parse_limit
from goodbricks_shared.validation import validate_campaign_status


config = load_config()

campaign_service = CampaignService(create_clients(config))


def _campaigns_by_status(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    status = request.path_param('status')
    require_valid(validate_campaign_status(status))
    return campaign_service.campaigns_by_status(
        request.path_param('userId'),
        status,
        limit=parse_limit(request.query_param('limit')),
        next_token=request.query_param('nextToken')
    )


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return handle_request(event, 'campaign-status-query', _campaigns_by_status)
