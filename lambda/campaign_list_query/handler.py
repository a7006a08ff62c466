"""
Campaign listing Lambda handler.

GET /users/{userId}/campaigns?status=&scheduledFrom=&scheduledTo=&limit=&nextToken=

Campaigns are returned newest first. ``status`` selects the status key
range; the scheduledAt bounds are applied after the read, so a page may hold
fewer than ``limit`` campaigns while ``nextToken`` is still set.
"""

from typing import Any, Dict

from goodbricks_shared.campaign_service import CampaignService
from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request, require_valid
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.pagination import parse_limit
from goodbricks_shared.validation import is_iso_timestamp, validate_campaign_status


config = load_config()

campaign_service = CampaignService(create_clients(config))


def _list_campaigns(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    status = request.query_param('status')
    scheduled_from = request.query_param('scheduledFrom')
    scheduled_to = request.query_param('scheduledTo')

    errors = validate_campaign_status(status)
    for field, value in (('scheduledFrom', scheduled_from), ('scheduledTo', scheduled_to)):
        if value is not None and not is_iso_timestamp(value):
            errors.append({'field': field, 'message': 'Must be an ISO-8601 timestamp'})
    require_valid(errors)

    return campaign_service.list_campaigns(
        request.path_param('userId'),
        status=status,
        scheduled_from=scheduled_from,
        scheduled_to=scheduled_to,
        limit=parse_limit(request.query_param('limit')),
        next_token=request.query_param('nextToken')
    )


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Response codes:
        200: One page of campaigns
        400: Invalid status, timestamp bound, limit or nextToken
        500: Internal error
    """
    return handle_request(event, 'campaign-list-query', _list_campaigns)
