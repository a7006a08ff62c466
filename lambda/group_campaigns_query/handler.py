"""
Campaigns targeting an audience group.

GET /users/{userId}/groups/{groupId}/campaigns?status=&limit=&nextToken=

With ``status`` the read is served by the group status key range.
"""

from typing import Any, Dict

from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.group_service import GroupService
from goodbricks_shared.http import ApiRequest, handle_request, require_valid
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.pagination import parse_limit
from goodbricks_shared.validation import validate_campaign_status


config = load_config()

group_service = GroupService(create_clients(config))


def _group_campaigns(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    status = request.query_param('status')
    require_valid(validate_campaign_status(status))
    return group_service.group_campaigns(
        request.path_param('userId'),
        request.path_param('groupId'),
        status=status,
        limit=parse_limit(request.query_param('limit')),
        next_token=request.query_param('nextToken')
    )


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return handle_request(event, 'group-campaigns-query', _group_campaigns)
