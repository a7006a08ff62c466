"""
Audience listing Lambda handler.

GET /users/{userId}/audience?limit=&nextToken=
"""

from typing import Any, Dict

from goodbricks_shared.audience_service import AudienceService
from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.pagination import parse_limit


config = load_config()

audience_service = AudienceService(create_clients(config))


def _list_members(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    owner_id = request.path_param('userId')
    limit = parse_limit(request.query_param('limit'))
    return audience_service.list_members(owner_id, limit, request.query_param('nextToken'))


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Response codes:
        200: One page of members
        400: Invalid limit or nextToken
        500: Internal error
    """
    return handle_request(event, 'audience-list-query', _list_members)
