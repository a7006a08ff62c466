"""
Members of an audience group.

GET /users/{userId}/groups/{groupId}/audience?limit=&nextToken=
"""

from typing import Any, Dict

from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.group_service import GroupService
from goodbricks_shared.http import ApiRequest, handle_request
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.pagination import parse_limit


config = load_config()

group_service = GroupService(create_clients(config))


def _group_audience(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    return group_service.group_audience(
        request.path_param('userId'),
        request.path_param('groupId'),
        parse_limit(request.query_param('limit')),
        request.query_param('nextToken')
    )


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return handle_request(event, 'group-audience-query', _group_audience)
