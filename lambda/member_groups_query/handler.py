"""
Groups an audience member belongs to.

GET /users/{userId}/audience/{email}/groups
"""

from typing import Any, Dict

from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.group_service import GroupService
from goodbricks_shared.http import ApiRequest, handle_request
from goodbricks_shared.logger import StructuredLogger


config = load_config()

group_service = GroupService(create_clients(config))


def _member_groups(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    return group_service.member_groups(request.path_param('userId'), request.path_param('email'))


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Response codes:
        200: Groups of the member
        404: Member does not exist
        500: Internal error
    """
    return handle_request(event, 'member-groups-query', _member_groups)
