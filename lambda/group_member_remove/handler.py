"""
Remove one audience member from a group.

DELETE /users/{userId}/groups/{groupId}/members/{email}
"""

from typing import Any, Dict

from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.group_service import GroupService
from goodbricks_shared.http import ApiRequest, handle_request
from goodbricks_shared.logger import StructuredLogger


config = load_config()

group_service = GroupService(create_clients(config))


def _remove_member(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    return group_service.remove_member(
        request.path_param('userId'),
        request.path_param('groupId'),
        request.path_param('email'),
        logger.correlation_id
    )


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Response codes:
        200: Membership removed
        404: Member or membership does not exist
        500: Internal error
    """
    return handle_request(event, 'group-member-remove', _remove_member)
