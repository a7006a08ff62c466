"""
Add audience members to a group.

This handler implements POST /users/{userId}/groups/{groupId}/members.

Each email is added through the transition updater: the symmetric membership
pair is written create-only and the group id is added to the member's tags.
Members that do not exist and existing memberships are skipped and reported.
"""

from typing import Any, Dict

from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.group_service import GroupService
from goodbricks_shared.http import ApiRequest, handle_request, require_valid
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.validation import validate_group_members_request


config = load_config()

group_service = GroupService(create_clients(config))


def _add_members(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    owner_id = request.path_param('userId')
    group_id = request.path_param('groupId')
    body = request.json_body()
    require_valid(validate_group_members_request(body))
    return group_service.add_members(owner_id, group_id, body['emails'], logger.correlation_id)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for adding members to a group.

    Response codes:
        200: Members processed; skipped entries carry a reason
        400: Validation error
        404: Group does not exist
        500: Internal error
    """
    return handle_request(event, 'group-members-add', _add_members)
