"""
Audience group creation Lambda handler.

POST /users/{userId}/groups

The group id is generated as ``grp-{ULID}`` when the request does not name one.
"""

from typing import Any, Dict

from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.group_service import GroupService
from goodbricks_shared.http import ApiRequest, handle_request, require_valid
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.validation import validate_group_create_request


config = load_config()

group_service = GroupService(create_clients(config))


def _create_group(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    owner_id = request.path_param('userId')
    body = request.json_body()
    require_valid(validate_group_create_request(body))
    return group_service.create_group(owner_id, body, logger.correlation_id)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Response codes:
        201: Group created
        400: Validation error
        409: Group id already taken
        500: Internal error
    """
    return handle_request(event, 'group-create', _create_group, success_status=201)
