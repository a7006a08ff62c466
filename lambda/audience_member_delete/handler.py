"""
Audience member deletion Lambda handler.

DELETE /users/{userId}/audience/{email}
"""

from typing import Any, Dict

from goodbricks_shared.audience_service import AudienceService
from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request
from goodbricks_shared.logger import StructuredLogger


config = load_config()

audience_service = AudienceService(create_clients(config))


def _delete_member(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    return audience_service.delete_member(
        request.path_param('userId'),
        request.path_param('email'),
        logger.correlation_id
    )


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Response codes:
        200: Member deleted; orphanedKeys lists membership records left behind
        404: Member does not exist
        500: Internal error
    """
    return handle_request(event, 'audience-member-delete', _delete_member)
