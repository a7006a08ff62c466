"""
Audience member update Lambda handler.

This handler implements PUT /users/{userId}/audience/{email}.

Attribute changes refresh the member's copies. ``tags``, ``addTag`` and
``removeTag`` change group membership through the transition updater, so the
response may carry ``orphanedKeys`` when a stale membership record could not
be removed.
"""

from typing import Any, Dict

from goodbricks_shared.audience_service import AudienceService
from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request, require_valid
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.validation import validate_audience_update_request


config = load_config()

audience_service = AudienceService(create_clients(config))


def _update_member(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    owner_id = request.path_param('userId')
    email = request.path_param('email')
    body = request.json_body()
    require_valid(validate_audience_update_request(body))
    return audience_service.update_member(owner_id, email, body, logger.correlation_id)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for audience member updates.

    Response codes:
        200: Member updated
        400: Validation error
        404: Member does not exist
        500: Internal error
    """
    return handle_request(event, 'audience-member-update', _update_member)
