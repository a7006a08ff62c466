"""
Audience bulk import Lambda handler.

This handler implements POST /users/{userId}/audience/import.

Request body:
    members: list of {email, firstName, lastName, tags|groupIds, organization, status}
    mode: 'upsert' (default) or 'insert_only'
    appendTags: merge group ids into existing memberships (default true)
    defaultGroups: group ids added to every imported member
    organization: overrides each member's organization
"""

from typing import Any, Dict

from goodbricks_shared.audience_service import AudienceService
from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request, require_valid
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.validation import validate_audience_import_request


config = load_config()

audience_service = AudienceService(create_clients(config))


def _import_members(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    owner_id = request.path_param('userId')
    body = request.json_body()
    require_valid(validate_audience_import_request(body))

    result = audience_service.import_members(owner_id, body, logger.correlation_id)
    logger.metrics.emit_count('MembersImported', result['totals']['imported'])
    return result


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for bulk audience import.

    Response codes:
        200: Import processed; per-email outcomes under ``details``
        400: Validation error
        500: Internal error
    """
    return handle_request(event, 'audience-import', _import_members)
