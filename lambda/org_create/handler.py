"""
Organization metadata creation Lambda handler.

POST /users/{userId}/org
"""

from typing import Any, Dict

from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request, require_valid
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.org_service import OrgService
from goodbricks_shared.validation import validate_org_create_request


config = load_config()

org_service = OrgService(create_clients(config))


def _create_org(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    owner_id = request.path_param('userId')
    body = request.json_body()
    require_valid(validate_org_create_request(body))
    return org_service.create_org(owner_id, body, logger.correlation_id)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Response codes:
        201: Organization created
        400: Validation error
        409: Organization id already taken
        500: Internal error
    """
    return handle_request(event, 'org-create', _create_org, success_status=201)
