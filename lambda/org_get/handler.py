"""
Organization metadata lookup Lambda handler.

GET /users/{userId}/org
"""

from typing import Any, Dict

from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.org_service import OrgService


config = load_config()

org_service = OrgService(create_clients(config))


def _get_org(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    return org_service.get_org(request.path_param('userId'))


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return handle_request(event, 'org-get', _get_org)
