"""
Layout creation Lambda handler.

This handler implements POST /layouts.

The layout HTML is checked against its declared variables, stored in the
layouts bucket under ``universal/{layoutId}/{version}/`` and indexed in the
main table. Writing any version refreshes the ``latest`` alias.
"""

from typing import Any, Dict

from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request, require_valid
from goodbricks_shared.layout_service import LayoutService
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.validation import validate_layout_create_request


config = load_config(required_vars=('MAIN_TABLE_NAME', 'EMAIL_LAYOUTS_BUCKET_NAME'))

layout_service = LayoutService(create_clients(config))


def _create_layout(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    body = request.json_body()
    require_valid(validate_layout_create_request(body))
    return layout_service.create_layout(body, logger.correlation_id)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for layout creation.

    Response codes:
        201: Layout version stored
        400: Validation error, including undeclared template variables
        500: Internal error
    """
    return handle_request(event, 'layout-create', _create_layout, success_status=201)
