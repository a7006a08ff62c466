"""
Email render Lambda handler.

POST /email/render

Renders either a stored layout version (``layoutId``, optional ``version``)
or a built-in component (``component``) with ``props``. Props that are not
supplied stay as ``{{name}}`` placeholders.
"""

from typing import Any, Dict

from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request, require_valid
from goodbricks_shared.layout_service import LayoutService
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.validation import validate_render_request


config = load_config(required_vars=('MAIN_TABLE_NAME', 'EMAIL_LAYOUTS_BUCKET_NAME'))

layout_service = LayoutService(create_clients(config))


def _render_email(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    body = request.json_body()
    require_valid(validate_render_request(body))
    return layout_service.render_email(body)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Response codes:
        200: Rendered HTML and its variables
        400: Validation error
        404: Layout version or component not found
        500: Internal error
    """
    return handle_request(event, 'email-render', _render_email)
