"""
Layout listing Lambda handler.

GET /layouts?category=&limit=&nextToken=
"""

from typing import Any, Dict

from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request
from goodbricks_shared.layout_service import LayoutService
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.pagination import parse_limit


config = load_config(required_vars=('MAIN_TABLE_NAME', 'EMAIL_LAYOUTS_BUCKET_NAME'))

layout_service = LayoutService(create_clients(config))


def _list_layouts(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    return layout_service.list_layouts(
        category=request.query_param('category'),
        limit=parse_limit(request.query_param('limit')),
        next_token=request.query_param('nextToken')
    )


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return handle_request(event, 'layout-list-query', _list_layouts)
