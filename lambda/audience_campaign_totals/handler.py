"""
Campaigns received per audience member.

GET /users/{userId}/audience-campaign-totals?limit=
"""

from typing import Any, Dict

from goodbricks_shared.audience_service import DEFAULT_TOTALS_LIMIT, AudienceService
from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.pagination import parse_limit


config = load_config()

audience_service = AudienceService(create_clients(config))


def _campaign_totals(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    limit = parse_limit(request.query_param('limit'), default=DEFAULT_TOTALS_LIMIT)
    return audience_service.campaign_totals(request.path_param('userId'), limit)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return handle_request(event, 'audience-campaign-totals', _campaign_totals)
