"""
Campaigns delivered to one audience member.

GET /users/{userId}/audience/{email}/campaigns?status=&limit=&nextToken=
"""

from typing import Any, Dict

from goodbricks_shared.audience_service import AudienceService
from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request, require_valid
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.pagination import parse_limit
from goodbricks_shared.validation import validate_campaign_status


config = load_config()

audience_service = AudienceService(create_clients(config))


def _member_campaigns(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    status = request.query_param('status')
    require_valid(validate_campaign_status(status))
    return audience_service.member_campaigns(
        request.path_param('userId'),
        request.path_param('email'),
        status=status,
        limit=parse_limit(request.query_param('limit')),
        next_token=request.query_param('nextToken')
    )


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return handle_request(event, 'audience-campaigns-query', _member_campaigns)
