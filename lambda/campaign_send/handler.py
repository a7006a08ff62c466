"""
Campaign send Lambda handler.

This handler implements POST /users/{userId}/campaigns/{campaignId}/send.

The campaign moves draft|scheduled -> sending -> sent|failed. Campaigns with
a registered SES template are sent with bulk templated sends; others are
sent one personalised email per recipient, SEND_CONCURRENCY at a time with
SEND_BATCH_DELAY_MS between batches.
"""

from typing import Any, Dict

from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import OPTIONAL_DEFAULTS, get_int, load_config
from goodbricks_shared.http import ApiRequest, handle_request
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.sending_service import DEFAULT_BATCH_DELAY_MS, DEFAULT_SEND_CONCURRENCY, SendingService


# Configuration loaded once at cold start
# This will fail fast if configuration is invalid
config = load_config(optional_vars={**OPTIONAL_DEFAULTS, 'EMAIL_LAYOUTS_BUCKET_NAME': ''})

sending_service = SendingService(
    create_clients(config),
    concurrency=get_int(config, 'send_concurrency', DEFAULT_SEND_CONCURRENCY),
    batch_delay_ms=get_int(config, 'send_batch_delay_ms', DEFAULT_BATCH_DELAY_MS)
)


def _send_campaign(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    result = sending_service.send_campaign(
        request.path_param('userId'),
        request.path_param('campaignId'),
        logger.correlation_id
    )
    logger.metrics.emit_count('EmailsSent', result['emailsSent'])
    logger.metrics.emit_count('EmailsFailed', result['failed'])
    return result


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for sending a campaign.

    Args:
        event: API Gateway Lambda proxy integration event
        context: Lambda context object

    Returns:
        API Gateway Lambda proxy integration response

    Response codes:
        200: Send finished; per-recipient failures are listed under ``errors``
        400: Campaign not sendable, missing subject/fromEmail, or no recipients
        404: Campaign does not exist
        409: Status changed concurrently
        500: Internal error
    """
    return handle_request(event, 'campaign-send', _send_campaign)
