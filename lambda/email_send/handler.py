"""
Transactional email Lambda handler.

This handler implements POST /email/send.

SES rejections caused by the request (MessageRejected,
MailFromDomainNotVerifiedException, ConfigurationSetDoesNotExist) are
returned as 400; other SES errors are 500.
"""

from typing import Any, Dict

from goodbricks_shared.clients import create_clients
from goodbricks_shared.config import load_config
from goodbricks_shared.http import ApiRequest, handle_request, require_valid
from goodbricks_shared.logger import StructuredLogger
from goodbricks_shared.sending_service import SendingService
from goodbricks_shared.validation import validate_send_email_request


config = load_config()

sending_service = SendingService(create_clients(config))


def _send_email(request: ApiRequest, logger: StructuredLogger) -> Dict[str, Any]:
    body = request.json_body()
    require_valid(validate_send_email_request(body))
    result = sending_service.send_email(body, logger.correlation_id)
    logger.metrics.emit_count('EmailsSent', len(body['recipients']))
    return result


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for a single transactional email.

    Args:
        event: API Gateway Lambda proxy integration event
        context: Lambda context object

    Returns:
        API Gateway Lambda proxy integration response
    """
    return handle_request(event, 'email-send', _send_email)
