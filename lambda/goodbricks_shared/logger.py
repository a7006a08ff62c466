"""
Structured logging utility for Lambda handlers and services.

This module provides a centralized logging utility that implements structured logging
with correlation IDs, latency tracking, and consistent JSON formatting across all
Lambda handlers. Log lines are printed to stdout and land in CloudWatch Logs.

Services log through ``log_event`` with the correlation id they were given, so
handler and service lines of one request can be joined.
"""

import json
import time
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from goodbricks_shared.metrics import create_metrics_client, MetricsClient


# Sensitive field names that should never be logged (compared lower-cased)
SENSITIVE_FIELDS = {
    'password',
    'token',
    'nexttoken',
    'secret',
    'apikey',
    'api_key',
    'authorization',
    'auth',
    'credentials',
    'privatekey',
    'private_key',
    'accesstoken',
    'access_token',
    'refreshtoken',
    'refresh_token',
    'sessionid',
    'session_id'
}


def _sanitize_data(data: Any) -> Any:
    """Recursively replace the values of sensitive fields with [REDACTED]."""
    if not isinstance(data, dict):
        return data

    sanitized = {}
    for key, value in data.items():
        if isinstance(key, str) and key.lower() in SENSITIVE_FIELDS:
            sanitized[key] = '[REDACTED]'
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_data(value)
        elif isinstance(value, list):
            sanitized[key] = [
                _sanitize_data(item) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            sanitized[key] = value

    return sanitized


def log_event(event: str, correlation_id: Optional[str] = None, **fields: Any) -> None:
    """
    Write one structured log line.

    Args:
        event: Event type/name (e.g. 'stale_copy_orphaned')
        correlation_id: Request correlation ID, when known
        **fields: Additional fields to include in log entry
    """
    log_entry = {
        'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
        'correlationId': correlation_id or 'unknown',
        'event': event,
        **_sanitize_data(fields)
    }

    print(json.dumps(log_entry, default=str))


class StructuredLogger:
    """
    Structured logger for Lambda handlers.

    This logger provides methods for logging request lifecycle events with
    correlation IDs, latency tracking, and consistent JSON formatting.
    It also integrates CloudWatch metrics emission.

    Usage:
        logger = StructuredLogger(correlation_id='abc-123', operation='campaign-create')
        logger.log_request_start(path='/users/u1/campaigns', method='POST')
        # ... process request ...
        logger.log_request_complete(status_code=201, campaignId='cmp-123')
        logger.publish_metrics()
    """

    def __init__(self, correlation_id: str, operation: str, metrics: Optional[MetricsClient] = None):
        """
        Initialize the structured logger.

        Args:
            correlation_id: Unique identifier for request tracing
            operation: Operation name for metrics (e.g., 'campaign-create')
            metrics: Optional metrics client (default: one created for the operation)
        """
        self.correlation_id = correlation_id
        self.operation = operation
        self.start_time = time.time()
        self.metrics = metrics or create_metrics_client(operation)

    def _latency_ms(self) -> int:
        return int((time.time() - self.start_time) * 1000)

    def _log(self, event: str, **kwargs: Any) -> None:
        log_event(event, self.correlation_id, operation=self.operation, **kwargs)

    def log_request_start(self, path: str, method: str, **additional_fields: Any) -> None:
        """
        Log request start event.

        Args:
            path: Request path (e.g., '/users/{userId}/campaigns')
            method: HTTP method (e.g., 'POST', 'GET')
            **additional_fields: Additional fields to include in log
        """
        self._log(
            'request_start',
            path=path,
            httpMethod=method,
            **additional_fields
        )

    def log_request_complete(self, status_code: int, **additional_fields: Any) -> None:
        """
        Log request completion event with latency.

        Also emits the RequestCount and Latency metrics.

        Args:
            status_code: HTTP status code (e.g., 200, 201)
            **additional_fields: Additional fields to include in log
        """
        latency_ms = self._latency_ms()

        self._log(
            'request_complete',
            statusCode=status_code,
            latencyMs=latency_ms,
            **additional_fields
        )

        self.metrics.emit_request_count()
        self.metrics.emit_latency(latency_ms)

    def log_validation_error(self, errors: Any, **additional_fields: Any) -> None:
        """
        Log validation error event.

        Args:
            errors: Validation error details
            **additional_fields: Additional fields to include in log
        """
        self._log(
            'validation_error',
            errors=errors,
            latencyMs=self._latency_ms(),
            **additional_fields
        )

    def log_domain_error(self, error_code: str, error_message: str, **additional_fields: Any) -> None:
        """
        Log domain error event.

        Domain errors are expected business logic errors (e.g., campaign not found,
        audience member already exists). Also emits the ErrorCount metric.

        Args:
            error_code: Error code (e.g., 'NOT_FOUND', 'CONFLICT')
            error_message: Human-readable error message
            **additional_fields: Additional fields to include in log
        """
        latency_ms = self._latency_ms()

        self._log(
            'domain_error',
            errorCode=error_code,
            errorMessage=error_message,
            latencyMs=latency_ms,
            **additional_fields
        )

        self.metrics.emit_error(error_code=error_code)
        self.metrics.emit_latency(latency_ms)

    def log_unexpected_error(self, error_type: str, error_message: str, **additional_fields: Any) -> None:
        """
        Log unexpected error event.

        Unexpected errors are system errors that should not occur during normal
        operation (e.g., throttling, access denied). Also emits the ErrorCount metric.

        Args:
            error_type: Error type/class name
            error_message: Error message
            **additional_fields: Additional fields to include in log
        """
        latency_ms = self._latency_ms()

        self._log(
            'unexpected_error',
            errorType=error_type,
            errorMessage=error_message,
            latencyMs=latency_ms,
            **additional_fields
        )

        self.metrics.emit_error(error_code='INTERNAL_ERROR')
        self.metrics.emit_latency(latency_ms)

    def log_info(self, message: str, **additional_fields: Any) -> None:
        """Log informational event (e.g. campaign_created)."""
        self._log('info', message=message, **additional_fields)

    def log_warning(self, message: str, **additional_fields: Any) -> None:
        """Log a non-fatal problem that did not fail the request."""
        self._log('warning', message=message, **additional_fields)

    def record_orphans(self, orphaned_keys: Any) -> None:
        """
        Log and count derived copies that could not be cleaned up.

        Args:
            orphaned_keys: List of {'PK', 'SK'} dicts returned by a service
        """
        if not orphaned_keys:
            return
        self.log_warning('stale_copies_orphaned', orphanedKeys=orphaned_keys)
        self.metrics.emit_count('OrphanedCopies', len(orphaned_keys))

    def publish_metrics(self) -> None:
        """Publish all accumulated metrics to CloudWatch."""
        self.metrics.publish()


def create_logger(event: Dict[str, Any], operation: str) -> StructuredLogger:
    """
    Create a structured logger from Lambda event.

    The correlation ID is the API Gateway request id.

    Args:
        event: API Gateway Lambda proxy integration event
        operation: Operation name for metrics (e.g., 'campaign-create')

    Returns:
        StructuredLogger instance
    """
    correlation_id = (event.get('requestContext') or {}).get('requestId', 'unknown')
    return StructuredLogger(correlation_id, operation)
