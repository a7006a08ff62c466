"""
CloudWatch metrics utility for Lambda handlers.

This module provides a centralized metrics utility that emits custom CloudWatch
metrics for request count, error rate, latency and orphaned derived copies
across all Lambda handlers.
"""

import os
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List

import boto3


DEFAULT_METRIC_NAMESPACE = 'GoodBricksEmail'

# CloudWatch PutMetricData accepts at most 20 metrics per request
METRIC_BATCH_SIZE = 20


class MetricsClient:
    """
    CloudWatch metrics client for Lambda handlers.

    Metrics are buffered and sent in one call by ``publish``.

    Usage:
        metrics = MetricsClient(operation='campaign-create')
        metrics.emit_request_count()
        metrics.emit_latency(latency_ms=150)
        metrics.publish()
    """

    def __init__(self, operation: str, namespace: Optional[str] = None, cloudwatch: Any = None):
        """
        Initialize the metrics client.

        Args:
            operation: Operation name (e.g., 'campaign-create', 'audience-list-query')
            namespace: CloudWatch namespace (default: METRICS_NAMESPACE env var or GoodBricksEmail)
            cloudwatch: Optional pre-built CloudWatch client
        """
        if not operation or not operation.strip():
            raise ValueError('Operation name is required for metrics')

        self.operation = operation
        self.namespace = namespace or os.environ.get('METRICS_NAMESPACE', DEFAULT_METRIC_NAMESPACE)
        self._cloudwatch = cloudwatch
        self._metric_data: List[Dict[str, Any]] = []

    @property
    def cloudwatch(self) -> Any:
        if self._cloudwatch is None:
            self._cloudwatch = boto3.client('cloudwatch')
        return self._cloudwatch

    @property
    def pending(self) -> List[Dict[str, Any]]:
        return list(self._metric_data)

    def _add_metric(
        self,
        metric_name: str,
        value: float,
        unit: str,
        dimensions: Optional[List[Dict[str, str]]] = None
    ) -> None:
        all_dimensions = [
            {
                'Name': 'Operation',
                'Value': self.operation
            }
        ]
        if dimensions:
            all_dimensions.extend(dimensions)

        self._metric_data.append({
            'MetricName': metric_name,
            'Value': value,
            'Unit': unit,
            'Timestamp': datetime.now(timezone.utc),
            'Dimensions': all_dimensions
        })

    def emit_request_count(self, count: int = 1) -> None:
        """Emit the RequestCount metric."""
        self._add_metric('RequestCount', float(count), 'Count')

    def emit_error(self, error_code: Optional[str] = None) -> None:
        """
        Emit error metric.

        Args:
            error_code: Error code (e.g., 'VALIDATION_ERROR', 'NOT_FOUND') (optional)
        """
        dimensions = []
        if error_code:
            dimensions.append({
                'Name': 'ErrorCode',
                'Value': error_code
            })

        self._add_metric('ErrorCount', 1.0, 'Count', dimensions or None)

    def emit_latency(self, latency_ms: int) -> None:
        """Emit request latency in milliseconds."""
        if latency_ms < 0:
            raise ValueError('Latency must be non-negative')

        self._add_metric('Latency', float(latency_ms), 'Milliseconds')

    def emit_count(self, metric_name: str, count: int) -> None:
        """
        Emit an arbitrary counter, e.g. OrphanedCopies.

        Zero counts are not sent.
        """
        if count <= 0:
            return
        self._add_metric(metric_name, float(count), 'Count')

    def publish(self) -> None:
        """
        Publish all accumulated metrics to CloudWatch.

        Metrics are sent in batches of 20. A publishing failure is printed and
        swallowed; metrics never fail a request.
        """
        if not self._metric_data:
            return

        try:
            for i in range(0, len(self._metric_data), METRIC_BATCH_SIZE):
                batch = self._metric_data[i:i + METRIC_BATCH_SIZE]

                self.cloudwatch.put_metric_data(
                    Namespace=self.namespace,
                    MetricData=batch
                )
        except Exception as error:
            print(f'Failed to publish metrics: {error}')
        finally:
            # Cleared either way so a failed publish is not retried
            self._metric_data = []


def create_metrics_client(operation: str) -> MetricsClient:
    """
    Create a metrics client for a Lambda operation.

    Args:
        operation: Operation name (e.g., 'campaign-create')

    Returns:
        MetricsClient instance
    """
    return MetricsClient(operation)
