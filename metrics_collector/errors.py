"""Exception hierarchy shared by the agent and the server.

Validation errors map to 4xx responses, backend errors to 5xx, and delivery
errors stay on the agent side where they are logged until the next report.
"""

from __future__ import annotations


class MetricsError(Exception):
    """Base class for all metrics-collector errors."""


class InvalidMetric(MetricsError):
    """Raised when a metric fails validation at the boundary."""


class InvalidMetricType(InvalidMetric):
    """Unknown metric kind."""


class InvalidGaugeValue(InvalidMetric):
    """Gauge value missing, unparsable or non-finite."""


class InvalidCounterValue(InvalidMetric):
    """Counter delta missing, unparsable or outside the int64 range."""


class InvalidMetricName(InvalidMetric):
    """Empty metric id."""


class MetricNotFound(MetricsError):
    """Lookup miss."""


class BackendError(MetricsError):
    """Raised when the storage backend fails."""


class BackendUnavailable(BackendError):
    """Storage unreachable after the retry policy was exhausted."""


class BackendRejected(BackendError):
    """Storage refused the operation (constraint violation, bad query)."""


class DeliveryError(MetricsError):
    """Raised by the agent when a report could not be delivered."""


class DeliveryUnavailable(DeliveryError):
    """Server unreachable after the retry policy was exhausted."""


class DeliveryRejected(DeliveryError):
    """Server answered with an error status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "MetricsError",
    "InvalidMetric",
    "InvalidMetricType",
    "InvalidGaugeValue",
    "InvalidCounterValue",
    "InvalidMetricName",
    "MetricNotFound",
    "BackendError",
    "BackendUnavailable",
    "BackendRejected",
    "DeliveryError",
    "DeliveryUnavailable",
    "DeliveryRejected",
]
