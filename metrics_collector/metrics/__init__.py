from .base import (
    POLL_COUNT,
    RANDOM_VALUE,
    Metric,
    MetricKind,
    format_value,
    parse_metric,
)
from .merge import merge, merge_batch

__all__ = [
    "POLL_COUNT",
    "RANDOM_VALUE",
    "Metric",
    "MetricKind",
    "format_value",
    "merge",
    "merge_batch",
    "parse_metric",
]
