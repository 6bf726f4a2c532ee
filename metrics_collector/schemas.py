from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, StrictInt

from .metrics.base import Metric


class MetricPayload(BaseModel):
    """Wire shape of a metric in JSON request bodies."""

    id: str = Field(..., min_length=1)
    type: str
    value: Optional[float] = None
    delta: Optional[StrictInt] = None

    def to_metric(self) -> Metric:
        return Metric(id=self.id, kind=self.type, value=self.value, delta=self.delta)


class MetricQuery(BaseModel):
    id: str = Field(..., min_length=1)
    type: str
