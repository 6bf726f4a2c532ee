from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Float, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from .db import Base
from .metrics.base import Metric


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: datetime | None, dialect: object
    ) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("UTCDateTime only accepts timezone-aware datetimes")
        return value.astimezone(timezone.utc)

    def process_result_value(
        self, value: datetime | None, dialect: object
    ) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class MetricRow(Base):
    """Latest merged value of one metric."""

    __tablename__ = "metrics"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    type: Mapped[str] = mapped_column(String(16), index=True)
    value: Mapped[Optional[float]] = mapped_column(Float(precision=53), nullable=True)
    delta: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime())

    @classmethod
    def from_metric(cls, metric: Metric) -> "MetricRow":
        row = cls(id=metric.id)
        row.apply(metric)
        return row

    def apply(self, metric: Metric) -> None:
        self.type = metric.kind
        self.value = metric.value
        self.delta = metric.delta
        self.updated_at = datetime.now(timezone.utc)

    def to_metric(self) -> Metric:
        return Metric(id=self.id, kind=self.type, value=self.value, delta=self.delta)
