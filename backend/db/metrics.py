from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.models.entities import DeviceMetric
from backend.services.metric_query import MetricsQuery


class MetricStore:
    """Append-only access to ``device_metrics``; rows are inserted and queried, never changed."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def insert(
        self,
        *,
        device_id: int,
        metric_type: str,
        metric_value: float,
        unit: str,
        measured_at: datetime,
    ) -> DeviceMetric:
        metric = DeviceMetric(
            device_id=device_id,
            metric_type=metric_type,
            metric_value=metric_value,
            unit=unit,
            measured_at=measured_at,
        )
        self.session.add(metric)
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        self.session.refresh(metric)
        return metric

    def fetch_rows(self, query: MetricsQuery) -> List[DeviceMetric]:
        return list(self.session.execute(query).scalars().all())

    def fetch_aggregates(self, query: MetricsQuery) -> List[Dict[str, Any]]:
        return [dict(row) for row in self.session.execute(query).mappings().all()]
