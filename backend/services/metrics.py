from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError

from backend.db.metrics import MetricStore
from backend.errors import InternalError
from backend.models.entities import DeviceMetric
from backend.observability import log_structured, now_utc
from backend.schemas.metrics import AggregatedMetricOut, AggregationRequest, MetricCreate, MetricFilters
from backend.services.access_control import AccessControlService
from backend.services.metric_query import build_latest_query, build_metrics_query
from backend.services.metric_scope import MetricScope, expand_scope

MetricRows = Union[List[DeviceMetric], List[AggregatedMetricOut]]


class MetricsService:
    """Authorize, expand, build, execute. Authorization always runs before any metric query."""

    def __init__(self, store: MetricStore, access: AccessControlService) -> None:
        self.store = store
        self.access = access

    def create_metric(self, user_id: int, payload: MetricCreate) -> DeviceMetric:
        self.access.authorize_device(user_id, payload.device_id)
        measured_at = payload.measured_at or now_utc()
        try:
            metric = self.store.insert(
                device_id=payload.device_id,
                metric_type=payload.metric_type,
                metric_value=payload.metric_value,
                unit=payload.unit,
                measured_at=measured_at,
            )
        except SQLAlchemyError as exc:
            raise InternalError("Failed to store metric") from exc
        log_structured(
            logging.DEBUG,
            "metric_created",
            user_id=user_id,
            device_id=metric.device_id,
            metric_type=metric.metric_type,
        )
        return metric

    def get_metrics(
        self,
        user_id: int,
        scope: MetricScope,
        filters: Optional[MetricFilters] = None,
        aggregations: Optional[Sequence[AggregationRequest]] = None,
        *,
        house_id: Optional[int] = None,
    ) -> MetricRows:
        """Return flat rows, or one aggregated row per request and (metric_type, unit) group.

        ``house_id`` pins the house named by a nested request path.
        """
        self.access.authorize_scope(user_id, scope, house_id=house_id)
        query = build_metrics_query(expand_scope(scope), filters, aggregations)
        try:
            if aggregations:
                return [AggregatedMetricOut.model_validate(row) for row in self.store.fetch_aggregates(query)]
            return self.store.fetch_rows(query)
        except SQLAlchemyError as exc:
            raise InternalError("Failed to query metrics") from exc

    def get_latest_metrics(
        self, user_id: int, scope: MetricScope, *, house_id: Optional[int] = None
    ) -> List[DeviceMetric]:
        self.access.authorize_scope(user_id, scope, house_id=house_id)
        try:
            return self.store.fetch_rows(build_latest_query(expand_scope(scope)))
        except SQLAlchemyError as exc:
            raise InternalError("Failed to query latest metrics") from exc
