"""Parameterized query assembly over ``device_metrics``.

Clauses are SQLAlchemy expressions, so every value a caller supplies travels
as a bound parameter attached to the clause that uses it.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Union

from sqlalchemy import ColumnElement, CompoundSelect, Select, and_, func, literal, select, union_all

from backend.models.entities import DeviceMetric
from backend.schemas.metrics import AggregateFunction, AggregationRequest, MetricFilters

AGGREGATE_SQL_FUNCTIONS: Dict[AggregateFunction, Callable[..., ColumnElement]] = {
    AggregateFunction.AVG: func.avg,
    AggregateFunction.SUM: func.sum,
    AggregateFunction.MIN: func.min,
    AggregateFunction.MAX: func.max,
}

MetricsQuery = Union[Select, CompoundSelect]


class MetricQueryBuilder:
    def __init__(self, device_predicate: ColumnElement[bool]) -> None:
        self._clauses: List[ColumnElement[bool]] = [device_predicate]

    @property
    def clauses(self) -> tuple:
        return tuple(self._clauses)

    def measured_from(self, value: Optional[datetime]) -> "MetricQueryBuilder":
        if value is not None:
            self._clauses.append(DeviceMetric.measured_at >= value)
        return self

    def measured_to(self, value: Optional[datetime]) -> "MetricQueryBuilder":
        if value is not None:
            self._clauses.append(DeviceMetric.measured_at <= value)
        return self

    def unit(self, value: Optional[str]) -> "MetricQueryBuilder":
        if value is not None:
            self._clauses.append(DeviceMetric.unit == value)
        return self

    def metric_type(self, value: Optional[str]) -> "MetricQueryBuilder":
        if value is not None:
            self._clauses.append(DeviceMetric.metric_type == value)
        return self

    def with_filters(self, filters: MetricFilters, *, include_metric_type: bool = True) -> "MetricQueryBuilder":
        self.measured_from(filters.measured_from).measured_to(filters.measured_to).unit(filters.unit)
        if include_metric_type:
            self.metric_type(filters.metric_type)
        return self

    def select_rows(self) -> Select:
        return (
            select(DeviceMetric)
            .where(*self._clauses)
            .order_by(DeviceMetric.measured_at, DeviceMetric.id)
        )

    def select_aggregate(self, request: AggregationRequest, ordinal: int = 0) -> Select:
        sql_fn = AGGREGATE_SQL_FUNCTIONS[request.fn]
        return (
            select(
                literal(ordinal).label("ordinal"),
                literal(request.fn.value).label("aggregate"),
                DeviceMetric.metric_type,
                DeviceMetric.unit,
                sql_fn(DeviceMetric.metric_value).label("metric_value"),
            )
            .where(*self._clauses, DeviceMetric.metric_type == request.metric_type)
            .group_by(DeviceMetric.metric_type, DeviceMetric.unit)
        )


def build_metrics_query(
    device_predicate: ColumnElement[bool],
    filters: Optional[MetricFilters] = None,
    aggregations: Optional[Sequence[AggregationRequest]] = None,
) -> MetricsQuery:
    """Build the flat or aggregated metrics query for a device predicate.

    In aggregated mode each request becomes one grouped sub-query restricted to
    its own metric type; the caller's ``metric_type`` filter does not apply.
    Sub-queries are combined with UNION ALL and ordered by request position,
    then unit.
    """
    filters = filters or MetricFilters()
    if not aggregations:
        return MetricQueryBuilder(device_predicate).with_filters(filters).select_rows()

    builder = MetricQueryBuilder(device_predicate).with_filters(filters, include_metric_type=False)
    parts = [builder.select_aggregate(request, ordinal) for ordinal, request in enumerate(aggregations)]
    if len(parts) == 1:
        return parts[0].order_by(DeviceMetric.unit)
    compound = union_all(*parts)
    return compound.order_by(compound.selected_columns.ordinal, compound.selected_columns.unit)


def build_latest_query(device_predicate: ColumnElement[bool]) -> Select:
    """Rows carrying each in-scope device's greatest ``measured_at``; ties are all kept."""
    latest = (
        select(
            DeviceMetric.device_id.label("device_id"),
            func.max(DeviceMetric.measured_at).label("max_measured_at"),
        )
        .where(device_predicate)
        .group_by(DeviceMetric.device_id)
        .subquery("latest")
    )
    return (
        select(DeviceMetric)
        .join(
            latest,
            and_(
                DeviceMetric.device_id == latest.c.device_id,
                DeviceMetric.measured_at == latest.c.max_measured_at,
            ),
        )
        .order_by(DeviceMetric.device_id, DeviceMetric.id)
    )
