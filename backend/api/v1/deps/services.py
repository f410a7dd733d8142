from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import Depends, Query
from pydantic import ValidationError
from sqlalchemy.orm import Session

from backend.db.metrics import MetricStore
from backend.db.ownership import OwnershipStore
from backend.db.session import get_session
from backend.errors import ValidationFailed
from backend.schemas.metrics import AggregationRequest, MetricFilters, parse_aggregate_params
from backend.services.access_control import AccessControlService
from backend.services.metrics import MetricsService


def get_ownership_store(session: Session = Depends(get_session)) -> OwnershipStore:
    return OwnershipStore(session)


def get_access_control(ownership: OwnershipStore = Depends(get_ownership_store)) -> AccessControlService:
    return AccessControlService(ownership)


def get_metrics_service(
    session: Session = Depends(get_session),
    access: AccessControlService = Depends(get_access_control),
) -> MetricsService:
    return MetricsService(MetricStore(session), access)


def metric_filters(
    measured_from: Optional[datetime] = Query(None, alias="from"),
    measured_to: Optional[datetime] = Query(None, alias="to"),
    unit: Optional[str] = Query(None, max_length=32),
    metric_type: Optional[str] = Query(None, max_length=64),
) -> MetricFilters:
    try:
        return MetricFilters(
            measured_from=measured_from,
            measured_to=measured_to,
            unit=unit,
            metric_type=metric_type,
        )
    except ValidationError as exc:
        details = [
            {"loc": ["query", *err.get("loc", ())], "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
        raise ValidationFailed("Invalid request", details) from exc


def aggregation_requests(
    aggregate: List[str] = Query(
        [],
        description="Repeatable: 'fn:metric_type' or a JSON list of {fn, metric_type}",
    ),
) -> List[AggregationRequest]:
    return parse_aggregate_params(aggregate)
