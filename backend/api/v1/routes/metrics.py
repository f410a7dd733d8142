from __future__ import annotations

from typing import List, Union

from fastapi import APIRouter, Depends, Query, status

from backend.api.v1.deps.auth import get_current_user
from backend.api.v1.deps.services import aggregation_requests, get_metrics_service, metric_filters
from backend.models.entities import DeviceMetric, User
from backend.schemas.metrics import AggregatedMetricOut, AggregationRequest, MetricCreate, MetricFilters, MetricOut
from backend.services.access_control import ResourceRef
from backend.services.metrics import MetricRows, MetricsService

router = APIRouter()

MetricsResponse = Union[List[AggregatedMetricOut], List[MetricOut]]


@router.post("/metrics", response_model=MetricOut, status_code=status.HTTP_201_CREATED)
def create_metric(
    payload: MetricCreate,
    user: User = Depends(get_current_user),
    service: MetricsService = Depends(get_metrics_service),
) -> DeviceMetric:
    return service.create_metric(user.id, payload)


@router.get("/metrics", response_model=MetricsResponse)
def list_device_metrics_by_query(
    device: int = Query(..., ge=1, description="Device id"),
    filters: MetricFilters = Depends(metric_filters),
    aggregations: List[AggregationRequest] = Depends(aggregation_requests),
    user: User = Depends(get_current_user),
    service: MetricsService = Depends(get_metrics_service),
) -> MetricRows:
    return service.get_metrics(user.id, ResourceRef.device(device), filters, aggregations)


@router.get("/devices/{device_id}/metrics", response_model=MetricsResponse)
def list_device_metrics(
    device_id: int,
    filters: MetricFilters = Depends(metric_filters),
    aggregations: List[AggregationRequest] = Depends(aggregation_requests),
    user: User = Depends(get_current_user),
    service: MetricsService = Depends(get_metrics_service),
) -> MetricRows:
    return service.get_metrics(user.id, ResourceRef.device(device_id), filters, aggregations)


@router.get("/rooms/{room_id}/metrics", response_model=MetricsResponse)
def list_room_metrics(
    room_id: int,
    filters: MetricFilters = Depends(metric_filters),
    aggregations: List[AggregationRequest] = Depends(aggregation_requests),
    user: User = Depends(get_current_user),
    service: MetricsService = Depends(get_metrics_service),
) -> MetricRows:
    return service.get_metrics(user.id, ResourceRef.room(room_id), filters, aggregations)


@router.get("/rooms/{room_id}/metrics/latest", response_model=List[MetricOut])
def latest_room_metrics(
    room_id: int,
    user: User = Depends(get_current_user),
    service: MetricsService = Depends(get_metrics_service),
) -> List[DeviceMetric]:
    return service.get_latest_metrics(user.id, ResourceRef.room(room_id))


@router.get("/houses/{house_id}/metrics", response_model=MetricsResponse)
def list_house_metrics(
    house_id: int,
    filters: MetricFilters = Depends(metric_filters),
    aggregations: List[AggregationRequest] = Depends(aggregation_requests),
    user: User = Depends(get_current_user),
    service: MetricsService = Depends(get_metrics_service),
) -> MetricRows:
    return service.get_metrics(user.id, ResourceRef.house(house_id), filters, aggregations)


@router.get("/houses/{house_id}/metrics/latest", response_model=List[MetricOut])
def latest_house_metrics(
    house_id: int,
    user: User = Depends(get_current_user),
    service: MetricsService = Depends(get_metrics_service),
) -> List[DeviceMetric]:
    return service.get_latest_metrics(user.id, ResourceRef.house(house_id))


@router.get("/houses/{house_id}/rooms/{room_id}/metrics", response_model=MetricsResponse)
def list_nested_room_metrics(
    house_id: int,
    room_id: int,
    filters: MetricFilters = Depends(metric_filters),
    aggregations: List[AggregationRequest] = Depends(aggregation_requests),
    user: User = Depends(get_current_user),
    service: MetricsService = Depends(get_metrics_service),
) -> MetricRows:
    return service.get_metrics(
        user.id, ResourceRef.room(room_id), filters, aggregations, house_id=house_id
    )
