from __future__ import annotations

from typing import List

from sqlalchemy import ColumnElement, select
from sqlalchemy.orm import Session

from backend.models.entities import Device, DeviceMetric, Room
from backend.services.access_control import ResourceKind, ResourceRef

# A metrics scope is anchored at a house, room or device.
MetricScope = ResourceRef


def _device_ids_select(scope: MetricScope):
    if scope.kind is ResourceKind.DEVICE:
        return select(Device.id).where(Device.id == scope.id)
    if scope.kind is ResourceKind.ROOM:
        return select(Device.id).where(Device.room_id == scope.id)
    return (
        select(Device.id)
        .join(Room, Device.room_id == Room.id)
        .where(Room.house_id == scope.id)
    )


def expand_scope(scope: MetricScope) -> ColumnElement[bool]:
    """Turn a scope into a predicate over ``device_metrics.device_id``.

    No authorization happens here; callers authorize the same scope first.
    """
    if scope.kind is ResourceKind.DEVICE:
        return DeviceMetric.device_id == scope.id
    return DeviceMetric.device_id.in_(_device_ids_select(scope))


def scope_device_ids(session: Session, scope: MetricScope) -> List[int]:
    stmt = _device_ids_select(scope).order_by(Device.id)
    return list(session.execute(stmt).scalars().all())
