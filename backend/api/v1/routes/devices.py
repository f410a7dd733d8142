from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.api.v1.deps.auth import get_current_user
from backend.api.v1.deps.services import get_access_control
from backend.db.session import get_session
from backend.models.entities import Device, Room, User
from backend.services.access_control import AccessControlService

router = APIRouter()


class DeviceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    device_type: str = Field(..., min_length=1, max_length=64)
    room_id: int = Field(..., ge=1)


class DeviceUpdate(BaseModel):
    """Rooms are fixed at creation; only descriptive fields change."""

    name: Optional[str] = Field(None, min_length=1, max_length=128)
    device_type: Optional[str] = Field(None, min_length=1, max_length=64)

    model_config = ConfigDict(extra="forbid")


class DeviceOut(BaseModel):
    id: int
    name: str
    device_type: str
    room_id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


@router.post("/devices", response_model=DeviceOut, status_code=status.HTTP_201_CREATED)
def create_device(
    payload: DeviceCreate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    access: AccessControlService = Depends(get_access_control),
) -> Device:
    access.authorize_room(user.id, payload.room_id)
    device = Device(name=payload.name, device_type=payload.device_type, room_id=payload.room_id)
    session.add(device)
    session.commit()
    session.refresh(device)
    return device


def _get_authorized_device(
    device_id: int,
    user: User,
    session: Session,
    access: AccessControlService,
) -> Device:
    access.authorize_device(user.id, device_id)
    return session.get(Device, device_id)


@router.get("/devices/{device_id}", response_model=DeviceOut)
def get_device(
    device_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    access: AccessControlService = Depends(get_access_control),
) -> Device:
    return _get_authorized_device(device_id, user, session, access)


@router.patch("/devices/{device_id}", response_model=DeviceOut)
def update_device(
    device_id: int,
    payload: DeviceUpdate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    access: AccessControlService = Depends(get_access_control),
) -> Device:
    device = _get_authorized_device(device_id, user, session, access)
    if payload.name is not None:
        device.name = payload.name
    if payload.device_type is not None:
        device.device_type = payload.device_type
    session.commit()
    session.refresh(device)
    return device


@router.delete("/devices/{device_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_device(
    device_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    access: AccessControlService = Depends(get_access_control),
) -> Response:
    device = _get_authorized_device(device_id, user, session, access)
    session.delete(device)
    session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/houses/{house_id}/devices", response_model=List[DeviceOut])
def list_house_devices(
    house_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    access: AccessControlService = Depends(get_access_control),
) -> List[Device]:
    access.authorize_house(user.id, house_id)
    stmt = (
        select(Device)
        .join(Room, Device.room_id == Room.id)
        .where(Room.house_id == house_id)
        .order_by(Device.id)
    )
    return list(session.execute(stmt).scalars().all())


@router.get("/houses/{house_id}/rooms/{room_id}/devices", response_model=List[DeviceOut])
def list_room_devices(
    house_id: int,
    room_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    access: AccessControlService = Depends(get_access_control),
) -> List[Device]:
    access.authorize_room(user.id, room_id, house_id=house_id)
    stmt = select(Device).where(Device.room_id == room_id).order_by(Device.id)
    return list(session.execute(stmt).scalars().all())
