from __future__ import annotations

from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.api.v1.deps.auth import get_current_user
from backend.api.v1.deps.services import get_access_control
from backend.db.session import get_session
from backend.models.entities import Room, User
from backend.services.access_control import AccessControlService

router = APIRouter()


class RoomCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=128)
    room_type: str = Field(..., min_length=3, max_length=64)


class RoomOut(BaseModel):
    id: int
    house_id: int
    name: str
    room_type: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


@router.get("/houses/{house_id}/rooms", response_model=List[RoomOut])
def list_rooms(
    house_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    access: AccessControlService = Depends(get_access_control),
) -> List[Room]:
    access.authorize_house(user.id, house_id)
    stmt = select(Room).where(Room.house_id == house_id).order_by(Room.id)
    return list(session.execute(stmt).scalars().all())


@router.post("/houses/{house_id}/rooms", response_model=RoomOut, status_code=status.HTTP_201_CREATED)
def create_room(
    house_id: int,
    payload: RoomCreate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    access: AccessControlService = Depends(get_access_control),
) -> Room:
    access.authorize_house(user.id, house_id)
    room = Room(house_id=house_id, name=payload.name, room_type=payload.room_type)
    session.add(room)
    session.commit()
    session.refresh(room)
    return room


def _get_room_in_house(
    house_id: int,
    room_id: int,
    user: User,
    session: Session,
    access: AccessControlService,
) -> Room:
    access.authorize_room(user.id, room_id, house_id=house_id)
    return session.get(Room, room_id)


@router.get("/houses/{house_id}/rooms/{room_id}", response_model=RoomOut)
def get_room(
    house_id: int,
    room_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    access: AccessControlService = Depends(get_access_control),
) -> Room:
    return _get_room_in_house(house_id, room_id, user, session, access)


@router.delete("/houses/{house_id}/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_room(
    house_id: int,
    room_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    access: AccessControlService = Depends(get_access_control),
) -> Response:
    room = _get_room_in_house(house_id, room_id, user, session, access)
    session.delete(room)
    session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
