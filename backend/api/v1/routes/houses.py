from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.api.v1.deps.auth import get_current_user
from backend.api.v1.deps.services import get_access_control, get_ownership_store
from backend.db.ownership import OwnershipStore
from backend.db.session import get_session
from backend.models.entities import House, User
from backend.services.access_control import AccessControlService

router = APIRouter()


class HouseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    address: str = Field(..., min_length=1, max_length=512)


class HouseUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=128)
    address: Optional[str] = Field(None, min_length=1, max_length=512)


class HouseOut(BaseModel):
    id: int
    name: str
    address: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


@router.post("/houses", response_model=HouseOut, status_code=status.HTTP_201_CREATED)
def create_house(
    payload: HouseCreate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    ownership: OwnershipStore = Depends(get_ownership_store),
) -> House:
    house = House(name=payload.name, address=payload.address)
    session.add(house)
    session.flush()
    ownership.add_edge(user.id, house.id)
    session.commit()
    session.refresh(house)
    return house


@router.get("/houses", response_model=List[HouseOut])
def list_houses(
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    ownership: OwnershipStore = Depends(get_ownership_store),
) -> List[House]:
    house_ids = ownership.house_ids_for_user(user.id)
    if not house_ids:
        return []
    return list(session.execute(select(House).where(House.id.in_(house_ids)).order_by(House.id)).scalars())


def _get_authorized_house(
    house_id: int,
    user: User,
    session: Session,
    access: AccessControlService,
) -> House:
    access.authorize_house(user.id, house_id)
    # the edge's foreign key guarantees the row exists
    return session.get(House, house_id)


@router.get("/houses/{house_id}", response_model=HouseOut)
def get_house(
    house_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    access: AccessControlService = Depends(get_access_control),
) -> House:
    return _get_authorized_house(house_id, user, session, access)


@router.patch("/houses/{house_id}", response_model=HouseOut)
def update_house(
    house_id: int,
    payload: HouseUpdate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    access: AccessControlService = Depends(get_access_control),
) -> House:
    house = _get_authorized_house(house_id, user, session, access)
    if payload.name is not None:
        house.name = payload.name
    if payload.address is not None:
        house.address = payload.address
    session.commit()
    session.refresh(house)
    return house


@router.delete("/houses/{house_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_house(
    house_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    access: AccessControlService = Depends(get_access_control),
) -> Response:
    house = _get_authorized_house(house_id, user, session, access)
    session.delete(house)
    session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
