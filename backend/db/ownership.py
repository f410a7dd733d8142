from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.models.entities import Device, Room, UserHouse


class OwnershipStore:
    """Read access to the user→house→room→device ownership chain."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def has_edge(self, user_id: int, house_id: int) -> bool:
        stmt = (
            select(UserHouse.house_id)
            .where(UserHouse.user_id == user_id, UserHouse.house_id == house_id)
            .limit(1)
        )
        return self.session.execute(stmt).first() is not None

    def get_house_id_for_room(self, room_id: int) -> Optional[int]:
        return self.session.execute(
            select(Room.house_id).where(Room.id == room_id)
        ).scalar_one_or_none()

    def get_device_lineage(self, device_id: int) -> Optional[Tuple[int, int]]:
        """Return ``(room_id, house_id)`` for a device, or None if it does not exist."""
        row = self.session.execute(
            select(Room.id, Room.house_id)
            .join(Device, Device.room_id == Room.id)
            .where(Device.id == device_id)
        ).first()
        if row is None:
            return None
        return row[0], row[1]

    def get_house_id_for_device(self, device_id: int) -> Optional[int]:
        lineage = self.get_device_lineage(device_id)
        return lineage[1] if lineage else None

    def house_ids_for_user(self, user_id: int) -> List[int]:
        stmt = select(UserHouse.house_id).where(UserHouse.user_id == user_id).order_by(UserHouse.house_id)
        return list(self.session.execute(stmt).scalars().all())

    def add_edge(self, user_id: int, house_id: int) -> UserHouse:
        edge = UserHouse(user_id=user_id, house_id=house_id)
        self.session.add(edge)
        return edge
