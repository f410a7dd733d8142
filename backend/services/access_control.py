"""Ownership-chain authorization.

Every decision reduces to one question: does the principal hold the ownership
edge for the house that owns the resource? Rooms and devices are first walked
up to their house, then checked against that single edge.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, NoReturn, Optional

from backend.db.ownership import OwnershipStore
from backend.errors import AccessDenied, ResourceNotFound
from backend.observability import log_structured


class ResourceKind(str, Enum):
    HOUSE = "house"
    ROOM = "room"
    DEVICE = "device"


@dataclass(frozen=True)
class ResourceRef:
    kind: ResourceKind
    id: int

    @classmethod
    def house(cls, house_id: int) -> "ResourceRef":
        return cls(ResourceKind.HOUSE, house_id)

    @classmethod
    def room(cls, room_id: int) -> "ResourceRef":
        return cls(ResourceKind.ROOM, room_id)

    @classmethod
    def device(cls, device_id: int) -> "ResourceRef":
        return cls(ResourceKind.DEVICE, device_id)


class AccessControlService:
    def __init__(self, ownership: OwnershipStore) -> None:
        self.ownership = ownership
        self._resolvers: Dict[ResourceKind, Callable[[int], Optional[int]]] = {
            ResourceKind.HOUSE: lambda house_id: house_id,
            ResourceKind.ROOM: ownership.get_house_id_for_room,
            ResourceKind.DEVICE: ownership.get_house_id_for_device,
        }

    def resolve_owning_house(self, ref: ResourceRef) -> int:
        house_id = self._resolvers[ref.kind](ref.id)
        if house_id is None:
            raise ResourceNotFound(ref.kind.value, ref.id)
        return house_id

    def authorize(self, user_id: int, house_id: int, *, ref: Optional[ResourceRef] = None) -> int:
        if not self.ownership.has_edge(user_id, house_id):
            self._deny(user_id, ref or ResourceRef.house(house_id), "no_ownership_edge")
        return house_id

    def authorize_house(self, user_id: int, house_id: int) -> int:
        return self.authorize(user_id, house_id)

    def authorize_room(self, user_id: int, room_id: int, *, house_id: Optional[int] = None) -> int:
        """Authorize access to a room; ``house_id`` pins the house named in a nested path.

        A pinned lookup never reveals whether the room exists: a missing room
        and a room belonging to another house are both denied.
        """
        ref = ResourceRef.room(room_id)
        owning_house = self._resolve_pinned(user_id, ref, house_id)
        if house_id is not None and owning_house != house_id:
            self._deny(user_id, ref, "house_path_mismatch")
        return self.authorize(user_id, owning_house, ref=ref)

    def authorize_device(
        self,
        user_id: int,
        device_id: int,
        *,
        house_id: Optional[int] = None,
        room_id: Optional[int] = None,
    ) -> int:
        ref = ResourceRef.device(device_id)
        pinned = house_id is not None or room_id is not None
        lineage = self.ownership.get_device_lineage(device_id)
        if lineage is None:
            if pinned:
                self._deny(user_id, ref, "not_found")
            raise ResourceNotFound(ref.kind.value, device_id)
        device_room, device_house = lineage
        if house_id is not None and device_house != house_id:
            self._deny(user_id, ref, "house_path_mismatch")
        if room_id is not None and device_room != room_id:
            self._deny(user_id, ref, "room_path_mismatch")
        return self.authorize(user_id, device_house, ref=ref)

    def authorize_scope(self, user_id: int, ref: ResourceRef, *, house_id: Optional[int] = None) -> int:
        if ref.kind is ResourceKind.HOUSE:
            if house_id is not None and house_id != ref.id:
                self._deny(user_id, ref, "house_path_mismatch")
            return self.authorize_house(user_id, ref.id)
        if ref.kind is ResourceKind.ROOM:
            return self.authorize_room(user_id, ref.id, house_id=house_id)
        return self.authorize_device(user_id, ref.id, house_id=house_id)

    def _resolve_pinned(self, user_id: int, ref: ResourceRef, house_id: Optional[int]) -> int:
        try:
            return self.resolve_owning_house(ref)
        except ResourceNotFound:
            if house_id is None:
                raise
            self._deny(user_id, ref, "not_found")

    def _deny(self, user_id: int, ref: ResourceRef, reason: str) -> NoReturn:
        log_structured(
            logging.WARNING,
            "authz_deny",
            user_id=user_id,
            resource=ref.kind.value,
            resource_id=ref.id,
            reason=reason,
        )
        raise AccessDenied()
