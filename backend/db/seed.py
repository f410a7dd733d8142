from __future__ import annotations

from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.db.base import utcnow
from backend.db.ownership import OwnershipStore
from backend.models.entities import Device, DeviceMetric, House, Room, User
from backend.security.passwords import hash_password

DEMO_EMAIL = "demo@smarthome.local"
DEMO_PASSWORD = "Demo1234!"

SEED_ROOMS = (
    ("Living room", "living", (("Thermostat", "thermostat"), ("Air sensor", "sensor"))),
    ("Kitchen", "kitchen", (("Smart plug", "plug"),)),
)

SEED_READINGS = {
    "thermostat": (("temperature", "C", (20.5, 21.0, 21.5)),),
    "sensor": (("humidity", "%", (40.0, 42.0, 44.0)), ("temperature", "C", (19.5, 20.0, 20.5))),
    "plug": (("power", "W", (5.0, 120.0, 60.0)),),
}


def _ensure_user(session: Session) -> User:
    user = session.scalar(select(User).filter_by(email=DEMO_EMAIL))
    if not user:
        user = User(email=DEMO_EMAIL, password_hash=hash_password(DEMO_PASSWORD), first_name="Demo")
        session.add(user)
        session.flush()
    return user


def _seed_readings(session: Session, device: Device) -> None:
    start = utcnow() - timedelta(hours=3)
    for metric_type, unit, values in SEED_READINGS.get(device.device_type, ()):
        for offset, value in enumerate(values):
            session.add(
                DeviceMetric(
                    device_id=device.id,
                    metric_type=metric_type,
                    metric_value=value,
                    unit=unit,
                    measured_at=start + timedelta(hours=offset),
                )
            )


def seed_demo_data(session: Session) -> None:
    """Create one demo owner with a furnished house. Safe to call repeatedly."""
    user = _ensure_user(session)
    ownership = OwnershipStore(session)
    if ownership.house_ids_for_user(user.id):
        session.commit()
        return
    house = House(name="Demo House", address="1 Demo Street")
    session.add(house)
    session.flush()
    ownership.add_edge(user.id, house.id)
    for room_name, room_type, devices in SEED_ROOMS:
        room = Room(house_id=house.id, name=room_name, room_type=room_type)
        session.add(room)
        session.flush()
        for device_name, device_type in devices:
            device = Device(name=device_name, device_type=device_type, room_id=room.id)
            session.add(device)
            session.flush()
            _seed_readings(session, device)
    session.commit()
