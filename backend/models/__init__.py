from .entities import (
    Device,
    DeviceMetric,
    House,
    Room,
    User,
    UserHouse,
)

__all__ = [
    "Device",
    "DeviceMetric",
    "House",
    "Room",
    "User",
    "UserHouse",
]
