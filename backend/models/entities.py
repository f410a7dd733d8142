from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, Float, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.db.base import Base, BigIntId, IntIdMixin, TimestampMixin, utcnow


class User(IntIdMixin, TimestampMixin, Base):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(128), default=None)
    last_name: Mapped[Optional[str]] = mapped_column(String(128), default=None)

    house_links: Mapped[List[UserHouse]] = relationship(
        "UserHouse", back_populates="user", cascade="all, delete-orphan"
    )


class House(IntIdMixin, TimestampMixin, Base):
    __tablename__ = "houses"

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    address: Mapped[str] = mapped_column(String(512), nullable=False)

    owner_links: Mapped[List[UserHouse]] = relationship(
        "UserHouse", back_populates="house", cascade="all, delete-orphan"
    )
    rooms: Mapped[List[Room]] = relationship(
        "Room", back_populates="house", cascade="all, delete-orphan"
    )


class UserHouse(Base):
    """Ownership edge: the only fact that grants a user access to a house."""

    __tablename__ = "user_houses"

    user_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    house_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("houses.id", ondelete="CASCADE"), primary_key=True
    )

    user: Mapped[User] = relationship("User", back_populates="house_links")
    house: Mapped[House] = relationship("House", back_populates="owner_links")


class Room(IntIdMixin, TimestampMixin, Base):
    __tablename__ = "rooms"

    house_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("houses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    room_type: Mapped[str] = mapped_column(String(64), nullable=False)

    house: Mapped[House] = relationship("House", back_populates="rooms")
    devices: Mapped[List[Device]] = relationship(
        "Device", back_populates="room", cascade="all, delete-orphan"
    )


class Device(IntIdMixin, TimestampMixin, Base):
    __tablename__ = "devices"

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    device_type: Mapped[str] = mapped_column(String(64), nullable=False)
    room_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False, index=True
    )

    room: Mapped[Room] = relationship("Room", back_populates="devices")
    metrics: Mapped[List[DeviceMetric]] = relationship(
        "DeviceMetric", back_populates="device", cascade="all, delete-orphan", passive_deletes=True
    )


class DeviceMetric(IntIdMixin, Base):
    __tablename__ = "device_metrics"
    __table_args__ = (Index("ix_device_metrics_device_measured", "device_id", "measured_at"),)

    device_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("devices.id", ondelete="CASCADE"), nullable=False
    )
    metric_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    metric_value: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(32), nullable=False)
    measured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    device: Mapped[Device] = relationship("Device", back_populates="metrics")
