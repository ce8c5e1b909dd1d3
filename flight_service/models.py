"""SQLAlchemy models for the flight reservation service."""
from __future__ import annotations

from datetime import date
from typing import List, Optional

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Carrier(Base):
    __tablename__ = "carriers"

    cid: Mapped[str] = mapped_column(String(8), primary_key=True)
    name: Mapped[str] = mapped_column(String(80), nullable=False)

    flights: Mapped[List["Flight"]] = relationship(back_populates="carrier")


class Flight(Base):
    __tablename__ = "flights"
    __table_args__ = (
        Index("ix_flights_day_origin", "year", "month_id", "day_of_month", "origin_city"),
        Index("ix_flights_day_dest", "year", "month_id", "day_of_month", "dest_city"),
    )

    fid: Mapped[int] = mapped_column(primary_key=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month_id: Mapped[int] = mapped_column(Integer, nullable=False)
    day_of_month: Mapped[int] = mapped_column(Integer, nullable=False)
    carrier_id: Mapped[str] = mapped_column(ForeignKey("carriers.cid"), nullable=False)
    flight_num: Mapped[str] = mapped_column(String(8), nullable=False)
    origin_city: Mapped[str] = mapped_column(String(40), nullable=False)
    dest_city: Mapped[str] = mapped_column(String(40), nullable=False)
    # NULL for legs that never flew; those are not searchable.
    actual_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    carrier: Mapped[Carrier] = relationship(back_populates="flights")
    reservations: Mapped[List["Reservation"]] = relationship(back_populates="flight", cascade="all, delete-orphan")

    @property
    def day(self) -> date:
        return date(self.year, self.month_id, self.day_of_month)


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("username", name="uq_customer_username"),)

    user_id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(40), nullable=False)
    password: Mapped[str] = mapped_column(String(120), nullable=False)
    firstname: Mapped[str] = mapped_column(String(50), nullable=False)
    lastname: Mapped[str] = mapped_column(String(50), nullable=False)

    reservations: Mapped[List["Reservation"]] = relationship(back_populates="customer", cascade="all, delete-orphan")


class Reservation(Base):
    __tablename__ = "reservations"

    user_id: Mapped[int] = mapped_column(ForeignKey("customers.user_id", ondelete="CASCADE"), primary_key=True)
    fid: Mapped[int] = mapped_column(ForeignKey("flights.fid", ondelete="CASCADE"), primary_key=True)

    customer: Mapped[Customer] = relationship(back_populates="reservations")
    flight: Mapped[Flight] = relationship(back_populates="reservations")
