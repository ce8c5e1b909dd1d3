"""Read-only views over existing reservations."""
from __future__ import annotations

from datetime import date
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .catalog import FlightRecord, flight_select, on_day
from .exceptions import storage_errors
from .models import Flight, Reservation
from .reservations import MAX_FLIGHT_BOOKINGS


def list_reservations(session: Session, user_id: int) -> List[FlightRecord]:
    """Flights the user holds reservations on, in date then flight id order."""

    stmt = (
        flight_select()
        .join(Reservation, Reservation.fid == Flight.fid)
        .where(Reservation.user_id == user_id)
        .order_by(Flight.year, Flight.month_id, Flight.day_of_month, Flight.fid)
    )
    with storage_errors(write=False):
        rows = session.execute(stmt).all()
    return [FlightRecord.from_model(flight, name) for flight, name in rows]


def summarize_capacity(session: Session, day: Optional[date] = None) -> List[dict]:
    stmt = (
        select(
            Flight.fid,
            Flight.carrier_id,
            Flight.flight_num,
            Flight.origin_city,
            Flight.dest_city,
            func.count(Reservation.user_id).label("bookings"),
        )
        .outerjoin(Reservation, Reservation.fid == Flight.fid)
        .group_by(Flight.fid)
        .order_by(Flight.fid)
    )
    if day is not None:
        stmt = stmt.where(on_day(Flight, day))
    with storage_errors(write=False):
        rows = session.execute(stmt).all()
    return [
        {
            "fid": row.fid,
            "flight": f"{row.carrier_id}{row.flight_num}",
            "route": f"{row.origin_city}-{row.dest_city}",
            "bookings": row.bookings,
            "available": max(MAX_FLIGHT_BOOKINGS - row.bookings, 0),
        }
        for row in rows
    ]
