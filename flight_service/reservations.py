"""Capacity- and day-checked booking and cancellation transactions."""
from __future__ import annotations

import enum
import logging
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, sessionmaker

from .catalog import FlightRecord, on_day
from .database import SERIALIZABLE, Transaction
from .exceptions import SerializationConflict
from .models import Flight, Reservation
from .search import Itinerary

logger = logging.getLogger(__name__)

# Maximum number of reservations allowed on one flight.
MAX_FLIGHT_BOOKINGS = 3


class ReservationStatus(enum.Enum):
    ADDED = "added"
    FLIGHT_FULL = "flight_full"
    DAY_FULL = "day_full"


def count_day_reservations(session: Session, user_id: int, day: date) -> int:
    """Distinct flights on ``day`` the user already holds."""

    stmt = (
        select(func.count(func.distinct(Reservation.fid)))
        .join(Flight, Reservation.fid == Flight.fid)
        .where(Reservation.user_id == user_id, on_day(Flight, day))
    )
    return session.scalar(stmt) or 0


def count_flight_reservations(session: Session, fid: int) -> int:
    stmt = select(func.count()).select_from(Reservation).where(Reservation.fid == fid)
    return session.scalar(stmt) or 0


def book_itinerary(
    session_factory: sessionmaker[Session],
    user_id: int,
    day: date,
    itinerary: Itinerary,
    *,
    isolation_level: Optional[str] = SERIALIZABLE,
) -> ReservationStatus:
    """Reserve every leg of ``itinerary`` for ``user_id`` in one transaction.

    The day check runs first, then each leg is counted and inserted in leg
    order. A full leg aborts the whole transaction, so a two-leg itinerary is
    reserved completely or not at all.

    Raises :class:`~flight_service.exceptions.SerializationConflict` if the
    engine aborts the transaction for a concurrent one; the caller should
    retry from the start.
    """

    if itinerary.day != day:
        raise ValueError(f"itinerary flies on {itinerary.day}, not {day}")

    try:
        with Transaction(session_factory, isolation_level=isolation_level) as txn:
            session = txn.session
            if count_day_reservations(session, user_id, day) > 0:
                txn.rollback()
                return ReservationStatus.DAY_FULL
            for leg in itinerary.legs:
                if count_flight_reservations(session, leg.fid) >= MAX_FLIGHT_BOOKINGS:
                    txn.rollback()
                    logger.info("flight %d is full; user %d not booked", leg.fid, user_id)
                    return ReservationStatus.FLIGHT_FULL
                session.add(Reservation(user_id=user_id, fid=leg.fid))
                session.flush()
            txn.commit()
    except SerializationConflict:
        logger.warning("booking for user %d on %s lost a serialization conflict", user_id, day)
        raise
    logger.info("user %d booked flights %s on %s", user_id, itinerary.flight_ids, day)
    return ReservationStatus.ADDED


def cancel_reservations(
    session_factory: sessionmaker[Session],
    user_id: int,
    flights: Iterable[FlightRecord],
    *,
    isolation_level: Optional[str] = SERIALIZABLE,
) -> None:
    """Delete the user's reservations on ``flights``; missing ones are ignored."""

    fids = [flight.fid for flight in flights]
    with Transaction(session_factory, isolation_level=isolation_level) as txn:
        for fid in fids:
            txn.session.execute(
                delete(Reservation).where(Reservation.user_id == user_id, Reservation.fid == fid)
            )
        txn.commit()
    logger.info("user %d cancelled flights %s", user_id, fids)
