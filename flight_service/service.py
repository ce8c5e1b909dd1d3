"""Operation surface handed to presentation layers."""
from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from . import auth, bookings, reservations, search
from .catalog import MAX_SEARCH_RESULTS, FlightRecord
from .database import SERIALIZABLE, init_db


class FlightService:
    """Thread-safe entry point; each call uses its own session or transaction."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    @classmethod
    def open(cls, db_url: Optional[str] = None) -> "FlightService":
        """Connect to ``db_url`` (or ``FLIGHT_SERVICE_DB_URL``), creating missing tables."""

        return cls(init_db(db_url))

    def authenticate(self, handle: str, secret: str) -> auth.User:
        with self.session_factory() as session:
            return auth.authenticate(session, handle, secret)

    def search(
        self,
        day: date,
        origin_city: str,
        dest_city: str,
        *,
        limit: int = MAX_SEARCH_RESULTS,
    ) -> List[search.Itinerary]:
        with self.session_factory() as session:
            return search.search_itineraries(session, day, origin_city, dest_city, limit=limit)

    def book(
        self,
        user_id: int,
        day: date,
        itinerary: search.Itinerary,
        *,
        isolation_level: Optional[str] = SERIALIZABLE,
    ) -> reservations.ReservationStatus:
        return reservations.book_itinerary(
            self.session_factory, user_id, day, itinerary, isolation_level=isolation_level
        )

    def cancel(
        self,
        user_id: int,
        flights: Iterable[FlightRecord],
        *,
        isolation_level: Optional[str] = SERIALIZABLE,
    ) -> None:
        reservations.cancel_reservations(
            self.session_factory, user_id, flights, isolation_level=isolation_level
        )

    def list_reservations(self, user_id: int) -> List[FlightRecord]:
        with self.session_factory() as session:
            return bookings.list_reservations(session, user_id)

    def capacity_summary(self, day: Optional[date] = None) -> List[dict]:
        with self.session_factory() as session:
            return bookings.summarize_capacity(session, day)
