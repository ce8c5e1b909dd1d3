"""Utilities to populate the database with sample data for tests and demos."""
from __future__ import annotations

import random
from datetime import date, timedelta
from typing import Dict, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from .catalog import FlightRecord, add_carrier, add_customer, add_flight, flight_select
from .models import Customer
from .reservations import ReservationStatus, book_itinerary
from .search import Itinerary

CITIES: Sequence[str] = (
    "Seattle WA",
    "Boston MA",
    "Chicago IL",
    "Denver CO",
    "New York NY",
    "San Francisco CA",
    "Atlanta GA",
    "Dallas/Fort Worth TX",
)
CARRIERS = (
    ("AA", "American Airlines Inc."),
    ("AS", "Alaska Airlines Inc."),
    ("B6", "JetBlue Airways"),
    ("DL", "Delta Air Lines Inc."),
    ("UA", "United Air Lines Inc."),
)
FIRST_NAMES = ("Ava", "Noah", "Liam", "Mia", "Lucas", "Emma", "Ethan", "Isabella")
LAST_NAMES = ("Johnson", "Williams", "Smith", "Brown", "Garcia", "Lee")


def generate_sample_data(
    session_factory: sessionmaker[Session],
    *,
    start: date = date(2015, 6, 1),
    days: int = 3,
    flights: int = 60,
    customers: int = 20,
    bookings: int = 40,
) -> Dict[str, int]:
    """Populate the database with deterministic pseudo-random data.

    Roughly one flight in ten gets no actual time, like legs that never flew.
    Bookings go through :func:`book_itinerary`, so every invariant holds.
    """

    rng = random.Random(42)
    with session_factory() as session:
        for cid, name in CARRIERS:
            add_carrier(session, cid=cid, name=name)
        for index in range(flights):
            origin, destination = rng.sample(CITIES, 2)
            add_flight(
                session,
                carrier_id=rng.choice(CARRIERS)[0],
                flight_num=str(100 + index),
                day=start + timedelta(days=rng.randrange(days)),
                origin_city=origin,
                dest_city=destination,
                actual_time=None if rng.random() < 0.1 else rng.randint(45, 360),
            )
        for index in range(customers):
            add_customer(
                session,
                username=f"user{index}",
                password=f"secret{index}",
                firstname=rng.choice(FIRST_NAMES),
                lastname=rng.choice(LAST_NAMES),
            )
        session.commit()

    with session_factory() as session:
        legs = [FlightRecord.from_model(flight, name) for flight, name in session.execute(flight_select())]
        user_ids = list(session.scalars(select(Customer.user_id)))
    if not legs or not user_ids:
        return {"flights": 0, "customers": 0, "bookings": 0}

    successful = 0
    for _ in range(bookings):
        leg = rng.choice(legs)
        status = book_itinerary(session_factory, rng.choice(user_ids), leg.day, Itinerary.of(leg))
        if status is ReservationStatus.ADDED:
            successful += 1
    return {"flights": flights, "customers": customers, "bookings": successful}
