"""Read-only queries against the flight and carrier catalog."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import Select, and_, select
from sqlalchemy.orm import Session, aliased

from .exceptions import storage_errors
from .models import Carrier, Customer, Flight

logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 99


@dataclass(frozen=True)
class FlightRecord:
    """Immutable snapshot of one scheduled leg; ``actual_time`` is None if never flown."""

    fid: int
    day: date
    carrier: str
    flight_num: str
    origin_city: str
    dest_city: str
    actual_time: Optional[int]

    @classmethod
    def from_model(cls, flight: Flight, carrier_name: str) -> "FlightRecord":
        return cls(
            fid=flight.fid,
            day=flight.day,
            carrier=carrier_name,
            flight_num=flight.flight_num,
            origin_city=flight.origin_city,
            dest_city=flight.dest_city,
            actual_time=flight.actual_time,
        )


def on_day(flight, day: date):
    """SQL predicate matching ``flight`` (a mapped class or alias) to a calendar date."""

    return and_(
        flight.year == day.year,
        flight.month_id == day.month,
        flight.day_of_month == day.day,
    )


def flight_select() -> Select[Tuple[Flight, str]]:
    """Flights joined to their carrier name, the projection every listing shares."""

    return select(Flight, Carrier.name).select_from(Flight).join(Carrier, Flight.carrier_id == Carrier.cid)


def direct_flights(
    session: Session,
    day: date,
    origin_city: str,
    dest_city: str,
    *,
    limit: int = MAX_SEARCH_RESULTS,
) -> List[FlightRecord]:
    """Flown legs from ``origin_city`` to ``dest_city`` on ``day``, shortest first."""

    stmt = (
        flight_select()
        .where(
            on_day(Flight, day),
            Flight.actual_time.is_not(None),
            Flight.origin_city == origin_city,
            Flight.dest_city == dest_city,
        )
        .order_by(Flight.actual_time, Flight.fid)
        .limit(limit)
    )
    with storage_errors(write=False):
        rows = session.execute(stmt).all()
    logger.debug("%d direct legs %s -> %s on %s", len(rows), origin_city, dest_city, day)
    return [FlightRecord.from_model(flight, name) for flight, name in rows]


def connecting_flights(
    session: Session,
    day: date,
    origin_city: str,
    dest_city: str,
    *,
    limit: int = MAX_SEARCH_RESULTS,
) -> List[Tuple[FlightRecord, FlightRecord]]:
    """Pairs of flown legs on ``day`` joined at a common connecting city.

    Ordered by combined flight time; carriers may differ between legs.
    """

    first = aliased(Flight, name="leg1")
    second = aliased(Flight, name="leg2")
    first_carrier = aliased(Carrier, name="carrier1")
    second_carrier = aliased(Carrier, name="carrier2")
    stmt = (
        select(first, first_carrier.name, second, second_carrier.name)
        .select_from(first)
        .join(first_carrier, first.carrier_id == first_carrier.cid)
        .join(second, first.dest_city == second.origin_city)
        .join(second_carrier, second.carrier_id == second_carrier.cid)
        .where(
            on_day(first, day),
            on_day(second, day),
            first.actual_time.is_not(None),
            second.actual_time.is_not(None),
            first.origin_city == origin_city,
            second.dest_city == dest_city,
            first.fid != second.fid,
        )
        .order_by(first.actual_time + second.actual_time, first.fid, second.fid)
        .limit(limit)
    )
    with storage_errors(write=False):
        rows = session.execute(stmt).all()
    logger.debug("%d one-stop pairs %s -> %s on %s", len(rows), origin_city, dest_city, day)
    return [
        (FlightRecord.from_model(leg1, name1), FlightRecord.from_model(leg2, name2))
        for leg1, name1, leg2, name2 in rows
    ]


def get_flight(session: Session, fid: int) -> Optional[FlightRecord]:
    with storage_errors(write=False):
        row = session.execute(flight_select().where(Flight.fid == fid)).first()
    if row is None:
        return None
    return FlightRecord.from_model(row[0], row[1])


def add_carrier(session: Session, *, cid: str, name: str) -> Carrier:
    carrier = Carrier(cid=cid, name=name)
    session.add(carrier)
    session.flush()
    return carrier


def add_flight(
    session: Session,
    *,
    carrier_id: str,
    flight_num: str,
    day: date,
    origin_city: str,
    dest_city: str,
    actual_time: Optional[int],
) -> Flight:
    """Create a flight entry."""

    flight = Flight(
        carrier_id=carrier_id,
        flight_num=flight_num,
        year=day.year,
        month_id=day.month,
        day_of_month=day.day,
        origin_city=origin_city,
        dest_city=dest_city,
        actual_time=actual_time,
    )
    session.add(flight)
    session.flush()
    return flight


def add_customer(
    session: Session,
    *,
    username: str,
    password: str,
    firstname: str,
    lastname: str,
) -> Customer:
    customer = Customer(
        username=username,
        password=password,
        firstname=firstname,
        lastname=lastname,
    )
    session.add(customer)
    session.flush()
    return customer
