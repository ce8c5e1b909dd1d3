from __future__ import annotations

import tempfile
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import func, select

from flight_service.catalog import add_carrier, add_customer, add_flight, get_flight
from flight_service.database import create_session_factory
from flight_service.dataset import generate_sample_data
from flight_service.exceptions import AuthFailure, SerializationConflict
from flight_service.models import Base, Flight, Reservation
from flight_service.reservations import MAX_FLIGHT_BOOKINGS, ReservationStatus
from flight_service.search import Itinerary
from flight_service.service import FlightService

DAY = date(2015, 6, 1)
NEXT_DAY = date(2015, 6, 2)
SEA = "Seattle WA"
BOS = "Boston MA"
ORD = "Chicago IL"
DEN = "Denver CO"


def make_session_factory():
    db_file = Path(tempfile.mkstemp(prefix="flights-test", suffix=".db")[1])
    engine, session_factory = create_session_factory(
        f"sqlite+pysqlite:///{db_file}", echo=False
    )
    Base.metadata.create_all(engine)
    return session_factory


def make_service(customers: int = 6):
    """Service over a small catalog; returns (service, flight ids by label, user ids)."""

    session_factory = make_session_factory()
    with session_factory() as session:
        add_carrier(session, cid="AS", name="Alaska Airlines Inc.")
        add_carrier(session, cid="B6", name="JetBlue Airways")
        specs = {
            "sea_bos_300": ("AS", "12", DAY, SEA, BOS, 300),
            "sea_bos_290": ("B6", "497", DAY, SEA, BOS, 290),
            "sea_bos_unflown": ("AS", "14", DAY, SEA, BOS, None),
            "sea_ord": ("AS", "20", DAY, SEA, ORD, 200),
            "ord_bos": ("B6", "30", DAY, ORD, BOS, 120),
            "sea_den": ("B6", "40", DAY, SEA, DEN, 150),
            "den_bos": ("AS", "50", DAY, DEN, BOS, 200),
            "den_bos_unflown": ("AS", "52", DAY, DEN, BOS, None),
            "sea_bos_next_day": ("AS", "12", NEXT_DAY, SEA, BOS, 100),
        }
        flights = {}
        for label, (carrier, number, day, origin, dest, actual) in specs.items():
            flights[label] = add_flight(
                session,
                carrier_id=carrier,
                flight_num=number,
                day=day,
                origin_city=origin,
                dest_city=dest,
                actual_time=actual,
            ).fid
        users = [
            add_customer(
                session,
                username=f"user{i}",
                password=f"pw{i}",
                firstname=f"First{i}",
                lastname="Traveler",
            ).user_id
            for i in range(customers)
        ]
        session.commit()
    return FlightService(session_factory), flights, users


def itinerary(service: FlightService, *fids: int) -> Itinerary:
    with service.session_factory() as session:
        return Itinerary.of(*(get_flight(session, fid) for fid in fids))


def reservation_count(service: FlightService, fid: int) -> int:
    with service.session_factory() as session:
        return session.scalar(select(func.count()).select_from(Reservation).where(Reservation.fid == fid))


def test_authenticate_returns_user_with_display_name():
    service, _, users = make_service(customers=2)
    user = service.authenticate("user1", "pw1")
    assert user.user_id == users[1]
    assert user.handle == "user1"
    assert user.name == "First1 Traveler"


def test_authenticate_rejects_wrong_secret_and_unknown_handle():
    service, _, _ = make_service(customers=1)
    with pytest.raises(AuthFailure):
        service.authenticate("user0", "wrong")
    with pytest.raises(AuthFailure):
        service.authenticate("nobody", "pw0")


def test_search_ranks_direct_and_one_stop_by_total_time():
    service, flights, _ = make_service()
    results = service.search(DAY, SEA, BOS)

    assert [it.flight_ids for it in results] == [
        (flights["sea_bos_290"],),
        (flights["sea_bos_300"],),
        (flights["sea_ord"], flights["ord_bos"]),
        (flights["sea_den"], flights["den_bos"]),
    ]
    assert [it.total_time for it in results] == [290, 300, 320, 350]
    for it in results:
        assert it.day == DAY
        assert it.origin_city == SEA and it.dest_city == BOS
        if len(it.legs) == 2:
            assert it.legs[0].dest_city == it.legs[1].origin_city
    assert results[0].legs[0].carrier == "JetBlue Airways"


def test_search_excludes_unflown_legs_and_other_dates():
    service, flights, _ = make_service()
    returned = {fid for it in service.search(DAY, SEA, BOS) for fid in it.flight_ids}
    assert flights["sea_bos_unflown"] not in returned
    assert flights["den_bos_unflown"] not in returned
    assert flights["sea_bos_next_day"] not in returned

    next_day = service.search(NEXT_DAY, SEA, BOS)
    assert [it.flight_ids for it in next_day] == [(flights["sea_bos_next_day"],)]


def test_search_prefers_direct_on_equal_time():
    service, flights, _ = make_service()
    with service.session_factory() as session:
        tied = add_flight(
            session,
            carrier_id="AS",
            flight_num="99",
            day=DAY,
            origin_city=SEA,
            dest_city=BOS,
            actual_time=320,
        ).fid
        session.commit()
    results = service.search(DAY, SEA, BOS)
    assert [it.flight_ids for it in results][2:4] == [(tied,), (flights["sea_ord"], flights["ord_bos"])]


def test_search_never_pairs_a_flight_with_itself():
    service, _, _ = make_service(customers=0)
    with service.session_factory() as session:
        loop = add_flight(
            session,
            carrier_id="AS",
            flight_num="77",
            day=DAY,
            origin_city=SEA,
            dest_city=SEA,
            actual_time=30,
        ).fid
        session.commit()

    results = service.search(DAY, SEA, SEA)
    assert [it.flight_ids for it in results] == [(loop,)]
    assert all(len(set(it.flight_ids)) == len(it.legs) for it in service.search(DAY, SEA, BOS))


def test_unflown_reserved_flight_is_listed_with_unknown_time():
    service, flights, users = make_service()
    with service.session_factory() as session:
        unflown = get_flight(session, flights["sea_bos_unflown"])
    assert unflown.actual_time is None

    trip = Itinerary.of(unflown)
    assert trip.total_time is None
    assert service.book(users[0], DAY, trip) is ReservationStatus.ADDED
    listed = service.list_reservations(users[0])
    assert [(f.fid, f.actual_time) for f in listed] == [(flights["sea_bos_unflown"], None)]


def test_search_is_capped_at_99_results():
    service, _, _ = make_service(customers=0)
    with service.session_factory() as session:
        for index in range(120):
            add_flight(
                session,
                carrier_id="AS",
                flight_num=str(1000 + index),
                day=DAY,
                origin_city=SEA,
                dest_city=BOS,
                actual_time=60 + index,
            )
        session.commit()
    results = service.search(DAY, SEA, BOS)
    assert len(results) == 99
    times = [it.total_time for it in results]
    assert times == sorted(times)
    assert times[0] == 60


def test_fourth_booking_on_a_flight_is_rejected():
    service, flights, users = make_service()
    fid = flights["sea_bos_300"]
    trip = itinerary(service, fid)
    for user_id in users[:MAX_FLIGHT_BOOKINGS]:
        assert service.book(user_id, DAY, trip) is ReservationStatus.ADDED

    assert service.book(users[3], DAY, trip) is ReservationStatus.FLIGHT_FULL
    assert reservation_count(service, fid) == MAX_FLIGHT_BOOKINGS
    assert service.list_reservations(users[3]) == []


def test_second_itinerary_on_the_same_day_is_rejected():
    service, flights, users = make_service()
    first = itinerary(service, flights["sea_bos_300"])
    second = itinerary(service, flights["sea_bos_290"])
    assert service.book(users[0], DAY, first) is ReservationStatus.ADDED
    assert service.book(users[0], DAY, second) is ReservationStatus.DAY_FULL
    assert reservation_count(service, flights["sea_bos_290"]) == 0

    other_day = itinerary(service, flights["sea_bos_next_day"])
    assert service.book(users[0], NEXT_DAY, other_day) is ReservationStatus.ADDED


def test_day_full_is_reported_before_flight_full():
    service, flights, users = make_service()
    fid = flights["sea_bos_300"]
    trip = itinerary(service, fid)
    for user_id in users[:MAX_FLIGHT_BOOKINGS]:
        service.book(user_id, DAY, trip)
    assert service.book(users[0], DAY, trip) is ReservationStatus.DAY_FULL


def test_two_leg_itinerary_books_both_legs():
    service, flights, users = make_service()
    trip = itinerary(service, flights["sea_ord"], flights["ord_bos"])
    assert service.book(users[0], DAY, trip) is ReservationStatus.ADDED
    listed = service.list_reservations(users[0])
    assert [flight.fid for flight in listed] == sorted([flights["sea_ord"], flights["ord_bos"]])


def test_two_leg_itinerary_with_a_full_leg_books_nothing():
    service, flights, users = make_service()
    second_leg = itinerary(service, flights["ord_bos"])
    for user_id in users[1:1 + MAX_FLIGHT_BOOKINGS]:
        assert service.book(user_id, DAY, second_leg) is ReservationStatus.ADDED

    trip = itinerary(service, flights["sea_ord"], flights["ord_bos"])
    assert service.book(users[0], DAY, trip) is ReservationStatus.FLIGHT_FULL
    assert reservation_count(service, flights["sea_ord"]) == 0
    assert service.list_reservations(users[0]) == []


def test_booking_rejects_itinerary_on_another_date():
    service, flights, users = make_service()
    trip = itinerary(service, flights["sea_bos_300"])
    with pytest.raises(ValueError):
        service.book(users[0], NEXT_DAY, trip)


def test_book_list_cancel_round_trip():
    service, flights, users = make_service()
    trip = itinerary(service, flights["sea_bos_300"])
    assert service.book(users[0], DAY, trip) is ReservationStatus.ADDED
    assert service.book(users[1], DAY, trip) is ReservationStatus.ADDED

    listed = service.list_reservations(users[0])
    assert listed == list(trip.legs)

    service.cancel(users[0], listed)
    assert service.list_reservations(users[0]) == []
    assert [f.fid for f in service.list_reservations(users[1])] == [flights["sea_bos_300"]]
    # cancelling frees the day again
    assert service.book(users[0], DAY, itinerary(service, flights["sea_bos_290"])) is ReservationStatus.ADDED


def test_cancelling_a_missing_reservation_is_a_no_op():
    service, flights, users = make_service()
    trip = itinerary(service, flights["sea_bos_300"])
    service.book(users[1], DAY, trip)

    service.cancel(users[0], trip.legs)
    service.cancel(users[0], [])

    assert reservation_count(service, flights["sea_bos_300"]) == 1
    assert len(service.list_reservations(users[1])) == 1


def test_concurrent_booking_respects_capacity():
    service, flights, users = make_service(customers=8)
    trip = itinerary(service, flights["sea_bos_300"])

    def attempt(user_id: int):
        try:
            return service.book(user_id, DAY, trip)
        except SerializationConflict:
            return None

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, users))

    added = results.count(ReservationStatus.ADDED)
    assert added == MAX_FLIGHT_BOOKINGS
    assert results.count(ReservationStatus.FLIGHT_FULL) + results.count(None) == len(users) - added
    assert ReservationStatus.DAY_FULL not in results
    assert reservation_count(service, flights["sea_bos_300"]) == added


def test_concurrent_bookings_for_one_user_on_one_day():
    service, flights, users = make_service(customers=1)
    trips = [
        itinerary(service, flights["sea_bos_300"]),
        itinerary(service, flights["sea_bos_290"]),
        itinerary(service, flights["sea_ord"], flights["ord_bos"]),
        itinerary(service, flights["sea_den"], flights["den_bos"]),
    ]

    def attempt(trip: Itinerary):
        try:
            return service.book(users[0], DAY, trip)
        except SerializationConflict:
            return None

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(attempt, trips))

    assert results.count(ReservationStatus.ADDED) <= 1
    listed = service.list_reservations(users[0])
    booked = [trip for trip, status in zip(trips, results) if status is ReservationStatus.ADDED]
    assert [f.fid for f in listed] == sorted(fid for trip in booked for fid in trip.flight_ids)


def test_last_seat_race_has_exactly_one_winner():
    for _ in range(10):
        service, flights, users = make_service(customers=4)
        trip = itinerary(service, flights["sea_bos_300"])
        for user_id in users[:MAX_FLIGHT_BOOKINGS - 1]:
            assert service.book(user_id, DAY, trip) is ReservationStatus.ADDED

        def attempt(user_id: int):
            try:
                return service.book(user_id, DAY, trip)
            except SerializationConflict:
                return None

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(attempt, users[2:4]))

        assert results.count(ReservationStatus.ADDED) == 1
        assert set(results) - {ReservationStatus.ADDED} <= {ReservationStatus.FLIGHT_FULL, None}
        assert reservation_count(service, flights["sea_bos_300"]) == MAX_FLIGHT_BOOKINGS


def test_capacity_summary_tracks_bookings():
    service, flights, users = make_service()
    trip = itinerary(service, flights["sea_bos_300"])
    service.book(users[0], DAY, trip)
    service.book(users[1], DAY, trip)

    summary = {row["fid"]: row for row in service.capacity_summary(DAY)}
    assert summary[flights["sea_bos_300"]]["bookings"] == 2
    assert summary[flights["sea_bos_300"]]["available"] == 1
    assert summary[flights["sea_bos_300"]]["route"] == f"{SEA}-{BOS}"
    assert flights["sea_bos_next_day"] not in summary


def test_dataset_generator_respects_invariants():
    session_factory = make_session_factory()
    summary = generate_sample_data(session_factory, flights=30, customers=10, bookings=40)
    assert summary["flights"] == 30
    assert 0 < summary["bookings"] <= 40

    with session_factory() as session:
        per_flight = session.execute(
            select(Reservation.fid, func.count()).group_by(Reservation.fid)
        ).all()
        per_user_day = session.execute(
            select(
                Reservation.user_id,
                Flight.year,
                Flight.month_id,
                Flight.day_of_month,
                func.count(),
            )
            .join(Flight, Reservation.fid == Flight.fid)
            .group_by(Reservation.user_id, Flight.year, Flight.month_id, Flight.day_of_month)
        ).all()
    assert sum(count for _, count in per_flight) == summary["bookings"]
    assert all(count <= MAX_FLIGHT_BOOKINGS for _, count in per_flight)
    assert all(row[-1] == 1 for row in per_user_day)
