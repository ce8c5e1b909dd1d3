"""Itinerary search: direct and one-connection routes ranked by flight time."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from .catalog import MAX_SEARCH_RESULTS, FlightRecord, connecting_flights, direct_flights

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Itinerary:
    """One or two legs flown on a single date."""

    legs: Tuple[FlightRecord, ...]

    def __post_init__(self) -> None:
        legs = tuple(self.legs)
        object.__setattr__(self, "legs", legs)
        if not 1 <= len(legs) <= 2:
            raise ValueError("an itinerary has one or two legs")
        if len({leg.day for leg in legs}) != 1:
            raise ValueError("all legs of an itinerary must fly on the same date")
        if len(legs) == 2:
            if legs[0].dest_city != legs[1].origin_city:
                raise ValueError("second leg must depart from the first leg's destination")
            if legs[0].fid == legs[1].fid:
                raise ValueError("an itinerary cannot repeat a flight")

    @classmethod
    def of(cls, *legs: FlightRecord) -> "Itinerary":
        return cls(tuple(legs))

    @property
    def day(self) -> date:
        return self.legs[0].day

    @property
    def origin_city(self) -> str:
        return self.legs[0].origin_city

    @property
    def dest_city(self) -> str:
        return self.legs[-1].dest_city

    @property
    def stops(self) -> int:
        return len(self.legs) - 1

    @property
    def total_time(self) -> Optional[int]:
        """Summed flight minutes, or None if any leg has no recorded time."""

        times = [leg.actual_time for leg in self.legs]
        if any(minutes is None for minutes in times):
            return None
        return sum(times)

    @property
    def flight_ids(self) -> Tuple[int, ...]:
        return tuple(leg.fid for leg in self.legs)


def _rank_key(itinerary: Itinerary) -> Tuple[int, int, Tuple[int, ...]]:
    return itinerary.total_time, len(itinerary.legs), itinerary.flight_ids


def rank_itineraries(itineraries: Sequence[Itinerary], *, limit: int = MAX_SEARCH_RESULTS) -> List[Itinerary]:
    """Order by total flight time, direct before one-stop on ties, then by flight ids."""

    return sorted(itineraries, key=_rank_key)[:limit]


def search_itineraries(
    session: Session,
    day: date,
    origin_city: str,
    dest_city: str,
    *,
    limit: int = MAX_SEARCH_RESULTS,
) -> List[Itinerary]:
    """Return at most ``limit`` itineraries from ``origin_city`` to ``dest_city`` on ``day``.

    Each query is capped at ``limit`` on its own, which is enough for the
    merged top ``limit`` since both come back already sorted by flight time.
    Engine failures surface as :class:`~flight_service.exceptions.StorageReadError`.
    """

    candidates = [Itinerary.of(leg) for leg in direct_flights(session, day, origin_city, dest_city, limit=limit)]
    candidates.extend(
        Itinerary.of(leg1, leg2)
        for leg1, leg2 in connecting_flights(session, day, origin_city, dest_city, limit=limit)
    )
    results = rank_itineraries(candidates, limit=limit)
    logger.debug(
        "search %s -> %s on %s: %d candidates, %d returned",
        origin_city,
        dest_city,
        day,
        len(candidates),
        len(results),
    )
    return results
