"""Flight itinerary search and reservation service."""
from .auth import User, authenticate
from .bookings import list_reservations, summarize_capacity
from .catalog import MAX_SEARCH_RESULTS, FlightRecord, add_carrier, add_customer, add_flight
from .database import Transaction, TransactionState, create_session_factory, init_db
from .dataset import generate_sample_data
from .exceptions import (
    AuthFailure,
    FlightServiceError,
    SerializationConflict,
    StorageError,
    StorageReadError,
    StorageWriteError,
    TransactionStateError,
)
from .reservations import MAX_FLIGHT_BOOKINGS, ReservationStatus, book_itinerary, cancel_reservations
from .search import Itinerary, search_itineraries
from .service import FlightService

__all__ = [
    "AuthFailure",
    "FlightRecord",
    "FlightService",
    "FlightServiceError",
    "Itinerary",
    "MAX_FLIGHT_BOOKINGS",
    "MAX_SEARCH_RESULTS",
    "ReservationStatus",
    "SerializationConflict",
    "StorageError",
    "StorageReadError",
    "StorageWriteError",
    "Transaction",
    "TransactionState",
    "TransactionStateError",
    "User",
    "add_carrier",
    "add_customer",
    "add_flight",
    "authenticate",
    "book_itinerary",
    "cancel_reservations",
    "create_session_factory",
    "generate_sample_data",
    "init_db",
    "list_reservations",
    "search_itineraries",
    "summarize_capacity",
]
