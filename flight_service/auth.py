"""Customer authentication."""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from .exceptions import AuthFailure, storage_errors
from .models import Customer


@dataclass(frozen=True)
class User:
    user_id: int
    handle: str
    name: str


def authenticate(session: Session, handle: str, secret: str) -> User:
    """Return the customer whose stored handle and secret both equal the given ones.

    Comparison is exact; hashing policy belongs to whoever writes the customer
    rows. Raises :class:`AuthFailure` when nothing matches.
    """

    stmt = select(Customer).where(Customer.username == handle, Customer.password == secret)
    with storage_errors(write=False):
        customer = session.scalars(stmt).first()
    if customer is None:
        raise AuthFailure(f"invalid credentials for {handle!r}")
    return User(
        user_id=customer.user_id,
        handle=customer.username,
        name=f"{customer.firstname} {customer.lastname}",
    )
