"""
triviabox.services.player_service — Wallet → Player Resolution
==============================================================

Players are identified by wallet address.  Addresses are compared
case-insensitively, so they are normalized to lower-case before any
lookup or insert.
"""

from __future__ import annotations

import re

from sqlalchemy import select
from sqlalchemy.orm import Session

from triviabox.database.models import User

_WALLET_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class PlayerNotFoundError(LookupError):
    """No player exists for the given wallet."""


def normalize_wallet(wallet_address: str | None) -> str:
    """Validate *wallet_address* and return its lower-case form.

    Raises
    ------
    ValueError
        If the address is missing or not a 0x-prefixed 40-hex-digit string.
    """
    if not wallet_address or not wallet_address.strip():
        raise ValueError("Wallet address is required")
    address = wallet_address.strip()
    if not _WALLET_RE.match(address):
        raise ValueError(f"Malformed wallet address: {address!r}")
    return address.lower()


def find_user_by_wallet(session: Session, wallet_address: str) -> User | None:
    """Fetch the User for *wallet_address* (any case), or ``None``."""
    return session.scalar(
        select(User).where(User.wallet_address == normalize_wallet(wallet_address))
    )


def require_user(session: Session, wallet_address: str) -> User:
    """Like :func:`find_user_by_wallet` but raises :class:`PlayerNotFoundError`."""
    user = find_user_by_wallet(session, wallet_address)
    if user is None:
        raise PlayerNotFoundError(f"No player for wallet {wallet_address}")
    return user


def get_or_create_user(session: Session, wallet_address: str) -> User:
    """Fetch or insert a User row for *wallet_address*."""
    address = normalize_wallet(wallet_address)
    user = session.scalar(select(User).where(User.wallet_address == address))
    if user is None:
        user = User(wallet_address=address, total_points=0, games_played=0, best_streak=0)
        session.add(user)
        session.flush()
    return user
