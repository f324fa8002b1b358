"""
Identity lookup.

AuthProvider maps a ledger account address to the owner id under which
records are stored. Implementations: in-memory (development/testing) and
SQLite.
"""

import re
import threading
from abc import ABC, abstractmethod
from typing import Dict

from . import db
from .errors import InvalidAddress, UserExists, UserNotFound
from .util import random_uint32

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def validate_address(address: str) -> bool:
    """True if address looks like an Ethereum account address."""
    if not address:
        return False
    return bool(ADDRESS_RE.match(address))


class AuthProvider(ABC):
    """Abstract interface for user registration and lookup."""

    @abstractmethod
    def register(self, address: str) -> int:
        """
        Register an address and return its new owner id.

        Raises:
            InvalidAddress: malformed address
            UserExists: address already registered
        """
        pass

    @abstractmethod
    def authenticate(self, address: str) -> int:
        """
        Return the owner id registered for address.

        Raises:
            InvalidAddress: malformed address
            UserNotFound: address not registered
        """
        pass


class InMemoryAuthProvider(AuthProvider):
    """
    In-memory user registry for development/testing.

    WARNING: Not suitable for production.
    - Not persistent across restarts
    """

    def __init__(self):
        self._users: Dict[str, int] = {}
        self._lock = threading.Lock()

    def register(self, address: str) -> int:
        if not validate_address(address):
            raise InvalidAddress()
        with self._lock:
            key = address.lower()
            if key in self._users:
                raise UserExists()
            user_id = random_uint32()
            self._users[key] = user_id
            return user_id

    def authenticate(self, address: str) -> int:
        if not validate_address(address):
            raise InvalidAddress()
        with self._lock:
            user_id = self._users.get(address.lower())
        if user_id is None:
            raise UserNotFound()
        return user_id


class SqliteAuthProvider(AuthProvider):
    """User registry backed by the users table."""

    def __init__(self):
        db.init_db()

    def register(self, address: str) -> int:
        if not validate_address(address):
            raise InvalidAddress()
        user_id = random_uint32()
        if not db.insert_user(user_id, address):
            raise UserExists()
        return user_id

    def authenticate(self, address: str) -> int:
        if not validate_address(address):
            raise InvalidAddress()
        user_id = db.find_user_id(address)
        if user_id is None:
            raise UserNotFound()
        return user_id
