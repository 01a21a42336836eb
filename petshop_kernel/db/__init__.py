"""Database layer - engine, base classes, money helpers and immutability."""

from petshop_kernel.db.base import UUID, Base, UUIDString
from petshop_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)
from petshop_kernel.db.types import parse_amount, round_money

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "UUIDString",
    "UUID",
    "parse_amount",
    "round_money",
]
