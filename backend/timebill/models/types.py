# Overview: Column types shared by models.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.types import BigInteger, TypeDecorator

from ..money import round_money


class FixedPoint(TypeDecorator):
    """
    Decimal stored as a scaled integer (minor units).

    ``FixedPoint(2)`` persists Decimal("312.50") as 31250 and reads it back
    as Decimal("312.50"), on SQLite as well as PostgreSQL.
    """

    impl = BigInteger
    cache_ok = True

    def __init__(self, scale: int = 2):
        super().__init__()
        self.scale = scale

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return int(round_money(value, self.scale).scaleb(self.scale))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value)).scaleb(-self.scale)
