from datetime import timezone

from sqlalchemy import BigInteger, Integer
from sqlalchemy.types import DateTime, TypeDecorator

# BigInteger in production, with the SQLite Integer variant so autoincrement works.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")

# Ledger amounts are integer base units and may exceed 32 bits.
AMOUNT_TYPE = BigInteger().with_variant(Integer, "sqlite")


class UTCDateTime(TypeDecorator):
    """A DateTime type that always stores and returns aware UTC timestamps.

    SQLite drops tzinfo on ``DateTime(timezone=True)``; deadline and timeout
    comparisons need aware values on both sides.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)
        return None

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
