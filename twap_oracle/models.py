"""SQLAlchemy models for the TWAP oracle service."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Boolean, Integer, BigInteger, DateTime, Numeric, ForeignKey
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# Wide enough for a uint256 price x time integral
WideInt = Numeric(78, 0)


class Base(DeclarativeBase):
    pass


class Account(Base):
    """Attester accounts. Permissions travel in the JWT; this row gates liveness."""
    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    username: Mapped[str] = mapped_column(String(100), unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    locked_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class OracleState(Base):
    __tablename__ = "oracle_state"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    sample_interval: Mapped[int] = mapped_column(Integer)
    capacity: Mapped[int] = mapped_column(Integer)
    max_delta_seconds: Mapped[int] = mapped_column(BigInteger)
    max_relative_price_change: Mapped[Decimal] = mapped_column(WideInt)
    interpolate_catch_up: Mapped[bool] = mapped_column(Boolean, default=False)
    price_cumulative_last: Mapped[Decimal] = mapped_column(WideInt, default=Decimal("0"))
    last_update_timestamp: Mapped[Optional[int]] = mapped_column(BigInteger)
    origin_timestamp: Mapped[Optional[int]] = mapped_column(BigInteger)
    cursor: Mapped[int] = mapped_column(Integer, default=0)
    attested_ratio: Mapped[Optional[Decimal]] = mapped_column(WideInt)
    attested_timestamp: Mapped[Optional[int]] = mapped_column(BigInteger)
    attested_by: Mapped[Optional[str]] = mapped_column(String(100))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    samples: Mapped[list["OracleSample"]] = relationship(
        back_populates="oracle", cascade="all, delete-orphan", order_by="OracleSample.slot"
    )


class OracleSample(Base):
    __tablename__ = "oracle_samples"

    oracle_name: Mapped[str] = mapped_column(String(64), ForeignKey("oracle_state.name"), primary_key=True)
    slot: Mapped[int] = mapped_column(Integer, primary_key=True)
    cumulative: Mapped[Decimal] = mapped_column(WideInt, default=Decimal("0"))
    timestamp: Mapped[int] = mapped_column(BigInteger, default=0)

    oracle: Mapped[OracleState] = relationship(back_populates="samples")
