"""
db/models.py

SQLAlchemy 2.0 async ORM model definitions.
Stores accepted glucose readings and pump reservoir values.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from config import settings

# Async engine with connection pool settings
engine = create_async_engine(
    f"mysql+aiomysql://{settings.mysql_user}:{settings.mysql_password}"
    f"@{settings.mysql_host}:{settings.mysql_port}/{settings.mysql_db}",
    pool_size=10,
    max_overflow=20,
    pool_pre_ping=True,
)

AsyncSessionLocal = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class GlucoseSample(Base):
    """Glucose reading accepted from the CGM transmitter."""

    __tablename__ = "glucose_sample"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    glucose: Mapped[Decimal] = mapped_column(Numeric(5, 1), nullable=False)  # mg/dL
    trend: Mapped[int | None] = mapped_column(Integer, nullable=True)
    display_only: Mapped[bool] = mapped_column(Boolean, default=False)
    device: Mapped[str | None] = mapped_column(String(50), nullable=True)


class ReservoirValue(Base):
    """Pump reservoir level reported by a sentry status broadcast."""

    __tablename__ = "reservoir_value"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pump_id: Mapped[str | None] = mapped_column(String(6), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    units: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)
