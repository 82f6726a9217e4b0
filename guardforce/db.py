from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from guardforce.settings import get_settings

settings = get_settings()


class AttendanceBase(DeclarativeBase):
    pass


class ShiftsBase(DeclarativeBase):
    pass


class BrokerBase(DeclarativeBase):
    pass


# Each service owns its database; nothing joins across these engines.
attendance_engine = create_engine(settings.attendance_database_url, pool_pre_ping=True)
shifts_engine = create_engine(settings.shifts_database_url, pool_pre_ping=True)
broker_engine = create_engine(settings.broker_database_url, pool_pre_ping=True)

AttendanceSessionLocal = sessionmaker(bind=attendance_engine, autoflush=False, expire_on_commit=False)
ShiftsSessionLocal = sessionmaker(bind=shifts_engine, autoflush=False, expire_on_commit=False)
BrokerSessionLocal = sessionmaker(bind=broker_engine, autoflush=False, expire_on_commit=False)


def get_attendance_db() -> Generator[Session, None, None]:
    db = AttendanceSessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_shifts_db() -> Generator[Session, None, None]:
    db = ShiftsSessionLocal()
    try:
        yield db
    finally:
        db.close()
