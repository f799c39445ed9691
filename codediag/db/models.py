from sqlalchemy import create_engine, Column, String, Text, DateTime, func
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from codediag.config import DATABASE_URL

Base = declarative_base()


class OemFaultCode(Base):
    """Verified manufacturer-specific fault code, unique per (make, code)."""

    __tablename__ = "oem_fault_codes"
    make = Column(String, primary_key=True)
    code = Column(String, primary_key=True)
    title = Column(Text, nullable=False)
    description = Column(Text)
    source = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


def make_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


engine = make_engine(DATABASE_URL)


def init_db(bind: Engine = engine) -> None:
    Base.metadata.create_all(bind=bind)
