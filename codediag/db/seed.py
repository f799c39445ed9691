import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection, Engine

from codediag.db.models import OemFaultCode, engine, init_db

logger = logging.getLogger(__name__)

BMW_SEED: List[Dict[str, Optional[str]]] = [
    {
        "make": "BMW",
        "code": "480A12",
        "title": "Rear brake pad wear sensor: wear limit reached / circuit open",
        "description": (
            "The rear brake pad wear sensor has reached its wear limit or the circuit is open. "
            "Replace the brake pads and the wear sensor as required."
        ),
        "source": "BMW fault code list (verified)",
    },
    {
        "make": "BMW",
        "code": "480A0C",
        "title": "DME: Mass air flow sensor, plausibility",
        "description": (
            "The mass air flow (MAF) sensor signal is implausible compared to other engine parameters. "
            "May indicate a faulty MAF, intake leak, or wiring issue."
        ),
        "source": "BMW fault code list (verified)",
    },
    {
        "make": "BMW",
        "code": "480A11",
        "title": "DME: Oxygen sensor before catalytic converter, signal",
        "description": (
            "Fault in the pre-cat oxygen sensor signal (Bank 1). "
            "The sensor may be faulty, contaminated, or have a wiring/connector issue."
        ),
        "source": "BMW fault code list (verified)",
    },
    {
        "make": "BMW",
        "code": "481A01",
        "title": "DME: Crankshaft sensor, signal",
        "description": (
            "No signal or implausible signal from the crankshaft position sensor. "
            "Can cause no-start or rough running."
        ),
        "source": "BMW fault code list (verified)",
    },
]

SEED_SETS: Dict[str, List[Dict[str, Optional[str]]]] = {
    "BMW": BMW_SEED,
}


def _dialect_insert(conn: Connection):
    name = conn.dialect.name
    if name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise ValueError(f"conflict-ignoring insert not supported for dialect {name!r}")
    return insert


def insert_ignore(conn: Connection, rows: Iterable[Dict[str, Optional[str]]]) -> int:
    """Insert rows, skipping any (make, code) pair that already exists. Returns rows inserted."""
    rows = [dict(r) for r in rows]
    if not rows:
        return 0
    insert = _dialect_insert(conn)
    stmt = (
        insert(OemFaultCode.__table__)
        .values(rows)
        .on_conflict_do_nothing(index_elements=["make", "code"])
    )
    result = conn.execute(stmt)
    return max(result.rowcount or 0, 0)


def seed_make_if_empty(conn: Connection, make: str, rows: Iterable[Dict[str, Optional[str]]]) -> int:
    existing = conn.execute(
        select(OemFaultCode.make).where(OemFaultCode.make == make).limit(1)
    ).first()
    if existing is not None:
        return 0
    inserted = insert_ignore(conn, rows)
    logger.info("[oem] seeded make=%s rows=%d", make, inserted)
    return inserted


def seed(bind: Engine = engine) -> int:
    init_db(bind)
    total = 0
    with bind.begin() as conn:
        for make, rows in SEED_SETS.items():
            total += seed_make_if_empty(conn, make, rows)
    return total


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed()
