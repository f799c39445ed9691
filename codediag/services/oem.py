import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateTable

from codediag.db.models import OemFaultCode, engine as default_engine
from codediag.db.seed import SEED_SETS, insert_ignore, seed_make_if_empty
from codediag.services.parser import normalize_code

logger = logging.getLogger(__name__)


class ReferenceStoreError(RuntimeError):
    """The manufacturer reference store could not be read or prepared."""


class StoreState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


@dataclass(frozen=True)
class ManufacturerDefinition:
    make: str
    code: str
    title: str
    description: Optional[str]
    source: Optional[str]


def normalize_make(make: str) -> str:
    return (make or "").strip().upper()


def _normalized_column(col):
    return func.upper(func.trim(func.replace(func.replace(col, " ", ""), "-", "")))


class ManufacturerCodeStore:
    """
    Verified manufacturer-specific fault codes keyed by (make, code).

    The table is created and seed makes are filled on first use; after one
    successful run the store is READY and the setup step is skipped. Seeding
    only ever inserts with conflicts ignored, so racing first callers (in this
    process or another) cannot duplicate or overwrite curated rows.
    """

    def __init__(self, engine: Engine, seed_sets: Optional[Dict[str, list]] = None):
        self._engine = engine
        self._seed_sets = SEED_SETS if seed_sets is None else seed_sets
        self._state = StoreState.UNINITIALIZED
        self._lock = asyncio.Lock()

    @property
    def state(self) -> StoreState:
        return self._state

    def _prepare(self) -> None:
        with self._engine.begin() as conn:
            conn.execute(CreateTable(OemFaultCode.__table__, if_not_exists=True))
        with self._engine.begin() as conn:
            for make, rows in self._seed_sets.items():
                seed_make_if_empty(conn, make, rows)

    async def ensure_ready(self) -> None:
        if self._state is StoreState.READY:
            return
        async with self._lock:
            if self._state is StoreState.READY:
                return
            try:
                await asyncio.to_thread(self._prepare)
            except (SQLAlchemyError, ValueError) as e:
                logger.error("[oem] prepare failed: %s", type(e).__name__)
                raise ReferenceStoreError("manufacturer code table unavailable") from e
            self._state = StoreState.READY
            logger.info("[oem] store ready")

    def _insert(self, rows: list) -> int:
        with self._engine.begin() as conn:
            return insert_ignore(conn, rows)

    async def seed(self, rows: Iterable[Dict[str, Optional[str]]]) -> int:
        """Add verified rows; existing (make, code) pairs are left untouched."""
        await self.ensure_ready()
        normalized = [
            {
                **row,
                "make": normalize_make(row.get("make") or ""),
                "code": normalize_code(row.get("code") or ""),
            }
            for row in rows
        ]
        try:
            return await asyncio.to_thread(self._insert, normalized)
        except (SQLAlchemyError, ValueError) as e:
            logger.error("[oem] insert failed: %s", type(e).__name__)
            raise ReferenceStoreError("manufacturer code insert failed") from e

    def _query(self, make: str, code: str) -> Optional[ManufacturerDefinition]:
        stmt = (
            select(OemFaultCode)
            .where(func.upper(func.trim(OemFaultCode.make)) == make)
            .where(_normalized_column(OemFaultCode.code) == code)
            .limit(1)
        )
        with self._engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        if row is None:
            return None
        return ManufacturerDefinition(
            make=row["make"],
            code=row["code"],
            title=row["title"],
            description=row["description"],
            source=row["source"],
        )

    async def lookup(self, make: str, code: str) -> Optional[ManufacturerDefinition]:
        """Exact (make, code) match after normalization; None when absent."""
        make_norm = normalize_make(make)
        code_norm = normalize_code(code)
        if not make_norm or not code_norm:
            return None

        await self.ensure_ready()
        try:
            found = await asyncio.to_thread(self._query, make_norm, code_norm)
        except SQLAlchemyError as e:
            logger.error("[oem] lookup failed make=%s code=%s: %s", make_norm, code_norm, type(e).__name__)
            raise ReferenceStoreError("manufacturer code lookup failed") from e
        logger.debug("[oem] lookup make=%s code=%s hit=%s", make_norm, code_norm, found is not None)
        return found


_STORE: Optional[ManufacturerCodeStore] = None


def get_store() -> ManufacturerCodeStore:
    global _STORE
    if _STORE is None:
        _STORE = ManufacturerCodeStore(default_engine)
    return _STORE
