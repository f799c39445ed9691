import asyncio
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from codediag.db.models import OemFaultCode, make_engine
from codediag.db import seed as seed_module
from codediag.db.seed import BMW_SEED, seed
from codediag.services.oem import ManufacturerCodeStore, ReferenceStoreError, StoreState


def _row_count(engine, make=None):
    stmt = select(func.count()).select_from(OemFaultCode)
    if make:
        stmt = stmt.where(OemFaultCode.make == make)
    with engine.connect() as conn:
        return conn.execute(stmt).scalar_one()


@pytest.mark.asyncio
async def test_lookup_seeded_bmw_code(store):
    d = await store.lookup("BMW", "480A12")
    assert d is not None
    assert d.title == "Rear brake pad wear sensor: wear limit reached / circuit open"
    assert d.make == "BMW"


@pytest.mark.asyncio
async def test_lookup_normalizes_make_and_code(store):
    d = await store.lookup("  bmw ", "480a-0c")
    assert d is not None
    assert d.code == "480A0C"


@pytest.mark.asyncio
async def test_lookup_miss_returns_none(store):
    assert await store.lookup("Toyota", "480A12") is None
    assert await store.lookup("BMW", "FFFF") is None


@pytest.mark.asyncio
async def test_blank_inputs_skip_storage(db_engine):
    store = ManufacturerCodeStore(db_engine)
    assert await store.lookup("", "480A12") is None
    assert await store.lookup("BMW", " ") is None
    assert store.state is StoreState.UNINITIALIZED


@pytest.mark.asyncio
async def test_stored_values_with_formatting_drift_still_match(store):
    await store.ensure_ready()
    with store._engine.begin() as conn:
        conn.execute(
            OemFaultCode.__table__.insert().values(
                make=" audi", code="12 ab-34", title="Drifted row", description=None, source=None
            )
        )
    d = await store.lookup("AUDI", "12AB34")
    assert d is not None
    assert d.title == "Drifted row"


@pytest.mark.asyncio
async def test_ensure_ready_sequential_is_idempotent(db_engine, store):
    await store.ensure_ready()
    await store.ensure_ready()
    assert store.state is StoreState.READY
    assert _row_count(db_engine, "BMW") == len(BMW_SEED)

    # A fresh process against the same table must not duplicate rows.
    await ManufacturerCodeStore(db_engine).ensure_ready()
    assert _row_count(db_engine, "BMW") == len(BMW_SEED)


@pytest.mark.asyncio
async def test_ensure_ready_concurrent_is_idempotent(db_engine):
    stores = [ManufacturerCodeStore(db_engine) for _ in range(3)]
    await asyncio.gather(*(s.ensure_ready() for s in stores))
    assert all(s.state is StoreState.READY for s in stores)
    assert _row_count(db_engine, "BMW") == len(BMW_SEED)


@pytest.mark.asyncio
async def test_setup_runs_once_per_store(store, monkeypatch):
    calls = []
    original = store._prepare

    def counting_prepare():
        calls.append(1)
        original()

    monkeypatch.setattr(store, "_prepare", counting_prepare)
    await asyncio.gather(store.ensure_ready(), store.ensure_ready(), store.lookup("BMW", "480A12"))
    await store.lookup("BMW", "481A01")
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_seed_does_not_overwrite_existing_pair(db_engine, store):
    inserted = await store.seed([
        {"make": "bmw", "code": "480a12", "title": "Overwritten?", "description": None, "source": None},
        {"make": "Toyota", "code": "12-34", "title": "Toyota test code", "description": None, "source": "curated"},
    ])
    assert inserted == 1
    assert (await store.lookup("BMW", "480A12")).title.startswith("Rear brake pad")
    toyota = await store.lookup("toyota", "1234")
    assert toyota.title == "Toyota test code"
    assert toyota.description is None


@pytest.mark.asyncio
async def test_seed_skips_make_that_already_has_rows(db_engine):
    store = ManufacturerCodeStore(db_engine)
    await store.ensure_ready()
    with db_engine.begin() as conn:
        conn.execute(OemFaultCode.__table__.delete().where(OemFaultCode.code != "480A12"))
    # Make is not empty, so the seed set is not re-applied.
    await ManufacturerCodeStore(db_engine).ensure_ready()
    assert _row_count(db_engine, "BMW") == 1


@pytest.mark.asyncio
async def test_storage_failure_is_an_error_not_a_miss(tmp_path):
    broken = make_engine(f"sqlite:///{tmp_path / 'missing' / 'codes.db'}")
    store = ManufacturerCodeStore(broken)
    with pytest.raises(ReferenceStoreError):
        await store.lookup("BMW", "480A12")
    assert store.state is StoreState.UNINITIALIZED


def test_seed_command_is_idempotent(db_engine):
    assert seed(db_engine) == len(BMW_SEED)
    assert seed(db_engine) == 0
    assert _row_count(db_engine, "BMW") == len(BMW_SEED)


def test_conflict_insert_rejects_unknown_dialect():
    conn = SimpleNamespace(dialect=SimpleNamespace(name="mysql"))
    with pytest.raises(ValueError, match="mysql"):
        seed_module._dialect_insert(conn)


@pytest.mark.asyncio
async def test_unsupported_dialect_surfaces_as_store_error(db_engine, monkeypatch):
    real = seed_module._dialect_insert
    mysql_conn = SimpleNamespace(dialect=SimpleNamespace(name="mysql"))
    monkeypatch.setattr(seed_module, "_dialect_insert", lambda conn: real(mysql_conn))

    store = ManufacturerCodeStore(db_engine)
    with pytest.raises(ReferenceStoreError):
        await store.ensure_ready()
    assert store.state is StoreState.UNINITIALIZED
    with pytest.raises(ReferenceStoreError):
        await store.seed([{"make": "Audi", "code": "1234", "title": "x", "description": None, "source": None}])
