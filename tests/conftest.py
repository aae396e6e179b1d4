"""Pytest configuration and fixtures."""

import pytest
from sqlalchemy.pool import NullPool

from clinic_flow.config import get_settings
from clinic_flow.core.database import build_engine, build_session_factory, create_tables, seed_resources
from clinic_flow.observability import WorkflowEventLogger
from clinic_flow.workflow.engine import WorkflowEngine
from clinic_flow.workflow.states import EncounterStatus


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep every test away from the developer's .env and ./data directory."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'settings.db'}")
    monkeypatch.setenv("TELEMETRY_ENABLED", "false")
    monkeypatch.setenv("TELEMETRY_LOG_DIR", str(tmp_path / "default-logs"))
    get_settings.cache_clear()
    WorkflowEventLogger._instance = None
    yield
    get_settings.cache_clear()
    WorkflowEventLogger._instance = None


@pytest.fixture
def database_url(tmp_path):
    # File-backed so concurrent sessions see each other's commits
    return f"sqlite+aiosqlite:///{tmp_path / 'clinic.db'}"


@pytest.fixture
async def db_engine(database_url):
    engine = build_engine(database_url, poolclass=NullPool)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(db_engine):
    factory = build_session_factory(db_engine)
    await seed_resources(factory, rooms=8, beds=2)
    return factory


@pytest.fixture
def telemetry(tmp_path):
    return WorkflowEventLogger(log_dir=tmp_path / "telemetry", enabled=True)


@pytest.fixture
def workflow(session_factory, telemetry):
    return WorkflowEngine(session_factory, telemetry=telemetry)


@pytest.fixture
async def rooms(workflow):
    """Seeded exam rooms keyed by room number."""
    return {r.room_number: r.id for r in await workflow.list_rooms()}


@pytest.fixture
async def beds(workflow):
    return {b.bed_number: b.id for b in await workflow.list_beds()}


@pytest.fixture
async def encounter(workflow):
    return await workflow.check_in("patient-001", "reception-1", chief_complaint="Cough for three days")


NURSE_PATH = (
    EncounterStatus.IN_ROOM,
    EncounterStatus.VITALS_COMPLETE,
    EncounterStatus.WITH_NURSE,
)

DOCTOR_PATH = NURSE_PATH + (
    EncounterStatus.WAITING_FOR_DOCTOR,
    EncounterStatus.WITH_DOCTOR,
)


@pytest.fixture
def advance(workflow):
    """Walk an encounter through statuses in order; returns the last result."""

    async def _advance(encounter_id, *statuses, actor="nurse-1"):
        result = None
        for status in statuses:
            result = await workflow.transition(encounter_id, status, actor)
        return result

    return _advance


@pytest.fixture
async def with_nurse(workflow, encounter, advance):
    """An encounter that has reached the nurse."""
    await advance(encounter.id, *NURSE_PATH)
    return encounter


@pytest.fixture
async def with_doctor(workflow, encounter, advance):
    """An encounter that has reached the doctor."""
    await advance(encounter.id, *DOCTOR_PATH)
    return encounter
