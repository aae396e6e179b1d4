"""Tests for CLI commands."""

import asyncio

import pytest
from sqlalchemy import update
from sqlalchemy.pool import NullPool
from typer.testing import CliRunner

from clinic_flow.cli.commands import app
from clinic_flow.core.database import build_engine, build_session_factory
from clinic_flow.core.models import Room

runner = CliRunner()


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"


def _mark_room_busy(url, room_number):
    """Simulate drift: a room flagged occupied with no encounter holding it."""

    async def run():
        engine = build_engine(url, poolclass=NullPool)
        try:
            async with build_session_factory(engine)() as session:
                await session.execute(
                    update(Room).where(Room.room_number == room_number).values(is_available=False)
                )
                await session.commit()
        finally:
            await engine.dispose()

    asyncio.run(run())


class TestVersionCommand:
    def test_version_command(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "ClinicFlow" in result.stdout
        assert "0.1.0" in result.stdout


class TestInitDbCommand:
    def test_creates_and_seeds(self, db_url):
        result = runner.invoke(app, ["init-db", "--rooms", "4", "--beds", "1", "--database-url", db_url])

        assert result.exit_code == 0, result.stdout
        assert "4 rooms and 1 beds added" in result.stdout

    def test_is_idempotent(self, db_url):
        runner.invoke(app, ["init-db", "--database-url", db_url])

        result = runner.invoke(app, ["init-db", "--database-url", db_url])

        assert result.exit_code == 0
        assert "0 rooms and 0 beds added" in result.stdout


class TestSyncRoomsCommand:
    def test_consistent_database(self, db_url):
        runner.invoke(app, ["init-db", "--database-url", db_url])

        result = runner.invoke(app, ["sync-rooms", "--database-url", db_url])

        assert result.exit_code == 0
        assert "All rooms and beds are consistent" in result.stdout

    def test_repairs_drift(self, db_url):
        runner.invoke(app, ["init-db", "--database-url", db_url])
        _mark_room_busy(db_url, "3")

        result = runner.invoke(app, ["sync-rooms", "--database-url", db_url])

        assert result.exit_code == 0
        assert "Corrected 1 resources" in result.stdout

        again = runner.invoke(app, ["sync-rooms", "--database-url", db_url])
        assert "All rooms and beds are consistent" in again.stdout


class TestBoardCommand:
    def test_shows_rooms(self, db_url):
        runner.invoke(app, ["init-db", "--rooms", "2", "--beds", "1", "--database-url", db_url])

        result = runner.invoke(app, ["board", "--database-url", db_url])

        assert result.exit_code == 0
        assert "Room 1" in result.stdout
        assert "Bed SSU-1" in result.stdout
        assert "0 active encounters" in result.stdout
