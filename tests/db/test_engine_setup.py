"""Tests for approval_kernel.db: module-level engine lifecycle and column types."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text
from sqlalchemy.dialects import postgresql, sqlite

from approval_kernel.db.base import UTCDateTime
from approval_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)


@pytest.fixture
def module_engine(tmp_path):
    reset_engine()
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'module.db'}", pool_size=2)
    yield engine
    reset_engine()


class TestModuleEngine:
    def test_uninitialized_engine_raises(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session_factory()

    def test_session_scope_uses_module_factory(self, module_engine):
        assert get_engine() is module_engine
        create_tables()
        with session_scope() as session:
            assert session.execute(text("SELECT COUNT(*) FROM approval_requests")).scalar() == 0

        session = get_session()
        try:
            assert session.get_bind() is module_engine
        finally:
            session.close()

    def test_session_scope_rolls_back_on_error(self, module_engine):
        with session_scope() as session:
            session.execute(text("CREATE TABLE scratch (n INTEGER)"))

        with pytest.raises(RuntimeError):
            with session_scope() as session:
                session.execute(text("INSERT INTO scratch (n) VALUES (1)"))
                raise RuntimeError("abort")

        with session_scope() as session:
            assert session.execute(text("SELECT COUNT(*) FROM scratch")).scalar() == 0

    def test_reset_forgets_engine(self, module_engine):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()


class TestUTCDateTime:
    def test_naive_datetime_refused(self):
        with pytest.raises(ValueError):
            UTCDateTime().process_bind_param(datetime(2024, 1, 3, 10, 0), sqlite.dialect())

    def test_sqlite_stores_naive_utc(self):
        sao_paulo = timezone(timedelta(hours=-3))
        value = datetime(2024, 1, 3, 7, 0, tzinfo=sao_paulo)
        bound = UTCDateTime().process_bind_param(value, sqlite.dialect())
        assert bound == datetime(2024, 1, 3, 10, 0)

    def test_postgres_keeps_aware_utc(self):
        value = datetime(2024, 1, 3, 10, 0, tzinfo=timezone.utc)
        assert UTCDateTime().process_bind_param(value, postgresql.dialect()) == value

    def test_results_come_back_aware(self):
        result = UTCDateTime().process_result_value(datetime(2024, 1, 3, 10, 0), sqlite.dialect())
        assert result.tzinfo is timezone.utc
