import pytest
from fakes import FakeConnection, FakeConnector, FakeDriverError

from schemaport.errors import DatabaseConnectionError
from schemaport.services.db import ConnectionManager, MigrationRunner


@pytest.fixture
def runner_for(clock):
    def build(*connections, **kwargs):
        connector = FakeConnector(*connections)
        manager = ConnectionManager(connect=connector, clock=clock)
        return MigrationRunner(manager, sleep=lambda _: None, **kwargs), connector, manager
    return build


def test_apply_runs_every_group_in_one_transaction(runner_for, direct_profile, legacy_conversion):
    conn = FakeConnection()
    runner, _, _ = runner_for(conn)

    result = runner.apply(direct_profile, legacy_conversion)

    expected = list(legacy_conversion.create + legacy_conversion.index + legacy_conversion.foreign_key)
    assert conn.executed == expected
    assert conn.commits == 1
    assert result["status"] == "success"
    assert result["statements_executed"] == len(expected)
    assert result["attempts"] == 1
    assert result["table_order"] == ["customers", "products", "orders"]


def test_drops_run_first_when_requested(runner_for, direct_profile, legacy_conversion):
    conn = FakeConnection()
    runner, _, _ = runner_for(conn)

    runner.apply(direct_profile, legacy_conversion, include_drops=True)

    assert conn.executed[:3] == list(legacy_conversion.drop)
    assert conn.executed[3].startswith("CREATE TABLE customers")


def test_transaction_pooler_is_refused(runner_for, pooler_profile, legacy_conversion):
    runner, connector, _ = runner_for()

    with pytest.raises(DatabaseConnectionError, match="transaction-mode pooler") as exc_info:
        runner.apply(pooler_profile, legacy_conversion)

    assert connector.calls == 0
    assert exc_info.value.transient is False
    assert exc_info.value.diagnostics["configuration"]["pool_mode"] == "transaction"


def test_transaction_pooler_can_be_allowed(runner_for, pooler_profile, legacy_conversion):
    runner, connector, _ = runner_for(allow_transaction_pooler=True)
    assert runner.apply(pooler_profile, legacy_conversion)["status"] == "success"
    assert connector.calls == 1


def test_transient_failure_retries_whole_transaction(runner_for, direct_profile, legacy_conversion):
    dropped = FakeConnection(fail={"CREATE INDEX": FakeDriverError("terminating connection due to administrator command", "57P01")})
    runner, connector, manager = runner_for(dropped)

    result = runner.apply(direct_profile, legacy_conversion)

    assert result["attempts"] == 2
    assert dropped.closed
    assert dropped.commits == 0
    assert connector.calls == 2
    assert connector.handed_out[1].commits == 1
    assert manager.get_connection_health(direct_profile).retry_count == 1


def test_permanent_failure_rolls_back(runner_for, direct_profile, legacy_conversion):
    broken = FakeConnection(fail={"ALTER TABLE": FakeDriverError('relation "customers" does not exist', "42P01")})
    runner, connector, _ = runner_for(broken)

    with pytest.raises(DatabaseConnectionError) as exc_info:
        runner.apply(direct_profile, legacy_conversion)

    error = exc_info.value
    assert error.transient is False
    assert error.sqlstate == "42P01"
    assert error.diagnostics["failed_statement"].startswith("ALTER TABLE orders ADD CONSTRAINT")
    assert error.diagnostics["attempts"] == 1
    assert broken.rollbacks == 1
    assert broken.commits == 0
    assert connector.calls == 1


def test_discarded_connection_keeps_failed_statement(runner_for, direct_profile, legacy_conversion):
    broken = FakeConnection(fail={"ALTER TABLE": FakeDriverError('prepared statement "s1" already exists', "42P05")})
    runner, connector, manager = runner_for(broken)

    with pytest.raises(DatabaseConnectionError) as exc_info:
        runner.apply(direct_profile, legacy_conversion)

    error = exc_info.value
    assert error.sqlstate == "42P05"
    assert error.transient is False
    assert isinstance(error.__cause__, FakeDriverError)
    assert error.diagnostics["failed_statement"].startswith("ALTER TABLE orders ADD CONSTRAINT")
    assert error.diagnostics["attempts"] == 1
    assert broken.closed
    assert broken.rollbacks == 0
    assert connector.calls == 1
    assert manager.get_connection_health(direct_profile).retry_count == 0
