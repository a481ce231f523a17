import json

import pytest
from fakes import FakeConnection, FakeConnector, FakeDriverError

import schemaport.services.db as db
from schemaport.cli import EXIT_FAILURE, EXIT_OK, EXIT_PARTIAL, EXIT_USAGE, main

UNRESOLVED_REFERENCE = """
CREATE TABLE warehouse (code VARCHAR(10), name VARCHAR(50));
CREATE TABLE stock (id INT PRIMARY KEY, warehouse_id INT, quantity INT);
"""


@pytest.fixture
def fake_manager(monkeypatch, clock):
    real_manager = db.ConnectionManager

    def install(connector):
        monkeypatch.setattr(db, "ConnectionManager", lambda: real_manager(connect=connector, clock=clock))
    return install


def test_analyze(legacy_ddl_path, tmp_path, capsys):
    assert main(["analyze", str(legacy_ddl_path), "--output-dir", str(tmp_path)]) == EXIT_OK
    out = capsys.readouterr().out
    assert "relationships: 2 (1 explicit, 1 implied)" in out
    assert (tmp_path / "analysis_report.json").exists()


def test_analyze_with_diagnostics_is_partial(tmp_path, capsys):
    path = tmp_path / "stock.sql"
    path.write_text(UNRESOLVED_REFERENCE, encoding="utf-8")
    assert main(["analyze", str(path), "--output-dir", str(tmp_path / "out")]) == EXIT_PARTIAL
    assert "stock.warehouse_id" in capsys.readouterr().out


def test_convert_json_output(legacy_ddl_path, tmp_path, capsys):
    assert main(["--json", "convert", str(legacy_ddl_path), "--output-dir", str(tmp_path)]) == EXIT_OK
    result = json.loads(capsys.readouterr().out)
    assert result["status"] == "success"
    assert result["stats"]["table_order"] == ["customers", "products", "orders"]


def test_generate_migrations_refuses_to_overwrite(legacy_ddl_path, tmp_path, capsys):
    args = ["generate-migrations", str(legacy_ddl_path), "--output-dir", str(tmp_path)]
    assert main(args) == EXIT_OK
    assert "0004_add_foreign_keys_to_orders_table.py" in capsys.readouterr().out

    assert main(args) == EXIT_FAILURE
    assert "already exist" in capsys.readouterr().err

    assert main(args + ["--force"]) == EXIT_OK


def test_missing_input_fails(tmp_path, capsys):
    assert main(["analyze", str(tmp_path / "missing.sql")]) == EXIT_FAILURE
    assert "not found" in capsys.readouterr().err


@pytest.mark.parametrize("argv", [[], ["bogus"], ["analyze"]])
def test_usage_errors(argv):
    assert main(argv) == EXIT_USAGE


def test_health_check_healthy(fake_manager, capsys):
    fake_manager(FakeConnector())
    assert main(["health-check", "--connection", "local"]) == EXIT_OK
    assert "healthy" in capsys.readouterr().out


def test_health_check_unreachable(fake_manager, capsys):
    fake_manager(FakeConnector(error=FakeDriverError("could not connect to server", "08001")))
    assert main(["health-check"]) == EXIT_FAILURE
    assert "could not connect to server" in capsys.readouterr().out


def test_health_check_degraded(fake_manager, capsys):
    fake_manager(FakeConnector(FakeConnection(fail={"PREPARE": FakeDriverError("prepared statement lost", "26000")})))
    assert main(["--json", "test-connection", "--connection", "local"]) == EXIT_PARTIAL
    result = json.loads(capsys.readouterr().out)
    assert result["health"]["is_connected"] is True
    assert result["health"]["prepared_statements_valid"] is False


def test_unknown_connection_profile(capsys):
    assert main(["diagnostics", "--connection", "nope"]) == EXIT_FAILURE
    assert "Unknown connection profile" in capsys.readouterr().err


def test_apply(fake_manager, legacy_ddl_path, capsys):
    conn = FakeConnection()
    fake_manager(FakeConnector(conn))
    assert main(["apply", str(legacy_ddl_path), "--connection", "local"]) == EXIT_OK
    assert conn.commits == 1
    assert "Applied 3 tables to local" in capsys.readouterr().out


def test_check_rls_all_enabled(fake_manager, capsys):
    fake_manager(FakeConnector(FakeConnection(rows=[("customers", True, False, 1), ("orders", True, True, 0)])))
    assert main(["check-rls", "--connection", "local"]) == EXIT_OK
    out = capsys.readouterr().out
    assert "All 2 tables in 'public' have row-level security enabled." in out
    assert "orders: RLS enabled without any policy" in out


def test_check_rls_reports_unrestricted_tables(fake_manager, capsys):
    conn = FakeConnection(rows=[("customers", True, False, 1), ("products", False, False, 0)])
    fake_manager(FakeConnector(conn))
    assert main(["--json", "check-rls", "--connection", "local", "--schema", "shop"]) == EXIT_PARTIAL
    result = json.loads(capsys.readouterr().out)
    assert result["unrestricted"] == ["products"]
    assert conn.params == [("shop",)]
    assert conn.closed


def test_check_rls_query_failure(fake_manager, capsys):
    denied = FakeConnection(fail={"SELECT": FakeDriverError("permission denied for table pg_policies", "42501")})
    fake_manager(FakeConnector(denied))
    assert main(["check-rls", "--connection", "local"]) == EXIT_FAILURE
    assert "permission denied" in capsys.readouterr().err
