import json
import os

import pytest

from schemaport.errors import MigrationCollisionError, ParseError
from schemaport.services.sql_conversion.orchestrator import MigrationOrchestrator


@pytest.fixture
def orchestrator():
    return MigrationOrchestrator("mysql", "postgres")


def test_analyze_writes_report(orchestrator, legacy_ddl_path, tmp_path):
    result = orchestrator.analyze(str(legacy_ddl_path), output_dir=str(tmp_path))

    assert result["status"] == "success"
    assert result["stats"]["total_tables"] == 3
    assert result["diagnostics"] == []
    with open(result["report_file"], encoding="utf-8") as f:
        report = json.load(f)
    assert report["summary"]["implied_relationships"] == 1
    assert [t["target_name"] for t in report["tables"]] == ["customers", "products", "orders"]


def test_convert_writes_sql_and_components(orchestrator, legacy_ddl_path, tmp_path):
    result = orchestrator.convert(str(legacy_ddl_path), output_dir=str(tmp_path))

    files = result["files"]
    assert set(files) == {"complete", "create", "foreign_key", "index", "drop"}
    assert os.path.basename(files["complete"]) == "legacy_store_postgres.sql"
    with open(files["foreign_key"], encoding="utf-8") as f:
        assert f.read().count("ADD CONSTRAINT") == 2
    with open(files["complete"], encoding="utf-8") as f:
        assert f.read().endswith(";\n")

    with open(result["summary_file"], encoding="utf-8") as f:
        summary = json.load(f)
    assert summary["conversion"]["tables_converted"] == 3
    assert summary["manual_review_items"] > 0
    assert result["manual_review_file"] is not None


def test_generate_migrations_detects_reruns(orchestrator, legacy_ddl_path, tmp_path):
    target = tmp_path / "migrations"
    result = orchestrator.generate_migrations(str(legacy_ddl_path), output_dir=str(target))

    assert result["stats"] == {"table_units": 3, "foreign_key_units": 1}
    assert len(result["files"]) == 4

    with pytest.raises(MigrationCollisionError):
        orchestrator.generate_migrations(str(legacy_ddl_path), output_dir=str(target))

    rerun = orchestrator.generate_migrations(str(legacy_ddl_path), output_dir=str(target), force=True)
    assert rerun["files"] == result["files"]


def test_missing_input_is_a_parse_error(orchestrator, tmp_path):
    with pytest.raises(ParseError):
        orchestrator.convert(str(tmp_path / "missing.sql"), output_dir=str(tmp_path))


def test_default_run_directories_do_not_collide(orchestrator, legacy_ddl_path, tmp_path, monkeypatch):
    from schemaport.config import config

    monkeypatch.setitem(config["base_dirs"], "output", str(tmp_path))
    first = orchestrator.analyze(str(legacy_ddl_path))
    second = orchestrator.analyze(str(legacy_ddl_path))

    assert first["output_directory"] != second["output_directory"]
    assert first["output_directory"].startswith(str(tmp_path / "analysis" / "legacy_store_"))
