"""
Pytest configuration and fixtures for the schemaport test suite.

Environment variables referenced by settings.yaml are given harmless
defaults here, before any schemaport module is imported, so that the
configuration loads the same way on every machine and no test ever talks
to a real database.
"""
import os
from pathlib import Path

os.environ.setdefault("SUPABASE_DB_HOST", "localhost")
os.environ.setdefault("SUPABASE_DB_PORT", "5432")
os.environ.setdefault("SUPABASE_DB_USERNAME", "postgres")
os.environ.setdefault("SUPABASE_DB_PASSWORD", "test-password-not-real")
os.environ.setdefault("PG_HOST", "localhost")

# Note: schemaport modules are imported inside the fixtures below, never at
# module level, so the defaults above are in place when settings.yaml loads.

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def legacy_ddl_path() -> Path:
    return FIXTURES_DIR / "legacy_store.sql"


@pytest.fixture
def legacy_ddl(legacy_ddl_path) -> str:
    return legacy_ddl_path.read_text(encoding="utf-8")


@pytest.fixture
def analyzer():
    from schemaport.services.schema_analysis import SchemaAnalyzer

    return SchemaAnalyzer()


@pytest.fixture
def legacy_model(analyzer, legacy_ddl_path):
    return analyzer.parse_schema_from_file(legacy_ddl_path)


@pytest.fixture
def converter():
    from schemaport.services.sql_conversion import SchemaConverter

    return SchemaConverter("mysql", "postgres")


@pytest.fixture
def legacy_conversion(converter, legacy_model):
    return converter.convert_schema(legacy_model)


@pytest.fixture
def direct_profile():
    from schemaport.services.db import ConnectionProfile

    return ConnectionProfile(name="test", host="localhost", port=5432, database="shop", password="s3cret")


@pytest.fixture
def pooler_profile():
    from schemaport.services.db import ConnectionProfile

    return ConnectionProfile(
        name="pooled", host="aws-0-eu-west-1.pooler.supabase.com", port=6543, password="s3cret"
    )


@pytest.fixture
def clock():
    from fakes import FakeClock

    return FakeClock()
