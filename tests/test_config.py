from schemaport.config import _expand_env, config


def test_default_used_when_variable_missing(monkeypatch):
    monkeypatch.delenv("SCHEMAPORT_TEST_HOST", raising=False)
    unresolved = []
    assert _expand_env("${SCHEMAPORT_TEST_HOST:-db.local}", unresolved) == "db.local"
    assert unresolved == []


def test_environment_value_wins(monkeypatch):
    monkeypatch.setenv("SCHEMAPORT_TEST_HOST", "db.example.com")
    assert _expand_env({"host": "${SCHEMAPORT_TEST_HOST:-db.local}"}, []) == {"host": "db.example.com"}


def test_unresolved_variable_becomes_none(monkeypatch):
    monkeypatch.delenv("SCHEMAPORT_TEST_SECRET", raising=False)
    unresolved = []
    assert _expand_env(["${SCHEMAPORT_TEST_SECRET}"], unresolved) == [None]
    assert unresolved == ["SCHEMAPORT_TEST_SECRET"]


def test_placeholders_inside_strings(monkeypatch):
    monkeypatch.setenv("SCHEMAPORT_TEST_USER", "app")
    monkeypatch.delenv("SCHEMAPORT_TEST_DB", raising=False)
    unresolved = []
    assert _expand_env("${SCHEMAPORT_TEST_USER}@${SCHEMAPORT_TEST_DB}/x", unresolved) == "app@/x"
    assert unresolved == ["SCHEMAPORT_TEST_DB"]


def test_non_strings_are_untouched():
    assert _expand_env({"port": 5432, "flag": True}, []) == {"port": 5432, "flag": True}


def test_loaded_settings():
    assert config["execution"]["slow_query_threshold_ms"] == 1000
    assert config["connections"]["default"] == "supabase"
    assert config["base_dirs"]["package"].endswith("schemaport")
