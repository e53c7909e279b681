import json, logging
from pathlib import Path
from types import SimpleNamespace

from sqlalchemy import text

from config import Settings
from db import Database
from logging_config import PLAIN_FORMAT, JsonFormatter, RequestIdFilter, set_request_id

def test_engine_is_created_lazily_and_reused(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'lazy.db'}")
    assert database._engine is None
    engine = database.engine
    assert database.engine is engine
    database.dispose()

def test_stale_handle_is_rebuilt_on_next_use(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'stale.db'}")
    first = database.engine
    database.invalidate()
    assert database.is_stale
    assert database.engine is not first
    assert not database.is_stale
    database.dispose()

def test_disconnect_error_marks_handle_stale(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'err.db'}")
    database._on_error(SimpleNamespace(is_disconnect=False, original_exception=Exception("constraint")))
    assert not database.is_stale
    database._on_error(SimpleNamespace(is_disconnect=True, original_exception=Exception("gone")))
    assert database.is_stale

def test_sessions_enforce_foreign_keys(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'fk.db'}")
    db = database.session()
    try:
        assert db.execute(text("PRAGMA foreign_keys")).scalar() == 1
    finally:
        db.close()
        database.dispose()

def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("ORIGINS", "http://a.test, http://b.test,")
    monkeypatch.setenv("DB_ECHO", "yes")
    monkeypatch.setenv("SOURCE_VIEW_SCHEMA", "  ")
    monkeypatch.setenv("DEFAULT_PAGE_SPLIT", "PAGE")
    s = Settings.from_env()
    assert s.origins == ("http://a.test", "http://b.test")
    assert s.db_echo is True
    assert s.source_view_schema is None
    assert s.default_page_split == "PAGE"
    assert s.default_entity_type == "Asset"

def test_json_log_lines_carry_request_id_and_extras():
    record = logging.LogRecord("repository", logging.INFO, __file__, 1, "Saved questions", None, None)
    record.question_set_id = 7
    set_request_id("req-1")
    try:
        RequestIdFilter().filter(record)
        payload = json.loads(JsonFormatter().format(record))
    finally:
        set_request_id(None)
    assert payload["msg"] == "Saved questions"
    assert payload["request_id"] == "req-1"
    assert payload["question_set_id"] == 7

def test_json_log_line_stringifies_odd_extras():
    record = logging.LogRecord("main", logging.WARNING, __file__, 1, "Source view %s unavailable", ("vw_x",), None)
    record.view_path = Path("/tmp/vw_x")
    RequestIdFilter().filter(record)
    payload = json.loads(JsonFormatter().format(record))
    assert payload["msg"] == "Source view vw_x unavailable"
    assert payload["view_path"] == "/tmp/vw_x"
    assert payload["request_id"] is None
    assert "args" not in payload

def test_plain_log_line_shows_request_id():
    record = logging.LogRecord("main", logging.INFO, __file__, 1, "hello", None, None)
    set_request_id("abc")
    try:
        RequestIdFilter().filter(record)
    finally:
        set_request_id(None)
    line = logging.Formatter(PLAIN_FORMAT).format(record)
    assert line.endswith("INFO [abc] main: hello")
