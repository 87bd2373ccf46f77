import logging

from structlog.contextvars import clear_contextvars, get_contextvars

from Storyloom.config import Settings, load_settings
from Storyloom.logging import bind_run_context, redact_settings, setup_logging
from Storyloom.metrics import get_counter, get_counters, inc_counter, observe_histogram, timed


def test_defaults_without_toml(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    s = load_settings()
    assert s.notion_version == "2022-06-28"
    assert s.notion_page_size == 100
    assert s.notion_fetch_page_content is False
    assert s.import_default_book == "Imported Story"


def test_toml_sections_map_onto_fields(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("NOTION_PAGE_SIZE", raising=False)
    (tmp_path / "config.toml").write_text(
        """
[app]
env = "prod"

[notion]
page_size = 25
fetch_page_content = true

[import]
default_book = "Book One"

[logging]
level = "DEBUG"
console = "WARNING"
to_file = false
"""
    )
    s = load_settings()
    assert s.env == "prod"
    assert s.notion_page_size == 25
    assert s.notion_fetch_page_content is True
    assert s.import_default_book == "Book One"
    assert s.logging_console == "WARNING"
    assert s.logging_file == "NONE"


def test_env_overrides_toml(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.toml").write_text("[notion]\npage_size = 25\n")
    monkeypatch.setenv("NOTION_PAGE_SIZE", "10")
    assert load_settings().notion_page_size == 10


def test_redact_settings_masks_secrets():
    s = Settings(notion_token="secret_abc", database_url="postgresql://u:pw@h/db")
    data = redact_settings(s)
    assert data["notion_token"] == "[REDACTED]"
    assert data["database_url"] == "[REDACTED]"
    assert data["notion_version"] == "2022-06-28"


def test_setup_logging_disabled_installs_null_handler():
    setup_logging(Settings(logging_enabled=False))
    root = logging.getLogger()
    assert all(isinstance(h, logging.NullHandler) for h in root.handlers)


def test_setup_logging_writes_to_rotating_file(tmp_path):
    path = tmp_path / "logs" / "run.jsonl"
    setup_logging(
        Settings(logging_console="NONE", logging_file="INFO", logging_file_path=str(path))
    )
    try:
        assert path.parent.is_dir()
        assert logging.getLogger("httpx").level >= logging.WARNING
    finally:
        logging.basicConfig(handlers=[logging.NullHandler()], force=True)


def test_histogram_buckets_flatten_into_counters():
    inc_counter("importer.run")
    observe_histogram("source.request_ms", 7)
    observe_histogram("source.request_ms", 60_000)
    counters = get_counters()
    assert get_counter("importer.run") == 1
    assert counters["histo.source.request_ms.le_10"] == 1
    assert counters["histo.source.request_ms.gt_10000"] == 1
    assert counters["histo.source.request_ms.count"] == 2


def test_timed_records_one_observation():
    with timed("importer.batch_ms"):
        pass
    counters = get_counters()
    assert counters["histo.importer.batch_ms.count"] == 1
    assert counters["histo.importer.batch_ms.le_10"] == 1


def test_bind_run_context_replaces_previous_fields():
    bind_run_context(user_id="u1", project_id="p1")
    bind_run_context(user_id="u2")
    assert get_contextvars() == {"user_id": "u2"}
    clear_contextvars()
