"""Settings loader for Storyloom.

Precedence, highest first: explicit init kwargs, ``.env``, process
environment, ``config.toml``, secrets directory.
"""

from pathlib import Path
from typing import Any

import tomllib
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# (toml section, toml key) -> Settings field
_TOML_FIELDS: dict[tuple[str, str], str] = {
    ("app", "env"): "env",
    ("app", "database_url"): "database_url",
    ("notion", "api_url"): "notion_api_url",
    ("notion", "version"): "notion_version",
    ("notion", "page_size"): "notion_page_size",
    ("notion", "timeout_seconds"): "notion_timeout_seconds",
    ("notion", "fetch_page_content"): "notion_fetch_page_content",
    ("notion", "token"): "notion_token",
    ("import", "source_label"): "import_source_label",
    ("import", "default_book"): "import_default_book",
    ("logging", "enabled"): "logging_enabled",
    ("logging", "level"): "logging_level",
    ("logging", "file_path"): "logging_file_path",
    ("logging", "max_bytes"): "logging_max_bytes",
    ("logging", "backup_count"): "logging_backup_count",
}


def _handler_level(value: Any, overall: str) -> str | None:
    # "DEBUG"/"NONE" strings are levels; booleans switch the handler on/off
    if isinstance(value, str):
        return value.upper()
    if isinstance(value, bool):
        return overall if value else "NONE"
    return None


def _toml_settings_source(path: Path = Path("config.toml")) -> dict[str, Any]:
    """Flatten config.toml sections onto Settings field names.

    Only keys actually present are returned, so field defaults still apply.
    """
    if not path.exists():
        return {}
    with path.open("rb") as f:
        doc = tomllib.load(f)

    out: dict[str, Any] = {}
    for (section, key), field_name in _TOML_FIELDS.items():
        table = doc.get(section) or {}
        if key in table:
            out[field_name] = table[key]

    log_cfg = doc.get("logging") or {}
    overall = str(out.get("logging_level", "INFO")).upper()
    for toml_key, level_field, flag_field in (
        ("console", "logging_console", "logging_to_console"),
        ("to_file", "logging_file", "logging_to_file"),
    ):
        value = log_cfg.get(toml_key)
        level = _handler_level(value, overall)
        if level is not None:
            out[level_field] = level
        if isinstance(value, bool):
            out[flag_field] = value
    return out


class Settings(BaseSettings):
    env: str = Field(default="dev")
    database_url: str = Field(default="sqlite+aiosqlite:///./storyloom.sqlite3")

    # --- Notion source ---
    notion_api_url: str = "https://api.notion.com/v1"
    notion_version: str = "2022-06-28"
    notion_page_size: int = Field(default=100, ge=1, le=100)
    notion_timeout_seconds: float = 30.0
    # Page bodies cost one extra request per record; off unless asked for
    notion_fetch_page_content: bool = False
    # Only read by scripts/import_notion.py when --token is omitted
    notion_token: SecretStr | None = None

    # --- Import behaviour ---
    import_source_label: str = "notion"
    import_default_book: str = "Imported Story"

    # --- Logging ---
    logging_enabled: bool = True
    logging_level: str = "INFO"
    logging_console: str = "INFO"
    logging_file: str = "INFO"
    logging_to_console: bool = True
    logging_to_file: bool = True
    logging_file_path: str = "logs/storyloom.jsonl"
    logging_max_bytes: int = 5_000_000
    logging_backup_count: int = 5

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            dotenv_settings,
            env_settings,
            _toml_settings_source,
            file_secret_settings,
        )


def load_settings() -> Settings:
    return Settings()
