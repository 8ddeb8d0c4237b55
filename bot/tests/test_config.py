from __future__ import annotations

from pathlib import Path

import pytest

from core.config import ConfigError, load_config
from main import DEFAULT_CONFIG_PATH, resolve_config_path


def _write_config(tmp_path: Path, body: str) -> Path:
    config_dir = tmp_path / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    config_path = config_dir / "config.yaml"
    config_path.write_text(body.strip(), encoding="utf-8")
    return config_path


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for key in (
        "DISCORD_TOKEN",
        "ENCRYPTION_KEY",
        "DATABASE_URL",
        "LOG_LEVEL",
        "BOT_PREFIX",
        "LOCALES_DIR",
        "TICKET_BOT_CONFIG",
    ):
        monkeypatch.delenv(key, raising=False)


def test_load_config_reads_yaml(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path,
        """
discord:
  token: test-token
  prefix: "?"
database:
  url: "sqlite:///./data/test.db"
tickets:
  encryption_key: yaml-secret
  close_grace_seconds: 2.5
  topic_timeout_seconds: 30
ticket_categories:
  - category_id: 555
    guild_id: 123
    name: Support
    name_format: "ticket-{name}-{number}"
    ping: ["here", "777"]
    require_topic: true
    opening_questions: ["What happened?", "When?"]
""",
    )

    cfg = load_config(config_path)

    assert cfg.discord.token == "test-token"
    assert cfg.discord.prefix == "?"
    assert cfg.database.url.startswith("sqlite:///")
    assert cfg.tickets.encryption_key == "yaml-secret"
    assert cfg.tickets.close_grace_seconds == 2.5
    assert cfg.tickets.topic_timeout_seconds == 30.0
    assert len(cfg.ticket_categories) == 1
    category = cfg.ticket_categories[0]
    assert category.category_id == 555
    assert category.name_format == "ticket-{name}-{number}"
    assert category.ping == ["here", "777"]
    assert category.require_topic is True
    assert category.claiming is False
    assert category.opening_questions == ["What happened?", "When?"]


def test_env_overrides_token_and_key(tmp_path: Path, monkeypatch) -> None:
    config_path = _write_config(
        tmp_path,
        """
discord:
  token: yaml-token
tickets:
  encryption_key: yaml-secret
""",
    )
    monkeypatch.setenv("DISCORD_TOKEN", "env-token")
    monkeypatch.setenv("ENCRYPTION_KEY", "env-secret")
    cfg = load_config(config_path)
    assert cfg.discord.token == "env-token"
    assert cfg.tickets.encryption_key == "env-secret"


def test_missing_encryption_key_is_rejected(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path,
        """
discord:
  token: test-token
""",
    )
    with pytest.raises(ConfigError):
        load_config(config_path)


def test_category_without_guild_is_rejected(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path,
        """
discord:
  token: test-token
tickets:
  encryption_key: secret
ticket_categories:
  - category_id: 555
""",
    )
    with pytest.raises(ConfigError):
        load_config(config_path)


def test_locales_default_to_config_directory(tmp_path: Path, monkeypatch) -> None:
    config_path = _write_config(
        tmp_path,
        """
discord:
  token: test-token
tickets:
  encryption_key: secret
""",
    )
    cfg = load_config(config_path)
    assert Path(cfg.i18n.directory) == config_path.parent / "locales"

    monkeypatch.setenv("LOCALES_DIR", "/srv/tickets/locales")
    assert load_config(config_path).i18n.directory == "/srv/tickets/locales"


def test_config_path_can_come_from_environment(tmp_path: Path, monkeypatch) -> None:
    assert resolve_config_path() == DEFAULT_CONFIG_PATH
    monkeypatch.setenv("TICKET_BOT_CONFIG", str(tmp_path / "prod.yaml"))
    assert resolve_config_path() == tmp_path / "prod.yaml"
