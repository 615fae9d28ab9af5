import logging

import pytest

from conversations.errors import InvalidArgument
from conversations.lib import config, paths
from conversations.lib.identity import require_identity, resolve_identity
from conversations.lib.logs import setup_logging
from tests.conftest import write_config


def test_identity_explicit_wins(monkeypatch, isolated_home):
    monkeypatch.setenv("CONVERSATIONS_AGENT_ID", "from-env")
    write_config(isolated_home, "default_agent: from-config\n")
    assert resolve_identity("  explicit  ") == "explicit"


def test_identity_env_before_config(monkeypatch, isolated_home):
    monkeypatch.setenv("CONVERSATIONS_AGENT_ID", " from-env ")
    write_config(isolated_home, "default_agent: from-config\n")
    assert resolve_identity() == "from-env"
    assert resolve_identity("   ") == "from-env"


def test_identity_config_before_fallback(isolated_home):
    write_config(isolated_home, "default_agent: from-config\n")
    assert resolve_identity() == "from-config"


def test_identity_fallback():
    assert resolve_identity() == "user"


def test_require_identity_has_no_fallback(monkeypatch):
    with pytest.raises(InvalidArgument, match="CONVERSATIONS_AGENT_ID"):
        require_identity()
    monkeypatch.setenv("CONVERSATIONS_AGENT_ID", "claude")
    assert require_identity() == "claude"


def test_paths_follow_env(monkeypatch, tmp_path, isolated_home):
    assert paths.home_dir() == isolated_home
    assert paths.db_path() == isolated_home / "messages.db"
    assert paths.config_file() == isolated_home / "config.yaml"

    monkeypatch.setenv("CONVERSATIONS_DB_PATH", str(tmp_path / "other.db"))
    assert paths.db_path() == tmp_path / "other.db"


def test_paths_default_home(monkeypatch, tmp_path):
    monkeypatch.delenv("CONVERSATIONS_HOME")
    monkeypatch.setenv("HOME", str(tmp_path))
    assert paths.home_dir() == tmp_path / ".conversations"


def test_missing_config_uses_defaults():
    assert config.load_config() == {}
    assert config.get("poll_interval") == 0.2
    assert config.get("server.port") == 3456
    assert config.get("nope", "fallback") == "fallback"


def test_config_values_and_dotted_keys(isolated_home):
    write_config(
        isolated_home,
        "poll_interval: 0.5\nbusy_timeout_ms: 250\nserver:\n  port: 9000\n",
    )
    assert config.get("poll_interval") == 0.5
    assert config.get("busy_timeout_ms") == 250
    assert config.get("server.port") == 9000
    assert config.get("server.host") == "127.0.0.1"


def test_config_is_cached_until_cleared(isolated_home):
    write_config(isolated_home, "default_agent: first\n")
    assert config.get("default_agent") == "first"

    (isolated_home / "config.yaml").write_text("default_agent: second\n")
    assert config.get("default_agent") == "first"

    config.clear_cache()
    assert config.get("default_agent") == "second"


def test_config_must_be_mapping(isolated_home):
    write_config(isolated_home, "- just\n- a list\n")
    with pytest.raises(ValueError, match="mapping"):
        config.load_config()


def test_setup_logging_levels(isolated_home):
    setup_logging("debug")
    assert logging.getLogger().level == logging.DEBUG

    write_config(isolated_home, "log_level: ERROR\n")
    setup_logging()
    assert logging.getLogger().level == logging.ERROR

    setup_logging("not-a-level")
    assert logging.getLogger().level == logging.WARNING
