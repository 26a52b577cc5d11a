from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import pytest

from steer import paths
from steer.log_utils import build_log_config, configure_logging, log_context, log_deltas_enabled, log_event


def test_platform_dirs_use_xdg_homes() -> None:
    expected_config = Path(os.environ["XDG_CONFIG_HOME"]) / "steer"
    expected_state = Path(os.environ["XDG_STATE_HOME"]) / "steer"

    assert paths.config_dir() == expected_config
    assert paths.config_dir().is_dir()
    assert paths.log_dir().is_relative_to(expected_state)


def test_log_config_reads_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STEER_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("STEER_LOG_LEVEL", "debug")
    monkeypatch.setenv("STEER_LOG_DELTAS", "1")
    monkeypatch.setenv("STEER_LOG_MAX_BYTES", "not-a-number")

    config = build_log_config()

    assert config.log_file == tmp_path / "logs" / "steer-client.log"
    assert config.level == logging.DEBUG
    assert config.log_deltas is True
    assert config.max_bytes == 5_000_000


@pytest.mark.usefixtures("restore_root_logger")
def test_events_carry_context_fields(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STEER_LOG_DIR", str(tmp_path))
    config = build_log_config()
    configure_logging(config)
    logger = logging.getLogger("steer.test")

    with log_context(turn=3):
        log_event(logger, "interrupt.spliced", chars=12)
    logging.getLogger().handlers[0].flush()

    line = config.log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
    assert "interrupt.spliced" in line
    assert "turn=3" in line
    assert "chars=12" in line
    assert log_deltas_enabled() is False


@pytest.mark.usefixtures("restore_root_logger")
def test_json_log_lines(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STEER_LOG_DIR", str(tmp_path))
    monkeypatch.setenv("STEER_LOG_JSON", "true")
    config = build_log_config()
    configure_logging(config)

    log_event(logging.getLogger("steer.test"), "turn.start", chars=5)
    logging.getLogger().handlers[0].flush()

    payload = json.loads(config.log_file.read_text(encoding="utf-8").strip().splitlines()[-1])
    assert payload["message"] == "turn.start"
    assert payload["fields"] == {"chars": 5}


@pytest.mark.usefixtures("restore_root_logger")
def test_text_fields_quote_spaces_and_empty_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STEER_LOG_DIR", str(tmp_path))
    config = build_log_config()
    configure_logging(config)

    log_event(logging.getLogger("steer.test"), "permission.decided", answer="allow once", note="", skipped=None)
    logging.getLogger().handlers[0].flush()

    line = config.log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
    assert line.endswith('permission.decided answer="allow once" note=""')
