"""Tests for the echo_pdk.logging module."""

from __future__ import annotations

import json
import logging
import os
from unittest.mock import patch

import pytest
import structlog

from echo_pdk.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_default_level_is_warning(self) -> None:
        """Library users are not flooded with evaluation chatter."""
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("ECHO_LOG_LEVEL", None)
            configure_logging()

        assert logging.getLogger().level == logging.WARNING

    def test_custom_level(self) -> None:
        configure_logging(level=logging.DEBUG)
        assert logging.getLogger().level == logging.DEBUG

    def test_level_from_env(self) -> None:
        with patch.dict(os.environ, {"ECHO_LOG_LEVEL": "info"}):
            configure_logging()
        assert logging.getLogger().level == logging.INFO

    def test_unknown_env_level_falls_back(self) -> None:
        with patch.dict(os.environ, {"ECHO_LOG_LEVEL": "chatty"}):
            configure_logging()
        assert logging.getLogger().level == logging.WARNING

    def test_single_handler_after_repeated_calls(self) -> None:
        configure_logging()
        configure_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_json_output_via_env(self, capsys: pytest.CaptureFixture[str]) -> None:
        with patch.dict(os.environ, {"ECHO_LOG_FORMAT": "json"}):
            configure_logging(level=logging.INFO)
        get_logger("test.json").info("judge_cache_hit", key="abc")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "judge_cache_hit"
        assert record["key"] == "abc"
        assert record["level"] == "info"

    def test_force_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(force_json=True, level=logging.INFO)
        get_logger("test.force").info("forced")

        err = capsys.readouterr().err
        assert json.loads(err.strip().splitlines()[-1])["event"] == "forced"

    def test_output_goes_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(level=logging.INFO)
        get_logger("test.stream").info("render_started")

        captured = capsys.readouterr()
        assert "render_started" in captured.err
        assert captured.out == ""


class TestContext:
    """Tests for contextvars binding."""

    def test_bound_values_appear_in_records(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        configure_logging(force_json=True, level=logging.INFO)
        bind_context(template="welcome.echo")
        try:
            get_logger("test.ctx").info("render_started")
        finally:
            clear_context()

        record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert record["template"] == "welcome.echo"

    def test_clear_context(self) -> None:
        bind_context(a=1)
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}


def test_get_logger_without_name() -> None:
    assert get_logger() is not None
