"""Tests for swcache.output -- stream discipline and formats.

Covers AUTO format resolution, NO_COLOR handling, stdout/stderr
separation, quiet and verbose modes, tables, HTTP response rendering and
the global instance helpers.
"""

from __future__ import annotations

import json

import httpx
import pytest

from swcache import output as output_module
from swcache.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    format_http_response,
    get_output,
    reset_output,
    set_output,
)


@pytest.fixture()
def non_tty(monkeypatch):
    monkeypatch.setattr("swcache.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    monkeypatch.setattr("swcache.output._is_tty", lambda: True)
    monkeypatch.delenv("NO_COLOR", raising=False)
    monkeypatch.delenv("TERM", raising=False)


def _plain(**kwargs) -> OutputManager:
    return OutputManager(format=OutputFormat.PLAIN, no_color=True, **kwargs)


class TestFormatResolution:
    def test_auto_is_plain_when_piped(self, non_tty):
        assert OutputManager().format == OutputFormat.PLAIN

    def test_auto_is_rich_on_tty(self, tty):
        assert OutputManager().format == OutputFormat.RICH

    def test_no_color_flag_forces_plain(self, tty):
        assert OutputManager(no_color=True).format == OutputFormat.PLAIN

    def test_explicit_json(self, tty):
        assert OutputManager(format=OutputFormat.JSON).format == OutputFormat.JSON


class TestColorDisabling:
    def test_no_color_env_any_value(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_normal_term(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert _should_disable_color() is False


class TestStreams:
    def test_data_goes_to_stdout(self, capfd, non_tty):
        _plain().print_data("payload")
        captured = capfd.readouterr()
        assert captured.out == "payload\n"
        assert captured.err == ""

    @pytest.mark.parametrize("method", ["info", "success", "warning", "error"])
    def test_diagnostics_go_to_stderr(self, capfd, non_tty, method):
        getattr(_plain(), method)("diagnostic")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "diagnostic" in captured.err

    def test_quiet_keeps_warnings_and_errors(self, capfd, non_tty):
        mgr = _plain(quiet=True)
        mgr.info("hidden")
        mgr.success("hidden")
        mgr.warning("careful")
        mgr.error("broken")
        captured = capfd.readouterr()
        assert "hidden" not in captured.err
        assert "Warning: careful" in captured.err
        assert "Error: broken" in captured.err

    def test_debug_only_when_verbose(self, capfd, non_tty):
        _plain().debug("quiet trace")
        _plain(verbose=True).debug("loud trace")
        captured = capfd.readouterr()
        assert "quiet trace" not in captured.err
        assert "[debug] loud trace" in captured.err


class TestFormats:
    def test_json_dict(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON, no_color=True).format_response(
            {"type": "VERSION", "version": "static-v1"}
        )
        assert json.loads(capfd.readouterr().out) == {"type": "VERSION", "version": "static-v1"}

    def test_plain_dict_is_tab_separated(self, capfd, non_tty):
        _plain().format_response({"type": "CACHE_CLEARED", "success": True})
        assert capfd.readouterr().out.splitlines() == ["type\tCACHE_CLEARED", "success\tTrue"]

    def test_rich_text(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH, no_color=True).format_response("plain body", "text/plain")
        assert "plain body" in capfd.readouterr().out


class TestPrintTable:
    def test_json_mode(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON, no_color=True).print_table(
            ["name", "entries"], [["static-v1", "5"]]
        )
        assert json.loads(capfd.readouterr().out) == [{"name": "static-v1", "entries": "5"}]

    def test_plain_mode(self, capfd, non_tty):
        _plain().print_table(["name", "entries"], [["static-v1", "5"], ["dynamic-v1", "2"]], title="Ignored")
        assert capfd.readouterr().out.splitlines() == [
            "name\tentries",
            "static-v1\t5",
            "dynamic-v1\t2",
        ]

    def test_rich_mode_includes_title(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH, no_color=True).print_table(
            ["name"], [["static-v1"]], title="Partitions"
        )
        out = capfd.readouterr().out
        assert "Partitions" in out
        assert "static-v1" in out


class TestFormatHttpResponse:
    def _response(self, status: int, content: bytes, content_type: str) -> httpx.Response:
        return httpx.Response(
            status,
            content=content,
            headers={"content-type": content_type},
            request=httpx.Request("GET", "https://notes.example.com/"),
        )

    def test_json_body_is_decoded(self, capfd, non_tty):
        set_output(OutputManager(format=OutputFormat.JSON, no_color=True))
        format_http_response(self._response(200, b'[{"id": 1}]', "application/json"))
        captured = capfd.readouterr()
        assert json.loads(captured.out) == [{"id": 1}]
        assert "HTTP 200 OK" in captured.err

    def test_text_body_printed_verbatim(self, capfd, non_tty):
        set_output(_plain())
        format_http_response(self._response(503, b"Offline", "text/plain"))
        captured = capfd.readouterr()
        assert captured.out == "Offline\n"
        assert "HTTP 503 Service Unavailable" in captured.err

    def test_empty_body_prints_nothing(self, capfd, non_tty):
        set_output(_plain())
        format_http_response(self._response(204, b"", "text/plain"))
        assert capfd.readouterr().out == ""


class TestGlobalInstance:
    def test_get_output_creates_default(self):
        assert isinstance(get_output(), OutputManager)

    def test_set_then_reset(self):
        first = OutputManager(format=OutputFormat.JSON, no_color=True)
        set_output(first)
        assert get_output() is first
        reset_output()
        assert get_output() is not first

    def test_convenience_helpers_delegate(self, capfd, non_tty):
        set_output(_plain())
        output_module.info("hello")
        output_module.format_response(["a", "b"])
        captured = capfd.readouterr()
        assert "hello" in captured.err
        assert captured.out.splitlines() == ["a", "b"]
