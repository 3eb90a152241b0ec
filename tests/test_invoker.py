"""Tests for kube_ephemeral.kubectl.invoker.

Real child processes are used: the current interpreter stands in for the
client binary.
"""

from __future__ import annotations

import io
import sys
import threading
from unittest.mock import MagicMock, patch

import pytest

from kube_ephemeral.config.models import ClientSettings
from kube_ephemeral.errors import LaunchError, ProcessInterruptedError
from kube_ephemeral.kubectl.invoker import LIVE_TAIL_LINES, ProcessInvoker, ProcessResult


# ── helpers ──────────────────────────────────────────────────────────


def _py(code: str) -> list:
    return [sys.executable, "-c", code]


def _invoker() -> ProcessInvoker:
    return ProcessInvoker(ClientSettings(config="/tmp/kubeconfig-for-tests"), wait_slice=0.02)


# ── TestProcessResult ────────────────────────────────────────────────


class TestProcessResult:
    def test_ok(self):
        assert ProcessResult(command="k", returncode=0).ok is True
        assert ProcessResult(command="k", returncode=1).ok is False

    def test_output_prefers_stdout(self):
        assert ProcessResult(command="k", returncode=1, stdout="a", stderr="b").output == "a"
        assert ProcessResult(command="k", returncode=1, stderr="b").output == "b"


# ── TestInvoke ───────────────────────────────────────────────────────


class TestInvoke:
    def test_captures_and_joins_lines(self):
        r = _invoker().invoke(_py("print('one'); print('  two  '); print(); print('three')"))
        assert r.returncode == 0
        assert r.stdout == "one two three"
        assert r.stderr == ""

    def test_nonzero_exit_is_not_an_error(self):
        r = _invoker().invoke(
            _py("import sys; sys.stderr.write('not ready\\n'); sys.exit(3)")
        )
        assert r.returncode == 3
        assert r.stderr == "not ready"
        assert r.ok is False

    def test_command_recorded(self):
        r = _invoker().invoke(_py("pass"))
        assert r.command.startswith(sys.executable)

    def test_kubeconfig_passed_to_child(self):
        r = _invoker().invoke(_py("import os; print(os.environ['KUBECONFIG'])"))
        assert r.stdout == "/tmp/kubeconfig-for-tests"

    def test_stdout_sink_receives_live_output(self):
        sink = io.StringIO()
        r = _invoker().invoke(_py("print('hello'); print('world')"), stdout_sink=sink)
        assert sink.getvalue().splitlines() == ["hello", "world"]
        assert r.stdout == "hello world"

    def test_live_result_keeps_only_a_tail(self):
        sink = io.StringIO()
        r = _invoker().invoke(
            _py("for i in range(20000): print('%05d' % i + 'x' * 45)"), stdout_sink=sink
        )
        assert r.returncode == 0
        assert len(sink.getvalue().splitlines()) == 20000
        kept = r.stdout.split()
        assert len(kept) == LIVE_TAIL_LINES
        assert kept[-1].startswith("19999")

    def test_captured_result_is_complete(self):
        r = _invoker().invoke(_py("for i in range(500): print(i)"))
        assert len(r.stdout.split()) == 500

    def test_stderr_held_back_for_silent_failure(self):
        code = "import sys; sys.stderr.write('warn\\n'); sys.exit({rc})"
        ok_sink, fail_sink = io.StringIO(), io.StringIO()
        _invoker().invoke(_py(code.format(rc=0)), stdout_sink=io.StringIO(), stderr_sink=ok_sink)
        _invoker().invoke(_py(code.format(rc=1)), stdout_sink=io.StringIO(), stderr_sink=fail_sink)
        assert ok_sink.getvalue() == "warn\n"
        assert fail_sink.getvalue() == ""

    def test_cancelled_stream_delivers_stderr(self):
        code = (
            "import sys, time; sys.stderr.write('warn\\n'); sys.stderr.flush(); "
            "print('line', flush=True); time.sleep(30)"
        )
        out, err = io.StringIO(), io.StringIO()
        cancel = threading.Event()
        threading.Timer(1.0, cancel.set).start()
        with pytest.raises(ProcessInterruptedError):
            _invoker().invoke(_py(code), stdout_sink=out, stderr_sink=err, cancel=cancel)
        assert out.getvalue() == "line\n"
        assert err.getvalue() == "warn\n"

    def test_stderr_forwarded_while_running(self):
        flushed = threading.Event()

        class _Sink(io.StringIO):
            def flush(self):
                super().flush()
                flushed.set()

        code = (
            "import sys, time; print('line', flush=True); time.sleep(0.2); "
            "sys.stderr.write('late\\n'); sys.stderr.flush(); time.sleep(30)"
        )
        err = _Sink()
        cancel = threading.Event()
        seen_while_running = []

        def _cancel_once_flushed():
            seen_while_running.append(flushed.wait(10))
            cancel.set()

        threading.Thread(target=_cancel_once_flushed, daemon=True).start()
        with pytest.raises(ProcessInterruptedError):
            _invoker().invoke(_py(code), stdout_sink=io.StringIO(), stderr_sink=err, cancel=cancel)
        assert seen_while_running == [True]
        assert err.getvalue() == "late\n"

    def test_on_output_fires_once(self):
        calls = []
        _invoker().invoke(
            _py("print('a'); print('b'); print('c')"),
            on_output=lambda: calls.append(1),
        )
        assert calls == [1]

    def test_on_output_not_fired_without_output(self):
        calls = []
        _invoker().invoke(_py("pass"), on_output=lambda: calls.append(1))
        assert calls == []

    def test_missing_binary(self):
        with pytest.raises(LaunchError) as exc_info:
            _invoker().invoke(["/nonexistent/kubectl", "version"])
        assert exc_info.value.command == ["/nonexistent/kubectl", "version"]
        assert "/nonexistent/kubectl" in str(exc_info.value)

    def test_cancel_before_start(self):
        cancel = threading.Event()
        cancel.set()
        with patch("kube_ephemeral.kubectl.invoker.subprocess.Popen") as mock_popen:
            with pytest.raises(ProcessInterruptedError):
                _invoker().invoke(_py("pass"), cancel=cancel)
        mock_popen.assert_not_called()

    def test_cancel_terminates_child(self):
        cancel = threading.Event()
        threading.Timer(0.2, cancel.set).start()
        with pytest.raises(ProcessInterruptedError):
            _invoker().invoke(_py("import time; time.sleep(30)"), cancel=cancel)

    def test_keyboard_interrupt_becomes_interrupted(self):
        proc = MagicMock()
        proc.args = ["kubectl", "logs"]
        proc.wait.side_effect = KeyboardInterrupt
        with pytest.raises(ProcessInterruptedError, match="kubectl"):
            _invoker()._wait(proc, None)

    def test_non_string_arguments(self):
        r = _invoker().invoke([sys.executable, "-c", "import sys; print(sys.argv[1])", 42])
        assert r.stdout == "42"
