"""Tests for kube_ephemeral.ui."""

from __future__ import annotations

from kube_ephemeral import ui


class TestStateTrail:
    def test_plain_text(self):
        trail = ui.state_trail(["IDLE", "CREATED", "DONE"])
        assert trail.plain == "IDLE → CREATED → DONE"

    def test_empty(self):
        assert ui.state_trail([]).plain == ""

    def test_failed_highlighted(self):
        trail = ui.state_trail(["IDLE", "FAILED"])
        styles = {trail.plain[s.start:s.end]: str(s.style) for s in trail.spans}
        assert styles["FAILED"] == "bold red"


class TestOutput:
    def test_markup_in_messages_is_escaped(self):
        with ui.console.capture() as cap:
            ui.error_msg("bad [value]")
            ui.step("create [job]")
        out = cap.get()
        assert "bad [value]" in out
        assert "create [job]" in out

    def test_resource_table(self):
        with ui.console.capture() as cap:
            ui.resource_table("Left running", [("default", "job", "pi")])
        out = cap.get()
        assert "Left running" in out
        assert "pi" in out

    def test_run_finished(self):
        with ui.console.capture() as cap:
            ui.run_finished("20240101", ["IDLE", "DONE"])
        assert "Run 20240101: IDLE → DONE" in cap.get()

    def test_failure_panel(self):
        with ui.console.capture() as cap:
            ui.failure_panel("FULL_CYCLE failed (exit 1)", "kubectl output is: [x]")
        out = cap.get()
        assert "FULL_CYCLE failed" in out
        assert "kubectl output is: [x]" in out

    def test_wait_outcome(self):
        with ui.console.capture() as cap:
            ui.wait_outcome('{"succeeded":1}', 2, 1.5)
        out = cap.get()
        assert "after 2 poll(s), 1.5s" in out
        assert "never attached" not in out

    def test_wait_outcome_without_handshake(self):
        with ui.console.capture() as cap:
            ui.wait_outcome('{"succeeded":1}', 1, 1.0, attached=False)
        assert "log tailer never attached" in cap.get()
