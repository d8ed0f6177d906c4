"""
Integration tests for the actloop CLI.

Each test runs in its own working directory so the default ``.actloop``
session store is isolated.
"""

import json

import pytest
import yaml
from typer.testing import CliRunner

from actloop import __version__
from actloop.api.cli.main import app

runner = CliRunner()

STATUS_SCRIPT = {
    "actions": [
        {"type": "message", "content": "Checking the service"},
        {"type": "tool_call", "tool": "shell", "input": {"command": "echo healthy"}},
        {"type": "finish", "summary": "Service is healthy", "outputs": {"healthy": True}},
    ]
}

CLARIFY_SCRIPT = {
    "actions": [
        {
            "type": "tool_call",
            "tool": "clarify_requirements",
            "call_id": "clarify-db",
            "input": {
                "questions": ["Which database engine?", "Which port should it use?"],
                "reason": "Connection details are missing",
            },
        },
        {"type": "finish", "summary": "Database configured"},
    ]
}


@pytest.fixture(autouse=True)
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _script(workdir, name, content):
    path = workdir / name
    path.write_text(yaml.safe_dump(content), encoding="utf-8")
    return path


def _json_output(result):
    return json.loads(result.output.strip().splitlines()[-1])


class TestRun:
    def test_run_to_completion(self, workdir):
        script = _script(workdir, "status.yaml", STATUS_SCRIPT)

        result = runner.invoke(app, ["run", str(script), "-s", "demo", "-m", "status?"])

        assert result.exit_code == 0, result.output
        assert "Checking the service" in result.output
        assert "stopped: finished" in result.output
        assert (workdir / ".actloop" / "states" / "demo.json").exists()

    def test_json_output(self, workdir):
        script = _script(workdir, "status.yaml", STATUS_SCRIPT)

        result = runner.invoke(
            app, ["run", str(script), "-s", "demo", "-m", "status?", "-f", "json"]
        )

        assert result.exit_code == 0, result.output
        data = _json_output(result)
        assert data["status"] == "finished"
        assert data["stop_reason"] == "finished"
        assert data["iterations"] == 3
        assert data["final_message"] == "Service is healthy"
        assert data["outputs"] == {"healthy": True}

    def test_iteration_cap_exits_with_two(self, workdir):
        script = _script(workdir, "status.yaml", STATUS_SCRIPT)

        result = runner.invoke(
            app, ["run", str(script), "--max-iterations", "1", "-f", "json"]
        )

        assert result.exit_code == 2
        assert _json_output(result)["status"] == "truncated"

    def test_plan_mode_override(self, workdir):
        script = _script(workdir, "status.yaml", STATUS_SCRIPT)

        result = runner.invoke(app, ["run", str(script), "--mode", "plan", "-f", "json"])

        assert result.exit_code == 0
        data = _json_output(result)
        assert data["stop_reason"] == "mode_rule"
        assert data["status"] == "waiting_user"

    def test_invalid_output_format(self, workdir):
        script = _script(workdir, "status.yaml", STATUS_SCRIPT)

        result = runner.invoke(app, ["run", str(script), "-f", "xml"])

        assert result.exit_code != 0

    def test_malformed_script(self, workdir):
        script = _script(workdir, "bad.yaml", {"actions": [{"type": "dance"}]})

        result = runner.invoke(app, ["run", str(script)])

        assert result.exit_code == 1
        assert "Unknown action type" in result.output

    def test_missing_profile(self, workdir):
        script = _script(workdir, "status.yaml", STATUS_SCRIPT)

        result = runner.invoke(app, ["--profile", "ghost", "run", str(script)])

        assert result.exit_code == 1
        assert "Profile not found" in result.output


class TestClarification:
    def test_pause_then_answer(self, workdir):
        script = _script(workdir, "clarify.yaml", CLARIFY_SCRIPT)

        paused = runner.invoke(
            app, ["run", str(script), "-s", "db", "-m", "set up the db", "-f", "json"]
        )

        assert paused.exit_code == 0, paused.output
        data = _json_output(paused)
        assert data["status"] == "waiting_user"
        assert data["stop_reason"] == "paused"
        assert data["pending_clarification"] == "clarify-db"

        resumed = runner.invoke(
            app, ["answer", "db", "postgres", "5432", "--script", str(script), "-f", "json"]
        )

        assert resumed.exit_code == 0, resumed.output
        data = _json_output(resumed)
        assert data["status"] == "finished"
        assert data["final_message"] == "Database configured"

    def test_pause_renders_questions(self, workdir):
        script = _script(workdir, "clarify.yaml", CLARIFY_SCRIPT)

        result = runner.invoke(app, ["run", str(script), "-s", "db"])

        assert result.exit_code == 0
        assert "Which database engine?" in result.output

    def test_answer_unknown_session(self, workdir):
        script = _script(workdir, "clarify.yaml", CLARIFY_SCRIPT)

        result = runner.invoke(app, ["answer", "ghost", "yes", "--script", str(script)])

        assert result.exit_code == 1
        assert "Session not found" in result.output


class TestSessions:
    def _seed(self, workdir):
        script = _script(workdir, "status.yaml", STATUS_SCRIPT)
        result = runner.invoke(app, ["run", str(script), "-s", "demo", "-m", "status?"])
        assert result.exit_code == 0, result.output

    def test_list(self, workdir):
        self._seed(workdir)

        result = runner.invoke(app, ["sessions", "list"])

        assert result.exit_code == 0
        assert "demo" in result.output
        assert "finished" in result.output

    def test_show(self, workdir):
        self._seed(workdir)

        result = runner.invoke(app, ["sessions", "show", "demo", "-n", "3"])

        assert result.exit_code == 0
        assert "Recent events" in result.output
        assert "finish" in result.output

    def test_show_missing(self):
        result = runner.invoke(app, ["sessions", "show", "ghost"])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_delete(self, workdir):
        self._seed(workdir)

        result = runner.invoke(app, ["sessions", "delete", "demo", "--yes"])

        assert result.exit_code == 0
        assert "Deleted session demo" in result.output
        assert not (workdir / ".actloop" / "states" / "demo.json").exists()

    def test_delete_asks_for_confirmation(self, workdir):
        self._seed(workdir)

        result = runner.invoke(app, ["sessions", "delete", "demo"], input="n\n")

        assert result.exit_code != 0
        assert (workdir / ".actloop" / "states" / "demo.json").exists()


class TestTools:
    def test_list(self):
        result = runner.invoke(app, ["tools", "list"])

        assert result.exit_code == 0
        assert "clarify_requirements" in result.output
        assert "shell" in result.output

    def test_plan_profile_has_no_shell(self):
        result = runner.invoke(app, ["--profile", "plan", "tools", "list"])

        assert result.exit_code == 0
        assert "shell" not in result.output

    def test_describe(self):
        result = runner.invoke(app, ["tools", "describe", "shell"])

        assert result.exit_code == 0
        assert '"command"' in result.output
        assert '"required"' in result.output

    def test_describe_missing(self):
        result = runner.invoke(app, ["tools", "describe", "teleport"])

        assert result.exit_code == 1
        assert "Tool 'teleport' not found" in result.output


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert f"actloop {__version__}" in result.output
