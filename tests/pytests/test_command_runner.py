from __future__ import annotations

import subprocess
import sys

import pytest

from scripts.ssh_deploy.command_runner import CommandRunner, format_cmd


def _py(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def test_output_is_captured_and_logged(caplog):
    with caplog.at_level("INFO", logger="ssh_deploy"):
        result = CommandRunner().run(_py("print('hello'); print('world')"))

    assert result.ok
    assert result.output == "hello\nworld"
    assert "    hello" in caplog.text
    assert "    world" in caplog.text


def test_stderr_is_merged():
    result = CommandRunner().run(_py("import sys; sys.stderr.write('oops\\n')"))
    assert result.output == "oops"


def test_stdin_is_fed():
    result = CommandRunner().run(_py("import sys; print(sys.stdin.read().upper(), end='')"), input_text="abc")
    assert result.output == "ABC"


def test_env_is_merged_over_process_env(monkeypatch):
    monkeypatch.setenv("SSH_DEPLOY_TEST_OUTER", "outer")
    result = CommandRunner().run(
        _py("import os; print(os.environ['SSH_DEPLOY_TEST_OUTER'], os.environ['SSH_DEPLOY_TEST_INNER'])"),
        env={"SSH_DEPLOY_TEST_INNER": "inner"},
    )
    assert result.output == "outer inner"


def test_failure_raises_called_process_error():
    with pytest.raises(subprocess.CalledProcessError) as exc:
        CommandRunner().run(_py("print('bad'); raise SystemExit(3)"))
    assert exc.value.returncode == 3
    assert exc.value.output == "bad"


def test_failure_without_check_returns_result():
    result = CommandRunner().run(_py("raise SystemExit(4)"), check=False)
    assert not result.ok
    assert result.returncode == 4


def test_dry_run_does_not_execute(tmp_path, caplog):
    marker = tmp_path / "ran"
    with caplog.at_level("INFO", logger="ssh_deploy"):
        result = CommandRunner(dry_run=True).run(_py(f"open({str(marker)!r}, 'w').close()"))

    assert result.ok
    assert not marker.exists()
    assert "[dry-run]" in caplog.text


def test_display_replaces_logged_command(caplog):
    with caplog.at_level("INFO", logger="ssh_deploy"):
        CommandRunner().run(_py("pass"), display="python <redacted>")
    assert "$ python <redacted>" in caplog.text


def test_format_cmd_quotes():
    assert format_cmd(["echo", "a b"]) == "echo 'a b'"


def test_missing_executable_raises_oserror():
    with pytest.raises(FileNotFoundError):
        CommandRunner().run(["ssh-deploy-no-such-executable"])


def test_run_takes_no_output_toggle():
    # Every command's output always lands in the deploy log.
    with pytest.raises(TypeError):
        CommandRunner().run(_py("pass"), echo_output=False)
