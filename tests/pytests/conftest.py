from __future__ import annotations

import logging
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest

from scripts.ssh_deploy.command_runner import CommandResult
from scripts.ssh_deploy.inputs import DeployConfig
from scripts.ssh_deploy.pipeline import DeployContext
from scripts.ssh_deploy.run_log import LOGGER_NAME, StepLog
from scripts.ssh_deploy.ssh_helpers import SshTarget


def pytest_configure() -> None:
    # Allow tests to import `scripts.*` as a package.
    repo_root = Path(__file__).parents[2]
    sys.path.append(str(repo_root))


@dataclass
class FakeCall:
    args: list[str]
    input_text: str | None
    env: dict[str, str] | None

    @property
    def line(self) -> str:
        return " ".join(self.args)


class FakeRunner:
    """Records commands instead of running them.

    `on(needle, ...)` sets the result for the first command whose argv or stdin
    script contains `needle`; everything else succeeds with empty output.
    """

    def __init__(self, *, dry_run: bool = False):
        self.dry_run = dry_run
        self.calls: list[FakeCall] = []
        self._rules: list[tuple[str, int, str]] = []

    def on(self, needle: str, *, returncode: int = 0, output: str = "") -> "FakeRunner":
        self._rules.append((needle, returncode, output))
        return self

    def run(self, cmd, *, input_text=None, env=None, cwd=None, check=True, display=None):
        args = [str(c) for c in cmd]
        self.calls.append(FakeCall(args=args, input_text=input_text, env=dict(env) if env else None))
        haystack = " ".join(args) + "\n" + (input_text or "")
        returncode, output = 0, ""
        for needle, rc, out in self._rules:
            if needle in haystack:
                returncode, output = rc, out
                break
        if check and returncode != 0:
            raise subprocess.CalledProcessError(returncode, args, output=output)
        return CommandResult(args=args, returncode=returncode, output=output)

    def lines(self) -> list[str]:
        return [c.line for c in self.calls]

    def scripts(self) -> list[str]:
        return [c.input_text for c in self.calls if c.input_text]


@pytest.fixture(autouse=True)
def _reset_deploy_logger():
    yield
    log = logging.getLogger(LOGGER_NAME)
    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()
    log.propagate = True
    log.setLevel(logging.NOTSET)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def deploy_config(tmp_path: Path) -> DeployConfig:
    return DeployConfig(
        repo_url="https://github.com/org/app.git",
        branch="main",
        ssh=SshTarget(user="ubuntu", host="203.0.113.10", key_path="/keys/id_ed25519"),
        app_port=8080,
        app_name="app",
        remote_dir="/home/ubuntu/app",
        workdir=tmp_path,
        external_probe=False,
        run_id="20260101000000-abcd1234",
    )


@pytest.fixture
def make_ctx(fake_runner: FakeRunner):
    def _make(config: DeployConfig, runner: FakeRunner | None = None) -> DeployContext:
        return DeployContext(config=config, runner=runner or fake_runner, log=StepLog(color=False))

    return _make


@pytest.fixture
def dry_run_runner() -> FakeRunner:
    return FakeRunner(dry_run=True)
