"""Run external tools (git, ssh, rsync) and stream their output into the deploy log."""

from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from scripts.ssh_deploy.run_log import logger


@dataclass(frozen=True)
class CommandResult:
    args: list[str]
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def format_cmd(cmd: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(part)) for part in cmd)


class CommandRunner:
    """Blocking subprocess runner.

    stdout and stderr are merged and forwarded line by line to the deploy logger
    while the command runs. There is no timeout: a hung remote command hangs the run.
    """

    def __init__(self, *, dry_run: bool = False):
        self.dry_run = dry_run

    def run(
        self,
        cmd: Sequence[str],
        *,
        input_text: str | None = None,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        check: bool = True,
        display: str | None = None,
    ) -> CommandResult:
        args = [str(part) for part in cmd]
        shown = display or format_cmd(args)

        if self.dry_run:
            logger.info(f"  [dry-run] $ {shown}")
            return CommandResult(args=args, returncode=0, output="")

        logger.info(f"  $ {shown}")

        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        proc = subprocess.Popen(
            args,
            stdin=subprocess.PIPE if input_text is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            env=full_env,
            cwd=str(cwd) if cwd else None,
        )

        if input_text is not None and proc.stdin is not None:
            try:
                proc.stdin.write(input_text)
            except BrokenPipeError:
                pass
            finally:
                proc.stdin.close()

        lines: list[str] = []
        assert proc.stdout is not None
        for line in proc.stdout:
            stripped = line.rstrip("\n")
            lines.append(stripped)
            logger.info(f"    {stripped}")
        proc.stdout.close()
        returncode = proc.wait()

        output = "\n".join(lines)
        if check and returncode != 0:
            raise subprocess.CalledProcessError(returncode, args, output=output)
        return CommandResult(args=args, returncode=returncode, output=output)
