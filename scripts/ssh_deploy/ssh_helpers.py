"""SSH / rsync command builders.

Security note: by default host keys are accepted without verification
(`StrictHostKeyChecking=no`). Set SSH_STRICT_HOST_KEY_CHECKING=accept-new or yes
to tighten this.

SSH_BATCH_MODE=true adds `-o BatchMode=yes` so a missing key fails fast
instead of prompting. It is off by default so a key passphrase can still be
typed at the prompt.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

SSH_OK_MESSAGE = "SSH connection successful"


@dataclass(frozen=True)
class SshTarget:
    user: str
    host: str
    key_path: str = ""
    strict_host_key_checking: str = "no"
    batch_mode: bool = False

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}"


def ssh_options(target: SshTarget) -> list[str]:
    opts: list[str] = []
    if target.key_path:
        opts.extend(["-i", str(Path(target.key_path).expanduser())])
    opts.extend(["-o", f"StrictHostKeyChecking={target.strict_host_key_checking}"])
    if target.batch_mode:
        opts.extend(["-o", "BatchMode=yes"])
    return opts


def build_ssh_cmd(*, target: SshTarget, remote_command: str) -> list[str]:
    return ["ssh", *ssh_options(target), target.destination, remote_command]


def build_ssh_connectivity_cmd(*, target: SshTarget) -> list[str]:
    return build_ssh_cmd(target=target, remote_command=f"echo {SSH_OK_MESSAGE}")


def build_remote_script_cmd(*, target: SshTarget) -> list[str]:
    # The script itself is fed on stdin.
    return ["ssh", *ssh_options(target), target.destination, "bash", "-s"]


def build_rsync_cmd(*, sources: Sequence[Path | str], target: SshTarget, remote_dir: str) -> list[str]:
    srcs = [str(p) for p in sources]
    remote_shell = " ".join(shlex.quote(part) for part in ["ssh", *ssh_options(target)])
    # Trailing slash on remote_dir ensures rsync copies into the dir.
    dest = f"{target.destination}:{remote_dir.rstrip('/')}/"
    return ["rsync", "-az", "-e", remote_shell, *srcs, dest]


def remote_script(*lines: str) -> str:
    """Join shell lines into a script that aborts on the first failing command."""
    return "\n".join(["set -e", *lines]) + "\n"
