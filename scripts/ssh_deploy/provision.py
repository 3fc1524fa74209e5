"""Verify SSH connectivity, then install and start Docker and Nginx on the remote host."""

from __future__ import annotations

import subprocess

from scripts.ssh_deploy.pipeline import DeployContext, StageError, StageResult
from scripts.ssh_deploy.ssh_helpers import (
    build_remote_script_cmd,
    build_ssh_connectivity_cmd,
    remote_script,
)

SSH_FAILED_MESSAGE = "SSH connection failed. Please check your SSH details or key path."

APT_PACKAGES = ("docker.io", "docker-compose", "nginx", "rsync", "curl")
SERVICES = ("docker", "nginx")


def provision_remote_script(*, apt_upgrade: bool = True) -> str:
    lines = [
        "export DEBIAN_FRONTEND=noninteractive",
        "echo 'Updating system packages...'",
        "sudo -E apt-get update -y",
    ]
    if apt_upgrade:
        lines.append("sudo -E apt-get upgrade -y")
    lines.append("echo 'Installing Docker, Docker Compose, and Nginx...'")
    lines.append("sudo -E apt-get install -y " + " ".join(APT_PACKAGES))
    lines.append("echo 'Enabling and starting Docker and Nginx...'")
    for service in SERVICES:
        lines.append(f"sudo systemctl enable {service}")
        lines.append(f"sudo systemctl start {service}")
    lines.append("echo 'Remote environment setup complete.'")
    return remote_script(*lines)


class SshCheckStage:
    name = "ssh-check"
    title = "Testing SSH connectivity to remote server"
    icon = "🔐"

    def run(self, ctx: DeployContext) -> StageResult:
        try:
            ctx.runner.run(build_ssh_connectivity_cmd(target=ctx.config.ssh))
        except subprocess.CalledProcessError as exc:
            raise StageError(SSH_FAILED_MESSAGE) from exc
        return StageResult.success(self.name, "SSH connection established successfully.")


class ProvisionStage:
    name = "provision"
    title = "Preparing remote environment"
    icon = "🛠"

    def run(self, ctx: DeployContext) -> StageResult:
        script = provision_remote_script(apt_upgrade=ctx.config.apt_upgrade)
        ctx.runner.run(
            build_remote_script_cmd(target=ctx.config.ssh),
            input_text=script,
        )
        return StageResult.success(self.name, "Remote environment setup complete.")
