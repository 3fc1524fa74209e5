"""Post-deploy liveness checks.

The checks are informational: a failed check is reported as a warning and the
run still succeeds, unless strict validation is enabled.
"""

from __future__ import annotations

from dataclasses import dataclass

import requests

from scripts.ssh_deploy.command_runner import CommandResult
from scripts.ssh_deploy.pipeline import DeployContext, StageResult
from scripts.ssh_deploy.run_log import logger
from scripts.ssh_deploy.ssh_helpers import SshTarget, build_ssh_cmd

PROBE_OK_MARKER = "200 OK"
EXTERNAL_PROBE_TIMEOUT = 10

DOCKER_ACTIVE_CMD = "sudo systemctl is-active --quiet docker"
DOCKER_PS_CMD = "sudo docker ps"
LOCAL_PROBE_CMD = "curl -s --head http://localhost"


@dataclass(frozen=True)
class CheckResult:
    name: str
    ok: bool
    detail: str = ""


def probe_succeeded(head: str) -> bool:
    """True only when the literal status text "200 OK" appears in the response head."""
    return PROBE_OK_MARKER in (head or "")


def _remote(ctx: DeployContext, target: SshTarget, command: str) -> CommandResult:
    return ctx.runner.run(build_ssh_cmd(target=target, remote_command=command), check=False)


def check_docker_service(ctx: DeployContext) -> CheckResult:
    result = _remote(ctx, ctx.config.ssh, DOCKER_ACTIVE_CMD)
    if result.ok:
        return CheckResult("docker-service", True, "Docker is running.")
    return CheckResult("docker-service", False, "Docker not running.")


def check_containers(ctx: DeployContext) -> CheckResult:
    result = _remote(ctx, ctx.config.ssh, DOCKER_PS_CMD)
    if result.ok:
        return CheckResult("containers", True, "Listed running containers.")
    return CheckResult("containers", False, f"docker ps failed with exit code {result.returncode}.")


def check_local_http(ctx: DeployContext) -> CheckResult:
    result = _remote(ctx, ctx.config.ssh, LOCAL_PROBE_CMD)
    if probe_succeeded(result.output):
        return CheckResult("http-local", True, "Application is responding correctly.")
    status_line = result.output.splitlines()[0].strip() if result.output.strip() else "no response"
    return CheckResult("http-local", False, f"Application did not respond as expected ({status_line}).")


def check_external_http(host: str, *, timeout: float = EXTERNAL_PROBE_TIMEOUT) -> CheckResult:
    url = f"http://{host}/"
    try:
        response = requests.head(url, timeout=timeout, allow_redirects=False)
    except requests.RequestException as exc:
        return CheckResult("http-external", False, f"{url} unreachable: {exc}")
    if response.status_code == 200:
        return CheckResult("http-external", True, f"{url} answered 200.")
    reason = str(response.reason or "").strip()
    return CheckResult("http-external", False, f"{url} answered {response.status_code} {reason}".rstrip() + ".")


class ValidateStage:
    name = "validate"
    title = "Validating deployment"
    icon = "🔍"

    def run(self, ctx: DeployContext) -> StageResult:
        config = ctx.config
        if ctx.runner.dry_run:
            return StageResult.success(self.name, "Validation skipped (dry run).")

        checks: list[CheckResult] = []
        ctx.log.info("Checking Docker service...", icon="➡")
        checks.append(check_docker_service(ctx))
        ctx.log.info("Checking running containers...", icon="➡")
        checks.append(check_containers(ctx))
        ctx.log.info("Testing web server response...", icon="➡")
        checks.append(check_local_http(ctx))
        if config.external_probe:
            ctx.log.info(f"Probing http://{config.ssh.host}/ from this machine...", icon="➡")
            checks.append(check_external_http(config.ssh.host))

        for check in checks:
            if check.ok:
                logger.info(f"  ✅ {check.detail}")

        failed = [c for c in checks if not c.ok]
        warnings = [c.detail for c in failed]
        details = {"checks": checks}

        if failed and config.strict_validation:
            return StageResult.failure(
                self.name,
                f"{len(failed)} validation check(s) failed (strict validation enabled).",
                warnings=warnings,
                details=details,
            )
        message = "Deployment validated." if not failed else f"Validation finished with {len(failed)} warning(s)."
        return StageResult.success(self.name, message, warnings=warnings, details=details)
