"""Copy the working tree to the remote host and start the application container(s).

Container, image, compose project and remote directory are all named after the
app (APP_NAME, default: repository name), so repeated runs of the same app
replace their own resources instead of colliding with other apps on the host.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from scripts.ssh_deploy import docker_compose_helpers as compose_helpers
from scripts.ssh_deploy.inputs import DeployConfig
from scripts.ssh_deploy.pipeline import DeployContext, StageError, StageResult
from scripts.ssh_deploy.ssh_helpers import (
    build_remote_script_cmd,
    build_rsync_cmd,
    build_ssh_cmd,
    remote_script,
)

NO_BUILD_FILE_MESSAGE = "No Dockerfile or docker-compose.yml found."
RUN_ID_LABEL = "ssh-deploy.run-id"


class BuildMode(str, Enum):
    COMPOSE = "compose"
    DOCKERFILE = "dockerfile"


@dataclass(frozen=True)
class BuildPlan:
    mode: BuildMode
    build_file: str


def detect_build_plan(repo_dir: Path) -> BuildPlan | None:
    compose_file = compose_helpers.find_compose_file(repo_dir)
    if compose_file is not None:
        return BuildPlan(mode=BuildMode.COMPOSE, build_file=compose_file.name)
    if (repo_dir / compose_helpers.DOCKERFILE_NAME).is_file():
        return BuildPlan(mode=BuildMode.DOCKERFILE, build_file=compose_helpers.DOCKERFILE_NAME)
    return None


def compose_cmd(*, project: str, compose_file: str, action: str) -> str:
    return f"sudo docker-compose -p {shlex.quote(project)} -f {shlex.quote(compose_file)} {action}"


def compose_launch_script(*, remote_dir: str, project: str, compose_file: str) -> str:
    return remote_script(
        f"cd {shlex.quote(remote_dir)}",
        "echo 'Running docker-compose...'",
        compose_cmd(project=project, compose_file=compose_file, action="down"),
        compose_cmd(project=project, compose_file=compose_file, action="up -d --build"),
        "echo 'Docker container(s) running successfully.'",
    )


def dockerfile_launch_script(*, remote_dir: str, app_name: str, app_port: int, run_id: str) -> str:
    name = shlex.quote(app_name)
    label = shlex.quote(f"{RUN_ID_LABEL}={run_id}")
    return remote_script(
        f"cd {shlex.quote(remote_dir)}",
        "echo 'No compose file found. Building from Dockerfile...'",
        f"sudo docker build -t {name} .",
        f"sudo docker rm -f {name} >/dev/null 2>&1 || true",
        f"sudo docker run -d --name {name} --restart unless-stopped --label {label} "
        f"-p {app_port}:{app_port} {name}",
        "echo 'Docker container(s) running successfully.'",
    )


def launch_script_for(plan: BuildPlan, config: DeployConfig) -> str:
    if plan.mode == BuildMode.COMPOSE:
        return compose_launch_script(
            remote_dir=config.remote_dir,
            project=config.app_name,
            compose_file=plan.build_file,
        )
    return dockerfile_launch_script(
        remote_dir=config.remote_dir,
        app_name=config.app_name,
        app_port=config.app_port,
        run_id=config.run_id,
    )


def teardown_script_for(plan: BuildPlan, config: DeployConfig) -> str:
    if plan.mode == BuildMode.COMPOSE:
        return remote_script(
            f"cd {shlex.quote(config.remote_dir)}",
            compose_cmd(project=config.app_name, compose_file=plan.build_file, action="down"),
        )
    return remote_script(f"sudo docker rm -f {shlex.quote(config.app_name)} >/dev/null 2>&1 || true")


def compose_port_warnings(compose_config: dict, *, compose_file: str, app_port: int) -> list[str]:
    published = compose_helpers.published_host_ports(compose_config)
    if app_port in published:
        return []
    shown = ", ".join(str(p) for p in sorted(published)) or "none"
    return [
        f"{compose_file} does not publish host port {app_port} "
        f"(published: {shown}); the reverse proxy may not reach the app."
    ]


class TransferStage:
    name = "transfer"
    title = "Transferring project files to remote server"
    icon = "📂"

    def run(self, ctx: DeployContext) -> StageResult:
        config = ctx.config
        ctx.runner.run(
            build_ssh_cmd(target=config.ssh, remote_command=f"mkdir -p {shlex.quote(config.remote_dir)}")
        )
        # Trailing slash: copy the contents of the tree, not the directory itself.
        source = f"{config.repo_dir}/"
        ctx.runner.run(
            build_rsync_cmd(sources=[source], target=config.ssh, remote_dir=config.remote_dir),
            display=f"rsync -az {config.repo_dir}/ {config.ssh.destination}:{config.remote_dir}/",
        )
        return StageResult.success(self.name, "Files transferred successfully.")


class LaunchStage:
    name = "launch"
    title = "Deploying Dockerized application"
    icon = "🐳"

    def __init__(self) -> None:
        self._plan: BuildPlan | None = None

    def run(self, ctx: DeployContext) -> StageResult:
        config = ctx.config
        repo_dir = config.repo_dir

        if ctx.runner.dry_run and not repo_dir.exists():
            ctx.log.info(f"{repo_dir} not present (dry run); skipping build detection")
            return StageResult.success(self.name, "Container launch skipped (dry run).")

        plan = detect_build_plan(repo_dir)
        if plan is None:
            raise StageError(NO_BUILD_FILE_MESSAGE)
        self._plan = plan

        warnings: list[str] = []
        if plan.mode == BuildMode.COMPOSE:
            try:
                compose_config = compose_helpers.load_docker_compose_config(repo_dir / plan.build_file)
            except RuntimeError as exc:
                # docker-compose on the host reports the real error.
                warnings.append(str(exc))
            else:
                warnings.extend(
                    compose_port_warnings(compose_config, compose_file=plan.build_file, app_port=config.app_port)
                )
                built = compose_helpers.build_services(compose_config)
                if built:
                    ctx.log.info(f"Services built on the host: {', '.join(built)}")
            ctx.log.info(f"Using {plan.build_file} (project '{config.app_name}')")
        else:
            ctx.log.info(f"Using Dockerfile (image/container '{config.app_name}')")

        ctx.runner.run(build_remote_script_cmd(target=config.ssh), input_text=launch_script_for(plan, config))
        return StageResult.success(
            self.name,
            "Docker container(s) running successfully.",
            warnings=warnings,
            details={"mode": plan.mode.value, "build_file": plan.build_file},
        )

    def rollback(self, ctx: DeployContext) -> None:
        if self._plan is None:
            return
        ctx.runner.run(
            build_remote_script_cmd(target=ctx.config.ssh),
            input_text=teardown_script_for(self._plan, ctx.config),
        )
