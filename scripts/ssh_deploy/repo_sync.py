"""Clone the target branch, or pull it into an existing local checkout."""

from __future__ import annotations

import subprocess
from pathlib import Path

from scripts.ssh_deploy.inputs import DeployConfig, GitCredential
from scripts.ssh_deploy.pipeline import DeployContext, StageError, StageResult

CLONE_FAILED_MESSAGE = "Failed to clone repository. Check your URL or token."


def build_clone_cmd(*, repo_url: str, branch: str, dest: Path) -> list[str]:
    return ["git", "clone", "-b", branch, repo_url, str(dest)]


def build_pull_cmd(*, repo_dir: Path, branch: str) -> list[str]:
    return ["git", "-C", str(repo_dir), "pull", "origin", branch]


def uses_http_transport(repo_url: str) -> bool:
    return repo_url.lower().startswith(("https://", "http://"))


def git_env_for(*, repo_url: str, credential: GitCredential | None) -> dict[str, str] | None:
    if credential is None or not uses_http_transport(repo_url):
        return None
    return credential.git_env()


class RepoSyncStage:
    name = "clone"
    title = "Cloning repository"
    icon = "📦"

    def run(self, ctx: DeployContext) -> StageResult:
        config: DeployConfig = ctx.config
        repo_dir = config.repo_dir
        if not config.repo_name:
            raise StageError(f"Cannot derive a repository name from URL {config.repo_url!r}")

        if config.credential is not None and not uses_http_transport(config.repo_url):
            ctx.log.info("Access token ignored: only http(s) remotes use token auth")
        env = git_env_for(repo_url=config.repo_url, credential=config.credential)

        if repo_dir.is_dir():
            ctx.log.info("Repository already exists. Pulling latest changes...")
            ctx.runner.run(build_pull_cmd(repo_dir=repo_dir, branch=config.branch), env=env)
            return StageResult.success(self.name, f"Repository ready in {repo_dir}", details={"action": "pull"})

        ctx.log.info("Cloning repository...")
        if not ctx.runner.dry_run:
            config.workdir.mkdir(parents=True, exist_ok=True)
        try:
            ctx.runner.run(
                build_clone_cmd(repo_url=config.repo_url, branch=config.branch, dest=repo_dir),
                env=env,
            )
        except subprocess.CalledProcessError as exc:
            raise StageError(CLONE_FAILED_MESSAGE) from exc
        return StageResult.success(self.name, f"Repository ready in {repo_dir}", details={"action": "clone"})
