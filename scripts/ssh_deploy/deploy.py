#!/usr/bin/env python3
"""Deploy a git repository to a remote Ubuntu host over SSH.

Stages (each one a pass/fail gate; the first failure aborts with exit code 1):
1. Collect inputs (prompts for anything not given via flags, env or .env.deploy)
2. Clone the branch locally, or pull if the checkout already exists
3. Check SSH connectivity
4. Provision Docker + Nginx on the host
5. Copy the working tree to the host
6. Build and run the app via docker-compose or Dockerfile
7. Configure Nginx as a reverse proxy to the app port
8. Run liveness checks (warnings only unless --strict-validation)

Every line of output is also appended to deploy_<YYYYMMDD_HHMMSS>.log.

Security note: this script shells out to `git`, `ssh` and `rsync`, and by
default trusts unknown SSH host keys.
"""

from __future__ import annotations

import argparse
import getpass
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Mapping

from scripts.ssh_deploy.command_runner import CommandRunner
from scripts.ssh_deploy.container_launch import LaunchStage, TransferStage
from scripts.ssh_deploy.deploy_hooks import load_hooks
from scripts.ssh_deploy.env_schema import EnvValidationError, SecretsEnum, VarsEnum, parse_boolish
from scripts.ssh_deploy.inputs import (
    DeployConfig,
    InputCollector,
    build_config,
    is_interactive,
    new_run_id,
)
from scripts.ssh_deploy.nginx_proxy import ProxyStage
from scripts.ssh_deploy.pipeline import DeployContext, DeployPipeline, PipelineReport, Stage
from scripts.ssh_deploy.provision import ProvisionStage, SshCheckStage
from scripts.ssh_deploy.repo_sync import RepoSyncStage
from scripts.ssh_deploy.run_log import StepLog, logger, mask_secret, setup_logging
from scripts.ssh_deploy.validate_deploy import ValidateStage


def build_stages() -> list[Stage]:
    return [
        RepoSyncStage(),
        SshCheckStage(),
        ProvisionStage(),
        TransferStage(),
        LaunchStage(),
        ProxyStage(),
        ValidateStage(),
    ]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Deploy a git repository to a remote host with Docker + Nginx over SSH",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Fully interactive (prompts for everything)
    ssh-deploy

    # Nothing to type
    ssh-deploy --repo-url https://github.com/org/app.git --ssh-user ubuntu \\
        --ssh-host 203.0.113.10 --ssh-key ~/.ssh/id_ed25519 --app-port 8080 --non-interactive

    # Preview the commands without running them
    ssh-deploy --dry-run

Resolution per value: CLI flag -> environment variable -> .env.deploy
(.env.deploy.secrets for GIT_TOKEN) -> prompt -> default.
""",
    )
    parser.add_argument("--repo-url", default=None, help="Git repository URL (GIT_REPO_URL)")
    parser.add_argument("--branch", default=None, help="Branch to deploy (GIT_BRANCH, default: main)")
    parser.add_argument("--ssh-user", default=None, help="Remote SSH username (SSH_USER)")
    parser.add_argument("--ssh-host", default=None, help="Remote host name or IP (SSH_HOST)")
    parser.add_argument("--ssh-key", default=None, help="Path to the SSH private key (SSH_KEY_PATH)")
    parser.add_argument("--app-port", default=None, help="Application port, published and proxied (APP_PORT)")
    parser.add_argument(
        "--app-name",
        default=None,
        help="Name for the image/container/compose project/nginx site (APP_NAME, default: repository name)",
    )
    parser.add_argument(
        "--remote-dir",
        default=None,
        help="Remote directory for the working tree (REMOTE_APP_DIR, default: /home/<user>/<app-name>)",
    )
    parser.add_argument("--server-name", default=None, help="Nginx server_name (NGINX_SERVER_NAME, default: _)")
    parser.add_argument("--workdir", default=None, help="Local directory to clone into (DEPLOY_WORKDIR, default: cwd)")
    parser.add_argument("--log-dir", default=None, help="Directory for deploy_*.log (DEPLOY_LOG_DIR, default: cwd)")
    parser.add_argument(
        "--config-dir",
        default=None,
        help="Directory holding .env.deploy / .env.deploy.secrets / deploy_customizations.py (default: cwd)",
    )
    parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Never prompt; fail if a mandatory value is missing",
    )
    parser.add_argument(
        "--save-answers",
        action="store_true",
        help="Write prompted non-secret answers to .env.deploy for the next run",
    )
    parser.add_argument("--skip-upgrade", action="store_true", help="Skip 'apt-get upgrade' during provisioning")
    parser.add_argument(
        "--strict-validation",
        action="store_true",
        help="Treat failed post-deploy checks as a failed deployment (exit 1)",
    )
    parser.add_argument(
        "--no-external-probe",
        action="store_true",
        help="Skip the HTTP probe of http://<host>/ from this machine",
    )
    parser.add_argument(
        "--rollback-on-failure",
        action="store_true",
        help="Undo completed container/proxy stages when a later stage fails",
    )
    parser.add_argument("--dry-run", action="store_true", help="Print commands without running them")
    parser.add_argument("--hooks-module", default=None, help="Hooks module or file (DEPLOY_HOOKS_MODULE)")
    parser.add_argument("--hooks-soft-fail", action="store_true", help="Log hook failures instead of aborting")
    return parser


def cli_values_from_args(args: argparse.Namespace) -> dict[str, str | None]:
    values: dict[str, str | None] = {
        VarsEnum.GIT_REPO_URL.value: args.repo_url,
        VarsEnum.GIT_BRANCH.value: args.branch,
        VarsEnum.SSH_USER.value: args.ssh_user,
        VarsEnum.SSH_HOST.value: args.ssh_host,
        VarsEnum.SSH_KEY_PATH.value: args.ssh_key,
        VarsEnum.APP_PORT.value: args.app_port,
        VarsEnum.APP_NAME.value: args.app_name,
        VarsEnum.REMOTE_APP_DIR.value: args.remote_dir,
        VarsEnum.NGINX_SERVER_NAME.value: args.server_name,
        VarsEnum.DEPLOY_WORKDIR.value: args.workdir,
        VarsEnum.DEPLOY_LOG_DIR.value: args.log_dir,
        VarsEnum.DEPLOY_HOOKS_MODULE.value: args.hooks_module,
    }
    if args.skip_upgrade:
        values[VarsEnum.DEPLOY_APT_UPGRADE.value] = "false"
    if args.strict_validation:
        values[VarsEnum.DEPLOY_STRICT_VALIDATION.value] = "true"
    if args.no_external_probe:
        values[VarsEnum.DEPLOY_EXTERNAL_PROBE.value] = "false"
    if args.rollback_on_failure:
        values[VarsEnum.DEPLOY_ROLLBACK_ON_FAILURE.value] = "true"
    if args.hooks_soft_fail:
        values[VarsEnum.DEPLOY_HOOKS_SOFT_FAIL.value] = "true"
    return values


def log_config_summary(log: StepLog, config: DeployConfig, token: str) -> None:
    log.info(f"Run id: {config.run_id}")
    log.info(f"Repository: {config.repo_url} (branch: {config.branch})")
    log.info(f"Access token: {mask_secret(token) if token else '<none>'}")
    log.info(f"Target: {config.ssh.destination} (key: {config.ssh.key_path or '<ssh default>'})")
    log.info(f"App: {config.app_name} on port {config.app_port} -> {config.remote_dir}")


def main(
    argv: list[str] | None = None,
    *,
    runner: CommandRunner | None = None,
    environ: Mapping[str, str] | None = None,
    input_fn: Callable[[str], str] = input,
    secret_input_fn: Callable[[str], str] = getpass.getpass,
    now: datetime | None = None,
) -> int:
    args = build_parser().parse_args(argv)
    env = os.environ if environ is None else environ
    config_root = Path(args.config_dir).expanduser() if args.config_dir else Path.cwd()

    collector = InputCollector(
        config_root=config_root,
        cli_values=cli_values_from_args(args),
        environ=env,
        interactive=not args.non_interactive and is_interactive(),
        input_fn=input_fn,
        secret_input_fn=secret_input_fn,
    )

    log_dir_raw = collector.lookup(VarsEnum.DEPLOY_LOG_DIR)
    log_path = setup_logging(log_dir=Path(log_dir_raw).expanduser() if log_dir_raw else Path.cwd(), now=now)
    log = StepLog()

    logger.info("=" * 42)
    logger.info("🚀 Starting Automated Deployment")
    logger.info("=" * 42)

    log.step("Collecting deployment parameters", icon="📝")
    try:
        collected = collector.collect()
        config = build_config(collected.values, run_id=new_run_id(now))
    except EnvValidationError as exc:
        log.error(exc.format())
        raise SystemExit(1)

    if args.save_answers and collected.prompted:
        saved = collector.save_answers(collected.prompted)
        if saved is not None:
            log.info(f"Saved answers to {saved}")

    log_config_summary(log, config, collected.values.get(SecretsEnum.GIT_TOKEN.value, ""))
    log.success("User input collected successfully.")

    try:
        hooks = load_hooks(
            config_root,
            module_path=collected.values.get(VarsEnum.DEPLOY_HOOKS_MODULE.value) or None,
            soft_fail=parse_boolish(collected.values.get(VarsEnum.DEPLOY_HOOKS_SOFT_FAIL.value), default=False),
        )
    except ImportError as exc:
        log.error(str(exc))
        raise SystemExit(1)

    ctx = DeployContext(
        config=config,
        runner=runner or CommandRunner(dry_run=args.dry_run),
        log=log,
    )
    report: PipelineReport = DeployPipeline(build_stages(), hooks=hooks).run(ctx)

    if log_path is not None:
        log.info(f"Log file: {log_path}")

    if not report.ok:
        failed = report.failed
        name = failed.name if failed else "unknown"
        log.error(f"Deployment aborted at stage '{name}'.")
        raise SystemExit(1)

    if report.warnings:
        log.warning(f"Deployment finished with {len(report.warnings)} warning(s).")
    log.success(f"Deployment complete! Visit http://{config.ssh.host} in your browser.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
