"""Collect deployment parameters.

Resolution for every key: CLI flag -> process env -> .env.deploy(.secrets) ->
interactive prompt -> schema default. The result is an immutable DeployConfig
that is handed to each pipeline stage.
"""

from __future__ import annotations

import base64
import getpass
import os
import re
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Mapping

from scripts.ssh_deploy.env_schema import (
    DEPLOY_FILE_NAME,
    DEPLOY_SCHEMA,
    DEPLOY_SECRETS_FILE_NAME,
    EnvKeySpec,
    EnvValidationError,
    SecretsEnum,
    VarsEnum,
    apply_defaults,
    get_spec,
    parse_boolish,
    parse_dotenv_file,
    parse_port,
    validate_cross_field_rules,
    validate_required,
    write_dotenv_values,
)
from scripts.ssh_deploy.run_log import LOG_PREFIX, logger
from scripts.ssh_deploy.ssh_helpers import SshTarget


@dataclass(frozen=True)
class GitCredential:
    """Token for git-over-HTTPS, handed to git as an auth header.

    The token never ends up in the clone URL, argv, or `.git/config`.
    """

    token: str = field(repr=False)
    username: str = "x-access-token"

    def auth_header(self) -> str:
        raw = f"{self.username}:{self.token}".encode("utf-8")
        return "Authorization: Basic " + base64.b64encode(raw).decode("ascii")

    def git_env(self) -> dict[str, str]:
        return {
            "GIT_CONFIG_COUNT": "1",
            "GIT_CONFIG_KEY_0": "http.extraHeader",
            "GIT_CONFIG_VALUE_0": self.auth_header(),
            "GIT_TERMINAL_PROMPT": "0",
        }


@dataclass(frozen=True)
class DeployConfig:
    repo_url: str
    branch: str
    ssh: SshTarget
    app_port: int
    app_name: str
    remote_dir: str
    credential: GitCredential | None = None
    server_name: str = "_"
    workdir: Path = Path(".")
    apt_upgrade: bool = True
    remove_default_site: bool = True
    strict_validation: bool = False
    external_probe: bool = True
    rollback_on_failure: bool = False
    run_id: str = ""

    @property
    def repo_name(self) -> str:
        return repo_name_from_url(self.repo_url)

    @property
    def repo_dir(self) -> Path:
        return self.workdir / self.repo_name


def repo_name_from_url(url: str) -> str:
    """Equivalent of `basename -s .git <url>`, also handling scp-like git@host:org/repo URLs."""
    trimmed = str(url or "").strip().rstrip("/")
    name = re.split(r"[/:]", trimmed)[-1] if trimmed else ""
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name


def slugify_name(value: str) -> str:
    """Lower-case name usable as a docker image/container/compose project and nginx site name."""
    slug = re.sub(r"[^a-z0-9_.-]+", "-", str(value or "").strip().lower())
    slug = slug.strip("-._")
    return slug or "app"


def default_remote_dir(*, user: str, app_name: str) -> str:
    home = "/root" if user == "root" else f"/home/{user}"
    return f"{home}/{app_name}"


def new_run_id(now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    return f"{stamp}-{uuid.uuid4().hex[:8]}"


def is_interactive() -> bool:
    try:
        return sys.stdin.isatty()
    except (AttributeError, ValueError):
        return False


@dataclass
class CollectedInputs:
    values: dict[str, str]
    prompted: dict[str, str]


class InputCollector:
    def __init__(
        self,
        *,
        config_root: Path,
        cli_values: Mapping[str, str | None] | None = None,
        environ: Mapping[str, str] | None = None,
        interactive: bool = True,
        input_fn: Callable[[str], str] = input,
        secret_input_fn: Callable[[str], str] = getpass.getpass,
    ):
        self.config_root = config_root
        self.cli_values = dict(cli_values or {})
        self.environ = os.environ if environ is None else environ
        self.interactive = interactive
        self.input_fn = input_fn
        self.secret_input_fn = secret_input_fn
        self._deploy_file = self._read(config_root / DEPLOY_FILE_NAME)
        self._secrets_file = self._read(config_root / DEPLOY_SECRETS_FILE_NAME)

    @staticmethod
    def _read(path: Path) -> dict[str, str]:
        if not path.exists():
            return {}
        return parse_dotenv_file(path)

    def _lookup(self, spec: EnvKeySpec) -> str:
        key = spec.key.value
        value = str(self.cli_values.get(key) or "").strip()
        if not value:
            value = str(self.environ.get(key) or "").strip()
        if not value:
            source = self._secrets_file if spec.secret else self._deploy_file
            value = str(source.get(key) or "").strip()
        return value

    def lookup(self, key: VarsEnum | SecretsEnum) -> str:
        """Resolve a key without prompting or applying defaults."""
        return self._lookup(get_spec(DEPLOY_SCHEMA, key))

    def _prompt(self, spec: EnvKeySpec) -> str:
        label = spec.prompt or spec.key.value
        if spec.default:
            label = f"{label} (default: {spec.default})"
        if spec.secret:
            answer = str(self.secret_input_fn(f"{label}: ") or "").strip()
            logger.info(f"{LOG_PREFIX} {label}: {'<hidden>' if answer else '<empty>'}")
            return answer
        answer = str(self.input_fn(f"{label}: ") or "").strip()
        logger.info(f"{LOG_PREFIX} {label}: {answer or '<empty>'}")
        return answer

    def collect(self) -> CollectedInputs:
        resolved: dict[str, str] = {}
        prompted: dict[str, str] = {}

        for spec in DEPLOY_SCHEMA:
            key = spec.key.value
            value = self._lookup(spec)
            if not value and spec.prompt and self.interactive:
                value = self._prompt(spec)
                if value:
                    prompted[key] = value
            resolved[key] = value

        values = apply_defaults(DEPLOY_SCHEMA, resolved)
        validate_required(DEPLOY_SCHEMA, values, context="deploy inputs")
        validate_cross_field_rules(deploy_kv=values, context="deploy inputs")
        return CollectedInputs(values=values, prompted=prompted)

    def save_answers(self, prompted: Mapping[str, str]) -> Path | None:
        """Persist prompted non-secret answers to .env.deploy for the next run."""
        plain = {
            key: value
            for key, value in prompted.items()
            if not get_spec(DEPLOY_SCHEMA, _key_enum(key)).secret
        }
        if not plain:
            return None
        path = self.config_root / DEPLOY_FILE_NAME
        write_dotenv_values(path=path, updates=plain, create=True)
        return path


def _key_enum(key: str) -> VarsEnum | SecretsEnum:
    try:
        return VarsEnum(key)
    except ValueError:
        return SecretsEnum(key)


def build_config(values: Mapping[str, str], *, run_id: str | None = None, cwd: Path | None = None) -> DeployConfig:
    def get(key: VarsEnum | SecretsEnum) -> str:
        return str(values.get(key.value) or "").strip()

    try:
        app_port = parse_port(get(VarsEnum.APP_PORT))
    except ValueError as exc:
        raise EnvValidationError(context="deploy inputs", problems=[str(exc)]) from exc

    repo_url = get(VarsEnum.GIT_REPO_URL)
    ssh_user = get(VarsEnum.SSH_USER)
    app_name = slugify_name(get(VarsEnum.APP_NAME) or repo_name_from_url(repo_url))
    remote_dir = get(VarsEnum.REMOTE_APP_DIR) or default_remote_dir(user=ssh_user, app_name=app_name)

    token = get(SecretsEnum.GIT_TOKEN)
    credential = GitCredential(token=token, username=get(VarsEnum.GIT_USERNAME) or "x-access-token") if token else None

    base = cwd or Path.cwd()
    workdir_raw = get(VarsEnum.DEPLOY_WORKDIR)
    workdir = Path(workdir_raw).expanduser() if workdir_raw else base

    return DeployConfig(
        repo_url=repo_url,
        branch=get(VarsEnum.GIT_BRANCH) or "main",
        ssh=SshTarget(
            user=ssh_user,
            host=get(VarsEnum.SSH_HOST),
            key_path=get(VarsEnum.SSH_KEY_PATH),
            strict_host_key_checking=get(VarsEnum.SSH_STRICT_HOST_KEY_CHECKING) or "no",
            batch_mode=parse_boolish(get(VarsEnum.SSH_BATCH_MODE), default=False),
        ),
        app_port=app_port,
        app_name=app_name,
        remote_dir=remote_dir,
        credential=credential,
        server_name=get(VarsEnum.NGINX_SERVER_NAME) or "_",
        workdir=workdir,
        apt_upgrade=parse_boolish(get(VarsEnum.DEPLOY_APT_UPGRADE), default=True),
        remove_default_site=parse_boolish(get(VarsEnum.NGINX_REMOVE_DEFAULT_SITE), default=True),
        strict_validation=parse_boolish(get(VarsEnum.DEPLOY_STRICT_VALIDATION), default=False),
        external_probe=parse_boolish(get(VarsEnum.DEPLOY_EXTERNAL_PROBE), default=True),
        rollback_on_failure=parse_boolish(get(VarsEnum.DEPLOY_ROLLBACK_ON_FAILURE), default=False),
        run_id=run_id or new_run_id(),
    )
