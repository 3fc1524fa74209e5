"""Deterministic configuration schema for ssh-deploy.

This module is the single source of truth for:
- which keys exist (vars vs secrets)
- where they are expected to live (.env.deploy vs .env.deploy.secrets)
- whether they are mandatory, prompted for, and/or have defaults

Design goals:
- No literal env key strings outside this module.
- Secrets never live in the plain deploy file.
- Fail fast with clear error messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Mapping

from dotenv import dotenv_values


DEPLOY_FILE_NAME = ".env.deploy"
DEPLOY_SECRETS_FILE_NAME = ".env.deploy.secrets"


class EnvTarget(str, Enum):
    DOTENV_DEPLOY = "dotenv_deploy"  # `.env.deploy`
    DOTENV_DEPLOY_SECRETS = "dotenv_deploy_secrets"  # `.env.deploy.secrets`
    PROCESS_ENV = "process_env"


class VarsEnum(str, Enum):
    # Repository
    GIT_REPO_URL = "GIT_REPO_URL"
    GIT_BRANCH = "GIT_BRANCH"
    GIT_USERNAME = "GIT_USERNAME"

    # SSH target
    SSH_USER = "SSH_USER"
    SSH_HOST = "SSH_HOST"
    SSH_KEY_PATH = "SSH_KEY_PATH"
    SSH_STRICT_HOST_KEY_CHECKING = "SSH_STRICT_HOST_KEY_CHECKING"
    SSH_BATCH_MODE = "SSH_BATCH_MODE"

    # Application
    APP_PORT = "APP_PORT"
    APP_NAME = "APP_NAME"
    REMOTE_APP_DIR = "REMOTE_APP_DIR"

    # Reverse proxy
    NGINX_SERVER_NAME = "NGINX_SERVER_NAME"
    NGINX_REMOVE_DEFAULT_SITE = "NGINX_REMOVE_DEFAULT_SITE"

    # Run behaviour
    DEPLOY_WORKDIR = "DEPLOY_WORKDIR"
    DEPLOY_LOG_DIR = "DEPLOY_LOG_DIR"
    DEPLOY_APT_UPGRADE = "DEPLOY_APT_UPGRADE"
    DEPLOY_STRICT_VALIDATION = "DEPLOY_STRICT_VALIDATION"
    DEPLOY_EXTERNAL_PROBE = "DEPLOY_EXTERNAL_PROBE"
    DEPLOY_ROLLBACK_ON_FAILURE = "DEPLOY_ROLLBACK_ON_FAILURE"

    # Hooks
    DEPLOY_HOOKS_MODULE = "DEPLOY_HOOKS_MODULE"
    DEPLOY_HOOKS_SOFT_FAIL = "DEPLOY_HOOKS_SOFT_FAIL"


class SecretsEnum(str, Enum):
    # Personal access token used for git-over-HTTPS
    GIT_TOKEN = "GIT_TOKEN"


_PLAIN = frozenset({EnvTarget.DOTENV_DEPLOY, EnvTarget.PROCESS_ENV})
_SECRET = frozenset({EnvTarget.DOTENV_DEPLOY_SECRETS, EnvTarget.PROCESS_ENV})


@dataclass(frozen=True)
class EnvKeySpec:
    key: VarsEnum | SecretsEnum
    mandatory: bool
    default: str | None = None
    targets: frozenset[EnvTarget] = frozenset()
    prompt: str | None = None
    secret: bool = False


class EnvValidationError(ValueError):
    def __init__(self, *, context: str, problems: list[str]):
        super().__init__("; ".join(problems))
        self.context = context
        self.problems = problems

    def format(self) -> str:
        lines = [f"[env] validation failed: {self.context}"]
        for p in self.problems:
            lines.append(f"- {p}")
        return "\n".join(lines)


# Order matters: prompted keys are asked in schema order.
DEPLOY_SCHEMA: tuple[EnvKeySpec, ...] = (
    EnvKeySpec(
        key=VarsEnum.GIT_REPO_URL,
        mandatory=True,
        targets=_PLAIN,
        prompt="Enter Git Repository URL",
    ),
    EnvKeySpec(
        key=SecretsEnum.GIT_TOKEN,
        mandatory=False,
        targets=_SECRET,
        prompt="Enter Personal Access Token (PAT)",
        secret=True,
    ),
    EnvKeySpec(
        key=VarsEnum.GIT_BRANCH,
        mandatory=True,
        default="main",
        targets=_PLAIN,
        prompt="Enter branch name",
    ),
    EnvKeySpec(
        key=VarsEnum.SSH_USER,
        mandatory=True,
        targets=_PLAIN,
        prompt="Enter Remote Server Username",
    ),
    EnvKeySpec(
        key=VarsEnum.SSH_HOST,
        mandatory=True,
        targets=_PLAIN,
        prompt="Enter Remote Server IP Address",
    ),
    EnvKeySpec(
        key=VarsEnum.SSH_KEY_PATH,
        mandatory=False,
        targets=_PLAIN,
        prompt="Enter SSH Key Path",
    ),
    EnvKeySpec(
        key=VarsEnum.APP_PORT,
        mandatory=True,
        targets=_PLAIN,
        prompt="Enter Application Port (e.g., 8080)",
    ),
    EnvKeySpec(key=VarsEnum.GIT_USERNAME, mandatory=False, default="x-access-token", targets=_PLAIN),
    EnvKeySpec(key=VarsEnum.SSH_STRICT_HOST_KEY_CHECKING, mandatory=False, default="no", targets=_PLAIN),
    EnvKeySpec(key=VarsEnum.SSH_BATCH_MODE, mandatory=False, default="false", targets=_PLAIN),
    EnvKeySpec(key=VarsEnum.APP_NAME, mandatory=False, targets=_PLAIN),
    EnvKeySpec(key=VarsEnum.REMOTE_APP_DIR, mandatory=False, targets=_PLAIN),
    EnvKeySpec(key=VarsEnum.NGINX_SERVER_NAME, mandatory=False, default="_", targets=_PLAIN),
    EnvKeySpec(key=VarsEnum.NGINX_REMOVE_DEFAULT_SITE, mandatory=False, default="true", targets=_PLAIN),
    EnvKeySpec(key=VarsEnum.DEPLOY_WORKDIR, mandatory=False, targets=_PLAIN),
    EnvKeySpec(key=VarsEnum.DEPLOY_LOG_DIR, mandatory=False, targets=_PLAIN),
    EnvKeySpec(key=VarsEnum.DEPLOY_APT_UPGRADE, mandatory=False, default="true", targets=_PLAIN),
    EnvKeySpec(key=VarsEnum.DEPLOY_STRICT_VALIDATION, mandatory=False, default="false", targets=_PLAIN),
    EnvKeySpec(key=VarsEnum.DEPLOY_EXTERNAL_PROBE, mandatory=False, default="true", targets=_PLAIN),
    EnvKeySpec(key=VarsEnum.DEPLOY_ROLLBACK_ON_FAILURE, mandatory=False, default="false", targets=_PLAIN),
    EnvKeySpec(key=VarsEnum.DEPLOY_HOOKS_MODULE, mandatory=False, targets=_PLAIN),
    EnvKeySpec(key=VarsEnum.DEPLOY_HOOKS_SOFT_FAIL, mandatory=False, default="false", targets=_PLAIN),
)

BOOLEAN_KEYS: frozenset[VarsEnum] = frozenset(
    {
        VarsEnum.NGINX_REMOVE_DEFAULT_SITE,
        VarsEnum.DEPLOY_APT_UPGRADE,
        VarsEnum.DEPLOY_STRICT_VALIDATION,
        VarsEnum.DEPLOY_EXTERNAL_PROBE,
        VarsEnum.DEPLOY_ROLLBACK_ON_FAILURE,
        VarsEnum.DEPLOY_HOOKS_SOFT_FAIL,
        VarsEnum.SSH_BATCH_MODE,
    }
)

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "no", "n", "off"}


def _schema_keys(schema: Iterable[EnvKeySpec]) -> set[str]:
    return {spec.key.value for spec in schema}


def plain_specs(schema: Iterable[EnvKeySpec] = DEPLOY_SCHEMA) -> list[EnvKeySpec]:
    return [spec for spec in schema if EnvTarget.DOTENV_DEPLOY in spec.targets]


def secret_specs(schema: Iterable[EnvKeySpec] = DEPLOY_SCHEMA) -> list[EnvKeySpec]:
    return [spec for spec in schema if EnvTarget.DOTENV_DEPLOY_SECRETS in spec.targets]


def parse_dotenv_file(path: Path) -> dict[str, str]:
    """Parse dotenv file strictly.

    - Comments are ignored.
    - Keys are preserved even if they have empty values (""), so we can detect unknown/forbidden keys.
    """
    kv: dict[str, str] = {}
    raw = dotenv_values(path)
    for k, v in raw.items():
        if k is None:
            continue
        key = str(k).strip()
        if not key:
            continue
        val = "" if v is None else str(v).strip()
        kv[key] = val
    return kv


def _format_dotenv_value(value: str) -> str:
    text = str(value)
    if any(ch in text for ch in (" ", "#", '"', "'")):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def write_dotenv_values(*, path: Path, updates: Mapping[str, str], create: bool = False) -> None:
    """Update (or create) a dotenv file in-place.

    - Preserves existing lines/comments.
    - Replaces existing KEY=... lines for keys in `updates`.
    - Appends missing keys at the end in sorted order.
    """
    if not updates:
        return

    if not path.exists():
        if not create:
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("# Generated/updated by ssh-deploy --save-answers\n\n")

    original_lines = path.read_text().splitlines()
    remaining = {k: _format_dotenv_value(v) for k, v in updates.items() if str(v).strip()}
    if not remaining:
        return

    out: list[str] = []
    for line in original_lines:
        s = line.strip()
        if not s or s.startswith("#") or "=" not in line:
            out.append(line)
            continue

        key = line.split("=", 1)[0].strip()
        if key in remaining:
            out.append(f"{key}={remaining.pop(key)}")
            continue

        out.append(line)

    if remaining:
        if out and out[-1].strip() != "":
            out.append("")
        for key in sorted(remaining.keys()):
            out.append(f"{key}={remaining[key]}")

    path.write_text("\n".join(out) + "\n")


def validate_known_keys(schema: Iterable[EnvKeySpec], kv: Mapping[str, str], *, context: str) -> None:
    allowed = _schema_keys(schema)
    unknown = sorted([k for k in kv.keys() if k not in allowed])
    if unknown:
        raise EnvValidationError(
            context=context,
            problems=["Unknown key(s): " + ", ".join(unknown)],
        )


def validate_no_secrets(kv: Mapping[str, str], *, context: str) -> None:
    """Secrets belong in `.env.deploy.secrets`, never in the plain deploy file."""
    leaked = sorted(spec.key.value for spec in secret_specs() if spec.key.value in kv)
    if leaked:
        raise EnvValidationError(
            context=context,
            problems=[f"Secret key(s) must live in {DEPLOY_SECRETS_FILE_NAME}: " + ", ".join(leaked)],
        )


def apply_defaults(schema: Iterable[EnvKeySpec], kv: dict[str, str]) -> dict[str, str]:
    out = dict(kv)
    for spec in schema:
        if spec.key.value in out and str(out.get(spec.key.value) or "").strip():
            continue
        if spec.default is None:
            continue
        out[spec.key.value] = spec.default
    return out


def validate_required(schema: Iterable[EnvKeySpec], kv: Mapping[str, str], *, context: str) -> None:
    missing: list[str] = []
    for spec in schema:
        if not spec.mandatory:
            continue
        val = str(kv.get(spec.key.value) or "").strip()
        if not val:
            missing.append(spec.key.value)
    if missing:
        raise EnvValidationError(context=context, problems=["Missing mandatory key(s): " + ", ".join(sorted(missing))])


def parse_boolish(value: str | None, *, default: bool = False) -> bool:
    normalized = str(value or "").strip().lower()
    if not normalized:
        return default
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return default


def parse_port(value: str | None) -> int:
    """Return `value` as a TCP port, raising ValueError when it is not one."""
    raw = str(value or "").strip()
    try:
        port = int(raw)
    except ValueError:
        raise ValueError(f"{VarsEnum.APP_PORT.value} must be an integer, got {raw!r}") from None
    if port < 1 or port > 65535:
        raise ValueError(f"{VarsEnum.APP_PORT.value} must be in range 1-65535, got {port}")
    return port


def validate_cross_field_rules(*, deploy_kv: Mapping[str, str], context: str) -> None:
    """Extra validation for rules that can't be expressed with (mandatory/default) alone."""
    problems: list[str] = []

    port_raw = str(deploy_kv.get(VarsEnum.APP_PORT.value) or "").strip()
    if port_raw:
        try:
            parse_port(port_raw)
        except ValueError as exc:
            problems.append(str(exc))

    for key in sorted(BOOLEAN_KEYS, key=lambda k: k.value):
        raw = str(deploy_kv.get(key.value) or "").strip().lower()
        if raw and raw not in _TRUE_VALUES | _FALSE_VALUES:
            problems.append(f"{key.value} must be a boolean (true/false), got {raw!r}")

    if problems:
        raise EnvValidationError(context=context, problems=problems)


def get_spec(schema: Iterable[EnvKeySpec], key: VarsEnum | SecretsEnum) -> EnvKeySpec:
    for spec in schema:
        if spec.key == key:
            return spec
    raise KeyError(key)
