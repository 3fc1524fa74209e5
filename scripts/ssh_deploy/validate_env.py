#!/usr/bin/env python3
"""Validate `.env.deploy` / `.env.deploy.secrets` against the deterministic schema.

Intended to run locally (before deploy) or in CI.

Strict by default:
- unknown keys => error
- secret keys in the plain `.env.deploy` => error
- invalid port / boolean values => error
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from scripts.ssh_deploy.env_schema import (
    DEPLOY_FILE_NAME,
    DEPLOY_SCHEMA,
    DEPLOY_SECRETS_FILE_NAME,
    EnvValidationError,
    parse_dotenv_file,
    plain_specs,
    secret_specs,
    validate_cross_field_rules,
    validate_known_keys,
    validate_no_secrets,
)


def validate_files(*, deploy_path: Path | None, secrets_path: Path | None) -> None:
    if deploy_path is not None and deploy_path.exists():
        context = f"deploy ({deploy_path.name})"
        kv = parse_dotenv_file(deploy_path)
        validate_no_secrets(kv, context=context)
        validate_known_keys(plain_specs(DEPLOY_SCHEMA), kv, context=context)
        validate_cross_field_rules(deploy_kv=kv, context=context)

    if secrets_path is not None and secrets_path.exists():
        context = f"secrets ({secrets_path.name})"
        kv = parse_dotenv_file(secrets_path)
        validate_known_keys(secret_specs(DEPLOY_SCHEMA), kv, context=context)


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Validate .env.deploy and .env.deploy.secrets against schema")
    ap.add_argument("--deploy", default=DEPLOY_FILE_NAME, help=f"Path to deploy env file (default: {DEPLOY_FILE_NAME})")
    ap.add_argument(
        "--secrets",
        default=DEPLOY_SECRETS_FILE_NAME,
        help=f"Path to deploy secrets file (default: {DEPLOY_SECRETS_FILE_NAME})",
    )
    args = ap.parse_args(argv)

    deploy_path = Path(args.deploy).expanduser().resolve()
    secrets_path = Path(args.secrets).expanduser().resolve()

    try:
        validate_files(deploy_path=deploy_path, secrets_path=secrets_path)
    except EnvValidationError as e:
        print(e.format(), file=sys.stderr)
        raise SystemExit(2)

    print("[env] ok")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
