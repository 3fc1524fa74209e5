from __future__ import annotations

from pathlib import Path

import pytest

from scripts.ssh_deploy.env_schema import (
    DEPLOY_SCHEMA,
    EnvValidationError,
    SecretsEnum,
    VarsEnum,
    apply_defaults,
    get_spec,
    parse_boolish,
    parse_dotenv_file,
    parse_port,
    plain_specs,
    secret_specs,
    validate_cross_field_rules,
    validate_known_keys,
    validate_no_secrets,
    validate_required,
)


def _write(p: Path, text: str) -> Path:
    p.write_text(text, encoding="utf-8")
    return p


def test_parse_dotenv_preserves_empty_values(tmp_path: Path) -> None:
    p = _write(tmp_path / ".env.deploy", "GIT_BRANCH=\nSSH_USER=\n")
    kv = parse_dotenv_file(p)
    assert kv[VarsEnum.GIT_BRANCH.value] == ""
    assert kv[VarsEnum.SSH_USER.value] == ""


def test_defaults_and_required(tmp_path: Path) -> None:
    p = _write(
        tmp_path / ".env.deploy",
        "GIT_REPO_URL=https://github.com/org/app.git\nSSH_USER=ubuntu\nSSH_HOST=10.0.0.5\nAPP_PORT=8080\n",
    )
    kv = parse_dotenv_file(p)

    validate_known_keys(DEPLOY_SCHEMA, kv, context="deploy")
    kv = apply_defaults(DEPLOY_SCHEMA, kv)

    # branch defaults to main
    assert kv[VarsEnum.GIT_BRANCH.value] == "main"
    assert kv[VarsEnum.NGINX_SERVER_NAME.value] == "_"
    validate_required(DEPLOY_SCHEMA, kv, context="deploy")


def test_missing_mandatory_keys_are_listed() -> None:
    with pytest.raises(EnvValidationError) as exc:
        validate_required(DEPLOY_SCHEMA, apply_defaults(DEPLOY_SCHEMA, {}), context="deploy")
    problems = exc.value.format()
    assert "GIT_REPO_URL" in problems
    assert "APP_PORT" in problems
    assert "GIT_BRANCH" not in problems


def test_unknown_keys_fail(tmp_path: Path) -> None:
    p = _write(tmp_path / ".env.deploy", "NOT_A_KEY=1\n")
    kv = parse_dotenv_file(p)
    with pytest.raises(EnvValidationError):
        validate_known_keys(DEPLOY_SCHEMA, kv, context="deploy")


def test_secret_in_plain_file_fails() -> None:
    with pytest.raises(EnvValidationError) as exc:
        validate_no_secrets({SecretsEnum.GIT_TOKEN.value: "ghp_x"}, context="deploy")
    assert ".env.deploy.secrets" in str(exc.value)


def test_plain_and_secret_specs_partition_schema() -> None:
    plain = {s.key for s in plain_specs()}
    secret = {s.key for s in secret_specs()}
    assert SecretsEnum.GIT_TOKEN in secret
    assert SecretsEnum.GIT_TOKEN not in plain
    assert plain | secret == {s.key for s in DEPLOY_SCHEMA}


def test_prompt_order_follows_interactive_flow() -> None:
    prompted = [s.key for s in DEPLOY_SCHEMA if s.prompt]
    assert prompted == [
        VarsEnum.GIT_REPO_URL,
        SecretsEnum.GIT_TOKEN,
        VarsEnum.GIT_BRANCH,
        VarsEnum.SSH_USER,
        VarsEnum.SSH_HOST,
        VarsEnum.SSH_KEY_PATH,
        VarsEnum.APP_PORT,
    ]
    assert get_spec(DEPLOY_SCHEMA, SecretsEnum.GIT_TOKEN).secret is True


def test_parse_boolish() -> None:
    assert parse_boolish("true") is True
    assert parse_boolish("1") is True
    assert parse_boolish("false", default=True) is False
    assert parse_boolish("yes") is True
    assert parse_boolish("off") is False
    assert parse_boolish("", default=True) is True
    assert parse_boolish("maybe", default=False) is False


@pytest.mark.parametrize("raw,expected", [("8080", 8080), (" 80 ", 80), ("65535", 65535)])
def test_parse_port_valid(raw: str, expected: int) -> None:
    assert parse_port(raw) == expected


@pytest.mark.parametrize("raw", ["", "abc", "0", "65536", "-1"])
def test_parse_port_invalid(raw: str) -> None:
    with pytest.raises(ValueError):
        parse_port(raw)


def test_cross_field_rules() -> None:
    validate_cross_field_rules(
        deploy_kv={VarsEnum.APP_PORT.value: "8080", VarsEnum.DEPLOY_APT_UPGRADE.value: "false"},
        context="deploy",
    )

    with pytest.raises(EnvValidationError) as exc:
        validate_cross_field_rules(
            deploy_kv={VarsEnum.APP_PORT.value: "99999", VarsEnum.DEPLOY_STRICT_VALIDATION.value: "sometimes"},
            context="deploy",
        )
    assert len(exc.value.problems) == 2
