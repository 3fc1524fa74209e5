from __future__ import annotations

import dataclasses

import pytest

from scripts.ssh_deploy.inputs import GitCredential
from scripts.ssh_deploy.pipeline import StageError
from scripts.ssh_deploy.repo_sync import (
    CLONE_FAILED_MESSAGE,
    RepoSyncStage,
    build_clone_cmd,
    build_pull_cmd,
    git_env_for,
)


def test_clone_when_checkout_missing(deploy_config, fake_runner, make_ctx, tmp_path):
    result = RepoSyncStage().run(make_ctx(deploy_config))

    assert result.ok
    assert result.details["action"] == "clone"
    assert fake_runner.calls[0].args == [
        "git",
        "clone",
        "-b",
        "main",
        "https://github.com/org/app.git",
        str(tmp_path / "app"),
    ]


def test_clone_creates_missing_workdir(deploy_config, fake_runner, make_ctx, tmp_path):
    config = dataclasses.replace(deploy_config, workdir=tmp_path / "work")

    RepoSyncStage().run(make_ctx(config))

    assert (tmp_path / "work").is_dir()


def test_dry_run_leaves_filesystem_untouched(deploy_config, dry_run_runner, make_ctx, tmp_path):
    config = dataclasses.replace(deploy_config, workdir=tmp_path / "work")

    result = RepoSyncStage().run(make_ctx(config, dry_run_runner))

    assert result.details["action"] == "clone"
    assert dry_run_runner.calls[0].args[:2] == ["git", "clone"]
    assert not (tmp_path / "work").exists()


def test_pull_when_checkout_exists(deploy_config, fake_runner, make_ctx, tmp_path):
    (tmp_path / "app").mkdir()

    result = RepoSyncStage().run(make_ctx(deploy_config))

    assert result.details["action"] == "pull"
    assert fake_runner.calls[0].args == ["git", "-C", str(tmp_path / "app"), "pull", "origin", "main"]


def test_clone_failure_message(deploy_config, fake_runner, make_ctx):
    fake_runner.on("git clone", returncode=128, output="fatal: repository not found")

    with pytest.raises(StageError) as exc:
        RepoSyncStage().run(make_ctx(deploy_config))
    assert str(exc.value) == CLONE_FAILED_MESSAGE


def test_token_goes_to_env_not_argv(deploy_config, fake_runner, make_ctx):
    config = dataclasses.replace(deploy_config, credential=GitCredential(token="ghp_secret_value"))

    RepoSyncStage().run(make_ctx(config))

    call = fake_runner.calls[0]
    assert all("ghp_secret_value" not in a for a in call.args)
    assert call.env is not None
    assert call.env["GIT_CONFIG_KEY_0"] == "http.extraHeader"
    assert "ghp_secret_value" not in call.env["GIT_CONFIG_VALUE_0"]


def test_token_not_sent_over_ssh_remote():
    cred = GitCredential(token="t")
    assert git_env_for(repo_url="git@github.com:org/app.git", credential=cred) is None
    assert git_env_for(repo_url="https://github.com/org/app.git", credential=None) is None
    assert git_env_for(repo_url="https://github.com/org/app.git", credential=cred) is not None


def test_unparseable_url_fails(deploy_config, make_ctx):
    config = dataclasses.replace(deploy_config, repo_url="")
    with pytest.raises(StageError):
        RepoSyncStage().run(make_ctx(config))


def test_builders(tmp_path):
    assert build_clone_cmd(repo_url="u", branch="b", dest=tmp_path / "x")[-1] == str(tmp_path / "x")
    assert build_pull_cmd(repo_dir=tmp_path, branch="dev")[-2:] == ["origin", "dev"]
