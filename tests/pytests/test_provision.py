import pytest

from scripts.ssh_deploy.pipeline import DeployPipeline, StageError
from scripts.ssh_deploy.provision import (
    APT_PACKAGES,
    SSH_FAILED_MESSAGE,
    ProvisionStage,
    SshCheckStage,
    provision_remote_script,
)
from scripts.ssh_deploy.container_launch import TransferStage


def test_provision_script_installs_and_starts_services():
    script = provision_remote_script()
    assert script.startswith("set -e\n")
    assert "sudo -E apt-get update -y" in script
    assert "sudo -E apt-get upgrade -y" in script
    assert "sudo -E apt-get install -y " + " ".join(APT_PACKAGES) in script
    for service in ("docker", "nginx"):
        assert f"sudo systemctl enable {service}" in script
        assert f"sudo systemctl start {service}" in script


def test_provision_script_skip_upgrade():
    assert "apt-get upgrade" not in provision_remote_script(apt_upgrade=False)


def test_ssh_check_success(deploy_config, fake_runner, make_ctx):
    fake_runner.on("echo SSH connection successful", output="SSH connection successful")
    result = SshCheckStage().run(make_ctx(deploy_config))
    assert result.ok
    assert fake_runner.calls[0].args[-2] == "ubuntu@203.0.113.10"


def test_ssh_check_failure_raises(deploy_config, fake_runner, make_ctx):
    fake_runner.on("echo SSH connection successful", returncode=255)
    with pytest.raises(StageError) as exc:
        SshCheckStage().run(make_ctx(deploy_config))
    assert str(exc.value) == SSH_FAILED_MESSAGE


def test_ssh_failure_stops_before_provision_and_transfer(deploy_config, fake_runner, make_ctx):
    fake_runner.on("echo SSH connection successful", returncode=255)
    pipeline = DeployPipeline([SshCheckStage(), ProvisionStage(), TransferStage()])

    report = pipeline.run(make_ctx(deploy_config))

    assert not report.ok
    assert report.failed.name == "ssh-check"
    assert report.failed.message == SSH_FAILED_MESSAGE
    assert len(fake_runner.calls) == 1
    assert not fake_runner.scripts()
    assert not any(line.startswith("rsync") for line in fake_runner.lines())


def test_provision_stage_feeds_script_on_stdin(deploy_config, fake_runner, make_ctx):
    ProvisionStage().run(make_ctx(deploy_config))
    call = fake_runner.calls[0]
    assert call.args[-2:] == ["bash", "-s"]
    assert "apt-get install" in call.input_text
