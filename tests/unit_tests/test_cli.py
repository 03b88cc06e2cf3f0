import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from deployment.cli import cli
from deployment.exceptions import BuildError, StepFailedError
from tests.fixtures.settings_fixtures import BASE_SETTINGS


@pytest.fixture
def env(monkeypatch, tmp_path):
    for key, value in BASE_SETTINGS.items():
        monkeypatch.setenv(key, value)
    monkeypatch.setenv("STATE_FILE", str(tmp_path / "state.json"))


@pytest.fixture
def runner():
    return CliRunner()


@patch("deployment.cli.DeploymentPipeline")
def test_run__prints_result(mock_pipeline, env, runner):
    mock_pipeline.return_value.run.return_value = {"status": "success", "steps": {}}

    result = runner.invoke(cli, ["run", "--from-step", "deploy", "--no-wait"])

    assert result.exit_code == 0
    assert json.loads(result.output)["status"] == "success"
    mock_pipeline.assert_called_once_with(wait=False)
    mock_pipeline.return_value.run.assert_called_once_with(from_step="deploy", to_step=None)


@patch("deployment.cli.DeploymentPipeline")
def test_single_step_command(mock_pipeline, env, runner):
    mock_pipeline.return_value.run.return_value = {"status": "success"}

    result = runner.invoke(cli, ["migrate"])

    assert result.exit_code == 0
    mock_pipeline.return_value.run.assert_called_once_with(from_step="migrate", to_step="migrate")


@patch("deployment.cli.DeploymentPipeline")
def test_run__failure_exits_non_zero(mock_pipeline, env, runner):
    mock_pipeline.return_value.run.side_effect = StepFailedError("build", BuildError("docker build failed"))

    result = runner.invoke(cli, ["run"])

    assert result.exit_code == 1


def test_run__rejects_unknown_step(env, runner):
    result = runner.invoke(cli, ["run", "--from-step", "rollback"])
    assert result.exit_code != 0


def test_show_config__masks_secrets(env, runner):
    result = runner.invoke(cli, ["show-config"])

    assert result.exit_code == 0
    assert "example.com" in result.output
    assert "ghp_testtoken" not in result.output
    assert "s3cr3t-password" not in result.output


def test_status__without_state(env, runner):
    result = runner.invoke(cli, ["status"])

    assert result.exit_code == 0
    assert "No deployment state found" in result.output


def test_run__inverted_step_range_exits_cleanly(env, runner):
    result = runner.invoke(cli, ["run", "--from-step", "expose", "--to-step", "build"])

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
