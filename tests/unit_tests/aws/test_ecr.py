import subprocess
from unittest.mock import patch

import boto3
import pytest

from deployment.aws.infrastructure.ecr import ECRPublisher
from deployment.exceptions import PublishError


@pytest.fixture
def ecr_client(mocked_aws):
    return boto3.client("ecr", region_name="us-east-1")


def test_ensure_repository__creates_then_reuses(settings, ecr_client):
    publisher = ECRPublisher(settings, ecr_client=ecr_client)

    uri = publisher.ensure_repository()
    assert uri.endswith("/rentzone")
    assert publisher.ensure_repository() == uri

    repositories = ecr_client.describe_repositories()["repositories"]
    assert [r["repositoryName"] for r in repositories] == ["rentzone"]


def test_get_login(settings, ecr_client):
    username, password, endpoint = ECRPublisher(settings, ecr_client=ecr_client).get_login()

    assert username == "AWS"
    assert password
    assert endpoint.startswith("https://")


@patch("deployment.aws.infrastructure.ecr.subprocess.run")
def test_publish__logs_in_tags_and_pushes(mock_run, settings, ecr_client):
    result = ECRPublisher(settings, ecr_client=ecr_client).publish("rentzone:latest")

    remote_image = result["image_uri"]
    assert remote_image == f"{result['repository_uri']}:latest"

    commands = [c.args[0] for c in mock_run.call_args_list]
    assert commands[0][:2] == ["docker", "login"]
    assert "--password-stdin" in commands[0]
    assert commands[1] == ["docker", "tag", "rentzone:latest", remote_image]
    assert commands[2] == ["docker", "push", remote_image]

    # The registry password goes through stdin, never argv
    login_call = mock_run.call_args_list[0]
    assert isinstance(login_call.kwargs["input"], bytes)
    assert login_call.kwargs["input"].decode() not in commands[0]


@patch("deployment.aws.infrastructure.ecr.subprocess.run")
def test_publish__defaults_to_configured_local_image(mock_run, settings, ecr_client):
    ECRPublisher(settings, ecr_client=ecr_client).publish()

    tag_command = mock_run.call_args_list[1].args[0]
    assert tag_command[2] == "rentzone:latest"


@patch("deployment.aws.infrastructure.ecr.subprocess.run")
def test_publish__push_failure_raises_publish_error(mock_run, settings, ecr_client):
    mock_run.side_effect = [None, None, subprocess.CalledProcessError(1, ["docker", "push"])]

    with pytest.raises(PublishError):
        ECRPublisher(settings, ecr_client=ecr_client).publish("rentzone:latest")
    assert mock_run.call_count == 3


def test_image_exists__false_when_tag_missing(settings, ecr_client):
    publisher = ECRPublisher(settings, ecr_client=ecr_client)
    publisher.ensure_repository()
    assert publisher.image_exists() is False
