import pytest
from moto import mock_aws

from deployment.aws.utils.aws_clients import reset_clients
from deployment.settings import get_settings

from tests.fixtures.settings_fixtures import settings  # noqa: F401


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mocked AWS credentials so nothing reaches a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def mocked_aws(aws_credentials):
    with mock_aws():
        yield


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Run each test in its own directory with no cached settings or clients."""
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    reset_clients()
    yield
    get_settings.cache_clear()
    reset_clients()
