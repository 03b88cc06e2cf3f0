"""Settings fixtures for tests."""
import pytest

from deployment.settings import Settings

TEST_ACCOUNT_ID = "123456789012"
TEST_REGION = "us-east-1"
TEST_TARGET_GROUP_ARN = (
    "arn:aws:elasticloadbalancing:us-east-1:123456789012:targetgroup/rentzone-tg/73e2d6bc24d8a067"
)
TEST_SECRET_ARN = "arn:aws:secretsmanager:us-east-1:123456789012:secret:rentzone/db-password-AbCdEf"

BASE_SETTINGS = {
    "APP_NAME": "rentzone",
    "DEPLOYMENT_MODE": "aws-prod",
    "AWS_DEFAULT_REGION": TEST_REGION,
    "AWS_ACCOUNT_ID": TEST_ACCOUNT_ID,
    "PERSONAL_ACCESS_TOKEN": "ghp_testtoken",
    "GITHUB_USERNAME": "octocat",
    "REPOSITORY_NAME": "application-codes",
    "WEB_FILE_ZIP": "rentzone.zip",
    "WEB_FILE_UNZIP": "rentzone",
    "DOMAIN_NAME": "example.com",
    "HOSTED_ZONE_ID": "Z0123456789ABCDEFGHIJ",
    "LOAD_BALANCER_DNS_NAME": "rentzone-alb-1234567890.us-east-1.elb.amazonaws.com",
    "LOAD_BALANCER_ZONE_ID": "Z35SXDOTRQ7X7K",
    "LOAD_BALANCER_ARN_SUFFIX": "app/rentzone-alb/50dc6c495c0c9188",
    "RDS_ENDPOINT": "db.test.internal",
    "RDS_DB_NAME": "applicationdb",
    "RDS_MASTER_USERNAME": "admin",
    "RDS_DB_PASSWORD": "s3cr3t-password",
    "PRIVATE_SUBNET_IDS": "subnet-aaa111, subnet-bbb222",
    "SECURITY_GROUP_IDS": "sg-0123456789",
    "TARGET_GROUP_ARN": TEST_TARGET_GROUP_ARN,
}


def make_settings(tmp_path=None, **overrides) -> Settings:
    values = dict(BASE_SETTINGS)
    if tmp_path is not None:
        values["BUILD_DIR"] = str(tmp_path / "build")
        values["STATE_FILE"] = str(tmp_path / "state.json")
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)
