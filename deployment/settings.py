# deployment/settings.py
from typing import Optional, Dict, List
from pydantic import Field, SecretStr, validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

from deployment.exceptions import ConfigurationError


class Settings(BaseSettings):
    """
    Single source of truth for all deployment settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    The set is assembled once per process and treated as read-only afterwards.

    Usage:
        from deployment.settings import get_settings
        settings = get_settings()
        domain = settings.domain_name
    """

    # Application Settings
    app_name: str = Field(
        default="rentzone",
        alias="APP_NAME",
        description="Application name, used as prefix for AWS resource names"
    )

    app_env: str = Field(
        default="production",
        alias="APP_ENV",
        description="Value written to APP_ENV in the application .env"
    )

    # Deployment Mode
    deployment_mode: str = Field(
        default="aws-prod",
        alias="DEPLOYMENT_MODE",
        description="Deployment mode: aws-mock or aws-prod"
    )

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        alias="AWS_DEFAULT_REGION"
    )

    aws_access_key_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCESS_KEY_ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default=None,
        alias="AWS_SECRET_ACCESS_KEY"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL"
    )

    aws_account_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCOUNT_ID",
        description="AWS Account ID (auto-detected if not provided)"
    )

    # Source archive
    personal_access_token: Optional[SecretStr] = Field(
        default=None,
        alias="PERSONAL_ACCESS_TOKEN",
        description="GitHub token used to download the application archive"
    )

    github_username: Optional[str] = Field(
        default=None,
        alias="GITHUB_USERNAME"
    )

    repository_name: Optional[str] = Field(
        default=None,
        alias="REPOSITORY_NAME"
    )

    web_file_zip: Optional[str] = Field(
        default=None,
        alias="WEB_FILE_ZIP",
        description="Archive filename in the repository, e.g. rentzone.zip"
    )

    web_file_unzip: Optional[str] = Field(
        default=None,
        alias="WEB_FILE_UNZIP",
        description="Directory inside the archive copied to the web root"
    )

    archive_url_template: str = Field(
        default="https://raw.githubusercontent.com/{github_username}/{repository_name}/main/{web_file_zip}",
        alias="ARCHIVE_URL_TEMPLATE"
    )

    # DNS
    domain_name: Optional[str] = Field(
        default=None,
        alias="DOMAIN_NAME"
    )

    hosted_zone_id: Optional[str] = Field(
        default=None,
        alias="HOSTED_ZONE_ID"
    )

    load_balancer_dns_name: Optional[str] = Field(
        default=None,
        alias="LOAD_BALANCER_DNS_NAME"
    )

    load_balancer_zone_id: Optional[str] = Field(
        default=None,
        alias="LOAD_BALANCER_ZONE_ID",
        description="Canonical hosted zone id of the load balancer"
    )

    # Database
    rds_endpoint: Optional[str] = Field(
        default=None,
        alias="RDS_ENDPOINT"
    )

    rds_db_name: Optional[str] = Field(
        default=None,
        alias="RDS_DB_NAME"
    )

    rds_username: Optional[str] = Field(
        default=None,
        alias="RDS_MASTER_USERNAME"
    )

    rds_password: Optional[SecretStr] = Field(
        default=None,
        alias="RDS_DB_PASSWORD",
        description="Only used to seed the runtime secret, never written to the image"
    )

    rds_password_secret_arn: Optional[str] = Field(
        default=None,
        alias="RDS_PASSWORD_SECRET_ARN",
        description="Secrets Manager ARN injected as DB_PASSWORD at container start"
    )

    migrations_dir: str = Field(
        default="database/migrations",
        alias="MIGRATIONS_DIR",
        description="Migration directory relative to the web root"
    )

    # ECR Configuration
    ecr_repo_name: str = Field(
        default="rentzone",
        alias="ECR_REPO_NAME",
        description="ECR repository name"
    )

    image_tag: str = Field(
        default="latest",
        alias="IMAGE_TAG"
    )

    # ECS Configuration
    ecs_cluster_name: Optional[str] = Field(
        default=None,
        alias="ECS_CLUSTER_NAME"
    )

    task_cpu: str = Field(default="256", alias="TASK_CPU")
    task_memory: str = Field(default="512", alias="TASK_MEMORY")

    execution_role_arn: Optional[str] = Field(
        default=None,
        alias="ECS_EXECUTION_ROLE_ARN"
    )

    task_role_arn: Optional[str] = Field(
        default=None,
        alias="ECS_TASK_ROLE_ARN"
    )

    private_subnet_ids: str = Field(
        default="",
        alias="PRIVATE_SUBNET_IDS",
        description="Comma separated private subnet ids"
    )

    security_group_ids: str = Field(
        default="",
        alias="SECURITY_GROUP_IDS",
        description="Comma separated security group ids"
    )

    target_group_arn: Optional[str] = Field(
        default=None,
        alias="TARGET_GROUP_ARN"
    )

    load_balancer_arn_suffix: Optional[str] = Field(
        default=None,
        alias="LOAD_BALANCER_ARN_SUFFIX",
        description="app/<name>/<id>, used in the request count scaling metric"
    )

    desired_count: int = Field(default=2, alias="DESIRED_COUNT")
    min_capacity: int = Field(default=1, alias="MIN_CAPACITY")
    max_capacity: int = Field(default=4, alias="MAX_CAPACITY")

    requests_per_target: float = Field(
        default=1000.0,
        alias="REQUESTS_PER_TARGET",
        description="Target value for ALBRequestCountPerTarget"
    )

    # Local build
    build_dir: str = Field(
        default=".build",
        alias="BUILD_DIR",
        description="Scratch directory for the docker build context"
    )

    state_file: str = Field(
        default=".deployment_state.json",
        alias="STATE_FILE"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level"
    )

    @validator('deployment_mode')
    def validate_deployment_mode(cls, v):
        """Validate deployment mode is one of the allowed values."""
        valid_modes = ["aws-mock", "aws-prod"]
        if v not in valid_modes:
            raise ValueError(f"Invalid deployment_mode: {v}. Must be one of {valid_modes}")
        return v

    @validator('aws_endpoint_url', always=True)
    def set_endpoint_url_based_on_mode(cls, v, values):
        """Point aws-mock at a local moto server unless an endpoint was given."""
        if v is None and values.get('deployment_mode') == "aws-mock":
            return "http://localhost:5000"
        return v

    @validator('aws_access_key_id', 'aws_secret_access_key', always=True)
    def set_mock_credentials_for_mock_mode(cls, v, values):
        """Mock credentials for aws-mock; aws-prod uses the default credential chain."""
        if v is None and values.get('deployment_mode') == "aws-mock":
            return "mock"
        return v

    @property
    def cluster_name(self) -> str:
        return self.ecs_cluster_name or f"{self.app_name}-ecs-cluster"

    @property
    def service_name(self) -> str:
        return f"{self.app_name}-service"

    @property
    def task_family(self) -> str:
        return f"{self.app_name}-task"

    @property
    def container_name(self) -> str:
        return f"{self.app_name}-web"

    @property
    def private_subnets(self) -> List[str]:
        return [s.strip() for s in self.private_subnet_ids.split(",") if s.strip()]

    @property
    def security_groups(self) -> List[str]:
        return [s.strip() for s in self.security_group_ids.split(",") if s.strip()]

    @property
    def account_id(self) -> str:
        """Get AWS account ID with auto-detection fallback."""
        if self.aws_account_id:
            return self.aws_account_id

        if self.deployment_mode == "aws-prod":
            from deployment.aws.utils.aws_clients import get_sts_client
            return get_sts_client().get_caller_identity()['Account']

        # Mock account ID for aws-mock
        return "123456789012"

    @property
    def ecr_registry(self) -> str:
        """Get ECR registry URL."""
        return f"{self.account_id}.dkr.ecr.{self.aws_region}.amazonaws.com"

    @property
    def image_uri(self) -> str:
        return f"{self.ecr_registry}/{self.ecr_repo_name}:{self.image_tag}"

    @property
    def local_image(self) -> str:
        return f"{self.ecr_repo_name}:{self.image_tag}"

    def build_values(self) -> Dict[str, str]:
        """Values substituted into the application .env at build time."""
        return {
            'app_env': self.app_env,
            'domain_name': self.domain_name or '',
            'rds_endpoint': self.rds_endpoint or '',
            'rds_db_name': self.rds_db_name or '',
            'rds_username': self.rds_username or '',
        }

    def require(self, *fields: str) -> None:
        """Raise ConfigurationError naming the environment variables that are unset."""
        missing = []
        for name in fields:
            value = getattr(self, name)
            if isinstance(value, SecretStr):
                value = value.get_secret_value()
            if value is None or value == "":
                alias = type(self).model_fields[name].alias or name.upper()
                missing.append(alias)
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=(".env", ".env.aws-prod"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()
