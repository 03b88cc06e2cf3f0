"""
ECS Task Definition Builder

Purpose: creates the Fargate task definition for the PHP web container.

Main class: TaskDefinitionBuilder with methods to build the task definition
(build_*: returns Dict, create_*: registers and returns ARN), manage the
CloudWatch log group and the database password secret.

Key features: the database password never appears in the image or in the task
definition's plain environment. It is stored in Secrets Manager and injected as
DB_PASSWORD when the container starts.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
from botocore.exceptions import ClientError

from deployment.settings import Settings, get_settings
from deployment.aws.utils.aws_clients import (
    get_ecs_client,
    get_logs_client,
    get_secretsmanager_client
)

logger = logging.getLogger(__name__)

CONTAINER_PORTS = (80, 3306)
LOG_RETENTION_DAYS = 7


@dataclass
class TaskDefinitionConfig:
    """Configuration for ECS task definition with Fargate defaults."""
    family: str
    cpu: str = "256"
    memory: str = "512"
    requires_compatibilities: List[str] = field(default_factory=lambda: ['FARGATE'])
    network_mode: str = 'awsvpc'
    execution_role_arn: Optional[str] = None
    task_role_arn: Optional[str] = None
    container_definitions: List[Dict[str, Any]] = field(default_factory=list)
    tags: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to ECS task definition dictionary."""
        task_def = {
            'family': self.family,
            'networkMode': self.network_mode,
            'requiresCompatibilities': self.requires_compatibilities,
            'cpu': self.cpu,
            'memory': self.memory,
            'containerDefinitions': self.container_definitions
        }

        if self.execution_role_arn:
            task_def['executionRoleArn'] = self.execution_role_arn
        if self.task_role_arn:
            task_def['taskRoleArn'] = self.task_role_arn
        if self.tags:
            task_def['tags'] = self.tags

        return task_def


class TaskDefinitionBuilder:
    """Builder for the web application task definition."""

    def __init__(self, settings: Optional[Settings] = None, ecs_client=None,
                 logs_client=None, secrets_client=None):
        self.settings = settings or get_settings()
        self.region = self.settings.aws_region
        self.ecs_client = ecs_client or get_ecs_client()
        self.logs_client = logs_client or get_logs_client()
        self._secrets_client = secrets_client

        app_name = self.settings.app_name
        self.execution_role_arn = (self.settings.execution_role_arn or
                                   f"arn:aws:iam::{self.settings.account_id}:role/{app_name}-ecs-execution-role")
        self.task_role_arn = self.settings.task_role_arn

    @property
    def secrets_client(self):
        if self._secrets_client is None:
            self._secrets_client = get_secretsmanager_client()
        return self._secrets_client

    def ensure_db_password_secret(self) -> Optional[str]:
        """Return the ARN of the DB password secret, creating it from RDS_DB_PASSWORD if needed."""
        if self.settings.rds_password_secret_arn:
            return self.settings.rds_password_secret_arn
        if self.settings.rds_password is None:
            logger.warning("⚠️ No RDS_PASSWORD_SECRET_ARN or RDS_DB_PASSWORD - container starts without DB_PASSWORD")
            return None

        secret_name = f"{self.settings.app_name}/db-password"
        password = self.settings.rds_password.get_secret_value()
        try:
            response = self.secrets_client.create_secret(
                Name=secret_name,
                SecretString=password,
                Tags=[{'Key': 'Project', 'Value': self.settings.app_name}]
            )
            logger.info(f"Created secret: {secret_name}")
        except ClientError as e:
            if e.response['Error']['Code'] != 'ResourceExistsException':
                logger.error(f"Failed to create secret {secret_name}: {e}")
                raise
            response = self.secrets_client.put_secret_value(
                SecretId=secret_name,
                SecretString=password
            )
            logger.info(f"Updated secret value: {secret_name}")
        return response['ARN']

    def _container_environment(self) -> List[Dict[str, str]]:
        """Non-secret runtime environment; matches the values baked into .env."""
        s = self.settings
        return [
            {'name': 'APP_ENV', 'value': s.app_env},
            {'name': 'APP_URL', 'value': f"https://{s.domain_name}/" if s.domain_name else ''},
            {'name': 'DB_HOST', 'value': s.rds_endpoint or ''},
            {'name': 'DB_DATABASE', 'value': s.rds_db_name or ''},
            {'name': 'DB_USERNAME', 'value': s.rds_username or ''},
        ]

    def build_web_task_definition(self, image_uri: str, secret_arn: Optional[str] = None) -> Dict[str, Any]:
        """Build web task definition. Returns task definition dict."""
        family = self.settings.task_family
        container_name = self.settings.container_name
        log_group = self._create_log_group(f"/ecs/{family}")

        container = {
            'name': container_name,
            'image': image_uri,
            'essential': True,
            'portMappings': [
                {'containerPort': port, 'protocol': 'tcp'} for port in CONTAINER_PORTS
            ],
            'environment': self._container_environment(),
            'logConfiguration': {
                'logDriver': 'awslogs',
                'options': {
                    'awslogs-group': log_group,
                    'awslogs-region': self.region,
                    'awslogs-stream-prefix': 'web'
                }
            }
        }
        if secret_arn:
            container['secrets'] = [{'name': 'DB_PASSWORD', 'valueFrom': secret_arn}]

        config = TaskDefinitionConfig(
            family=family,
            cpu=self.settings.task_cpu,
            memory=self.settings.task_memory,
            execution_role_arn=self.execution_role_arn,
            task_role_arn=self.task_role_arn,
            container_definitions=[container],
            tags=[
                {'key': 'Name', 'value': family},
                {'key': 'Project', 'value': self.settings.app_name}
            ]
        )

        logger.info(f"Built web task definition: {family}")
        return config.to_dict()

    def create_web_task_definition(self, image_uri: str) -> str:
        """Create and register the web task definition. Returns task definition ARN."""
        secret_arn = self.ensure_db_password_secret()
        task_def_dict = self.build_web_task_definition(image_uri, secret_arn)
        return self._register_task_definition(task_def_dict)

    def _register_task_definition(self, task_def_dict: Dict[str, Any]) -> str:
        """Register task definition with ECS. Returns task definition ARN."""
        try:
            response = self.ecs_client.register_task_definition(**task_def_dict)
            task_def_arn = response['taskDefinition']['taskDefinitionArn']

            logger.info(f"Registered task definition: {task_def_arn}")
            return task_def_arn

        except ClientError as e:
            logger.error(f"Failed to register task definition {task_def_dict['family']}: {e}")
            raise

    def _create_log_group(self, log_group_name: str) -> str:
        """Create CloudWatch log group for ECS tasks."""
        try:
            response = self.logs_client.describe_log_groups(logGroupNamePrefix=log_group_name)
            for log_group in response.get('logGroups', []):
                if log_group['logGroupName'] == log_group_name:
                    logger.info(f"Using existing log group: {log_group_name}")
                    return log_group_name

            self.logs_client.create_log_group(
                logGroupName=log_group_name,
                tags={
                    'Name': log_group_name,
                    'Project': self.settings.app_name
                }
            )
            self.logs_client.put_retention_policy(
                logGroupName=log_group_name,
                retentionInDays=LOG_RETENTION_DAYS
            )

            logger.info(f"Created log group: {log_group_name}")
            return log_group_name

        except ClientError as e:
            if e.response['Error']['Code'] == 'ResourceAlreadyExistsException':
                return log_group_name
            logger.error(f"Failed to create log group: {e}")
            raise
