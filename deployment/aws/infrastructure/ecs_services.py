"""ECS service for the web application behind the load balancer."""
import logging
from typing import Dict, Any, Optional
from botocore.exceptions import ClientError

from deployment.settings import Settings, get_settings
from deployment.aws.utils.aws_clients import get_ecs_client
from deployment.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

HEALTH_CHECK_GRACE_SECONDS = 60
CONTAINER_PORT = 80


class ECSServiceManager:
    """Creates or updates the web service and keeps it attached to the target group."""

    def __init__(self, settings: Optional[Settings] = None, ecs_client=None):
        self.settings = settings or get_settings()
        self.ecs_client = ecs_client or get_ecs_client()
        self.cluster_name = self.settings.cluster_name
        self.service_name = self.settings.service_name

    def _network_configuration(self) -> Dict[str, Any]:
        subnets = self.settings.private_subnets
        if not subnets:
            raise ConfigurationError("Missing required settings: PRIVATE_SUBNET_IDS")
        return {
            'awsvpcConfiguration': {
                'subnets': subnets,
                'securityGroups': self.settings.security_groups,
                'assignPublicIp': 'DISABLED'
            }
        }

    def _load_balancers(self) -> list:
        if not self.settings.target_group_arn:
            raise ConfigurationError("Missing required settings: TARGET_GROUP_ARN")
        return [
            {
                'targetGroupArn': self.settings.target_group_arn,
                'containerName': self.settings.container_name,
                'containerPort': CONTAINER_PORT
            }
        ]

    def deploy_service(self, task_def_arn: str) -> Dict[str, Any]:
        """Create the service, or roll the existing one onto ``task_def_arn``."""
        existing_service = self._find_existing_service(self.service_name)

        try:
            if existing_service:
                # desiredCount belongs to auto scaling once the service exists
                logger.info(f"🔄 Updating existing service: {self.service_name}")
                response = self.ecs_client.update_service(
                    cluster=self.cluster_name,
                    service=self.service_name,
                    taskDefinition=task_def_arn,
                    networkConfiguration=self._network_configuration(),
                    forceNewDeployment=True
                )
            else:
                logger.info(f"🏗️ Creating service: {self.service_name}")
                response = self.ecs_client.create_service(
                    cluster=self.cluster_name,
                    serviceName=self.service_name,
                    taskDefinition=task_def_arn,
                    desiredCount=self.settings.desired_count,
                    launchType='FARGATE',
                    networkConfiguration=self._network_configuration(),
                    loadBalancers=self._load_balancers(),
                    healthCheckGracePeriodSeconds=HEALTH_CHECK_GRACE_SECONDS,
                    enableExecuteCommand=True,
                    tags=[
                        {'key': 'Name', 'value': self.service_name},
                        {'key': 'Project', 'value': self.settings.app_name}
                    ]
                )
        except ClientError as e:
            logger.error(f"Failed to deploy service {self.service_name}: {e}")
            raise

        service = response['service']
        logger.info(f"✅ Service {service['serviceName']} running {task_def_arn}")
        return service

    def wait_until_stable(self, delay: int = 15, max_attempts: int = 40) -> None:
        """Block until the service reaches steady state."""
        logger.info(f"⏳ Waiting for {self.service_name} to become stable")
        waiter = self.ecs_client.get_waiter('services_stable')
        waiter.wait(
            cluster=self.cluster_name,
            services=[self.service_name],
            WaiterConfig={'Delay': delay, 'MaxAttempts': max_attempts}
        )
        logger.info(f"✅ Service stable: {self.service_name}")

    def _find_existing_service(self, service_name: str) -> Optional[Dict[str, Any]]:
        """Find existing ACTIVE ECS service."""
        try:
            response = self.ecs_client.describe_services(
                cluster=self.cluster_name,
                services=[service_name]
            )
            for service in response.get('services', []):
                if service['status'] == 'ACTIVE':
                    return service
            return None
        except ClientError:
            return None

    def current_task_definition(self) -> str:
        """Task definition ARN the service is running."""
        service = self._find_existing_service(self.service_name)
        if not service:
            raise ConfigurationError(f"Service {self.service_name} not found in {self.cluster_name}")
        return service['taskDefinition']
