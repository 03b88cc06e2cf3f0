"""
ECS service auto-scaling on load balancer traffic.

Registers the service's desired count as an Application Auto Scaling target and
attaches a target-tracking policy on ALBRequestCountPerTarget.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional

from deployment.aws.utils.aws_clients import get_application_autoscaling_client
from deployment.exceptions import ConfigurationError
from deployment.settings import Settings

logger = logging.getLogger(__name__)

METRIC_TYPE = "ALBRequestCountPerTarget"


@dataclass
class ECSScalingConfig:
    """ECS service scaling configuration."""
    service_name: str
    cluster_name: str
    min_capacity: int = 1
    max_capacity: int = 4
    target_requests_per_task: float = 1000.0
    resource_label: Optional[str] = None  # app/<alb>/<id>/targetgroup/<tg>/<id>
    scale_out_cooldown: int = 60
    scale_in_cooldown: int = 300

    @classmethod
    def from_settings(cls, settings: Settings) -> 'ECSScalingConfig':
        return cls(
            service_name=settings.service_name,
            cluster_name=settings.cluster_name,
            min_capacity=settings.min_capacity,
            max_capacity=settings.max_capacity,
            target_requests_per_task=settings.requests_per_target,
            resource_label=resource_label(settings.load_balancer_arn_suffix, settings.target_group_arn),
        )


def resource_label(load_balancer_arn_suffix: Optional[str], target_group_arn: Optional[str]) -> Optional[str]:
    """``app/<lb>/<id>/targetgroup/<tg>/<id>`` from the ALB suffix and target group ARN."""
    if not load_balancer_arn_suffix or not target_group_arn:
        return None
    target_group_suffix = target_group_arn.split(':')[-1]
    return f"{load_balancer_arn_suffix}/{target_group_suffix}"


class ECSAutoScaler:
    """Target-tracking auto-scaling for the web service."""

    def __init__(self, config: ECSScalingConfig, autoscaling_client=None):
        self.config = config
        self.autoscaling_client = autoscaling_client or get_application_autoscaling_client()

        self.resource_id = f"service/{config.cluster_name}/{config.service_name}"
        self.namespace = "ecs"
        self.scalable_dimension = "ecs:service:DesiredCount"

    def setup_auto_scaling(self) -> Dict[str, Any]:
        """Register the scalable target and put the request count policy."""
        self._register_scalable_target()
        policy_arn = self._put_target_tracking_policy()

        scaling_setup = {
            "resource_id": self.resource_id,
            "min_capacity": self.config.min_capacity,
            "max_capacity": self.config.max_capacity,
            "policy": policy_arn,
            "metric": METRIC_TYPE,
            "target_value": self.config.target_requests_per_task
        }
        logger.info(f"Auto-scaling configured for {self.config.service_name}")
        return scaling_setup

    def _register_scalable_target(self) -> None:
        try:
            self.autoscaling_client.register_scalable_target(
                ServiceNamespace=self.namespace,
                ResourceId=self.resource_id,
                ScalableDimension=self.scalable_dimension,
                MinCapacity=self.config.min_capacity,
                MaxCapacity=self.config.max_capacity
            )
            logger.info(f"Registered scalable target: {self.resource_id} "
                        f"({self.config.min_capacity}-{self.config.max_capacity})")
        except Exception as e:
            logger.error(f"Failed to register scalable target: {e}")
            raise

    def _put_target_tracking_policy(self) -> str:
        policy_name = f"{self.config.service_name}-request-count"
        if not self.config.resource_label:
            raise ConfigurationError("Missing required settings: LOAD_BALANCER_ARN_SUFFIX, TARGET_GROUP_ARN")
        metric = {
            'PredefinedMetricType': METRIC_TYPE,
            'ResourceLabel': self.config.resource_label
        }

        try:
            response = self.autoscaling_client.put_scaling_policy(
                PolicyName=policy_name,
                ServiceNamespace=self.namespace,
                ResourceId=self.resource_id,
                ScalableDimension=self.scalable_dimension,
                PolicyType="TargetTrackingScaling",
                TargetTrackingScalingPolicyConfiguration={
                    'TargetValue': self.config.target_requests_per_task,
                    'PredefinedMetricSpecification': metric,
                    'ScaleOutCooldown': self.config.scale_out_cooldown,
                    'ScaleInCooldown': self.config.scale_in_cooldown
                }
            )
        except Exception as e:
            logger.error(f"Failed to create scaling policy: {e}")
            raise

        policy_arn = response['PolicyARN']
        logger.info(f"Created scaling policy: {policy_name}")
        return policy_arn
