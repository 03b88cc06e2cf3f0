"""Linear deployment workflow: build → push → deploy → migrate → expose."""
import functools
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from deployment.settings import Settings, get_settings
from deployment.exceptions import ConfigurationError, StepFailedError
from deployment.aws.state.deployment_state import (
    DeploymentStateManager,
    DeploymentStep,
    create_deployment_id
)
from deployment.build.image_builder import ImageBuilder
from deployment.aws.infrastructure.ecr import ECRPublisher
from deployment.aws.infrastructure.ecs_task_definitions import TaskDefinitionBuilder
from deployment.aws.infrastructure.ecs_services import ECSServiceManager
from deployment.aws.infrastructure.ecs_scaling import ECSAutoScaler, ECSScalingConfig
from deployment.aws.infrastructure.migrations import DataMigrator
from deployment.aws.infrastructure.dns import DomainManager

logger = logging.getLogger(__name__)


def log_operation(description: str):
    """Decorator for timing and logging deployment operations."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger.info(f"Starting: {description}")
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                duration = time.time() - start_time
                logger.info(f"Completed: {description} in {duration:.2f}s")
                return result
            except Exception as e:
                duration = time.time() - start_time
                logger.error(f"Failed: {description} after {duration:.2f}s - {str(e)}")
                raise
        return wrapper
    return decorator


class DeploymentPipeline:
    """Runs the deployment steps in order; the first failure aborts the run.

    Components are created on first use so a partial run only needs the
    clients and settings of the steps it executes. Any of them can be passed
    in explicitly.
    """

    def __init__(self, settings: Optional[Settings] = None,
                 state_manager: Optional[DeploymentStateManager] = None,
                 wait: bool = True, **components):
        self.settings = settings or get_settings()
        self.state_manager = state_manager or DeploymentStateManager(self.settings.state_file)
        self.wait = wait
        self._components = components
        self.context: Dict[str, Any] = {}

    def _component(self, name: str, factory: Callable[[], Any]) -> Any:
        if name not in self._components:
            self._components[name] = factory()
        return self._components[name]

    @property
    def image_builder(self):
        return self._component('image_builder', lambda: ImageBuilder(self.settings))

    @property
    def publisher(self):
        return self._component('publisher', lambda: ECRPublisher(self.settings))

    @property
    def task_builder(self):
        return self._component('task_builder', lambda: TaskDefinitionBuilder(self.settings))

    @property
    def service_manager(self):
        return self._component('service_manager', lambda: ECSServiceManager(self.settings))

    @property
    def auto_scaler(self):
        return self._component('auto_scaler',
                               lambda: ECSAutoScaler(ECSScalingConfig.from_settings(self.settings)))

    @property
    def migrator(self):
        return self._component('migrator', lambda: DataMigrator(self.settings))

    @property
    def domain_manager(self):
        return self._component('domain_manager', lambda: DomainManager(self.settings))

    # Steps

    @log_operation("Image build")
    def build(self) -> Dict[str, Any]:
        local_image = self.image_builder.build()
        self.context['local_image'] = local_image
        return {"local_image": local_image}

    @log_operation("Registry publish")
    def push(self) -> Dict[str, Any]:
        result = self.publisher.publish(self.context.get('local_image'))
        self.context['image_uri'] = result['image_uri']
        return result

    @log_operation("Service deployment")
    def deploy(self) -> Dict[str, Any]:
        image_uri = self.context.get('image_uri') or self.settings.image_uri
        task_def_arn = self.task_builder.create_web_task_definition(image_uri)
        self.context['task_def_arn'] = task_def_arn

        service = self.service_manager.deploy_service(task_def_arn)
        scaling = self.auto_scaler.setup_auto_scaling()
        if self.wait:
            self.service_manager.wait_until_stable()

        return {
            "image_uri": image_uri,
            "task_definition_arn": task_def_arn,
            "service_arn": service.get('serviceArn'),
            "scaling": scaling
        }

    @log_operation("Database migration")
    def migrate(self) -> Dict[str, Any]:
        task_def_arn = self.context.get('task_def_arn') or self.service_manager.current_task_definition()
        source_root = Path(self.settings.build_dir) / "html"
        return self.migrator.migrate(task_def_arn, source_root)

    @log_operation("Domain exposure")
    def expose(self) -> Dict[str, Any]:
        return self.domain_manager.expose(wait=self.wait)

    def _handler(self, step: DeploymentStep) -> Callable[[], Dict[str, Any]]:
        return getattr(self, step.value)

    def run(self, from_step: Optional[str] = None, to_step: Optional[str] = None) -> Dict[str, Any]:
        """Run steps ``from_step`` through ``to_step`` (inclusive), skipping the rest."""
        steps = DeploymentStep.ordered()
        names = [s.value for s in steps]
        start = names.index(from_step) if from_step else 0
        end = names.index(to_step) if to_step else len(steps) - 1
        if start > end:
            raise ConfigurationError(f"--from-step {from_step} comes after --to-step {to_step}")

        mode = self.settings.deployment_mode
        deployment_id = create_deployment_id(mode)
        self.state_manager.start_deployment(deployment_id, mode)
        logger.info(f"🚀 Deploying {self.settings.app_name}: {' → '.join(names[start:end + 1])}")

        results = {}
        for index, step in enumerate(steps):
            if index < start or index > end:
                self.state_manager.skip_step(step)
                continue

            self.state_manager.start_step(step)
            try:
                result = self._handler(step)()
            except Exception as e:
                self.state_manager.fail_step(step, str(e))
                raise StepFailedError(step.value, e) from e
            self.state_manager.complete_step(step, result)
            results[step.value] = result

        self.state_manager.complete_deployment()
        return {
            "status": "success",
            "deployment_id": deployment_id,
            "mode": mode,
            "region": self.settings.aws_region,
            "steps": results
        }
