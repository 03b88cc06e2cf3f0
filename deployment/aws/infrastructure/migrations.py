"""
Database migrations.

Migrations are applied by the application's own migration tool inside a one-off
Fargate task that uses the service's task definition, so it reaches the RDS
endpoint from the same subnets with the same injected credentials. Which
migrations are pending is the tool's bookkeeping; the plan logged here is the
ordered list found in the source tree.
"""
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from botocore.exceptions import ClientError, WaiterError

from deployment.aws.utils.aws_clients import get_ecs_client
from deployment.exceptions import ConfigurationError, MigrationError
from deployment.settings import Settings, get_settings

logger = logging.getLogger(__name__)

MIGRATION_COMMAND = ("php", "artisan", "migrate", "--force")
MIGRATION_FILE_RE = re.compile(r'^(?P<version>\d{4}_\d{2}_\d{2}_\d{6})_(?P<name>\w+)\.php$')


@dataclass(frozen=True)
class Migration:
    version: str
    name: str
    path: Path


def discover_migrations(directory: Path) -> List[Migration]:
    """Migration files under ``directory`` in version order (name breaks ties)."""
    directory = Path(directory)
    if not directory.is_dir():
        logger.warning(f"⚠️ Migration directory not found: {directory}")
        return []

    migrations = []
    for path in directory.iterdir():
        if not path.is_file() or path.suffix != '.php':
            continue
        match = MIGRATION_FILE_RE.match(path.name)
        if not match:
            logger.warning(f"⚠️ Ignoring file without a version prefix: {path.name}")
            continue
        migrations.append(Migration(match.group('version'), match.group('name'), path))

    return sorted(migrations, key=lambda m: (m.version, m.name))


class DataMigrator:
    """Runs the migration command as a one-off ECS task and checks its exit code."""

    def __init__(self, settings: Optional[Settings] = None, ecs_client=None,
                 command: Sequence[str] = MIGRATION_COMMAND):
        self.settings = settings or get_settings()
        self.ecs_client = ecs_client or get_ecs_client()
        self.cluster_name = self.settings.cluster_name
        self.command = list(command)

    def plan(self, source_root: Optional[Path] = None) -> List[Migration]:
        """Log the migrations shipped with the build, oldest first."""
        root = Path(source_root) if source_root else Path(self.settings.build_dir) / "html"
        migrations = discover_migrations(root / self.settings.migrations_dir)
        logger.info(f"📋 {len(migrations)} migration(s) in source tree")
        for migration in migrations:
            logger.info(f"   {migration.version} {migration.name}")
        return migrations

    def run_migration_task(self, task_def_arn: str) -> str:
        """Start the migration task. Returns the task ARN."""
        subnets = self.settings.private_subnets
        if not subnets:
            raise ConfigurationError("Missing required settings: PRIVATE_SUBNET_IDS")

        try:
            response = self.ecs_client.run_task(
                cluster=self.cluster_name,
                taskDefinition=task_def_arn,
                launchType='FARGATE',
                count=1,
                networkConfiguration={
                    'awsvpcConfiguration': {
                        'subnets': subnets,
                        'securityGroups': self.settings.security_groups,
                        'assignPublicIp': 'DISABLED'
                    }
                },
                overrides={
                    'containerOverrides': [
                        {'name': self.settings.container_name, 'command': self.command}
                    ]
                },
                tags=[
                    {'key': 'Project', 'value': self.settings.app_name},
                    {'key': 'Purpose', 'value': 'Database-Migration'}
                ]
            )
        except ClientError as e:
            logger.error(f"Failed to start migration task: {e}")
            raise

        failures = response.get('failures', [])
        if failures or not response.get('tasks'):
            reasons = ", ".join(f.get('reason', 'unknown') for f in failures) or "no task started"
            raise MigrationError(f"Migration task did not start: {reasons}")

        task_arn = response['tasks'][0]['taskArn']
        logger.info(f"Started migration task: {task_arn}")
        return task_arn

    def wait_for_task(self, task_arn: str, delay: int = 6, max_attempts: int = 100) -> int:
        """Wait for the task to stop and return the migration container's exit code."""
        logger.info(f"⏳ Waiting for migration task: {task_arn}")
        try:
            self.ecs_client.get_waiter('tasks_stopped').wait(
                cluster=self.cluster_name,
                tasks=[task_arn],
                WaiterConfig={'Delay': delay, 'MaxAttempts': max_attempts}
            )
        except WaiterError as e:
            raise MigrationError(f"Migration task did not stop: {e}") from e

        response = self.ecs_client.describe_tasks(cluster=self.cluster_name, tasks=[task_arn])
        if not response.get('tasks'):
            raise MigrationError(f"Task not found: {task_arn}")

        task = response['tasks'][0]
        for container in task.get('containers', []):
            if container.get('name') == self.settings.container_name:
                exit_code = container.get('exitCode')
                if exit_code is None:
                    reason = container.get('reason') or task.get('stoppedReason', 'unknown')
                    raise MigrationError(f"Migration container has no exit code: {reason}")
                return exit_code

        raise MigrationError(f"Container {self.settings.container_name} not found in task {task_arn}")

    def migrate(self, task_def_arn: str, source_root: Optional[Path] = None) -> dict:
        """Apply pending migrations against the configured database."""
        migrations = self.plan(source_root)
        task_arn = self.run_migration_task(task_def_arn)
        exit_code = self.wait_for_task(task_arn)

        if exit_code != 0:
            logger.error(f"❌ Migration task exited with {exit_code}")
            raise MigrationError(f"Migration task {task_arn} exited with {exit_code}")

        logger.info("✅ Migrations applied")
        return {
            "task_arn": task_arn,
            "exit_code": exit_code,
            "migrations": [m.path.name for m in migrations],
        }
