# cli.py
import json
import logging
import sys

import click

from deployment.settings import get_settings
from deployment.exceptions import DeploymentError
from deployment.aws.state.deployment_state import DeploymentStateManager, DeploymentStep
from deployment.aws.orchestration.deploy_ecs import DeploymentPipeline

logger = logging.getLogger(__name__)

STEP_NAMES = [step.value for step in DeploymentStep]


@click.group()
def cli():
    """Build, publish and deploy the PHP application to ECS"""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def _run(from_step, to_step, wait):
    pipeline = DeploymentPipeline(wait=wait)
    try:
        result = pipeline.run(from_step=from_step, to_step=to_step)
    except DeploymentError as e:
        logger.error(f"❌ Deployment aborted: {e}")
        logger.error(f"Fix the problem and re-run with --from-step {getattr(e, 'step', from_step or STEP_NAMES[0])}")
        sys.exit(1)

    print(json.dumps(result, indent=2, default=str))


@cli.command()
def show_config():
    """Show current configuration (secrets masked)"""
    settings = get_settings()

    print("Current Configuration:")
    print(f"  Deployment Mode: {settings.deployment_mode}")
    print(f"  AWS Region: {settings.aws_region}")
    print(f"  AWS Endpoint: {settings.aws_endpoint_url}")
    print(f"  Source: {settings.github_username}/{settings.repository_name} ({settings.web_file_zip})")
    print(f"  Personal Access Token: {settings.personal_access_token}")
    print(f"  Domain: {settings.domain_name}")
    print(f"  Database: {settings.rds_username}@{settings.rds_endpoint}/{settings.rds_db_name}")
    print(f"  Database Password: {settings.rds_password}")
    print(f"  ECR Repository: {settings.ecr_repo_name}:{settings.image_tag}")
    print(f"  ECS Cluster: {settings.cluster_name}")
    print(f"  ECS Service: {settings.service_name}")
    print(f"  Capacity: desired={settings.desired_count} min={settings.min_capacity} max={settings.max_capacity}")


@cli.command()
@click.option("--from-step", type=click.Choice(STEP_NAMES), default=None,
              help="First step to run (earlier steps are skipped)")
@click.option("--to-step", type=click.Choice(STEP_NAMES), default=None,
              help="Last step to run")
@click.option("--wait/--no-wait", default=True,
              help="Wait for service stability and certificate validation")
def run(from_step, to_step, wait):
    """Run the full workflow: build, push, deploy, migrate, expose"""
    _run(from_step, to_step, wait)


def _single_step_command(step: str, help_text: str):
    @click.option("--wait/--no-wait", default=True,
                  help="Wait for AWS resources to settle")
    def command(wait):
        _run(step, step, wait)
    command.__doc__ = help_text
    return cli.command(name=step)(command)


build = _single_step_command("build", "Build the container image")
push = _single_step_command("push", "Push the image to ECR")
deploy = _single_step_command("deploy", "Register the task definition and update the ECS service")
migrate = _single_step_command("migrate", "Run database migrations as a one-off task")
expose = _single_step_command("expose", "Issue the certificate and point DNS at the load balancer")


@cli.command()
def status():
    """Show the state of the last deployment run"""
    manager = DeploymentStateManager(get_settings().state_file)
    if manager.load_state():
        print(json.dumps(manager.get_status_summary(), indent=2))
    else:
        print("No deployment state found")


if __name__ == "__main__":
    cli()
