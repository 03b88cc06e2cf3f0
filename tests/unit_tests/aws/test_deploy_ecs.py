import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from deployment.aws.orchestration.deploy_ecs import DeploymentPipeline
from deployment.aws.state.deployment_state import DeploymentStateManager
from deployment.exceptions import ConfigurationError, PublishError, StepFailedError

REMOTE_IMAGE = "123456789012.dkr.ecr.us-east-1.amazonaws.com/rentzone:latest"
TASK_DEF_ARN = "arn:aws:ecs:us-east-1:123456789012:task-definition/rentzone-task:7"

COMPONENTS = (
    "image_builder",
    "publisher",
    "task_builder",
    "service_manager",
    "auto_scaler",
    "migrator",
    "domain_manager",
)


@pytest.fixture
def components():
    parent = MagicMock()
    parent.image_builder.build.return_value = "rentzone:latest"
    parent.publisher.publish.return_value = {"image_uri": REMOTE_IMAGE, "verified": True}
    parent.task_builder.create_web_task_definition.return_value = TASK_DEF_ARN
    parent.service_manager.deploy_service.return_value = {"serviceArn": "arn:service/rentzone-service"}
    parent.service_manager.current_task_definition.return_value = "arn:current-task-def"
    parent.auto_scaler.setup_auto_scaling.return_value = {"metric": "ALBRequestCountPerTarget"}
    parent.migrator.migrate.return_value = {"exit_code": 0, "migrations": []}
    parent.domain_manager.expose.return_value = {"url": "https://example.com/"}
    return parent


def _pipeline(settings, components, wait=False):
    kwargs = {name: getattr(components, name) for name in COMPONENTS}
    return DeploymentPipeline(settings, wait=wait, **kwargs)


def _called(components):
    return [name for name, _args, _kwargs in components.mock_calls]


def _state(settings):
    return json.loads(Path(settings.state_file).read_text())


def test_run__steps_in_order(settings, components):
    result = _pipeline(settings, components).run()

    assert _called(components) == [
        "image_builder.build",
        "publisher.publish",
        "task_builder.create_web_task_definition",
        "service_manager.deploy_service",
        "auto_scaler.setup_auto_scaling",
        "migrator.migrate",
        "domain_manager.expose",
    ]
    assert result["status"] == "success"
    assert list(result["steps"]) == ["build", "push", "deploy", "migrate", "expose"]
    assert {s["status"] for s in _state(settings)["steps"].values()} == {"completed"}


def test_run__outputs_flow_between_steps(settings, components):
    _pipeline(settings, components).run()

    components.publisher.publish.assert_called_once_with("rentzone:latest")
    components.task_builder.create_web_task_definition.assert_called_once_with(REMOTE_IMAGE)
    components.service_manager.deploy_service.assert_called_once_with(TASK_DEF_ARN)
    task_def_arn, source_root = components.migrator.migrate.call_args.args
    assert task_def_arn == TASK_DEF_ARN
    assert source_root == Path(settings.build_dir) / "html"


def test_run__waits_when_requested(settings, components):
    _pipeline(settings, components, wait=True).run()

    components.service_manager.wait_until_stable.assert_called_once()
    components.domain_manager.expose.assert_called_once_with(wait=True)


def test_run__first_failure_aborts(settings, components):
    components.publisher.publish.side_effect = PublishError("denied")

    with pytest.raises(StepFailedError) as exc_info:
        _pipeline(settings, components).run()

    assert exc_info.value.step == "push"
    assert isinstance(exc_info.value.cause, PublishError)
    components.task_builder.create_web_task_definition.assert_not_called()
    components.migrator.migrate.assert_not_called()

    state = _state(settings)
    assert state["status"] == "failed"
    assert state["steps"]["build"]["status"] == "completed"
    assert state["steps"]["push"]["status"] == "failed"
    assert state["steps"]["push"]["error_message"] == "denied"
    assert state["steps"]["deploy"]["status"] == "pending"


def test_run__resume_from_deploy_uses_configured_image(settings, components):
    result = _pipeline(settings, components).run(from_step="deploy")

    components.image_builder.build.assert_not_called()
    components.publisher.publish.assert_not_called()
    components.task_builder.create_web_task_definition.assert_called_once_with(settings.image_uri)
    assert list(result["steps"]) == ["deploy", "migrate", "expose"]

    steps = _state(settings)["steps"]
    assert steps["build"]["status"] == "skipped"
    assert steps["push"]["status"] == "skipped"


def test_run__migrate_alone_uses_running_task_definition(settings, components):
    _pipeline(settings, components).run(from_step="migrate", to_step="migrate")

    components.service_manager.current_task_definition.assert_called_once()
    assert components.migrator.migrate.call_args.args[0] == "arn:current-task-def"
    components.domain_manager.expose.assert_not_called()
    assert _state(settings)["steps"]["expose"]["status"] == "skipped"


def test_run__from_after_to_is_rejected(settings, components):
    with pytest.raises(ConfigurationError, match="comes after"):
        _pipeline(settings, components).run(from_step="expose", to_step="build")
    assert components.mock_calls == []


def test_pipeline__state_manager_follows_settings(settings, components):
    pipeline = _pipeline(settings, components)
    assert isinstance(pipeline.state_manager, DeploymentStateManager)
    assert str(pipeline.state_manager.state_file) == settings.state_file
