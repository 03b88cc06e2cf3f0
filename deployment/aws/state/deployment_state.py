"""
Deployment State Tracking
Records per-step status of a run so the operator knows which step to re-run.
"""
import json
import logging
import time
from typing import Dict, Any, Optional
from pathlib import Path
from dataclasses import dataclass, asdict, field
from enum import Enum

logger = logging.getLogger(__name__)


class DeploymentStep(Enum):
    """Workflow steps in execution order."""
    BUILD = "build"
    PUSH = "push"
    DEPLOY = "deploy"
    MIGRATE = "migrate"
    EXPOSE = "expose"

    @classmethod
    def ordered(cls):
        return list(cls)


class StepStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class StepState:
    """State of a single workflow step."""
    step: str
    status: str
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    duration_seconds: Optional[float] = None
    resources: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None


@dataclass
class DeploymentState:
    """Complete deployment state tracking."""
    deployment_id: str
    mode: str
    started_at: float
    steps: Dict[str, StepState] = field(default_factory=dict)
    current_step: Optional[str] = None
    status: str = "in_progress"
    completed_at: Optional[float] = None
    total_duration: Optional[float] = None


class DeploymentStateManager:
    """Manages deployment state in a JSON file."""

    def __init__(self, state_file: str = ".deployment_state.json"):
        self.state_file = Path(state_file)
        self.state: Optional[DeploymentState] = None

    def start_deployment(self, deployment_id: str, mode: str) -> DeploymentState:
        """Start tracking a new deployment with every step pending."""
        self.state = DeploymentState(
            deployment_id=deployment_id,
            mode=mode,
            started_at=time.time()
        )
        for step in DeploymentStep:
            self.state.steps[step.value] = StepState(step=step.value, status=StepStatus.PENDING.value)

        self._save_state()
        logger.info(f"🚀 Started deployment tracking: {deployment_id} ({mode})")
        return self.state

    def _step(self, step: DeploymentStep) -> StepState:
        if not self.state:
            raise ValueError("No active deployment")
        return self.state.steps[step.value]

    def start_step(self, step: DeploymentStep) -> None:
        step_state = self._step(step)
        step_state.status = StepStatus.IN_PROGRESS.value
        step_state.started_at = time.time()
        self.state.current_step = step.value
        self._save_state()
        logger.info(f"📋 Step started: {step.value}")

    def complete_step(self, step: DeploymentStep, resources: Dict[str, Any] = None) -> None:
        step_state = self._step(step)
        step_state.status = StepStatus.COMPLETED.value
        step_state.completed_at = time.time()
        if step_state.started_at:
            step_state.duration_seconds = step_state.completed_at - step_state.started_at
        if resources:
            step_state.resources.update(resources)
        self._save_state()

        duration_str = f" in {step_state.duration_seconds:.1f}s" if step_state.duration_seconds else ""
        logger.info(f"✅ Step completed: {step.value}{duration_str}")

    def skip_step(self, step: DeploymentStep) -> None:
        self._step(step).status = StepStatus.SKIPPED.value
        self._save_state()
        logger.info(f"⏭️ Step skipped: {step.value}")

    def fail_step(self, step: DeploymentStep, error_message: str) -> None:
        step_state = self._step(step)
        step_state.status = StepStatus.FAILED.value
        step_state.error_message = error_message
        step_state.completed_at = time.time()
        if step_state.started_at:
            step_state.duration_seconds = step_state.completed_at - step_state.started_at

        self.state.status = "failed"
        self.state.completed_at = time.time()
        self.state.total_duration = self.state.completed_at - self.state.started_at
        self._save_state()

        logger.error(f"❌ Step failed: {step.value} - {error_message}")

    def complete_deployment(self) -> None:
        if not self.state:
            raise ValueError("No active deployment")

        self.state.status = "completed"
        self.state.completed_at = time.time()
        self.state.total_duration = self.state.completed_at - self.state.started_at
        self.state.current_step = None
        self._save_state()

        logger.info(f"🎉 Deployment completed: {self.state.deployment_id} in {self.state.total_duration:.1f}s")

    def load_state(self) -> Optional[DeploymentState]:
        """Load deployment state from file."""
        if not self.state_file.exists():
            return None

        try:
            with open(self.state_file, 'r') as f:
                data = json.load(f)
            data['steps'] = {name: StepState(**step) for name, step in data['steps'].items()}
            self.state = DeploymentState(**data)
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.warning(f"⚠️ Failed to load deployment state: {e}")
            return None

        logger.info(f"📋 Loaded deployment state: {self.state.deployment_id}")
        return self.state

    def _save_state(self) -> None:
        if not self.state:
            return

        try:
            with open(self.state_file, 'w') as f:
                json.dump(asdict(self.state), f, indent=2, default=str)
        except OSError as e:
            logger.error(f"❌ Failed to save deployment state: {e}")

    def get_status_summary(self) -> Dict[str, Any]:
        if not self.state:
            return {"status": "no_deployment"}

        completed = sum(1 for s in self.state.steps.values() if s.status == StepStatus.COMPLETED.value)
        return {
            "deployment_id": self.state.deployment_id,
            "mode": self.state.mode,
            "status": self.state.status,
            "current_step": self.state.current_step,
            "progress": f"{completed}/{len(self.state.steps)}",
            "duration": self.state.total_duration,
            "started_at": self.state.started_at,
            "steps": {
                name: {
                    "status": step.status,
                    "duration": step.duration_seconds,
                    "error": step.error_message
                } for name, step in self.state.steps.items()
            }
        }


def create_deployment_id(mode: str) -> str:
    """Create unique deployment ID."""
    return f"{mode}-{int(time.time())}"
