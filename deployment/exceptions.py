"""Exceptions raised by the deployment workflow."""


class DeploymentError(Exception):
    """Base class for deployment failures."""


class ConfigurationError(DeploymentError):
    """Required settings are missing."""


class SubstitutionError(DeploymentError):
    """A .env substitution expression could not be applied."""


class ArchiveError(DeploymentError):
    """The application source archive could not be fetched or unpacked."""


class BuildError(DeploymentError):
    """Container image build failed."""


class PublishError(DeploymentError):
    """Image could not be pushed to the registry."""


class MigrationError(DeploymentError):
    """Database migration task failed."""


class StepFailedError(DeploymentError):
    """A workflow step failed and the run was aborted."""

    def __init__(self, step: str, cause: Exception):
        self.step = step
        self.cause = cause
        super().__init__(f"Step '{step}' failed: {cause}")
