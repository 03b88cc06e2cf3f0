"""ECR repository management and image publishing."""
import base64
import logging
import subprocess
from typing import Any, Dict, Optional, Tuple

from botocore.exceptions import ClientError

from deployment.aws.utils.aws_clients import get_ecr_client
from deployment.exceptions import PublishError
from deployment.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class ECRPublisher:
    """Authenticates to ECR, tags the local image and pushes it."""

    def __init__(self, settings: Optional[Settings] = None, ecr_client=None):
        self.settings = settings or get_settings()
        self.ecr_client = ecr_client or get_ecr_client()
        self.repo_name = self.settings.ecr_repo_name
        self.image_tag = self.settings.image_tag

    def ensure_repository(self) -> str:
        """Create the repository when missing. Returns its URI."""
        try:
            response = self.ecr_client.describe_repositories(repositoryNames=[self.repo_name])
            repository = response['repositories'][0]
            logger.info(f"ECR repository '{self.repo_name}' exists")
        except self.ecr_client.exceptions.RepositoryNotFoundException:
            logger.info(f"ECR repository '{self.repo_name}' does not exist - creating")
            response = self.ecr_client.create_repository(
                repositoryName=self.repo_name,
                imageScanningConfiguration={'scanOnPush': True},
                tags=[
                    {'Key': 'Project', 'Value': self.settings.app_name},
                    {'Key': 'Purpose', 'Value': 'Container-Registry'}
                ]
            )
            repository = response['repository']
            logger.info(f"Created ECR repository: {self.repo_name}")
        return repository['repositoryUri']

    def get_login(self) -> Tuple[str, str, str]:
        """Short-lived registry credentials: (username, password, registry endpoint)."""
        token_response = self.ecr_client.get_authorization_token()
        token_data = token_response['authorizationData'][0]
        token = base64.b64decode(token_data['authorizationToken']).decode('utf-8')
        username, password = token.split(':', 1)
        return username, password, token_data['proxyEndpoint']

    def image_uri(self, repository_uri: str) -> str:
        return f"{repository_uri}:{self.image_tag}"

    def image_exists(self) -> bool:
        """Check whether the tag is visible in the repository."""
        try:
            response = self.ecr_client.describe_images(
                repositoryName=self.repo_name,
                imageIds=[{'imageTag': self.image_tag}]
            )
            images = response.get('imageDetails', [])
            if images:
                image_size_mb = images[0].get('imageSizeInBytes', 0) / (1024 * 1024)
                logger.info(f"Found image: {image_size_mb:.1f} MB, pushed {images[0].get('imagePushedAt', 'unknown time')}")
                return True
            return False
        except self.ecr_client.exceptions.ImageNotFoundException:
            return False

    def publish(self, local_image: Optional[str] = None) -> Dict[str, Any]:
        """Log in, tag and push. Any failure aborts; there is no retry."""
        local_image = local_image or self.settings.local_image

        try:
            repository_uri = self.ensure_repository()
            username, password, endpoint = self.get_login()
        except ClientError as e:
            logger.error(f"ECR authentication failed: {e}")
            raise

        remote_image = self.image_uri(repository_uri)
        try:
            subprocess.run([
                "docker", "login", "--username", username, "--password-stdin", endpoint
            ], input=password.encode(), check=True)

            subprocess.run(["docker", "tag", local_image, remote_image], check=True)
            subprocess.run(["docker", "push", remote_image], check=True)
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            logger.error(f"Docker push failed: {e}")
            raise PublishError(f"Failed to push {remote_image}: {e}") from e

        logger.info(f"✅ Pushed image to ECR: {remote_image}")
        return {
            "repository_uri": repository_uri,
            "image_uri": remote_image,
            "verified": self.image_exists(),
        }
