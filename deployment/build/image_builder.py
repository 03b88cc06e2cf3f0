"""
Container image build.

Purpose: assemble a docker build context for the PHP application and build the
image locally. The context is recreated from scratch on every run:

    <build_dir>/
        Dockerfile
        html/          application source with the rewritten .env

Any failing step aborts the build; nothing is cleaned up on failure because the
next run starts over.
"""
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from deployment.build.dockerfile import CONTEXT_WEB_DIR, render_dockerfile
from deployment.build.env_file import rewrite_env_file
from deployment.build.source_archive import SourceArchive
from deployment.exceptions import BuildError
from deployment.settings import Settings, get_settings

logger = logging.getLogger(__name__)

REQUIRED_BUILD_SETTINGS = (
    'personal_access_token',
    'github_username',
    'repository_name',
    'web_file_zip',
    'web_file_unzip',
    'domain_name',
    'rds_endpoint',
    'rds_db_name',
    'rds_username',
)

DOCKER_PLATFORM = "linux/amd64"


class ImageBuilder:
    """Builds the web image from the configured source archive."""

    def __init__(self, settings: Optional[Settings] = None,
                 source_archive: Optional[SourceArchive] = None):
        self.settings = settings or get_settings()
        self.context_dir = Path(self.settings.build_dir)
        self._source_archive = source_archive

    @property
    def archive_url(self) -> str:
        return self.settings.archive_url_template.format(
            github_username=self.settings.github_username,
            repository_name=self.settings.repository_name,
            web_file_zip=self.settings.web_file_zip,
        )

    @property
    def source_archive(self) -> SourceArchive:
        if self._source_archive is None:
            token = self.settings.personal_access_token
            self._source_archive = SourceArchive(
                self.archive_url,
                token=token.get_secret_value() if token else None,
            )
        return self._source_archive

    def prepare_context(self) -> Path:
        """Fetch the source, rewrite .env and write the Dockerfile into a fresh context."""
        self.settings.require(*REQUIRED_BUILD_SETTINGS)

        if self.context_dir.exists():
            shutil.rmtree(self.context_dir)
        self.context_dir.mkdir(parents=True)
        web_root = self.context_dir / CONTEXT_WEB_DIR

        self.source_archive.fetch_into(self.context_dir, self.settings.web_file_unzip, web_root)
        rewrite_env_file(web_root, self.settings.build_values())

        dockerfile = self.context_dir / "Dockerfile"
        dockerfile.write_text(render_dockerfile(), encoding='utf-8')
        logger.info(f"Build context ready: {self.context_dir}")
        return self.context_dir

    def build(self) -> str:
        """Prepare the context and run ``docker build``. Returns the local image tag."""
        context = self.prepare_context()
        tag = self.settings.local_image

        logger.info(f"📦 Building image {tag}")
        try:
            subprocess.run([
                "docker", "build",
                "--platform", DOCKER_PLATFORM,
                "-t", tag,
                "-f", str(context / "Dockerfile"),
                str(context)
            ], check=True)
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            logger.error(f"Docker build failed: {e}")
            raise BuildError(f"docker build failed for {tag}: {e}") from e

        logger.info(f"✅ Built image: {tag}")
        return tag
