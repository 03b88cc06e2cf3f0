"""Download and unpack the application source archive into the build context."""
import logging
import shutil
import zipfile
from pathlib import Path
from typing import Optional

import requests

from deployment.exceptions import ArchiveError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class SourceArchive:
    """Fetches ``web_file_zip`` from the repository and copies ``web_file_unzip`` into a web root."""

    def __init__(self, url: str, token: Optional[str] = None, timeout: int = 60,
                 session: Optional[requests.Session] = None):
        self.url = url
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def download(self, destination: Path) -> Path:
        """Stream the archive to ``destination``. The token travels in a header, never in the URL."""
        headers = {}
        if self.token:
            headers['Authorization'] = f"token {self.token}"

        logger.info(f"📥 Downloading source archive: {self.url}")
        try:
            with self.session.get(self.url, headers=headers, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                destination.parent.mkdir(parents=True, exist_ok=True)
                with open(destination, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
        except requests.RequestException as e:
            raise ArchiveError(f"Failed to download {self.url}: {e}") from e

        logger.info(f"Downloaded {destination.stat().st_size / (1024 * 1024):.1f} MB to {destination}")
        return destination

    @staticmethod
    def extract(archive_path: Path, destination: Path) -> Path:
        """Extract a zip archive, refusing entries that escape ``destination``."""
        destination = destination.resolve()
        try:
            with zipfile.ZipFile(archive_path) as zf:
                for member in zf.namelist():
                    target = (destination / member).resolve()
                    if target != destination and destination not in target.parents:
                        raise ArchiveError(f"Archive entry escapes extraction directory: {member}")
                zf.extractall(destination)
        except zipfile.BadZipFile as e:
            raise ArchiveError(f"{archive_path} is not a valid zip archive: {e}") from e
        return destination

    @staticmethod
    def copy_tree(source_dir: Path, web_root: Path) -> Path:
        """Copy the contents of ``source_dir`` (not the directory itself) into ``web_root``."""
        if not source_dir.is_dir():
            raise ArchiveError(f"Directory {source_dir.name} not found in archive")
        web_root.mkdir(parents=True, exist_ok=True)
        shutil.copytree(source_dir, web_root, dirs_exist_ok=True)
        return web_root

    def fetch_into(self, workdir: Path, subdirectory: str, web_root: Path) -> Path:
        """Download, extract, copy ``subdirectory`` into ``web_root`` and delete the transient files."""
        archive_path = workdir / Path(self.url).name
        extract_dir = workdir / "extracted"
        try:
            self.download(archive_path)
            self.extract(archive_path, extract_dir)
            self.copy_tree(extract_dir / subdirectory, web_root)
        finally:
            if archive_path.exists():
                archive_path.unlink()
            shutil.rmtree(extract_dir, ignore_errors=True)
        logger.info(f"✅ Application source copied to {web_root}")
        return web_root
