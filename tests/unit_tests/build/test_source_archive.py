import io
import zipfile
from unittest.mock import MagicMock

import pytest
import requests

from deployment.build.source_archive import SourceArchive
from deployment.exceptions import ArchiveError

ARCHIVE_URL = "https://raw.githubusercontent.com/octocat/application-codes/main/rentzone.zip"


def _zip_bytes(files):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


def _session_returning(payload):
    response = MagicMock()
    response.__enter__.return_value = response
    response.iter_content.return_value = [payload]
    session = MagicMock()
    session.get.return_value = response
    return session


@pytest.fixture
def archive_payload():
    return _zip_bytes({
        "rentzone/index.php": "<?php echo 'hi';",
        "rentzone/.env.example": "APP_ENV=local\n",
        "rentzone/database/migrations/2014_10_12_000000_create_users_table.php": "<?php",
        "other/readme.txt": "ignored",
    })


def test_download__token_sent_in_header_not_url(tmp_path, archive_payload):
    session = _session_returning(archive_payload)
    archive = SourceArchive(ARCHIVE_URL, token="ghp_testtoken", session=session)

    archive.download(tmp_path / "rentzone.zip")

    url = session.get.call_args.args[0]
    headers = session.get.call_args.kwargs["headers"]
    assert url == ARCHIVE_URL
    assert "ghp_testtoken" not in url
    assert headers == {"Authorization": "token ghp_testtoken"}
    assert (tmp_path / "rentzone.zip").read_bytes() == archive_payload


def test_download__no_token_no_header(tmp_path, archive_payload):
    session = _session_returning(archive_payload)
    SourceArchive(ARCHIVE_URL, session=session).download(tmp_path / "rentzone.zip")
    assert session.get.call_args.kwargs["headers"] == {}


def test_download__http_error_becomes_archive_error(tmp_path):
    session = _session_returning(b"")
    session.get.return_value.raise_for_status.side_effect = requests.HTTPError("404 Not Found")

    with pytest.raises(ArchiveError, match="404"):
        SourceArchive(ARCHIVE_URL, session=session).download(tmp_path / "rentzone.zip")


def test_extract__rejects_path_traversal(tmp_path):
    archive_path = tmp_path / "evil.zip"
    archive_path.write_bytes(_zip_bytes({"../escape.txt": "x"}))

    with pytest.raises(ArchiveError, match="escapes"):
        SourceArchive.extract(archive_path, tmp_path / "out")
    assert not (tmp_path / "escape.txt").exists()


def test_extract__invalid_zip(tmp_path):
    archive_path = tmp_path / "broken.zip"
    archive_path.write_bytes(b"not a zip")

    with pytest.raises(ArchiveError):
        SourceArchive.extract(archive_path, tmp_path / "out")


def test_fetch_into__copies_subdirectory_and_cleans_up(tmp_path, archive_payload):
    archive = SourceArchive(ARCHIVE_URL, token="ghp_testtoken", session=_session_returning(archive_payload))
    web_root = tmp_path / "html"

    archive.fetch_into(tmp_path, "rentzone", web_root)

    assert (web_root / "index.php").read_text() == "<?php echo 'hi';"
    assert (web_root / ".env.example").exists()
    assert (web_root / "database" / "migrations").is_dir()
    assert not (web_root / "rentzone").exists()
    assert not (web_root / "readme.txt").exists()
    assert not (tmp_path / "rentzone.zip").exists()
    assert not (tmp_path / "extracted").exists()


def test_fetch_into__missing_subdirectory(tmp_path, archive_payload):
    archive = SourceArchive(ARCHIVE_URL, session=_session_returning(archive_payload))

    with pytest.raises(ArchiveError, match="not found in archive"):
        archive.fetch_into(tmp_path, "nope", tmp_path / "html")
    assert not (tmp_path / "rentzone.zip").exists()
