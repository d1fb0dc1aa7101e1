"""Pytest configuration and fixtures."""
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from commonswiki import ExportConfig
from imagepage import ImageMetadata, Tag


class FakeSite:
    """Stands in for mwclient.Site, records every upload."""

    def __init__(self, responses=None, login_error=None, chunk_size=1024 * 1024):
        self.responses = list(responses or [])
        self.login_error = login_error
        self.logins = []
        self.uploads = []
        self.chunk_size = chunk_size

    def login(self, username, password):
        self.logins.append((username, password))
        if self.login_error is not None:
            raise self.login_error

    def upload(self, file, filename=None, description="", ignore=False, comment=None):
        self.uploads.append({
            "data": file.read(),
            "filename": filename,
            "description": description,
            "ignore": ignore,
            "comment": comment,
        })
        response = self.responses.pop(0) if self.responses else {"result": "Success"}
        if isinstance(response, Exception):
            raise response
        # mwclient hands back the full API reply for chunked uploads
        if len(self.uploads[-1]["data"]) > self.chunk_size:
            return {"upload": response}
        return response


@pytest.fixture
def fake_site():
    return FakeSite()


@pytest.fixture
def config():
    return ExportConfig(username="Photographer", password="secret")


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "img001.jpg"
    path.write_bytes(b"\xff\xd8\xff\xe0 fake jpeg")
    return path


@pytest.fixture
def make_image(image_file):
    def factory(**kwargs):
        values = {
            "filename": "img001.NEF",
            "title": "Sunset",
            "description": "",
            "rights": "CC-BY-SA",
            "date_taken": "2021:07:04 13:22:10",
            "path": str(image_file),
        }
        values.update(kwargs)
        values["tags"] = [Tag(name) for name in values.get("tags", [])]
        return ImageMetadata(**values)
    return factory
