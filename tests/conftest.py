import os

import pytest
from fastapi.testclient import TestClient

from static_file_server import build_config, create_server

# Fixed modification time so Last-Modified / If-Modified-Since tests are deterministic
FIXED_MTIME = 1_600_000_000

DATA = bytes(range(256)) * 4  # 1KB of known content


def set_mtime(path, mtime):
    os.utime(path, (mtime, mtime))


@pytest.fixture(autouse=True)
def no_env_credentials(monkeypatch):
    """Keep credentials from the surrounding environment out of the tests."""
    monkeypatch.delenv("STATIC_FILE_SERVER_USERNAME", raising=False)
    monkeypatch.delenv("STATIC_FILE_SERVER_PASSWORD", raising=False)


@pytest.fixture
def site(tmp_path):
    """Build a document root with files, dotfiles and directories."""
    root = tmp_path / "root"
    root.mkdir()

    (root / "hello.txt").write_bytes(b"Hello, world!\n")
    (root / "data.bin").write_bytes(DATA)
    (root / "page.html").write_text("<p>page</p>")
    (root / ".secret").write_text("top secret")

    docs = root / "docs"
    docs.mkdir()
    (docs / "a.txt").write_text("alpha")
    (docs / ".hidden").write_text("hidden")
    (docs / "sub").mkdir()

    site_dir = root / "site"
    site_dir.mkdir()
    (site_dir / "index.html").write_text("<h1>site index</h1>")

    (tmp_path / "outside.txt").write_text("outside the root")

    for path in (root / "hello.txt", root / "data.bin", root / "page.html"):
        set_mtime(path, FIXED_MTIME)
    return root


@pytest.fixture
def make_config(site):
    def factory(**options):
        options.setdefault("root", str(site))
        return build_config(options, environ={})
    return factory


@pytest.fixture
def make_client(site):
    """Return a factory building a TestClient for a server over `site`."""
    def factory(**options):
        options.setdefault("root", str(site))
        server = create_server(options)
        return TestClient(server.app)
    return factory


@pytest.fixture
def client(make_client):
    return make_client()
