import os

import pytest

from static_file_server.app.services.path_resolver import is_within, resolve, url_for
from static_file_server.models import ResourceKind


@pytest.mark.asyncio
async def test_resolves_file(make_config, site):
    resource = await resolve("/hello.txt", make_config())
    assert resource.kind is ResourceKind.FILE
    assert resource.path == str(site / "hello.txt")
    assert resource.size == 14
    assert resource.etag


@pytest.mark.asyncio
async def test_percent_encoded_names(make_config, site):
    (site / "my file.txt").write_text("spaced")
    resource = await resolve("/my%20file.txt", make_config())
    assert resource.kind is ResourceKind.FILE
    assert resource.path == str(site / "my file.txt")


@pytest.mark.asyncio
@pytest.mark.parametrize("path", [
    "/../outside.txt",
    "/docs/../../outside.txt",
    "/%2e%2e/outside.txt",
    "/..%2f..%2f..%2fetc%2fpasswd",
])
async def test_traversal_is_forbidden(make_config, path):
    resource = await resolve(path, make_config())
    assert resource.kind is ResourceKind.FORBIDDEN
    assert resource.path is None


@pytest.mark.asyncio
async def test_dot_segments_inside_root_are_collapsed(make_config, site):
    resource = await resolve("/docs/../hello.txt", make_config())
    assert resource.kind is ResourceKind.FILE
    assert resource.path == str(site / "hello.txt")


@pytest.mark.asyncio
async def test_null_byte_is_forbidden(make_config):
    resource = await resolve("/hello.txt%00.png", make_config())
    assert resource.kind is ResourceKind.FORBIDDEN


@pytest.mark.asyncio
async def test_symlinked_directory_out_of_root(make_config, site, tmp_path):
    if not hasattr(os, "symlink"):
        pytest.skip("symlinks not supported")
    outside = tmp_path / "elsewhere"
    outside.mkdir()
    (outside / "x.txt").write_text("x")
    os.symlink(outside, site / "escape")

    assert (await resolve("/escape/", make_config())).kind is ResourceKind.FORBIDDEN
    assert (await resolve("/escape/x.txt", make_config())).kind is ResourceKind.FORBIDDEN


@pytest.mark.asyncio
async def test_directory_without_slash_redirects(make_config):
    resource = await resolve("/docs", make_config())
    assert resource.kind is ResourceKind.REDIRECT
    assert resource.location == "/docs/"


@pytest.mark.asyncio
async def test_directory_index_and_listing(make_config, site):
    resource = await resolve("/site/", make_config())
    assert resource.kind is ResourceKind.FILE
    assert resource.path == str(site / "site" / "index.html")

    resource = await resolve("/site/", make_config(auto_index=False))
    assert resource.kind is ResourceKind.DIRECTORY

    resource = await resolve("/docs/", make_config(show_dir=False))
    assert resource.kind is ResourceKind.NOT_FOUND


@pytest.mark.asyncio
async def test_directory_falls_back_to_extension_sibling(make_config, site):
    (site / "docs.html").write_text("docs page")
    resource = await resolve("/docs/", make_config(ext="html", show_dir=False))
    assert resource.kind is ResourceKind.FILE
    assert resource.path == str(site / "docs.html")


@pytest.mark.asyncio
async def test_default_extension(make_config, site):
    resource = await resolve("/page", make_config(ext=".html"))
    assert resource.kind is ResourceKind.FILE
    assert resource.path == str(site / "page.html")

    # Only applied when the last segment has no extension of its own
    resource = await resolve("/page.txt", make_config(ext="html"))
    assert resource.kind is ResourceKind.NOT_FOUND


@pytest.mark.asyncio
async def test_not_found(make_config):
    resource = await resolve("/missing/file.txt", make_config())
    assert resource.kind is ResourceKind.NOT_FOUND
    assert resource.reason


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/hello.txt/", "/docs/a.txt/", "/page/"])
async def test_trailing_slash_on_a_file_is_not_found(make_config, path):
    resource = await resolve(path, make_config(ext="html"))
    assert resource.kind is ResourceKind.NOT_FOUND


def test_is_within():
    assert is_within("/srv/www", "/srv/www")
    assert is_within("/srv/www", "/srv/www/a/b")
    assert not is_within("/srv/www", "/srv/www2/a")
    assert not is_within("/srv/www", "/srv")


def test_url_for(site):
    assert url_for(str(site), str(site)) == "/"
    assert url_for(str(site), str(site / "docs" / "my dir")) == "/docs/my%20dir"
