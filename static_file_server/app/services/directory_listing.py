import os
from datetime import datetime, timezone
from html import escape
from typing import List, NamedTuple, Optional
from urllib.parse import quote, unquote

import aiofiles.os

from static_file_server.models import ServerConfig

LISTING_CSS = """
body {
    font-family: sans-serif;
    font-size: 14px;
    line-height: 1.35em;
    padding: 20px;
    background: #F0F0F0;
}
table { border-collapse: collapse; }
td, th { padding: 2px 16px 2px 0px; text-align: left; }
td.size { text-align: right; font-family: monospace; }
td.modified { font-family: monospace; color: #555; }
"""


class Entry(NamedTuple):
    name: str
    is_dir: bool
    size: Optional[int]
    modified: float


def scan_directory(directory: str, show_dotfiles: bool) -> List[Entry]:
    """Immediate children of `directory`, directories first, then by name."""
    entries = []
    with os.scandir(directory) as it:
        for item in it:
            if not show_dotfiles and item.name.startswith("."):
                continue
            try:
                is_dir = item.is_dir()
                st = item.stat()
            except OSError:
                # Broken symlink or entry removed while listing
                continue
            entries.append(Entry(item.name, is_dir, None if is_dir else st.st_size, st.st_mtime))
    entries.sort(key=lambda e: (not e.is_dir, e.name.lower(), e.name))
    return entries


list_directory = aiofiles.os.wrap(scan_directory)


def format_size(size: Optional[int]) -> str:
    if size is None:
        return "-"
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{size} B" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024


def render_row(entry: Entry, base: str) -> str:
    name = entry.name + ("/" if entry.is_dir else "")
    href = base + quote(entry.name) + ("/" if entry.is_dir else "")
    modified = datetime.fromtimestamp(entry.modified, timezone.utc).strftime("%Y-%m-%d %H:%M")
    kind = "directory" if entry.is_dir else "file"
    return (
        f'<tr class="{kind}"><td><a href="{escape(href)}">{escape(name)}</a></td>'
        f'<td>{kind}</td>'
        f'<td class="size">{format_size(entry.size)}</td>'
        f'<td class="modified">{modified}</td></tr>'
    )


def render_listing(entries: List[Entry], url_path: str) -> str:
    """Render an HTML listing for the directory served at `url_path`."""
    base = url_path if url_path.endswith("/") else url_path + "/"
    rows = []
    if base != "/":
        rows.append(
            '<tr class="directory"><td><a href="../">../</a></td>'
            '<td>directory</td><td class="size">-</td><td class="modified"></td></tr>'
        )
    rows.extend(render_row(e, base) for e in entries)
    title = escape(f"Index of {unquote(base)}")
    return (
        "<!DOCTYPE html>\n"
        "<html>\n<head>\n"
        '<meta charset="utf-8">\n'
        '<meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
        f"<title>{title}</title>\n"
        f"<style>{LISTING_CSS}</style>\n"
        "</head>\n<body>\n"
        f"<h1>{title}</h1>\n"
        "<table>\n<thead><tr><th>Name</th><th>Kind</th><th>Size</th><th>Modified</th></tr></thead>\n"
        "<tbody>\n" + "\n".join(rows) + "\n</tbody>\n</table>\n"
        "</body>\n</html>\n"
    )


async def directory_listing(directory: str, url_path: str, server_config: ServerConfig) -> str:
    entries = await list_directory(directory, server_config.show_dotfiles)
    return render_listing(entries, url_path)
