"""
Test Helpers
============

Builders for documents and archives used across the test suite.
"""

import json
import zipfile
from pathlib import Path
from typing import Any, Dict, Optional


def make_document(
    title: str = "Document",
    body: str = "",
    inline_config: Optional[Dict[str, Any]] = None,
    head: str = "",
) -> str:
    """Build a structurally valid HTML document."""
    config_block = ""
    if inline_config is not None:
        config_block = (
            '<script id="h2i-config" type="application/json">'
            f"{json.dumps(inline_config)}</script>"
        )
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        f"<head><title>{title}</title>{config_block}{head}</head>\n"
        f"<body><h1>{title}</h1>{body}</body>\n"
        "</html>\n"
    )


def make_zip(path: Path, members: Dict[str, str]) -> Path:
    """Write a zip archive with the given member names and text contents."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as archive:
        for name, content in members.items():
            archive.writestr(name, content)
    return path


def make_unsupported_zip(path: Path, name: str = "index.html") -> Path:
    """Write a one-member zip archive declaring a compression method zipfile cannot read."""
    make_zip(path, {name: make_document()})
    data = bytearray(path.read_bytes())
    method = (98).to_bytes(2, "little")
    data[8:10] = method
    central = data.find(b"PK\x01\x02")
    data[central + 10:central + 12] = method
    path.write_bytes(bytes(data))
    return path
