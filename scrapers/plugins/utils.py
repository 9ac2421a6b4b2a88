"""Shared helpers for HTML-scraping plugins."""

import json
import re

from selectolax.parser import HTMLParser


def absolute_url(url: str | None, base_url: str) -> str:
    """Resolve protocol-relative and root-relative URLs against base_url."""
    if not url:
        return ""
    if url.startswith("//"):
        return "https:" + url
    if url.startswith(("http://", "https://")):
        return url
    return base_url.rstrip("/") + "/" + url.lstrip("/")


def script_variable(tree: HTMLParser, name: str):
    """Parse a JSON literal assigned to a JS variable in an inline script.

    Args:
        tree: Parsed page
        name: Variable name (e.g. "episodes" for ``var episodes = [...];``)

    Returns:
        Decoded value, or None if absent or not valid JSON
    """
    pattern = re.compile(rf"var\s+{re.escape(name)}\s*=\s*(\[[\s\S]*?\]|\{{[\s\S]*?\}});")
    for script in tree.css("script"):
        match = pattern.search(script.text() or "")
        if match:
            try:
                return json.loads(match.group(1))
            except json.JSONDecodeError:
                return None
    return None
