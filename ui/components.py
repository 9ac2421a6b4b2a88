"""Reusable terminal components: themed console, loading(), result tables.

Rendering only; no component here talks to sources directly.
"""

from contextlib import contextmanager

from rich.console import Console
from rich.live import Live
from rich.spinner import Spinner
from rich.table import Table
from rich.theme import Theme

from models.models import (
    AnimeRecord,
    EpisodeRecord,
    EpisodeServer,
    HealthStatus,
    SearchPage,
    SourceHealth,
    StreamingBundle,
)

# Catppuccin Mocha Theme
CATPPUCCIN_MOCHA = Theme(
    {
        "menu.title": "bold #cba6f7",  # Purple header
        "menu.text": "#cdd6f4",  # Light text
        "menu.muted": "#6c7086",  # Muted gray
        "info": "#89dceb",  # Sky blue for info
        "success": "#a6e3a1",  # Green for success
        "warning": "#f9e2af",  # Yellow for warnings
        "error": "#f38ba8",  # Red for errors
    }
)

# Global console with theme
console = Console(theme=CATPPUCCIN_MOCHA)

STATUS_STYLE = {
    HealthStatus.ONLINE: "success",
    HealthStatus.DEGRADED: "warning",
    HealthStatus.OFFLINE: "error",
    HealthStatus.UNKNOWN: "menu.muted",
}


@contextmanager
def loading(msg: str = "Loading..."):
    """Spinner shown while an async operation runs.

    Usage:
        with loading("Searching..."):
            page = asyncio.run(manager.search("naruto"))
    """
    with Live(
        Spinner("dots", text=msg),
        console=console,
        refresh_per_second=12.5,
        transient=True,  # Spinner disappears after completion
    ):
        yield


def anime_table(records: list[AnimeRecord], title: str = "") -> Table:
    table = Table(title=title, title_style="menu.title", header_style="info")
    table.add_column("ID", style="menu.muted", overflow="fold")
    table.add_column("Title", style="menu.text")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Rating", justify="right")
    table.add_column("Sub/Dub", justify="right")
    table.add_column("Source", style="menu.muted")
    for record in records:
        table.add_row(
            record.id,
            record.title,
            record.type.value,
            record.status.value,
            f"{record.rating:.1f}" if record.rating is not None else "-",
            f"{record.sub_count}/{record.dub_count}",
            record.source,
        )
    return table


def search_page_table(page: SearchPage, title: str = "") -> Table:
    caption = f"page {page.current_page}/{page.total_pages or 1} · source: {page.source}"
    if page.has_next_page:
        caption += " · more pages available"
    table = anime_table(page.results, title)
    table.caption = caption
    return table


def episodes_table(episodes: list[EpisodeRecord]) -> Table:
    table = Table(header_style="info")
    table.add_column("#", justify="right")
    table.add_column("Title", style="menu.text")
    table.add_column("ID", style="menu.muted", overflow="fold")
    table.add_column("Filler")
    for episode in episodes:
        table.add_row(str(episode.number), episode.title, episode.id, "yes" if episode.is_filler else "")
    return table


def servers_table(servers: list[EpisodeServer]) -> Table:
    table = Table(header_style="info")
    table.add_column("Server", style="menu.text")
    table.add_column("Category")
    for server in servers:
        table.add_row(server.name, server.category.value)
    return table


def stream_table(bundle: StreamingBundle) -> Table:
    table = Table(
        title=f"{bundle.source or 'none'} · server {bundle.server or '-'}",
        title_style="menu.title",
        header_style="info",
    )
    table.add_column("Quality")
    table.add_column("Kind")
    table.add_column("URL", overflow="fold")
    for variant in bundle.sources:
        kind = "HLS" if variant.is_m3u8 else "DASH" if variant.is_dash else "file"
        table.add_row(variant.quality.value, kind, variant.url)
    if bundle.headers:
        table.caption = "headers: " + ", ".join(f"{k}={v}" for k, v in bundle.headers.items())
    return table


def health_table(health: dict[str, SourceHealth], preferred: str | None = None) -> Table:
    table = Table(header_style="info")
    table.add_column("Source", style="menu.text")
    table.add_column("Status")
    table.add_column("Latency", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Requests", justify="right")
    table.add_column("Last checked", style="menu.muted")
    for name, snapshot in health.items():
        label = f"{name} *" if name == preferred else name
        table.add_row(
            label,
            f"[{STATUS_STYLE[snapshot.status]}]{snapshot.status.value}[/]",
            f"{snapshot.latency_ms:.0f} ms" if snapshot.latency_ms is not None else "-",
            f"{snapshot.success_rate:.0%}",
            str(snapshot.total_requests),
            snapshot.last_checked.strftime("%H:%M:%S") if snapshot.last_checked else "-",
        )
    return table
