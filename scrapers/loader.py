import importlib
from os import listdir
from os.path import abspath, dirname, isfile, join
from typing import Protocol

from models.config import settings
from scrapers.base import SourceAdapter
from utils.logging import get_logger

logger = get_logger(__name__)


class PluginRegistry(Protocol):
    """Anything plugins can register their adapter with (the SourceManager)."""

    def register(self, adapter: SourceAdapter) -> None: ...


def get_resource_path(relative_path):
    """Path of a resource inside the scrapers package."""
    return join(dirname(abspath(__file__)), relative_path)


def available_plugins() -> list[str]:
    """Names of plugin modules found in scrapers/plugins/."""
    path = get_resource_path("plugins/")
    system = {"__init__.py", "utils.py"}
    return sorted(
        file[:-3]
        for file in listdir(path)
        if isfile(join(path, file)) and file.endswith(".py") and file not in system
    )


def load_plugins(registry: PluginRegistry, plugins: list[str] | None = None) -> list[str]:
    """Import plugin modules and let each register its adapter.

    Args:
        registry: Receives adapters through register()
        plugins: Optional list of specific plugins to load.
                 If None, loads all plugins except settings.manager.disabled_sources

    Returns:
        Names of the plugin modules loaded
    """
    if plugins is None:
        disabled = set(settings.manager.disabled_sources)
        plugins = [p for p in available_plugins() if p not in disabled]

    loaded = []
    for plugin in plugins:
        plugin_module = importlib.import_module("scrapers.plugins." + plugin)
        plugin_module.load(registry)
        loaded.append(plugin)
    logger.debug("Loaded plugins: {}", loaded)
    return loaded
