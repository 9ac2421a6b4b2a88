"""Business logic services layer.

Core services for anistream-hub:
- health: Per-source circuit state and rolling statistics
- source_manager: Registry, fallback chains, fan-out and recommendation
"""

from services import health, source_manager

__all__ = [
    "health",
    "source_manager",
]
