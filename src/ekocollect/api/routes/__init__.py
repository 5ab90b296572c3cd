"""Route group exports."""

from . import health, pickups, routes, tokens

__all__ = ["health", "pickups", "routes", "tokens"]
