"""
HTTP service for leaveguard (aiohttp).
"""

from .app import build_services, create_app, run
from .state import Services

__all__ = ["Services", "build_services", "create_app", "run"]
