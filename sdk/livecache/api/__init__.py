"""
Read-only HTTP inspection API for a LiveCache engine.
"""

from .app import create_app
from .config import Settings

__all__ = ["Settings", "create_app"]
