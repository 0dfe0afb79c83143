"""
API layer for Dataclip.

This module provides the HTTP interface (FastAPI) and the HTML pages it
serves.
"""

from .http_server import create_app
from .pages import render_outcome

__all__ = ["create_app", "render_outcome"]
