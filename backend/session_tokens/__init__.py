"""Expose the application factory at package level.

``from session_tokens import create_app`` is the entry point used by
``flask --app session_tokens`` and by the test suite.
"""

from __future__ import annotations

from .factory import create_app

__all__ = ["create_app"]
