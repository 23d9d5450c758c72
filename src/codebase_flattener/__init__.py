"""Flatten a source tree into a single Markdown or XML artifact."""

from __future__ import annotations

__version__ = "0.1.1"

__all__ = ["__version__"]
