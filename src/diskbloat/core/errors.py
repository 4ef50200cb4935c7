"""Base exception for the diskbloat core."""

from __future__ import annotations


class DiskBloatError(Exception):
    """Base class of every error the core raises on purpose."""
