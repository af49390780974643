"""
Filesystem storage scoped under one root directory.
"""

from .filesystem import FileStat, LocalStorage

__all__ = ["FileStat", "LocalStorage"]
