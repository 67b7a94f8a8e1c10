"""
Local file helpers.

Async JSON file operations used by the local file backend.
"""

from .file_ops import (
    ensure_directory,
    list_json_files,
    read_json,
    remove_file,
    write_json_atomic,
)

__all__ = [
    "ensure_directory",
    "list_json_files",
    "read_json",
    "remove_file",
    "write_json_atomic",
]
