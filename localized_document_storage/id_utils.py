"""ID generation utilities for localized document storage.

Centralizes the ID format knowledge so callers never need to
construct document or row IDs directly.

Document IDs: 24 lowercase hex characters
Row IDs: 24 lowercase hex characters, unique within the document

Row IDs are the identity of array and block rows: per-locale values stay
attached to a row's ID when rows are reordered.
"""

from __future__ import annotations

import uuid


def document_id() -> str:
    """Generate a document ID."""
    return uuid.uuid4().hex[:24]


def row_id() -> str:
    """Generate an array or block row ID."""
    return uuid.uuid4().hex[:24]

