"""Utilities for safe structured logging fields."""

from __future__ import annotations

import hashlib
from typing import Any
from urllib.parse import urlsplit


def safe_log_identifier(value: Any, *, prefix: str) -> str:
    """Return a deterministic non-reversible token for log correlation fields."""
    text = str(value or "").strip()
    if not text:
        return f"{prefix}-missing"

    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return f"{prefix}-{digest}"


def safe_log_url(url: str | None) -> str:
    """Keep only scheme and host so tokens in paths or query strings never reach logs."""
    if not url:
        return "url-missing"

    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return "url-invalid"
    if not parts.scheme or not parts.hostname:
        return "url-invalid"
    host = parts.hostname
    if port:
        host = f"{host}:{port}"
    return f"{parts.scheme}://{host}"
