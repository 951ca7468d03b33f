from __future__ import annotations


def truncate(value: str | None, limit: int) -> str | None:
    """Strip and cut ``value`` to ``limit`` characters; blank becomes None."""
    if value is None:
        return None
    value = value.strip()
    return value[:limit] if value else None
