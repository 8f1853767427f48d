from __future__ import annotations

import secrets


def generate_id(prefix: str) -> str:
    """Opaque string primary key, e.g. ``ord_3f9a...``."""
    return f"{prefix}_{secrets.token_hex(10)}"
