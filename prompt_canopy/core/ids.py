"""Short random identifiers for new records."""

from __future__ import annotations

import secrets
from collections.abc import Iterable

from prompt_canopy.core.errors import CanopyError


def generate_id(prefix: str, existing_ids: Iterable[str]) -> str:
    """Return ``<prefix>-<hex>`` not present in ``existing_ids``.

    Tries 4 hex digits first and widens to 8 after 100 collisions.
    """
    taken = set(existing_ids)

    for nbytes, attempts in ((2, 100), (4, 1000)):
        for _ in range(attempts):
            candidate = f"{prefix}-{secrets.token_hex(nbytes)}"
            if candidate not in taken:
                return candidate

    raise CanopyError(f"Failed to generate unique ID with prefix '{prefix}'")
