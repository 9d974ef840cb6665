"""Request identifier helpers."""

from __future__ import annotations

import itertools
from datetime import datetime, timezone

_counter = itertools.count(1)


def generate_request_id() -> str:
    now = datetime.now(tz=timezone.utc)
    # Sortable; the counter keeps ids unique within one process tick.
    return f"{now.strftime('req-%Y%m%dT%H%M%S%fZ')}-{next(_counter)}"
