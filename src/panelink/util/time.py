from __future__ import annotations

from datetime import datetime
from typing import Optional


def room_stamp(now: Optional[datetime] = None) -> str:
    """Minute-resolution local timestamp used in fallback room names."""
    dt = now or datetime.now()
    return dt.strftime("%Y-%m-%d %H:%M")
