from __future__ import annotations

from .client import MatrixClient, MatrixError, Subscription, TimelineEvent, open_client

__all__ = ["MatrixClient", "MatrixError", "Subscription", "TimelineEvent", "open_client"]
