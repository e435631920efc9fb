"""
Sequence token cache for one (group, stream) pair.

The cache distinguishes "unknown, must be fetched" from "known, and the
stream currently has no token" (a freshly created, empty stream).

No locking: the owning DeliveryEngine is the only writer.
"""

from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)


class SequenceTokenCache:
    """Holds the single current write token for a stream.

    Example:
        >>> cache = SequenceTokenCache()
        >>> cache.is_known
        False
        >>> cache.set("49590338271490256608559692538361571095921575989136588898")
        >>> cache.is_known
        True
    """

    def __init__(self) -> None:
        self._token: Optional[str] = None
        self._known = False

    @property
    def is_known(self) -> bool:
        """Whether a write may proceed without a lookup first."""
        return self._known

    def get(self) -> Optional[str]:
        """Current token, or None when unknown or when the stream has none."""
        return self._token

    def set(self, token: Optional[str]) -> None:
        """Record the token the next write must present."""
        self._token = token
        self._known = True

    def invalidate(self) -> None:
        """Forget the token so the next write fetches a fresh one."""
        if self._known:
            logger.debug("Sequence token invalidated", extra={"token": self._token})
        self._token = None
        self._known = False

    def __repr__(self) -> str:
        state = repr(self._token) if self._known else "unknown"
        return f"SequenceTokenCache({state})"
