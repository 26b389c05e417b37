"""Shared slowapi limiter. Anonymous share-token reads are keyed by client address."""

from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
