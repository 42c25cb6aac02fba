"""Opaque identifier generation."""
import uuid
from typing import Callable, Optional

IdFactory = Callable[[], str]


def new_id(prefix: Optional[str] = None) -> str:
    """Return a fresh unique id, optionally as ``<prefix>_<hex>``."""
    token = uuid.uuid4().hex
    if prefix:
        return f"{prefix}_{token}"
    return token
