"""
linkmanager.services.side_effects — Non-fatal side effects
===========================================================

Audit entries written around a domain mutation and the "before" snapshot
read ahead of an update are useful, but they must never make the mutation
itself fail.  Such calls go through :func:`non_fatal`, which logs the
failure and hands back ``None`` instead of an exception.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import ParamSpec, TypeVar

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def non_fatal(
    description: str,
    func: Callable[P, T],
    *args: P.args,
    **kwargs: P.kwargs,
) -> T | None:
    """Call *func* and return its result, or ``None`` if it raised.

    Usage::

        before = non_fatal("link snapshot", store.get_by_id, link_id)
    """
    try:
        return func(*args, **kwargs)
    except Exception:
        logger.warning("Non-fatal %s failed", description, exc_info=True)
        return None
