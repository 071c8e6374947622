"""Identifier helpers for exchanges."""

import itertools
import random
import string
import threading

_counter = itertools.count(1)
_counter_lock = threading.Lock()


def new_exchange_id(prefix: str = "exchange", length: int = 6) -> str:
    """Create an opaque exchange identifier.

    The identifier combines a process-wide sequence number, which keeps ids
    sortable in creation order, with a short random segment so that ids from
    separate trackers do not collide in merged logs.

    Args:
        prefix: Leading label of the id.
        length: Length of the random segment.

    Returns:
        A string such as ``exchange-000042-a1B2c3``.
    """
    with _counter_lock:
        seq = next(_counter)
    suffix = "".join(random.choices(string.ascii_letters + string.digits, k=length))
    return f"{prefix}-{seq:06d}-{suffix}"
