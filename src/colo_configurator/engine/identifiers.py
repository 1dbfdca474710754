"""
Identifier schemes for quotes, orders and cart rows.

Quote id: "1-" + 8 random characters from [A-Z0-9]. No uniqueness check.
Order id: "1-" + current Unix time in milliseconds.
"""
import random
import string
import time
from typing import Callable, Iterable, Optional


QUOTE_ID_ALPHABET = string.ascii_uppercase + string.digits
QUOTE_ID_LENGTH = 8
ID_PREFIX = "1-"


def now_millis(clock: Optional[Callable[[], float]] = None) -> int:
    """Current Unix time in milliseconds; `clock` returns seconds like time.time."""
    return int((clock or time.time)() * 1000)


def new_quote_id(rng: Optional[random.Random] = None) -> str:
    """Quote id: 1-XXXXXXXX."""
    chooser = rng or random
    suffix = "".join(chooser.choice(QUOTE_ID_ALPHABET) for _ in range(QUOTE_ID_LENGTH))
    return f"{ID_PREFIX}{suffix}"


def new_order_id(clock: Optional[Callable[[], float]] = None) -> str:
    """Order id: 1-<unix millis>."""
    return f"{ID_PREFIX}{now_millis(clock)}"


def new_item_id(clock: Optional[Callable[[], float]] = None, taken: Iterable[int] = ()) -> int:
    """
    Numeric cart/package row id derived from the creation time.

    Bumped past the largest id already in use so rows added within the same
    millisecond stay distinct.
    """
    candidate = now_millis(clock)
    highest = max((i for i in taken if isinstance(i, int)), default=None)
    if highest is not None and candidate <= highest:
        candidate = highest + 1
    return candidate
