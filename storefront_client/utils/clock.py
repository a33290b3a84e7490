"""Wall-clock helpers shared by the time-aware services"""

import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current epoch time in milliseconds"""
    return int(time.time() * 1000)
