"""Press-and-hold input (Minesweeper: hold to flag, click to reveal)."""

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class HoldGesture:
    """
    Cancelable timer started on press.
    ----

    If the press lasts `hold_seconds`, `on_hold` fires. Releasing earlier cancels the timer and counts as a click;
    leaving the cell cancels it without a click. Must be used from inside a running event loop.
    """

    def __init__(self, on_hold: Callable[[], None], hold_seconds: float = 0.5) -> None:
        self.on_hold = on_hold
        self.hold_seconds = hold_seconds
        self._timer: Optional[asyncio.TimerHandle] = None
        self._fired = False

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def press(self) -> None:
        self.cancel()
        self._fired = False
        self._timer = asyncio.get_running_loop().call_later(self.hold_seconds, self._fire)

    def release(self) -> bool:
        """True when this was a short press (a click), False when the hold already fired."""
        was_click = self.pending and not self._fired
        self.cancel()
        return was_click

    def leave(self) -> None:
        self.cancel()

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        self._fired = True
        logger.debug("Hold gesture fired after %.2fs", self.hold_seconds)
        self.on_hold()
