"""Terminal resize handling for the renderer engine."""

from __future__ import annotations

from contextlib import contextmanager
import logging
import signal
from types import FrameType
from typing import TYPE_CHECKING, Iterator, Optional

if TYPE_CHECKING:
    from preview_tui.engine import RendererEngine

logger = logging.getLogger(__name__)


class ResizeCoordinator:
    """Restarts rendering of the last selection when the pane is resized.

    A resize that arrives while one is being handled is folded into one
    more pass instead of nesting. While the engine holds the coordinator
    (see :meth:`held`) a resize is only noted and runs once the engine
    lets go, so a pass never interleaves with a half-finished job start.
    """

    def __init__(self, engine: "RendererEngine") -> None:
        self._engine = engine
        self._pending = False
        self._busy = False
        self._holds = 0
        self._stopped = False
        self.passes = 0

    @property
    def pending(self) -> bool:
        return self._pending

    def install(self) -> None:
        signal.signal(signal.SIGWINCH, self._on_signal)

    def _on_signal(self, signum: int, frame: Optional[FrameType]) -> None:
        del signum, frame
        self.request()

    def request(self) -> None:
        self._pending = True
        if self._busy or self._holds:
            return
        self._drain()

    @contextmanager
    def held(self) -> Iterator[None]:
        """Defer resize passes until the block has finished."""
        self._holds += 1
        try:
            yield
        finally:
            self._holds -= 1
        if not self._holds and self._pending and not self._busy:
            self._drain()

    def stop(self) -> None:
        """Drop pending work and ignore later resizes."""
        self._stopped = True
        self._pending = False

    def _drain(self) -> None:
        self._busy = True
        try:
            while self._pending and not self._stopped:
                self._pending = False
                self.handle()
        finally:
            self._busy = False

    def handle(self) -> None:
        engine = self._engine
        self.passes += 1
        logger.debug("Resize pass %d", self.passes)
        engine.cancel_current()
        engine.clear_screen()
        engine.restart_overlay()
        selection = engine.session.selection
        if selection:
            engine.render(selection)
