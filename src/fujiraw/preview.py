from __future__ import annotations

from collections import OrderedDict
import logging
import threading
from typing import Callable

from fujiraw.color.lut_cube import LutTable
from fujiraw.color.pipeline import DevelopPipeline
from fujiraw.color.settings import DevelopSettings
from fujiraw.decode.types import LinearImage


logger = logging.getLogger(__name__)


class PreviewRenderer:
    """Interactive re-render of one decoded image as settings change.

    ``request`` is debounced: a burst of calls within ``debounce_seconds``
    renders once, with the newest settings, on a timer thread, then hands the
    result to ``on_render``. Results are memoized per settings hash.
    """

    def __init__(
        self,
        image: LinearImage,
        lut: LutTable | None = None,
        debounce_seconds: float = 0.15,
        on_render: Callable[[DevelopSettings, LinearImage], None] | None = None,
        cache_size: int = 8,
    ) -> None:
        self.image = image
        self.lut = lut
        self.debounce_seconds = float(debounce_seconds)
        self.on_render = on_render
        self.cache_size = max(1, int(cache_size))
        self.render_count = 0

        self._cache: OrderedDict[str, LinearImage] = OrderedDict()
        self._lock = threading.Lock()
        self._deliver_lock = threading.RLock()
        self._timer: threading.Timer | None = None
        self._pending: DevelopSettings | None = None
        self._closed = False

    def set_lut(self, lut: LutTable | None) -> None:
        with self._lock:
            self.lut = lut
            self._cache.clear()

    def render_now(self, settings: DevelopSettings) -> LinearImage:
        key = settings.clamped().version_hash()
        with self._lock:
            hit = self._cache.get(key)
            if hit is not None:
                self._cache.move_to_end(key)
                return hit.copy()
            lut = self.lut

        result = DevelopPipeline(settings, lut).process(self.image)

        with self._lock:
            self.render_count += 1
            self._cache[key] = result
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)
        return result.copy()

    def request(self, settings: DevelopSettings) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("preview renderer is closed")
            self._pending = settings
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_seconds, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            settings = self._pending
            self._pending = None
            self._timer = None
        if settings is None:
            return
        try:
            result = self.render_now(settings)
        except Exception:
            logger.exception("preview render failed")
            return
        self._deliver(settings, result)

    def _deliver(self, settings: DevelopSettings, result: LinearImage) -> None:
        # Held across the callback so close() cannot return mid-delivery.
        with self._deliver_lock:
            with self._lock:
                closed = self._closed
            if closed or self.on_render is None:
                return
            self.on_render(settings, result)

    def flush(self) -> LinearImage | None:
        """Cancel the pending timer and render the pending request synchronously."""

        with self._lock:
            timer = self._timer
            self._timer = None
            settings = self._pending
            self._pending = None
        if timer is not None:
            timer.cancel()
        if settings is None:
            return None
        result = self.render_now(settings)
        self._deliver(settings, result)
        return result

    def close(self) -> None:
        with self._deliver_lock, self._lock:
            self._closed = True
            self._pending = None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._cache.clear()
