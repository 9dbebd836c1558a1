from __future__ import annotations

import threading

import numpy as np
import pytest

from fujiraw.color.settings import DevelopSettings
from fujiraw.decode.types import LinearImage
from fujiraw.preview import PreviewRenderer


def _image() -> LinearImage:
    return LinearImage.filled(4, 4, (0.2, 0.2, 0.2))


def test_render_now_is_memoized() -> None:
    renderer = PreviewRenderer(_image())
    a = renderer.render_now(DevelopSettings(exposure=1.0))
    b = renderer.render_now(DevelopSettings(exposure=1.0))
    assert renderer.render_count == 1
    assert np.allclose(a.samples, 0.4)
    assert np.array_equal(a.samples, b.samples)

    # Callers get their own buffers, never the cached one.
    a.samples[:] = 9.0
    c = renderer.render_now(DevelopSettings(exposure=1.0))
    assert np.allclose(c.samples, 0.4)
    assert renderer.render_count == 1


def test_cache_is_bounded() -> None:
    renderer = PreviewRenderer(_image(), cache_size=2)
    for ev in (0.1, 0.2, 0.3):
        renderer.render_now(DevelopSettings(exposure=ev))
    renderer.render_now(DevelopSettings(exposure=0.1))
    assert renderer.render_count == 4


def test_request_coalesces_to_latest() -> None:
    rendered: list[DevelopSettings] = []
    done = threading.Event()

    def on_render(settings: DevelopSettings, image: LinearImage) -> None:
        rendered.append(settings)
        done.set()

    renderer = PreviewRenderer(_image(), debounce_seconds=0.3, on_render=on_render)
    for ev in (0.1, 0.2, 0.3, 0.4):
        renderer.request(DevelopSettings(exposure=ev))
    assert done.wait(5.0)
    renderer.close()
    assert [s.exposure for s in rendered] == [0.4]
    assert renderer.render_count == 1


def test_flush_renders_pending_synchronously() -> None:
    renderer = PreviewRenderer(_image(), debounce_seconds=10.0)
    renderer.request(DevelopSettings(exposure=-1.0))
    out = renderer.flush()
    assert out is not None
    assert np.allclose(out.samples, 0.1)
    assert renderer.flush() is None
    renderer.close()


def test_request_after_close_raises() -> None:
    renderer = PreviewRenderer(_image())
    renderer.close()
    with pytest.raises(RuntimeError):
        renderer.request(DevelopSettings())


class _GatedRenderer(PreviewRenderer):
    """Blocks inside render_now until the test opens the gate."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.started = threading.Event()
        self.gate = threading.Event()

    def render_now(self, settings: DevelopSettings) -> LinearImage:
        self.started.set()
        self.gate.wait(5.0)
        return super().render_now(settings)


def test_close_during_render_suppresses_callback() -> None:
    rendered: list[DevelopSettings] = []
    delivered = threading.Event()

    def on_render(settings: DevelopSettings, image: LinearImage) -> None:
        rendered.append(settings)
        delivered.set()

    renderer = _GatedRenderer(_image(), debounce_seconds=0.01, on_render=on_render)
    renderer.request(DevelopSettings(exposure=0.5))
    assert renderer.started.wait(5.0)
    renderer.close()
    renderer.gate.set()
    assert not delivered.wait(0.5)
    assert rendered == []
