from __future__ import annotations

import logging
import multiprocessing as mp
from typing import Any, Callable

import numpy as np

from fujiraw.color.transfer import linearize_srgb8, linearize_unorm16

from .base import DecodeError, EngineUnavailableError, RawDecoder, RawRaster
from .types import LinearImage


logger = logging.getLogger(__name__)


def raster_to_linear(raster: RawRaster, channels: int = 3) -> LinearImage:
    pixels = np.asarray(raster.pixels)
    if pixels.ndim == 1:
        pixels = pixels.reshape((raster.height, raster.width, -1)) if pixels.size else pixels
    if pixels.ndim != 3 or pixels.shape[0] != raster.height or pixels.shape[1] != raster.width or pixels.shape[2] < 3:
        raise DecodeError(
            f"raster shape {pixels.shape} does not match declared {raster.width}x{raster.height} RGB"
        )
    rgb = pixels[..., :3]

    if raster.transfer == "srgb":
        if rgb.dtype != np.uint8:
            raise DecodeError(f"sRGB raster must be 8-bit, got {rgb.dtype}")
        linear = linearize_srgb8(rgb)
    elif raster.transfer == "linear":
        if rgb.dtype == np.uint16:
            linear = linearize_unorm16(rgb)
        elif rgb.dtype == np.uint8:
            linear = rgb.astype(np.float32) / 255.0
        else:
            linear = rgb.astype(np.float32)
    else:
        raise DecodeError(f"unknown raster transfer {raster.transfer!r}")

    image = LinearImage(linear)
    return image.with_alpha() if channels == 4 else image


def _worker_decode(decoder_factory: Callable[[], RawDecoder], data: bytes, channels: int) -> LinearImage:
    decoder = decoder_factory()
    return raster_to_linear(decoder.decode(data), channels=channels)


def _worker_main(conn: Any, decoder_factory: Callable[[], RawDecoder], data: bytes, channels: int) -> None:
    try:
        conn.send((True, _worker_decode(decoder_factory, data, channels)))
    except Exception as exc:
        conn.send((False, f"{type(exc).__name__}: {exc}"))
    finally:
        conn.close()


class NativeRawAdapter:
    """Single entry point to a native RAW engine.

    Every failure of the engine, including it being absent, surfaces as
    EngineUnavailableError so the caller can switch to the preview path.
    """

    def __init__(self, decoder_factory: Callable[[], RawDecoder], channels: int = 3) -> None:
        self.decoder_factory = decoder_factory
        self.channels = channels

    def decode(self, data: bytes) -> LinearImage:
        try:
            decoder = self.decoder_factory()
            raster = decoder.decode(bytes(data))
        except EngineUnavailableError:
            raise
        except Exception as exc:
            raise EngineUnavailableError(f"native decode failed: {exc}") from exc
        try:
            return raster_to_linear(raster, channels=self.channels)
        except DecodeError as exc:
            raise EngineUnavailableError(f"native engine returned an unusable raster: {exc}") from exc

    def decode_in_worker(
        self,
        buffer: bytes | bytearray,
        timeout: float | None = None,
        mp_context: str = "spawn",
    ) -> LinearImage:
        """Decode in a separate process. Ownership of ``buffer`` moves to the worker.

        A ``bytearray`` is emptied once handed off; the caller must not reuse it.
        There is no cancellation: a caller that loses interest discards the result.
        A worker still running after ``timeout`` seconds is terminated.
        """

        payload = bytes(buffer)
        if isinstance(buffer, bytearray):
            buffer.clear()

        ctx = mp.get_context(mp_context)
        recv_conn, send_conn = ctx.Pipe(duplex=False)
        proc = ctx.Process(
            target=_worker_main,
            args=(send_conn, self.decoder_factory, payload, self.channels),
            daemon=True,
        )
        logger.info("decoding %s bytes in worker process", len(payload))
        try:
            proc.start()
        except Exception as exc:
            recv_conn.close()
            raise EngineUnavailableError(f"could not start native decode worker: {exc}") from exc
        finally:
            send_conn.close()
        del payload

        timed_out = False
        try:
            if not recv_conn.poll(timeout):
                timed_out = True
                raise EngineUnavailableError(f"native decode worker timed out after {timeout}s")
            ok, value = recv_conn.recv()
        except EOFError as exc:
            proc.join(timeout=5)
            raise EngineUnavailableError(f"native decode worker exited without a result (code {proc.exitcode})") from exc
        finally:
            recv_conn.close()
            if not timed_out and proc.is_alive():
                proc.join(timeout=1)
            if proc.is_alive():
                logger.warning("terminating native decode worker pid=%s", proc.pid)
                proc.terminate()
                proc.join(timeout=5)

        if not ok:
            raise EngineUnavailableError(f"native decode worker failed: {value}")
        return value
