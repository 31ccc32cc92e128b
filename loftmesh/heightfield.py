"""
Greyscale height fields for displacement, and their (one-shot) loading.
"""

import logging
import queue
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Callable, Optional

import numpy as np
from PIL import Image, ImageEnhance, ImageFilter

logger = logging.getLogger(__name__)


class HeightField:
    """
    Red channel of an image, normalised to [0, 1], indexed [row, col]
    with row 0 at the top of the image.

    A height field can exist before its pixels do (texture still
    decoding); ``decoded`` tells the two states apart.
    """

    def __init__(self, pixels: Optional[np.ndarray] = None, source: str = ""):
        self.pixels = None if pixels is None else np.asarray(pixels, dtype=np.float64)
        self.source = source

    @classmethod
    def pending(cls, source: str = "") -> "HeightField":
        return cls(None, source)

    @classmethod
    def from_image(cls, img: Image.Image, source: str = "") -> "HeightField":
        rgb = np.asarray(img.convert("RGB"), dtype=np.uint8)
        return cls(rgb[:, :, 0].astype(np.float64) / 255.0, source)

    @classmethod
    def from_array(cls, values, source: str = "") -> "HeightField":
        """Float values already in [0, 1], shape (H, W)."""
        return cls(np.clip(np.asarray(values, dtype=np.float64), 0.0, 1.0), source)

    @property
    def decoded(self) -> bool:
        return self.pixels is not None

    @property
    def size(self):
        """(width, height) in pixels."""
        if self.pixels is None:
            return (0, 0)
        h, w = self.pixels.shape
        return (w, h)

    def set_pixels(self, pixels: np.ndarray) -> None:
        self.pixels = np.asarray(pixels, dtype=np.float64)

    def sample(self, u, v, repeat_u: float = 1.0, repeat_v: float = 1.0) -> np.ndarray:
        """
        Nearest-texel lookup.  UVs are wrapped by the repeat counts and V
        is flipped, since image rows run top to bottom.
        """
        if self.pixels is None:
            raise RuntimeError(f"height field {self.source or '<unnamed>'} is not decoded yet")
        h, w = self.pixels.shape
        us = np.mod(np.asarray(u, dtype=np.float64) * repeat_u, 1.0)
        vs = np.mod(np.asarray(v, dtype=np.float64) * repeat_v, 1.0)
        x = np.floor(us * (w - 1)).astype(np.int64)
        y = np.floor((1.0 - vs) * (h - 1)).astype(np.int64)
        return self.pixels[y, x]


def decode_height_field(path: str, contrast: float = 1.0,
                        blur_radius: float = 0.0) -> HeightField:
    """Open ``path`` and turn it into a HeightField (optionally contrast/blur first)."""
    img = Image.open(path).convert("RGB")
    w, h = img.size
    logger.info("[tex] height map : %d × %d px  (%s)", w, h, path)
    if contrast != 1.0:
        logger.info("[tex] applying contrast × %s", contrast)
        img = ImageEnhance.Contrast(img).enhance(contrast)
    if blur_radius > 0:
        logger.info("[tex] blurring height map  radius=%spx", blur_radius)
        img = img.filter(ImageFilter.GaussianBlur(radius=blur_radius))
    return HeightField.from_image(img, source=path)


class TextureLoader:
    """
    Decodes a height map off the calling thread.

    ``load`` hands back the (still pending) HeightField immediately plus
    the Future of the decode.  The worker only decodes: filling in the
    pixels and calling ``on_ready`` / ``on_error`` is passed to
    ``schedule``.  The default scheduler queues the call until ``drain()``
    runs it on the owner's thread; a GUI loop may pass its own.
    """

    def __init__(self, executor: Optional[Executor] = None,
                 schedule: Optional[Callable[[Callable[[], None]], None]] = None,
                 contrast: float = 1.0, blur_radius: float = 0.0):
        self._executor = executor
        self._owns_executor = executor is None
        self._queue: "queue.SimpleQueue[Callable[[], None]]" = queue.SimpleQueue()
        self.schedule = schedule if schedule is not None else self._queue.put
        self.contrast = contrast
        self.blur_radius = blur_radius

    def _get_executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1,
                                                thread_name_prefix="loftmesh-tex")
        return self._executor

    def load(self, path: str,
             on_ready: Optional[Callable[[HeightField], None]] = None,
             on_error: Optional[Callable[[HeightField, BaseException], None]] = None):
        field = HeightField.pending(path)
        future: Future = self._get_executor().submit(
            decode_height_field, path, self.contrast, self.blur_radius)

        def _done(f: Future) -> None:
            if f.cancelled():
                return
            err = f.exception()
            if err is not None:
                logger.error("[tex] failed to decode %s: %s", path, err)
                if on_error is not None:
                    self.schedule(lambda: on_error(field, err))
                return
            decoded = f.result()

            def _finish() -> None:
                field.set_pixels(decoded.pixels)
                if on_ready is not None:
                    on_ready(field)

            self.schedule(_finish)

        future.add_done_callback(_done)
        return field, future

    def drain(self) -> int:
        """Run queued completions on this thread; returns how many ran."""
        ran = 0
        while True:
            try:
                fn = self._queue.get_nowait()
            except queue.Empty:
                return ran
            fn()
            ran += 1

    def shutdown(self) -> None:
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
