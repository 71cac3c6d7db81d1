"""Screenshot capture and downscaling."""

from __future__ import annotations

import base64
import logging
from io import BytesIO
from typing import TYPE_CHECKING

from PIL import Image

if TYPE_CHECKING:
    from .geometry import Size
    from .tree import UIHost

logger = logging.getLogger(__name__)


def fit_png(data: bytes, max_size: Size | None) -> bytes:
    """Downscale a PNG to fit within ``max_size``, keeping the aspect ratio."""
    if max_size is None:
        return data

    img = Image.open(BytesIO(data))
    w, h = img.size
    scale = min(max_size.width / w, max_size.height / h)
    if scale >= 1:
        return data

    img = img.resize((max(1, round(w * scale)), max(1, round(h * scale))), Image.LANCZOS)
    buf = BytesIO()
    img.save(buf, format="PNG")
    logger.debug(f"Downscaled screenshot from {w}x{h} to {img.size[0]}x{img.size[1]}")
    return buf.getvalue()


class ScreenshotService:
    """Captures every view of the host as a base64-encoded PNG."""

    def __init__(self, host: UIHost, max_screenshot_size: Size | None = None):
        self._host = host
        self._max_size = max_screenshot_size

    async def take_screenshots(self) -> list[str]:
        images = await self._host.take_screenshots()
        return [
            base64.b64encode(fit_png(data, self._max_size)).decode("ascii")
            for data in images
        ]
