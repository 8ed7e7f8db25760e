# regionscribe/regions/rasterizer.py
import io
import logging
import os
from typing import Optional

from PIL import Image, UnidentifiedImageError

from regionscribe.config.config import config
from regionscribe.generation.errors import ImageNotReadyError, ImageDecodeError
from regionscribe.regions.geometry import Rect, Size

logger = logging.getLogger(__name__)


class SourceImage:
    """
    An uploaded image file. Pixels are only available after load() has decoded it.
    """

    def __init__(self, path: Optional[str] = None, image: Optional[Image.Image] = None, name: Optional[str] = None):
        self.path = path
        self.name = name or (os.path.basename(path) if path else "image")
        self._image = image.convert('RGB') if image is not None else None
        self.decode_error: Optional[ImageDecodeError] = None

    @property
    def is_ready(self) -> bool:
        return self._image is not None

    @property
    def image(self) -> Image.Image:
        if self._image is None:
            raise ImageNotReadyError(f"Image '{self.name}' has not been decoded yet.")
        return self._image

    @property
    def natural_size(self) -> Optional[Size]:
        if self._image is None:
            return None
        return Size(self._image.width, self._image.height)

    def load(self) -> "SourceImage":
        if self._image is not None:
            return self
        if self.decode_error is not None:
            raise self.decode_error
        if not self.path:
            raise ImageNotReadyError(f"Image '{self.name}' has no file to decode.")
        try:
            with Image.open(self.path) as img:
                img.load()
                self._image = img.convert('RGB')
        except (OSError, UnidentifiedImageError) as e:
            logger.error(f"Could not decode image '{self.path}': {e}")
            self.decode_error = ImageDecodeError(f"Image '{self.name}' could not be decoded.")
            raise self.decode_error from e
        logger.info(f"Decoded image '{self.name}' ({self._image.width}x{self._image.height}).")
        return self


def _encode(image: Image.Image, quality: Optional[int]) -> bytes:
    with io.BytesIO() as bio:
        image.save(bio, format='JPEG', quality=quality or config.jpeg_quality)
        return bio.getvalue()


def _pixel_box(rect: Rect, bounds: Size):
    # size is rounded apart from the offset, the box keeps the selected extent
    left = int(round(rect.x))
    upper = int(round(rect.y))
    right = left + int(round(rect.width))
    lower = upper + int(round(rect.height))
    width, height = int(bounds.width), int(bounds.height)
    return (max(0, min(left, width)), max(0, min(upper, height)),
            max(0, min(right, width)), max(0, min(lower, height)))


def rasterize(source: SourceImage, natural_rect: Rect, quality: Optional[int] = None) -> bytes:
    """
    Encodes exactly the natural pixels inside natural_rect as a standalone JPEG.

    The output resolution is the selected natural extent, independent of how the
    image happens to be scaled on screen.
    """
    image = source.image
    left, upper, right, lower = _pixel_box(natural_rect.normalized(), source.natural_size)
    if right <= left or lower <= upper:
        raise ValueError(f"Region {natural_rect} does not overlap image '{source.name}'.")

    cropped = image.crop((left, upper, right, lower))
    raster = _encode(cropped, quality)
    logger.debug(f"Rasterized region {cropped.size} from '{source.name}' ({len(raster) // 1024} KB).")
    return raster


def rasterize_whole(source: SourceImage, quality: Optional[int] = None) -> bytes:
    """Encodes the whole image; used as the single implicit input when no region exists."""
    raster = _encode(source.image, quality)
    logger.debug(f"Rasterized whole image '{source.name}' ({len(raster) // 1024} KB).")
    return raster
