import io

import pytest
from PIL import Image

from regionscribe.generation.errors import ImageNotReadyError, ImageDecodeError
from regionscribe.regions.geometry import Rect
from regionscribe.regions.rasterizer import SourceImage, rasterize, rasterize_whole


def decode(raster):
    return Image.open(io.BytesIO(raster))


def test_raster_has_natural_extent(sample_image):
    raster = rasterize(SourceImage(image=sample_image), Rect(10, 20, 60, 30))
    image = decode(raster)
    assert image.format == 'JPEG'
    assert image.size == (60, 30)


def test_raster_contains_the_selected_pixels(sample_image):
    source = SourceImage(image=sample_image)
    left = decode(rasterize(source, Rect(10, 10, 40, 40))).convert('RGB')
    right = decode(rasterize(source, Rect(150, 10, 40, 40))).convert('RGB')
    r, g, b = left.getpixel((20, 20))
    assert r > 200 and b < 60
    r, g, b = right.getpixel((20, 20))
    assert b > 200 and r < 60


def test_rect_is_clamped_to_the_image(sample_image):
    raster = rasterize(SourceImage(image=sample_image), Rect(180, 90, 50, 50))
    assert decode(raster).size == (20, 10)


def test_rect_outside_the_image_is_rejected(sample_image):
    with pytest.raises(ValueError):
        rasterize(SourceImage(image=sample_image), Rect(300, 300, 10, 10))


def test_not_decoded_image_is_not_ready(tmp_path, sample_image):
    path = tmp_path / "page.png"
    sample_image.save(path)
    source = SourceImage(path=str(path))
    assert not source.is_ready
    assert source.natural_size is None
    with pytest.raises(ImageNotReadyError):
        rasterize(source, Rect(0, 0, 10, 10))
    source.load()
    assert source.is_ready
    assert decode(rasterize(source, Rect(0, 0, 10, 10))).size == (10, 10)


def test_undecodable_file_raises_not_ready(tmp_path):
    path = tmp_path / "broken.png"
    path.write_bytes(b"not an image")
    with pytest.raises(ImageNotReadyError):
        SourceImage(path=str(path)).load()


def test_whole_image(sample_image):
    assert decode(rasterize_whole(SourceImage(image=sample_image))).size == (200, 100)


def test_fractional_rect_keeps_its_extent(sample_image):
    raster = rasterize(SourceImage(image=sample_image), Rect(0.4, 0.4, 10.2, 10.2))
    assert decode(raster).size == (10, 10)


def test_undecodable_file_stays_failed(tmp_path):
    path = tmp_path / "broken.png"
    path.write_bytes(b"not an image")
    source = SourceImage(path=str(path))
    with pytest.raises(ImageDecodeError):
        source.load()
    assert source.decode_error is not None
    with pytest.raises(ImageDecodeError):
        source.load()
