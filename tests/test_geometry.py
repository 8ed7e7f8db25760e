import pytest

from regionscribe.regions.geometry import Rect, Size, RegionGeometry, to_natural, to_display, region_to_display


def test_to_natural_scales_by_natural_over_display():
    natural = to_natural(Rect(10, 20, 30, 40), Size(500, 250), Size(2000, 500))
    assert natural == Rect(40, 40, 120, 80)


@pytest.mark.parametrize("display, natural", [
    (Size(640, 480), Size(4000, 3000)),
    (Size(333, 777), Size(1024, 2048)),
    (Size(1920, 1080), Size(1920, 1080)),
])
def test_round_trip_reconstructs_display_rect(display, natural):
    rect = Rect(12.5, 33.0, 101.25, 57.0)
    back = to_display(to_natural(rect, display, natural), natural, display)
    assert back.x == pytest.approx(rect.x)
    assert back.y == pytest.approx(rect.y)
    assert back.width == pytest.approx(rect.width)
    assert back.height == pytest.approx(rect.height)


def test_region_follows_a_resized_display():
    geometry = RegionGeometry(Rect(100, 50, 200, 100), Size(1000, 500))
    assert region_to_display(geometry, Size(500, 250)) == Rect(50, 25, 100, 50)
    assert region_to_display(geometry, Size(2000, 1000)) == Rect(200, 100, 400, 200)


@pytest.mark.parametrize("natural_size", [Size(0, 0), Size(0, 300), None])
def test_unknown_natural_size_falls_back_to_identity(natural_size):
    rect = Rect(5, 6, 7, 8)
    assert to_display(rect, natural_size, Size(100, 100)) == rect
    assert to_natural(rect, Size(100, 100), natural_size) == rect


def test_selection_dragged_up_and_left_is_normalized():
    natural = to_natural(Rect(50, 40, -20, -10), Size(100, 100), Size(100, 100))
    assert natural == Rect(30, 30, 20, 10)
