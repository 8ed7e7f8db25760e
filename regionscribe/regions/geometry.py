# regionscribe/regions/geometry.py
from dataclasses import dataclass


@dataclass(frozen=True)
class Size:
    width: float
    height: float

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


@dataclass(frozen=True)
class Rect:
    """An axis-aligned rectangle. Units depend on the space it was expressed in (display or natural)."""
    x: float
    y: float
    width: float
    height: float

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def normalized(self) -> "Rect":
        """Returns the same rectangle with a non-negative width and height."""
        x, width = (self.x + self.width, -self.width) if self.width < 0 else (self.x, self.width)
        y, height = (self.y + self.height, -self.height) if self.height < 0 else (self.y, self.height)
        return Rect(x, y, width, height)


@dataclass(frozen=True)
class RegionGeometry:
    """A rectangle in natural pixel space plus the natural size of its image at capture time."""
    rect: Rect
    natural_size: Size


def _scale_factors(source: Size, target: Size):
    # identity when either size is unknown, so a region never fails to render
    if source is None or target is None or source.is_empty or target.is_empty:
        return 1.0, 1.0
    return target.width / source.width, target.height / source.height


def _scale(rect: Rect, scale_x: float, scale_y: float) -> Rect:
    return Rect(
        x=rect.x * scale_x,
        y=rect.y * scale_y,
        width=rect.width * scale_x,
        height=rect.height * scale_y,
    )


def to_natural(display_rect: Rect, display_size: Size, natural_size: Size) -> Rect:
    """Scales a rectangle drawn on the displayed image into the image's natural pixel space."""
    scale_x, scale_y = _scale_factors(display_size, natural_size)
    return _scale(display_rect.normalized(), scale_x, scale_y)


def to_display(natural_rect: Rect, natural_size_at_capture: Size, display_size: Size) -> Rect:
    """
    Maps natural-space geometry onto the image as it is currently rendered.

    Meant to be called at paint time with the current rendered size, so overlays
    follow window resizes without any stored display geometry.
    """
    scale_x, scale_y = _scale_factors(natural_size_at_capture, display_size)
    return _scale(natural_rect, scale_x, scale_y)


def region_to_display(geometry: RegionGeometry, display_size: Size) -> Rect:
    return to_display(geometry.rect, geometry.natural_size, display_size)
