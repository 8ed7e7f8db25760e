# regionscribe/regions/store.py
import uuid
from dataclasses import dataclass, field
from typing import Optional, Tuple

from regionscribe.regions.geometry import RegionGeometry

# Fill colours for region overlays, assigned by capture index.
REGION_COLORS = [
    (245, 158, 11),  # amber
    (14, 165, 233),  # sky blue
    (34, 197, 94),  # green
    (168, 85, 247),  # purple
    (239, 68, 68),  # red
    (251, 146, 60),  # orange
]


def region_color(index: int):
    return REGION_COLORS[index % len(REGION_COLORS)]


def new_region_id() -> str:
    return f"region-{uuid.uuid4().hex}"


@dataclass(frozen=True)
class Region:
    """A saved selection. The raster is encoded once at save time and never touched again."""
    geometry: RegionGeometry
    raster: bytes = field(repr=False)
    id: str = field(default_factory=new_region_id)


@dataclass(frozen=True)
class RegionStore:
    """
    The regions of the active image, in capture order.

    Immutable: every operation returns a new store, so a job that captured
    the regions it runs over is unaffected by later edits.
    """
    regions: Tuple[Region, ...] = ()

    def __len__(self):
        return len(self.regions)

    def __iter__(self):
        return iter(self.regions)

    @property
    def is_empty(self) -> bool:
        return not self.regions

    @property
    def last(self) -> Optional[Region]:
        return self.regions[-1] if self.regions else None

    def add(self, region: Region) -> "RegionStore":
        return RegionStore(self.regions + (region,))

    def remove(self, region_id: str) -> "RegionStore":
        return RegionStore(tuple(r for r in self.regions if r.id != region_id))

    def reset_all(self) -> "RegionStore":
        return RegionStore()
