from regionscribe.regions.geometry import Rect, Size, RegionGeometry
from regionscribe.regions.store import Region, RegionStore, region_color, REGION_COLORS


def make_region(x):
    return Region(geometry=RegionGeometry(Rect(x, 0, 10, 10), Size(100, 100)), raster=b"jpeg-%d" % x)


def test_add_keeps_capture_order_not_position():
    lower, upper = make_region(90), make_region(0)
    store = RegionStore().add(lower).add(upper)
    assert [r.id for r in store] == [lower.id, upper.id]


def test_operations_return_new_stores():
    region = make_region(1)
    empty = RegionStore()
    one = empty.add(region)
    assert len(empty) == 0
    assert len(one) == 1
    assert one.remove(region.id) is not one
    assert len(one) == 1


def test_remove_only_region_empties_store():
    region = make_region(1)
    store = RegionStore().add(region).remove(region.id)
    assert store.is_empty
    assert store.last is None


def test_remove_keeps_the_others_in_order():
    a, b, c = make_region(1), make_region(2), make_region(3)
    store = RegionStore().add(a).add(b).add(c).remove(b.id)
    assert [r.id for r in store] == [a.id, c.id]
    assert b.id not in [r.id for r in store]
    assert store.last is c


def test_reset_all():
    store = RegionStore().add(make_region(1)).add(make_region(2))
    assert store.reset_all().is_empty


def test_ids_are_unique():
    assert make_region(1).id != make_region(1).id


def test_colors_cycle():
    assert region_color(0) == region_color(len(REGION_COLORS))
