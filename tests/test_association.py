import math

import pytest
from conftest import place_record

from photo_places.association import associate_all, associate_photo, resolve_nearest_place
from photo_places.core.errors import ConcurrentModification, NotFound
from photo_places.core.models import Coordinate, Photo
from photo_places.store import PhotoStore, PlaceIndex
from photo_places.store.geo import EARTH_RADIUS_METERS

HARBOR = Coordinate(longitude=-76.6122, latitude=39.2858)


def _offset_north(meters: float) -> Coordinate:
    return Coordinate(
        longitude=HARBOR.longitude,
        latitude=HARBOR.latitude + math.degrees(meters / EARTH_RADIUS_METERS),
    )


def _add_place(index: PlaceIndex, name: str, at: Coordinate) -> str:
    return index.create([place_record(name, at.latitude, at.longitude)])[0]


def test_resolve_returns_closest_place_within_threshold(place_index: PlaceIndex) -> None:
    _add_place(place_index, "mid", _offset_north(500))
    near = _add_place(place_index, "near", _offset_north(100))

    photo = Photo(id="p1", location=HARBOR)
    assert resolve_nearest_place(place_index, photo, 1000) == near


def test_resolve_without_place_in_range_is_no_match(place_index: PlaceIndex) -> None:
    _add_place(place_index, "far", _offset_north(2000))

    photo = Photo(id="p1", location=HARBOR)
    assert resolve_nearest_place(place_index, photo, 1000) is None
    assert resolve_nearest_place(place_index, photo, None) is not None


def test_resolve_requires_a_location(place_index: PlaceIndex) -> None:
    with pytest.raises(ValueError):
        resolve_nearest_place(place_index, Photo(), 1000)


def test_associate_photo_writes_reference(photo_store: PhotoStore, place_index: PlaceIndex) -> None:
    near = _add_place(place_index, "near", _offset_north(100))
    photo_id = photo_store.create(b"jpeg", location=HARBOR)

    assert associate_photo(photo_store, place_index, photo_id, 1609.34) == near
    assert photo_store.fetch(photo_id).place == near
    assert [p.id for p in photo_store.photos_for_place(near)] == [photo_id]


def test_associate_photo_without_match_keeps_existing_reference(
    photo_store: PhotoStore, place_index: PlaceIndex
) -> None:
    _add_place(place_index, "far", _offset_north(2000))
    photo_id = photo_store.create(b"jpeg", location=HARBOR, place="previous")

    assert associate_photo(photo_store, place_index, photo_id, 1000) is None
    assert photo_store.fetch(photo_id).place == "previous"


def test_associate_photo_missing(photo_store: PhotoStore, place_index: PlaceIndex) -> None:
    with pytest.raises(NotFound):
        associate_photo(photo_store, place_index, "missing", 1000)


class _MovingStore:
    """Photo store whose compare-and-set always loses to a concurrent writer."""

    def __init__(self, inner: PhotoStore):
        self.inner = inner
        self.attempts = 0

    def fetch(self, photo_id: str) -> Photo:
        return self.inner.fetch(photo_id)

    def assign_place(self, photo_id, place, *, expected_location=None) -> bool:
        self.attempts += 1
        return False


def test_associate_photo_gives_up_when_location_keeps_changing(
    photo_store: PhotoStore, place_index: PlaceIndex
) -> None:
    _add_place(place_index, "near", _offset_north(100))
    photo_id = photo_store.create(b"jpeg", location=HARBOR)
    moving = _MovingStore(photo_store)

    with pytest.raises(ConcurrentModification):
        associate_photo(moving, place_index, photo_id, 1000)  # type: ignore[arg-type]
    assert moving.attempts == 3
    assert photo_store.fetch(photo_id).place is None


def test_associate_all(photo_store: PhotoStore, place_index: PlaceIndex) -> None:
    near = _add_place(place_index, "near", _offset_north(100))
    close = photo_store.create(b"a", location=HARBOR)
    remote = photo_store.create(b"b", location=Coordinate(longitude=2.35, latitude=48.85))

    summary = associate_all(photo_store, place_index, 1609.34)

    assert summary.matched == 1
    assert summary.unmatched == 1
    assert summary.place_ids == {close: near, remote: None}
    assert photo_store.fetch(close).place == near
    assert photo_store.fetch(remote).place is None
