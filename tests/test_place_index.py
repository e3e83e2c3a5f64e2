import json
import math
from pathlib import Path

import pytest
from conftest import place_record

from photo_places.core.errors import (
    DuplicateKey,
    InvalidPlaceRecord,
    MalformedCoordinate,
    NotFound,
    SpatialIndexMissing,
)
from photo_places.core.models import Coordinate
from photo_places.ingest import load_places_json
from photo_places.store import PlaceIndex
from photo_places.store.geo import EARTH_RADIUS_METERS, distance_meters

ORIGIN = Coordinate(longitude=-76.6, latitude=39.3)


def _north_of(origin: Coordinate, meters: float) -> tuple[float, float]:
    return origin.latitude + math.degrees(meters / EARTH_RADIUS_METERS), origin.longitude


def _us(city: str, state: str) -> list[dict]:
    return [
        {"long_name": city, "short_name": city, "types": ["locality", "political"]},
        {"long_name": state, "short_name": state[:2].upper(), "types": ["administrative_area_level_1"]},
        {"long_name": "United States", "short_name": "US", "types": ["country", "political"]},
    ]


@pytest.fixture
def ranked_places(place_index: PlaceIndex) -> dict[str, str]:
    ids = {}
    for name, meters in (("far", 2000), ("near", 100), ("mid", 500)):
        lat, lng = _north_of(ORIGIN, meters)
        ids[name] = place_index.create([place_record(name, lat, lng)])[0]
    return ids


def test_nearest_respects_max_distance(place_index: PlaceIndex, ranked_places) -> None:
    within = place_index.nearest(ORIGIN, max_meters=1000)
    assert [p.id for p in within] == [ranked_places["near"], ranked_places["mid"]]

    everything = place_index.nearest(ORIGIN)
    assert [p.id for p in everything] == [
        ranked_places["near"],
        ranked_places["mid"],
        ranked_places["far"],
    ]
    distances = [distance_meters(ORIGIN, p.location) for p in everything]
    assert distances == sorted(distances)
    assert distances[0] == pytest.approx(100, abs=0.01)

    assert [p.id for p in place_index.nearest(ORIGIN, limit=1)] == [ranked_places["near"]]
    assert place_index.nearest(ORIGIN, max_meters=50) == []


def test_nearest_filters_by_longitude_too(place_index: PlaceIndex) -> None:
    east = Coordinate(longitude=ORIGIN.longitude + 0.005, latitude=ORIGIN.latitude)
    west_far = Coordinate(longitude=ORIGIN.longitude - 0.5, latitude=ORIGIN.latitude)
    place_index.create(
        [
            place_record("east", east.latitude, east.longitude),
            place_record("west", west_far.latitude, west_far.longitude),
        ]
    )
    result = place_index.nearest(ORIGIN, max_meters=1000)
    assert [p.formatted_address for p in result] == ["east"]


def test_nearest_across_the_antimeridian(place_index: PlaceIndex) -> None:
    place_index.create([place_record("fiji", -17.0, 179.999), place_record("samoa", -17.0, -179.999)])
    result = place_index.nearest(Coordinate(longitude=180.0, latitude=-17.0), max_meters=1000)
    assert {p.formatted_address for p in result} == {"fiji", "samoa"}


def test_nearest_requires_spatial_index(sessions) -> None:
    index = PlaceIndex(sessions)
    index.create([place_record("somewhere", 1.0, 1.0)])
    assert index.has_spatial_index() is False
    with pytest.raises(SpatialIndexMissing):
        index.nearest(ORIGIN)


def test_spatial_index_lifecycle_is_idempotent(sessions) -> None:
    index = PlaceIndex(sessions)
    index.create_spatial_index()
    index.create_spatial_index()
    assert index.has_spatial_index()
    index.drop_spatial_index()
    index.drop_spatial_index()
    assert not index.has_spatial_index()


def test_fetch_list_and_delete(place_index: PlaceIndex) -> None:
    ids = place_index.create(
        [
            place_record("Baltimore, MD, USA", 39.29, -76.61, _us("Baltimore", "Maryland")),
            place_record("Annapolis, MD, USA", 38.97, -76.49, _us("Annapolis", "Maryland")),
        ]
    )
    place = place_index.fetch(ids[0])
    assert place.formatted_address == "Baltimore, MD, USA"
    assert [c.long_name for c in place.address_components] == [
        "Baltimore",
        "Maryland",
        "United States",
    ]
    assert place.location == Coordinate(longitude=-76.61, latitude=39.29)

    assert place_index.count() == 2
    assert len(place_index.list(offset=1)) == 1
    assert len(place_index.list(limit=1)) == 1

    assert place_index.delete(ids[0]) == 1
    assert place_index.delete(ids[0]) == 0
    with pytest.raises(NotFound):
        place_index.fetch(ids[0])
    assert place_index.count() == 1


def test_create_keeps_explicit_ids_and_rejects_duplicates(place_index: PlaceIndex) -> None:
    ids = place_index.create([place_record("A", 1.0, 1.0, _id={"$oid": "abc123"})])
    assert ids == ["abc123"]
    with pytest.raises(DuplicateKey):
        place_index.create([place_record("A again", 1.0, 1.0, _id="abc123")])
    assert place_index.count() == 1


def test_reimport_without_ids_duplicates_records(place_index: PlaceIndex) -> None:
    batch = [place_record("A", 1.0, 1.0)]
    place_index.create(batch)
    place_index.create(batch)
    assert place_index.count() == 2


def test_create_rejects_place_without_location(place_index: PlaceIndex) -> None:
    with pytest.raises(MalformedCoordinate):
        place_index.create([{"formatted_address": "Nowhere", "address_components": []}])
    assert place_index.count() == 0


def test_create_rejects_record_without_address(place_index: PlaceIndex) -> None:
    good = place_record("Paris", 48.85, 2.35)
    bad = place_record("ignored", 1.0, 1.0)
    del bad["formatted_address"]
    with pytest.raises(InvalidPlaceRecord):
        place_index.create([good, bad])
    assert place_index.count() == 0


def test_country_names_are_distinct(place_index: PlaceIndex) -> None:
    france = [{"long_name": "France", "short_name": "FR", "types": ["country", "political"]}]
    place_index.create(
        [
            place_record("Paris", 48.85, 2.35, france),
            place_record("Lyon", 45.76, 4.83, france),
            place_record("Baltimore", 39.29, -76.61, _us("Baltimore", "Maryland")),
        ]
    )
    names = place_index.country_names()
    assert sorted(names) == ["France", "United States"]
    assert names.count("France") == 1


def test_ids_by_country_code_matches_country_components(place_index: PlaceIndex) -> None:
    ids = place_index.create(
        [
            place_record("Baltimore", 39.29, -76.61, _us("Baltimore", "Maryland")),
            place_record("Annapolis", 38.97, -76.49, _us("Annapolis", "Maryland")),
            place_record(
                "Paris",
                48.85,
                2.35,
                [
                    # short name "US" on a non-country component must not match
                    {"long_name": "Rue US", "short_name": "US", "types": ["route"]},
                    {"long_name": "France", "short_name": "FR", "types": ["country"]},
                ],
            ),
        ]
    )
    assert sorted(place_index.ids_by_country_code("US")) == sorted(ids[:2])
    assert place_index.ids_by_country_code("FR") == [ids[2]]
    assert place_index.ids_by_country_code("DE") == []


def test_address_components_are_unwound(place_index: PlaceIndex) -> None:
    ids = place_index.create(
        [
            place_record("Baltimore", 39.29, -76.61, _us("Baltimore", "Maryland")),
            place_record("Annapolis", 38.97, -76.49, _us("Annapolis", "Maryland")),
            place_record("Empty", 0.0, 0.0),
        ]
    )
    rows = place_index.address_components()
    assert len(rows) == 6
    assert {row.place_id for row in rows} == set(ids[:2])
    baltimore = [row for row in rows if row.place_id == ids[0]]
    assert {row.component.long_name for row in baltimore} == {"Baltimore", "Maryland", "United States"}
    assert all(row.formatted_address == "Baltimore" for row in baltimore)
    assert all(row.location == Coordinate(longitude=-76.61, latitude=39.29) for row in baltimore)

    ordered = place_index.address_components(sort=[("long_name", 1)], offset=1, limit=2)
    assert [row.component.long_name for row in ordered] == ["Baltimore", "Maryland"]
    descending = place_index.address_components(sort=[("long_name", -1)], limit=2)
    assert [row.component.long_name for row in descending] == ["United States", "United States"]

    with pytest.raises(ValueError):
        place_index.address_components(sort=[("types", 1)])


def test_find_by_short_name(place_index: PlaceIndex) -> None:
    ids = place_index.create(
        [
            place_record("Baltimore", 39.29, -76.61, _us("Baltimore", "Maryland")),
            place_record("Paris", 48.85, 2.35, [{"long_name": "France", "short_name": "FR", "types": ["country"]}]),
        ]
    )
    assert [p.id for p in place_index.find_by_short_name("MA")] == [ids[0]]
    assert [p.id for p in place_index.find_by_short_name("FR")] == [ids[1]]


def test_near_place(place_index: PlaceIndex, ranked_places) -> None:
    near = place_index.fetch(ranked_places["near"])
    around = place_index.near_place(near, max_meters=500)
    assert [p.id for p in around] == [ranked_places["near"], ranked_places["mid"]]


def test_load_places_json(place_index: PlaceIndex, tmp_path: Path) -> None:
    path = tmp_path / "places.json"
    path.write_text(
        json.dumps(
            [
                place_record("Baltimore", 39.29, -76.61, _us("Baltimore", "Maryland")),
                place_record("Annapolis", 38.97, -76.49, _us("Annapolis", "Maryland")),
            ]
        )
    )
    ids = load_places_json(place_index, path)
    assert len(ids) == 2
    assert place_index.count() == 2

    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"formatted_address": "not a list"}))
    with pytest.raises(ValueError):
        load_places_json(place_index, bad)
