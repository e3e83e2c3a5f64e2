from __future__ import annotations

from io import BytesIO

import pytest
from PIL import Image

from photo_places.store import PhotoStore, PlaceIndex, init_db, session_factory

GPS_INFO_TAG = 34853


@pytest.fixture
def sessions():
    engine = init_db("sqlite+pysqlite:///:memory:")
    return session_factory(engine)


@pytest.fixture
def photo_store(sessions) -> PhotoStore:
    return PhotoStore(sessions)


@pytest.fixture
def place_index(sessions) -> PlaceIndex:
    index = PlaceIndex(sessions)
    index.create_spatial_index()
    return index


@pytest.fixture
def make_jpeg():
    """Build JPEG bytes, optionally tagged with a GPS position in DMS form."""

    def _make(
        lat: tuple[float, float, float] | None = None,
        lat_ref: str = "N",
        lng: tuple[float, float, float] | None = None,
        lng_ref: str = "E",
        color: str = "red",
    ) -> bytes:
        img = Image.new("RGB", (16, 16), color=color)
        exif = Image.Exif()
        exif[306] = "2016:05:04 10:11:12"
        if lat is not None and lng is not None:
            exif[GPS_INFO_TAG] = {1: lat_ref, 2: lat, 3: lng_ref, 4: lng}
        buffer = BytesIO()
        img.save(buffer, format="JPEG", exif=exif)
        return buffer.getvalue()

    return _make


def place_record(
    address: str,
    lat: float,
    lng: float,
    components: list[dict] | None = None,
    **extra,
) -> dict:
    record = {
        "formatted_address": address,
        "geometry": {"geolocation": {"type": "Point", "coordinates": [lng, lat]}},
        "address_components": components or [],
    }
    record.update(extra)
    return record
