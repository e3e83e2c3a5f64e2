from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidPlaceRecord, InvalidPlaceReference, MalformedCoordinate

PHOTO_CONTENT_TYPE = "image/jpeg"


class Coordinate(BaseModel):
    """Longitude/latitude pair in WGS84 degrees."""

    model_config = ConfigDict(frozen=True)

    longitude: float = Field(strict=True, ge=-180.0, le=180.0)
    latitude: float = Field(strict=True, ge=-90.0, le=90.0)

    @classmethod
    def parse(cls, raw: Any) -> "Coordinate":
        """Build a coordinate from a {lat, lng} pair or a GeoJSON point."""
        if not isinstance(raw, Mapping):
            raise MalformedCoordinate(f"expected a mapping, got {type(raw).__name__}")
        if "lat" in raw and "lng" in raw:
            longitude, latitude = raw["lng"], raw["lat"]
        elif "coordinates" in raw:
            pair = raw["coordinates"]
            if (
                not isinstance(pair, Sequence)
                or isinstance(pair, (str, bytes, bytearray))
                or len(pair) != 2
            ):
                raise MalformedCoordinate(f"coordinates must be [lng, lat], got {pair!r}")
            longitude, latitude = pair[0], pair[1]
        else:
            raise MalformedCoordinate(f"no lat/lng or coordinates in {dict(raw)!r}")
        try:
            return cls(longitude=longitude, latitude=latitude)
        except ValidationError as exc:
            raise MalformedCoordinate(str(exc)) from exc

    def serialize(self) -> dict:
        """Return the GeoJSON point form."""
        return {"type": "Point", "coordinates": [self.longitude, self.latitude]}


class ExifData(BaseModel):
    datetime_original: Optional[datetime] = None
    gps_lat: Optional[float] = None
    gps_lon: Optional[float] = None
    gps_altitude: Optional[float] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None


class AddressComponent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    long_name: str = Field(validation_alias=AliasChoices("long_name", "longName"))
    short_name: str = Field(validation_alias=AliasChoices("short_name", "shortName"))
    types: list[str] = Field(default_factory=list)


class Place(BaseModel):
    id: Optional[str] = None
    formatted_address: str
    location: Coordinate
    address_components: list[AddressComponent] = Field(default_factory=list)

    @property
    def persisted(self) -> bool:
        return self.id is not None

    @classmethod
    def from_record(cls, raw: Mapping[str, Any]) -> "Place":
        """Build a place from an imported JSON record.

        Accepts the snake_case keys of the geocoder export as well as their
        camelCase spellings. ``_id`` may be a plain string or ``{"$oid": ...}``.
        """
        geometry = raw.get("geometry") or {}
        geolocation = geometry.get("geolocation") if isinstance(geometry, Mapping) else None
        if geolocation is None:
            raise MalformedCoordinate("place record has no geometry.geolocation")
        location = Coordinate.parse(geolocation)
        components = raw.get("address_components", raw.get("addressComponents")) or []
        try:
            return cls(
                id=_record_id(raw.get("_id")),
                formatted_address=raw.get("formatted_address", raw.get("formattedAddress")),
                location=location,
                address_components=[AddressComponent.model_validate(c) for c in components],
            )
        except ValidationError as exc:
            raise InvalidPlaceRecord(str(exc)) from exc

    def to_record(self) -> dict:
        """Return the stored document shape of this place."""
        return {
            "_id": self.id,
            "formatted_address": self.formatted_address,
            "geometry": {"geolocation": self.location.serialize()},
            "address_components": [c.model_dump() for c in self.address_components],
        }


def _record_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, Mapping) and "$oid" in value:
        return str(value["$oid"])
    return str(value)


PlaceRef = Union[str, Place]


def place_key(ref: PlaceRef) -> str:
    """Resolve a place reference (id string or persisted Place) to its key."""
    key = ref.id if isinstance(ref, Place) else ref
    if not isinstance(key, str) or not key:
        raise InvalidPlaceReference(f"cannot derive a place key from {ref!r}")
    return key


class Photo(BaseModel):
    """Photo metadata. The binary contents are never held on the model."""

    id: Optional[str] = None
    location: Optional[Coordinate] = None
    place: Optional[str] = None
    content_type: str = PHOTO_CONTENT_TYPE

    @property
    def persisted(self) -> bool:
        return self.id is not None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Photo":
        metadata = doc.get("metadata") or {}
        location = metadata.get("location")
        return cls(
            id=str(doc["_id"]),
            location=Coordinate.parse(location) if location is not None else None,
            place=metadata.get("place"),
            content_type=doc.get("contentType", PHOTO_CONTENT_TYPE),
        )


class PlaceComponent(BaseModel):
    """One address component paired with its parent place."""

    place_id: str
    formatted_address: str
    location: Coordinate
    component: AddressComponent


class AssociationSummary(BaseModel):
    matched: int = 0
    unmatched: int = 0
    place_ids: dict[str, Optional[str]] = Field(default_factory=dict)
