"""Place index: place records with a sphere-aware proximity search."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from contextlib import contextmanager
from typing import Any, Iterator, Optional
from uuid import uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from photo_places.core.errors import NotFound, SpatialIndexMissing, store_errors
from photo_places.core.models import (
    AddressComponent,
    Coordinate,
    Place,
    PlaceComponent,
    PlaceRef,
    place_key,
)

from .geo import bounding_box, distance_meters
from .schema import (
    AddressComponentRow,
    PlaceRow,
    create_spatial_index,
    drop_spatial_index,
    has_spatial_index,
)

logger = logging.getLogger(__name__)

COUNTRY_TYPE = "country"

_COMPONENT_SORT_FIELDS = {
    "_id": PlaceRow.id,
    "formatted_address": PlaceRow.formatted_address,
    "long_name": AddressComponentRow.long_name,
    "short_name": AddressComponentRow.short_name,
}


def _component(row: AddressComponentRow) -> AddressComponent:
    return AddressComponent(long_name=row.long_name, short_name=row.short_name, types=list(row.types))


def _to_place(row: PlaceRow) -> Place:
    return Place(
        id=row.id,
        formatted_address=row.formatted_address,
        location=Coordinate(longitude=row.longitude, latitude=row.latitude),
        address_components=[_component(c) for c in row.components],
    )


def _to_row(place: Place) -> PlaceRow:
    return PlaceRow(
        id=place.id or uuid4().hex,
        formatted_address=place.formatted_address,
        longitude=place.location.longitude,
        latitude=place.location.latitude,
        components=[
            AddressComponentRow(
                position=position,
                long_name=component.long_name,
                short_name=component.short_name,
                types=list(component.types),
            )
            for position, component in enumerate(place.address_components)
        ],
    )


class PlaceIndex:
    def __init__(self, sessions: sessionmaker[Session]):
        self.sessions = sessions

    @contextmanager
    def _read(self) -> Iterator[Session]:
        with store_errors(), self.sessions() as session:
            yield session

    @contextmanager
    def _write(self) -> Iterator[Session]:
        with store_errors(), self.sessions.begin() as session:
            yield session

    def _places(self):
        return select(PlaceRow).options(selectinload(PlaceRow.components))

    def create(self, batch: Iterable[Mapping[str, Any]]) -> list[str]:
        """Bulk insert raw place records and return their ids.

        Records are not de-duplicated; importing the same file twice without
        explicit ``_id`` values stores every place twice.
        """
        rows = [_to_row(Place.from_record(record)) for record in batch]
        with self._write() as session:
            session.add_all(rows)
        logger.info("Inserted %d places", len(rows))
        return [row.id for row in rows]

    def fetch(self, place_id: str) -> Place:
        with self._read() as session:
            row = session.scalar(self._places().where(PlaceRow.id == place_id))
            if row is None:
                raise NotFound("place", place_id)
            return _to_place(row)

    def list(self, offset: int = 0, limit: Optional[int] = None) -> list[Place]:
        stmt = self._places().offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._read() as session:
            return [_to_place(row) for row in session.scalars(stmt).all()]

    def count(self) -> int:
        with self._read() as session:
            return int(session.scalar(select(func.count()).select_from(PlaceRow)) or 0)

    def delete(self, place: PlaceRef) -> int:
        """Delete a place; photos referencing it keep their (now dangling) reference."""
        key = place_key(place)
        with self._write() as session:
            session.execute(delete(AddressComponentRow).where(AddressComponentRow.place_id == key))
            removed = session.execute(delete(PlaceRow).where(PlaceRow.id == key)).rowcount
        if removed:
            logger.info("Deleted place %s", key)
        return removed

    def delete_all(self) -> int:
        with self._write() as session:
            session.execute(delete(AddressComponentRow))
            removed = session.execute(delete(PlaceRow)).rowcount
        logger.info("Deleted %d places", removed)
        return removed

    def find_by_short_name(self, name: str) -> list[Place]:
        """Places with any address component whose short name equals name."""
        matching = select(AddressComponentRow.place_id).where(AddressComponentRow.short_name == name)
        with self._read() as session:
            rows = session.scalars(self._places().where(PlaceRow.id.in_(matching))).all()
            return [_to_place(row) for row in rows]

    def create_spatial_index(self) -> None:
        with self._write() as session:
            create_spatial_index(session.connection())

    def drop_spatial_index(self) -> None:
        with self._write() as session:
            drop_spatial_index(session.connection())

    def has_spatial_index(self) -> bool:
        with self._read() as session:
            return has_spatial_index(session.connection())

    def nearest(
        self,
        point: Coordinate,
        max_meters: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> list[Place]:
        """Places ordered by great-circle distance from point, nearest first.

        With max_meters only places within that radius qualify.
        """
        stmt = self._places()
        if max_meters is not None:
            box = bounding_box(point, max_meters)
            stmt = stmt.where(PlaceRow.latitude.between(box.min_lat, box.max_lat))
            if box.min_lon is not None:
                stmt = stmt.where(PlaceRow.longitude.between(box.min_lon, box.max_lon))

        with self._read() as session:
            if not has_spatial_index(session.connection()):
                raise SpatialIndexMissing(
                    "proximity queries need the places spatial index; call create_spatial_index()"
                )
            candidates = [_to_place(row) for row in session.scalars(stmt).all()]

        ranked = sorted(
            ((distance_meters(point, place.location), place) for place in candidates),
            key=lambda pair: pair[0],
        )
        if max_meters is not None:
            ranked = [pair for pair in ranked if pair[0] <= max_meters]
        if limit is not None:
            ranked = ranked[:limit]
        logger.debug(
            "nearest(%s, max_meters=%s): %d of %d candidates",
            point.serialize()["coordinates"],
            max_meters,
            len(ranked),
            len(candidates),
        )
        return [place for _, place in ranked]

    def near_place(self, place: Place, max_meters: Optional[float] = None) -> list[Place]:
        return self.nearest(place.location, max_meters)

    def _unwound(self, session: Session, stmt) -> list[tuple[PlaceRow, AddressComponentRow]]:
        return session.execute(stmt).tuples().all()

    def _unwind_stmt(self):
        return select(PlaceRow, AddressComponentRow).join(
            AddressComponentRow, AddressComponentRow.place_id == PlaceRow.id
        )

    def country_names(self) -> list[str]:
        """Distinct long names of components typed as a country."""
        stmt = select(AddressComponentRow.long_name, AddressComponentRow.types).order_by(
            AddressComponentRow.id
        )
        with self._read() as session:
            rows = session.execute(stmt).all()
        names: list[str] = []
        seen: set[str] = set()
        for long_name, types in rows:
            if COUNTRY_TYPE in types and long_name not in seen:
                seen.add(long_name)
                names.append(long_name)
        return names

    def ids_by_country_code(self, country_code: str) -> list[str]:
        """Ids of places with a country component whose short name is country_code."""
        stmt = self._unwind_stmt().where(AddressComponentRow.short_name == country_code)
        with self._read() as session:
            rows = self._unwound(session, stmt)
        ids: list[str] = []
        for place, component in rows:
            if COUNTRY_TYPE in component.types and place.id not in ids:
                ids.append(place.id)
        return ids

    def address_components(
        self,
        sort: Optional[Sequence[tuple[str, int]]] = None,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[PlaceComponent]:
        """One row per address component, paired with its parent place."""
        stmt = self._unwind_stmt()
        for field, direction in sort or ():
            try:
                column = _COMPONENT_SORT_FIELDS[field]
            except KeyError:
                raise ValueError(f"cannot sort address components by {field!r}") from None
            stmt = stmt.order_by(column.desc() if direction < 0 else column.asc())
        if offset is not None:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._read() as session:
            rows = self._unwound(session, stmt)
            return [
                PlaceComponent(
                    place_id=place.id,
                    formatted_address=place.formatted_address,
                    location=Coordinate(longitude=place.longitude, latitude=place.latitude),
                    component=_component(component),
                )
                for place, component in rows
            ]
