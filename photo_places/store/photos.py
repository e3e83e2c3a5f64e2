"""Photo content store: chunked JPEG binaries plus location/place metadata."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import BinaryIO, Callable, Iterator, Optional, Union
from uuid import uuid4

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, sessionmaker

from photo_places.core.env import DEFAULT_CHUNK_SIZE
from photo_places.core.errors import NotFound, store_errors
from photo_places.core.models import (
    PHOTO_CONTENT_TYPE,
    Coordinate,
    Photo,
    PlaceRef,
    place_key,
)
from photo_places.ingest.exif_reader import extract_location

from .schema import PhotoChunkRow, PhotoFileRow

logger = logging.getLogger(__name__)

Contents = Union[bytes, bytearray, BinaryIO]
LocationExtractor = Callable[[bytes], Coordinate]


def _read_contents(contents: Contents) -> bytes:
    if isinstance(contents, (bytes, bytearray)):
        return bytes(contents)
    if contents.seekable():
        contents.seek(0)
    return contents.read()


def photo_document(row: PhotoFileRow) -> dict:
    """Return the stored document shape of a photo file row."""
    return {
        "_id": row.id,
        "length": row.length,
        "chunkSize": row.chunk_size,
        "uploadDate": row.upload_date,
        "contentType": row.content_type,
        "metadata": {
            "location": Coordinate(longitude=row.longitude, latitude=row.latitude).serialize(),
            "place": row.place_id,
        },
    }


def _to_photo(row: PhotoFileRow) -> Photo:
    return Photo(
        id=row.id,
        location=Coordinate(longitude=row.longitude, latitude=row.latitude),
        place=row.place_id,
        content_type=row.content_type,
    )


def _optional_key(place: Optional[PlaceRef]) -> Optional[str]:
    return None if place is None else place_key(place)


class PhotoStore:
    def __init__(
        self,
        sessions: sessionmaker[Session],
        *,
        extractor: LocationExtractor = extract_location,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.sessions = sessions
        self.extractor = extractor
        self.chunk_size = chunk_size

    @contextmanager
    def _read(self) -> Iterator[Session]:
        with store_errors(), self.sessions() as session:
            yield session

    @contextmanager
    def _write(self) -> Iterator[Session]:
        with store_errors(), self.sessions.begin() as session:
            yield session

    def create(
        self,
        contents: Contents,
        location: Optional[Coordinate] = None,
        place: Optional[PlaceRef] = None,
    ) -> str:
        """Store a new photo and return its generated id.

        When no location is given it is extracted from the image; a photo
        without a resolvable location is never persisted.
        """
        data = _read_contents(contents)
        if location is None:
            location = self.extractor(data)
        key = _optional_key(place)

        photo_id = uuid4().hex
        row = PhotoFileRow(
            id=photo_id,
            content_type=PHOTO_CONTENT_TYPE,
            length=len(data),
            chunk_size=self.chunk_size,
            upload_date=datetime.now(timezone.utc),
            longitude=location.longitude,
            latitude=location.latitude,
            place_id=key,
        )
        row.chunks = [
            PhotoChunkRow(n=n, data=data[offset : offset + self.chunk_size])
            for n, offset in enumerate(range(0, len(data), self.chunk_size))
        ]
        with self._write() as session:
            session.add(row)
        logger.info(
            "Stored photo %s (%d bytes, %d chunks)", photo_id, len(data), len(row.chunks)
        )
        return photo_id

    def save(self, photo: Photo, contents: Optional[Contents] = None) -> Photo:
        """Create an unpersisted photo or rewrite the metadata of a persisted one."""
        if not photo.persisted:
            if contents is None:
                raise ValueError("contents are required to store a new photo")
            data = _read_contents(contents)
            location = self.extractor(data)
            photo_id = self.create(data, location=location, place=photo.place)
            return photo.model_copy(update={"id": photo_id, "location": location})
        if photo.location is None:
            raise ValueError("a persisted photo must keep its location")
        self.update_metadata(photo.id, location=photo.location, place=photo.place)
        return photo

    def update_metadata(
        self, photo_id: str, *, location: Coordinate, place: Optional[PlaceRef]
    ) -> None:
        """Rewrite location and place of a stored photo; the binary is untouched."""
        with self._write() as session:
            result = session.execute(
                update(PhotoFileRow)
                .where(PhotoFileRow.id == photo_id)
                .values(
                    longitude=location.longitude,
                    latitude=location.latitude,
                    place_id=_optional_key(place),
                )
            )
            if result.rowcount == 0:
                raise NotFound("photo", photo_id)

    def assign_place(
        self,
        photo_id: str,
        place: Optional[PlaceRef],
        *,
        expected_location: Optional[Coordinate] = None,
    ) -> bool:
        """Set (or clear) the place reference of a photo.

        With expected_location the write only happens while the stored location
        still equals it; False is returned when it has changed meanwhile.
        """
        stmt = update(PhotoFileRow).where(PhotoFileRow.id == photo_id)
        if expected_location is not None:
            stmt = stmt.where(
                PhotoFileRow.longitude == expected_location.longitude,
                PhotoFileRow.latitude == expected_location.latitude,
            )
        with self._write() as session:
            result = session.execute(stmt.values(place_id=_optional_key(place)))
            if result.rowcount:
                return True
            if session.get(PhotoFileRow, photo_id) is None:
                raise NotFound("photo", photo_id)
        logger.debug("Photo %s moved before place assignment", photo_id)
        return False

    def fetch(self, photo_id: str) -> Photo:
        with self._read() as session:
            row = session.get(PhotoFileRow, photo_id)
            if row is None:
                raise NotFound("photo", photo_id)
            return _to_photo(row)

    def fetch_contents(self, photo_id: str) -> bytes:
        """Return the photo binary, concatenating chunks in stored order."""
        with self._read() as session:
            if session.get(PhotoFileRow, photo_id) is None:
                raise NotFound("photo", photo_id)
            chunks = session.scalars(
                select(PhotoChunkRow.data)
                .where(PhotoChunkRow.files_id == photo_id)
                .order_by(PhotoChunkRow.n)
            ).all()
        return b"".join(chunks)

    def delete(self, photo_id: str) -> int:
        """Remove binary and metadata; returns 0 when the id did not exist."""
        with self._write() as session:
            session.execute(delete(PhotoChunkRow).where(PhotoChunkRow.files_id == photo_id))
            removed = session.execute(
                delete(PhotoFileRow).where(PhotoFileRow.id == photo_id)
            ).rowcount
        if removed:
            logger.info("Deleted photo %s", photo_id)
        return removed

    def delete_all(self) -> int:
        with self._write() as session:
            session.execute(delete(PhotoChunkRow))
            removed = session.execute(delete(PhotoFileRow)).rowcount
        logger.info("Deleted %d photos", removed)
        return removed

    def count(self) -> int:
        with self._read() as session:
            return int(session.scalar(select(func.count()).select_from(PhotoFileRow)) or 0)

    def list(self, offset: int = 0, limit: Optional[int] = None) -> list[Photo]:
        """Return stored photos in storage order (implementation-defined)."""
        stmt = select(PhotoFileRow).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._read() as session:
            return [_to_photo(row) for row in session.scalars(stmt).all()]

    def find_by_place(
        self, place: PlaceRef, offset: int = 0, limit: Optional[int] = None
    ) -> list[dict]:
        """Raw documents of photos referencing the place; map with Photo.from_document."""
        stmt = select(PhotoFileRow).where(PhotoFileRow.place_id == place_key(place)).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._read() as session:
            return [photo_document(row) for row in session.scalars(stmt).all()]

    def photos_for_place(
        self, place: PlaceRef, offset: int = 0, limit: Optional[int] = None
    ) -> list[Photo]:
        return [Photo.from_document(doc) for doc in self.find_by_place(place, offset, limit)]
