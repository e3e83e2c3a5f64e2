"""Error taxonomy shared by the photo and place stores."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import DBAPIError, IntegrityError


class PhotoPlacesError(Exception):
    """Base class for every error raised by photo_places."""


class MalformedCoordinate(PhotoPlacesError, ValueError):
    """Input matched neither the lat/lng shape nor the GeoJSON point shape."""


class InvalidPlaceReference(PhotoPlacesError, ValueError):
    """A place reference could not be turned into a place key."""


class InvalidPlaceRecord(PhotoPlacesError, ValueError):
    """An imported place record is missing its address or has bad components."""


class ExtractionError(PhotoPlacesError):
    """No usable geolocation could be read from the image contents."""


class NotFound(PhotoPlacesError, LookupError):
    def __init__(self, kind: str, key: str):
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class DuplicateKey(PhotoPlacesError):
    """An insert collided with an existing id."""


class SpatialIndexMissing(PhotoPlacesError):
    """A proximity query ran against a collection without its spatial index."""


class ConcurrentModification(PhotoPlacesError):
    """A compare-and-set write kept losing to concurrent updates."""


class StoreUnavailable(PhotoPlacesError):
    """The underlying database failed; callers may retry with backoff."""


@contextmanager
def store_errors() -> Iterator[None]:
    """Translate SQLAlchemy driver errors into the photo_places taxonomy."""
    try:
        yield
    except IntegrityError as exc:
        raise DuplicateKey(str(exc.orig)) from exc
    except DBAPIError as exc:
        raise StoreUnavailable(str(exc.orig)) from exc
