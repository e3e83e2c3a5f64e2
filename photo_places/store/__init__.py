"""Database layer: photo content store and place index."""

from .photos import PhotoStore, photo_document
from .places import PlaceIndex
from .schema import (
    AddressComponentRow,
    Base,
    PhotoChunkRow,
    PhotoFileRow,
    PlaceRow,
    create_engine_from_url,
    init_db,
    session_factory,
)

__all__ = [
    "AddressComponentRow",
    "Base",
    "PhotoChunkRow",
    "PhotoFileRow",
    "PhotoStore",
    "PlaceIndex",
    "PlaceRow",
    "create_engine_from_url",
    "init_db",
    "photo_document",
    "session_factory",
]
