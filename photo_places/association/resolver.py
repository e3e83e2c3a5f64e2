from __future__ import annotations

import logging
from typing import Optional

from photo_places.core.errors import ConcurrentModification
from photo_places.core.models import AssociationSummary, Photo
from photo_places.store.photos import PhotoStore
from photo_places.store.places import PlaceIndex

logger = logging.getLogger(__name__)

MAX_ASSIGN_ATTEMPTS = 3


def resolve_nearest_place(
    places: PlaceIndex, photo: Photo, max_meters: Optional[float]
) -> Optional[str]:
    """Return the id of the closest place within max_meters of the photo, if any.

    Read-only: writing the reference back is the caller's job.
    """
    if photo.location is None:
        raise ValueError("photo has no location to resolve")
    matches = places.nearest(photo.location, max_meters, limit=1)
    return matches[0].id if matches else None


def associate_photo(
    photos: PhotoStore,
    places: PlaceIndex,
    photo_id: str,
    max_meters: Optional[float],
) -> Optional[str]:
    """Link a stored photo to its nearest place and persist the reference.

    The write is conditional on the location the match was computed from, so a
    concurrent location change triggers a fresh lookup instead of a stale link.
    """
    for attempt in range(1, MAX_ASSIGN_ATTEMPTS + 1):
        photo = photos.fetch(photo_id)
        place_id = resolve_nearest_place(places, photo, max_meters)
        if place_id is None:
            logger.debug("Photo %s: no place within %s m", photo_id, max_meters)
            return None
        if photos.assign_place(photo_id, place_id, expected_location=photo.location):
            logger.debug("Photo %s -> place %s", photo_id, place_id)
            return place_id
        logger.info("Photo %s changed during association (attempt %d)", photo_id, attempt)
    raise ConcurrentModification(
        f"photo {photo_id} kept changing; gave up after {MAX_ASSIGN_ATTEMPTS} attempts"
    )


def associate_all(
    photos: PhotoStore, places: PlaceIndex, max_meters: Optional[float]
) -> AssociationSummary:
    """Associate every stored photo with its nearest place within max_meters."""
    summary = AssociationSummary()
    for photo in photos.list():
        place_id = associate_photo(photos, places, photo.id, max_meters)
        summary.place_ids[photo.id] = place_id
        if place_id is None:
            summary.unmatched += 1
        else:
            summary.matched += 1
    logger.info(
        "Association: %d matched, %d without a place within %s m",
        summary.matched,
        summary.unmatched,
        max_meters,
    )
    return summary
