#!/usr/bin/env python
"""
Reset both stores, load places, store photos and link each photo to its nearest place.

Usage:
  python scripts/seed.py ./db/places.json ./db
  DATABASE_URL=sqlite+pysqlite:///./photo_places.db python scripts/seed.py places.json photos/
"""
from __future__ import annotations

import argparse
from pathlib import Path

from photo_places.association import associate_all
from photo_places.core.env import Settings, configure_logging, load_dotenv_if_present
from photo_places.ingest import load_places_json
from photo_places.store import PhotoStore, PlaceIndex, init_db, session_factory


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the photo and place stores.")
    parser.add_argument("places", type=Path, help="JSON array of place records")
    parser.add_argument("photos", type=Path, help="Directory holding image*.jpg files")
    parser.add_argument(
        "--max-meters",
        type=float,
        default=None,
        help="Association radius (default PLACE_MATCH_RADIUS_METERS or one mile)",
    )
    args = parser.parse_args()

    load_dotenv_if_present()
    configure_logging()
    settings = Settings.from_env()
    if not args.places.is_file():
        raise FileNotFoundError(f"Places file not found: {args.places}")
    if not args.photos.is_dir():
        raise FileNotFoundError(f"Directory not found or not a folder: {args.photos}")

    SessionLocal = session_factory(init_db(settings.database_url))
    photos = PhotoStore(SessionLocal, chunk_size=settings.chunk_size)
    places = PlaceIndex(SessionLocal)

    photos.delete_all()
    places.delete_all()
    places.create_spatial_index()
    load_places_json(places, args.places)

    for image in sorted(args.photos.glob("image*.jpg")):
        with image.open("rb") as handle:
            photos.create(handle)

    max_meters = args.max_meters if args.max_meters is not None else settings.match_radius_meters
    summary = associate_all(photos, places, max_meters)

    linked = {place_id for place_id in summary.place_ids.values() if place_id}
    addresses = sorted(places.fetch(place_id).formatted_address for place_id in linked)
    print(f"Seed complete: {places.count()} places, {photos.count()} photos, {summary.matched} linked")
    for address in addresses:
        print(f"  {address}")


if __name__ == "__main__":
    main()
