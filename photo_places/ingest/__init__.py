"""Image metadata extraction and bulk place import."""

from .exif_reader import extract_location, read_exif
from .place_loader import load_places_json

__all__ = [
    "extract_location",
    "load_places_json",
    "read_exif",
]
