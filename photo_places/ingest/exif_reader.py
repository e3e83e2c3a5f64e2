from __future__ import annotations

import logging
import numbers
from datetime import datetime, timezone
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Optional, Union

from PIL import Image

from photo_places.core.errors import ExtractionError, MalformedCoordinate
from photo_places.core.models import Coordinate, ExifData

logger = logging.getLogger(__name__)

DATETIME_ORIGINAL_TAG = 36867  # EXIF DateTimeOriginal
DATETIME_TAG = 306  # EXIF DateTime fallback
GPS_INFO_TAG = 34853  # GPSInfo
MAKE_TAG = 271
MODEL_TAG = 272

GPS_LATITUDE_REF = 1
GPS_LATITUDE = 2
GPS_LONGITUDE_REF = 3
GPS_LONGITUDE = 4
GPS_ALTITUDE = 6

ImageSource = Union[bytes, bytearray, BinaryIO, str, Path]


def _to_float(value: object) -> Optional[float]:
    if isinstance(value, tuple) and len(value) == 2 and value[1]:
        return float(value[0]) / float(value[1])
    if isinstance(value, numbers.Real):
        return float(value)
    return None


def _convert_gps_coordinate(values: object, ref: object) -> Optional[float]:
    if not isinstance(values, tuple) or len(values) != 3 or ref is None:
        return None
    parts = [_to_float(v) for v in values]
    if any(p is None for p in parts):
        return None
    degrees, minutes, seconds = parts  # type: ignore[misc]
    coordinate = degrees + minutes / 60.0 + seconds / 3600.0
    if isinstance(ref, bytes):
        ref = ref.decode("ascii", errors="ignore")
    if isinstance(ref, str) and ref.strip("\x00 ").upper() in {"S", "W"}:
        coordinate *= -1
    return coordinate


def _open(source: ImageSource) -> Image.Image:
    if isinstance(source, (bytes, bytearray)):
        return Image.open(BytesIO(source))
    return Image.open(source)


def read_exif(source: ImageSource) -> ExifData:
    """Extract GPS and capture metadata from image bytes, a file object or a path."""
    datetime_original: Optional[datetime] = None
    gps_lat: Optional[float] = None
    gps_lon: Optional[float] = None
    gps_altitude: Optional[float] = None

    try:
        with _open(source) as img:
            exif = img.getexif()
            if not exif:
                return ExifData()

            dt_value = exif.get(DATETIME_ORIGINAL_TAG) or exif.get(DATETIME_TAG)
            if dt_value:
                try:
                    datetime_original = datetime.strptime(
                        str(dt_value), "%Y:%m:%d %H:%M:%S"
                    ).replace(tzinfo=timezone.utc)
                except ValueError:
                    datetime_original = None

            camera_make = str(exif.get(MAKE_TAG) or "").strip() or None
            camera_model = str(exif.get(MODEL_TAG) or "").strip() or None

            gps_info = exif.get(GPS_INFO_TAG)
            if isinstance(gps_info, int):
                # Pillow stores the GPS IFD offset as an int; need to dereference.
                try:
                    gps_info = exif.get_ifd(GPS_INFO_TAG)
                except Exception as exc:
                    logger.debug("GPS IFD unreadable: %s", exc)
                    gps_info = None
            if isinstance(gps_info, dict):
                gps_lat = _convert_gps_coordinate(
                    gps_info.get(GPS_LATITUDE), gps_info.get(GPS_LATITUDE_REF)
                )
                gps_lon = _convert_gps_coordinate(
                    gps_info.get(GPS_LONGITUDE), gps_info.get(GPS_LONGITUDE_REF)
                )
                gps_altitude = _to_float(gps_info.get(GPS_ALTITUDE))
    except Exception as exc:
        # Unreadable metadata is reported as "no metadata"; callers decide if that is fatal.
        logger.debug("EXIF read failed: %s", exc)
        return ExifData()

    return ExifData(
        datetime_original=datetime_original,
        gps_lat=gps_lat,
        gps_lon=gps_lon,
        gps_altitude=gps_altitude,
        camera_make=camera_make,
        camera_model=camera_model,
    )


def extract_location(contents: ImageSource) -> Coordinate:
    """Return the embedded GPS position of an image or raise ExtractionError."""
    exif = read_exif(contents)
    if exif.gps_lat is None or exif.gps_lon is None:
        raise ExtractionError("image has no embedded GPS position")
    try:
        return Coordinate.parse({"lat": exif.gps_lat, "lng": exif.gps_lon})
    except MalformedCoordinate as exc:
        raise ExtractionError(f"embedded GPS position is invalid: {exc}") from exc
