from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from photo_places.store.places import PlaceIndex

logger = logging.getLogger(__name__)


def load_places_json(index: PlaceIndex, path: str | Path) -> list[str]:
    """Bulk load a JSON array of place records into the place index."""
    source = Path(path)
    logger.info("Places: loading %s", source)
    records = json.loads(source.read_text(encoding="utf-8"))
    if not isinstance(records, list):
        raise ValueError(f"{source} must contain a JSON array of place records")
    return index.create(records)
