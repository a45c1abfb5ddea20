"""
GeoJSON export of stored location samples.
"""

from collections.abc import Iterable
from typing import Any

from geospider.models import LocationSample


def feature_collection(samples: Iterable[LocationSample]) -> dict[str, Any]:
    """Build a GeoJSON FeatureCollection with one Point feature per sample."""
    return {
        "type": "FeatureCollection",
        "features": [sample.to_geojson_feature() for sample in samples],
    }
