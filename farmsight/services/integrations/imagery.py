from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional, Protocol

import numpy as np
import rasterio
import requests
from rasterio.errors import RasterioError
from rasterio.mask import mask
from shapely.geometry import Point, mapping

from farmsight.core.errors import ExternalServiceError
from farmsight.core.logging import get_logger

logger = get_logger(__name__)

# Rough metres-per-degree at the equator, good enough for a field buffer
METERS_PER_DEGREE = 111_320.0


@dataclass(frozen=True)
class NdviObservation:
    date: date
    ndvi: float
    cloud_cover: float
    satellite: str


class ImageryProvider(Protocol):
    def latest_ndvi(self, latitude: float, longitude: float) -> Optional[NdviObservation]:
        ...

    def timeseries(
        self, latitude: float, longitude: float, start: date, end: date
    ) -> List[NdviObservation]:
        ...


def field_footprint(latitude: float, longitude: float, radius_m: float):
    return Point(longitude, latitude).buffer(radius_m / METERS_PER_DEGREE)


def compute_ndvi(red_url: str, nir_url: str, geometry) -> float:
    with rasterio.open(red_url) as red_src:
        red, _ = mask(red_src, [mapping(geometry)], crop=True)

    with rasterio.open(nir_url) as nir_src:
        nir, _ = mask(nir_src, [mapping(geometry)], crop=True)

    red = red.astype("float32")
    nir = nir.astype("float32")

    with np.errstate(divide="ignore", invalid="ignore"):
        ndvi = (nir - red) / (nir + red)

    return round(float(np.nanmean(ndvi)), 4)


class StacImageryProvider:
    """Sentinel-2 L2A scenes from a STAC API, NDVI averaged over the field footprint."""

    collection = "sentinel-2-l2a"

    def __init__(
        self,
        stac_url: str,
        timeout: float = 30.0,
        radius_m: float = 100.0,
        max_cloud_cover: int = 30,
    ):
        self.stac_url = stac_url
        self.timeout = timeout
        self.radius_m = radius_m
        self.max_cloud_cover = max_cloud_cover

    def search_scenes(self, bbox, start: Optional[date] = None, end: Optional[date] = None, limit: int = 1):
        payload = {
            "collections": [self.collection],
            "bbox": bbox,
            "limit": limit,
            "query": {"eo:cloud_cover": {"lt": self.max_cloud_cover}},
            "sortby": [{"field": "properties.datetime", "direction": "desc"}],
        }
        if start and end:
            payload["datetime"] = f"{start.isoformat()}T00:00:00Z/{end.isoformat()}T23:59:59Z"

        try:
            response = requests.post(self.stac_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise ExternalServiceError("imagery", str(exc)) from exc

        return [
            {
                "red": item["assets"]["red"]["href"] if "red" in item["assets"] else item["assets"]["B04"]["href"],
                "nir": item["assets"]["nir"]["href"] if "nir" in item["assets"] else item["assets"]["B08"]["href"],
                "date": datetime.fromisoformat(
                    item["properties"]["datetime"].replace("Z", "+00:00")
                ).date(),
                "cloud_cover": float(item["properties"].get("eo:cloud_cover", 0.0)),
            }
            for item in data.get("features", [])
        ]

    def _observe(self, scene, footprint) -> NdviObservation:
        try:
            ndvi = compute_ndvi(scene["red"], scene["nir"], footprint)
        except RasterioError as exc:
            raise ExternalServiceError("imagery", str(exc)) from exc

        return NdviObservation(
            date=scene["date"],
            ndvi=ndvi,
            cloud_cover=scene["cloud_cover"],
            satellite="Sentinel-2",
        )

    def latest_ndvi(self, latitude: float, longitude: float) -> Optional[NdviObservation]:
        footprint = field_footprint(latitude, longitude, self.radius_m)
        scenes = self.search_scenes(list(footprint.bounds))

        if not scenes:
            return None

        return self._observe(scenes[0], footprint)

    def timeseries(
        self, latitude: float, longitude: float, start: date, end: date
    ) -> List[NdviObservation]:
        footprint = field_footprint(latitude, longitude, self.radius_m)
        scenes = self.search_scenes(list(footprint.bounds), start, end, limit=50)

        logger.info("Found %d scenes for %.4f,%.4f", len(scenes), latitude, longitude)
        observations = [self._observe(scene, footprint) for scene in scenes]
        return sorted(observations, key=lambda o: o.date)


class SyntheticImageryProvider:
    """Offline stand-in: plausible NDVI every ``step_days`` days."""

    def __init__(self, rng: Optional[np.random.Generator] = None, step_days: int = 8):
        self.rng = rng if rng is not None else np.random.default_rng()
        self.step_days = step_days

    def _observation(self, day: date) -> NdviObservation:
        return NdviObservation(
            date=day,
            ndvi=round(float(self.rng.uniform(0.4, 0.9)), 4),
            cloud_cover=round(float(self.rng.uniform(0.0, 20.0)), 2),
            satellite="Sentinel-2",
        )

    def latest_ndvi(self, latitude: float, longitude: float) -> Optional[NdviObservation]:
        return self._observation(date.today())

    def timeseries(
        self, latitude: float, longitude: float, start: date, end: date
    ) -> List[NdviObservation]:
        observations = []
        day = start
        while day <= end:
            observations.append(self._observation(day))
            day += timedelta(days=self.step_days)
        return observations
