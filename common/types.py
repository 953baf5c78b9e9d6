from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import math
import numpy as np

from common.geo import point_in_polygon, ring_bbox


LonLat = Tuple[float, float]
BBox = Tuple[float, float, float, float]  # lon_min, lat_min, lon_max, lat_max

POLYGON = "Polygon"
MULTI_POLYGON = "MultiPolygon"


@dataclass(frozen=True, slots=True)
class Sample:
    """
    A single scalar observation, e.g. a district value located at its centroid.

    Attributes:
        lat, lon: degrees.
        value: metric value at that location.
    """
    lat: float
    lon: float
    value: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "lat", float(self.lat))
        object.__setattr__(self, "lon", float(self.lon))
        object.__setattr__(self, "value", float(self.value))

    @classmethod
    def from_mapping(cls, d: Mapping[str, Any]) -> "Sample":
        return cls(lat=d["lat"], lon=d["lon"], value=d["value"])

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lon": self.lon, "value": self.value}


def as_samples(items: Iterable[Any]) -> Tuple[Sample, ...]:
    """Coerce Samples or {lat, lon, value} mappings into an immutable tuple."""
    return tuple(s if isinstance(s, Sample) else Sample.from_mapping(s) for s in items)


def samples_from_records(records: Iterable[Mapping[str, Any]]) -> Tuple[Sample, ...]:
    """
    Build samples from loosely-typed records, skipping rows that have no value
    or no coordinates (districts without a centroid or without data).
    """
    out: List[Sample] = []
    for rec in records:
        lat, lon, value = rec.get("lat"), rec.get("lon"), rec.get("value")
        if lat is None or lon is None or value is None:
            continue
        out.append(Sample(lat=lat, lon=lon, value=value))
    return tuple(out)


@dataclass(frozen=True, slots=True)
class Bounds:
    """Axis-aligned bounding box in degrees."""
    north: float
    south: float
    east: float
    west: float

    def __post_init__(self) -> None:
        for name in ("north", "south", "east", "west"):
            object.__setattr__(self, name, float(getattr(self, name)))

    @property
    def width(self) -> float:
        return self.east - self.west

    @property
    def height(self) -> float:
        return self.north - self.south

    @property
    def is_degenerate(self) -> bool:
        return self.east <= self.west or self.north <= self.south

    @property
    def bbox(self) -> BBox:
        return (self.west, self.south, self.east, self.north)

    @classmethod
    def from_mapping(cls, d: Mapping[str, Any]) -> "Bounds":
        return cls(north=d["north"], south=d["south"], east=d["east"], west=d["west"])

    def to_dict(self) -> Dict[str, float]:
        return {"north": self.north, "south": self.south, "east": self.east, "west": self.west}


GHANA_BOUNDS = Bounds(north=11.2, south=4.74, east=1.2, west=-3.3)


@dataclass(frozen=True, slots=True, eq=False)
class Polygon:
    """
    One polygon: ring 0 is the outer boundary, rings 1..n are holes.
    Each ring is an (N, 2) read-only array of (lon, lat) vertices.
    """
    rings: Tuple[np.ndarray, ...]
    bbox: BBox = field(init=False)

    def __post_init__(self) -> None:
        rings = []
        for ring in self.rings:
            a = np.array(ring, dtype=float).reshape(-1, 2) if len(ring) else np.empty((0, 2))
            a.flags.writeable = False
            rings.append(a)
        object.__setattr__(self, "rings", tuple(rings))
        outer = rings[0] if rings else np.empty((0, 2))
        object.__setattr__(self, "bbox", ring_bbox(outer))

    @classmethod
    def from_coordinates(cls, coords: Sequence[Sequence[Sequence[float]]]) -> "Polygon":
        # GeoJSON positions may carry altitude; only lon/lat are kept
        return cls(rings=tuple([[(p[0], p[1]) for p in ring] for ring in coords]))

    def contains(self, lon: float, lat: float) -> bool:
        lon_min, lat_min, lon_max, lat_max = self.bbox
        if not (lon_min <= lon <= lon_max and lat_min <= lat <= lat_max):
            return False
        return point_in_polygon(lon, lat, self.rings)

    def to_coordinates(self) -> List[List[List[float]]]:
        return [ring.tolist() for ring in self.rings]


@dataclass(frozen=True, slots=True, eq=False)
class BoundaryGeometry:
    """
    A Polygon or MultiPolygon boundary geometry (immutable reference data).

    Geometry types other than Polygon/MultiPolygon are accepted but carry no
    polygons, so they never contain any point.
    """
    type: str
    polygons: Tuple[Polygon, ...] = ()

    @classmethod
    def from_geojson(cls, geometry: Mapping[str, Any]) -> "BoundaryGeometry":
        gtype = str(geometry.get("type", ""))
        coords = geometry.get("coordinates") or []
        if gtype == POLYGON:
            polygons: Tuple[Polygon, ...] = (Polygon.from_coordinates(coords),)
        elif gtype == MULTI_POLYGON:
            polygons = tuple(Polygon.from_coordinates(p) for p in coords)
        else:
            polygons = ()
        return cls(type=gtype, polygons=polygons)

    def contains(self, lon: float, lat: float) -> bool:
        return any(p.contains(lon, lat) for p in self.polygons)

    def to_geojson(self) -> Dict[str, Any]:
        if self.type == POLYGON and self.polygons:
            return {"type": POLYGON, "coordinates": self.polygons[0].to_coordinates()}
        return {"type": self.type, "coordinates": [p.to_coordinates() for p in self.polygons]}


def parse_boundary(obj: Any) -> Tuple[BoundaryGeometry, ...]:
    """
    Accept already-parsed boundary data in any of the shapes the map layer hands
    around: a list of {type, coordinates} geometries, a GeoJSON Feature, or a
    FeatureCollection. BoundaryGeometry instances pass through unchanged.
    """
    if isinstance(obj, BoundaryGeometry):
        return (obj,)
    if isinstance(obj, Mapping):
        if obj.get("type") == "FeatureCollection":
            return tuple(
                BoundaryGeometry.from_geojson(f["geometry"])
                for f in obj.get("features", [])
                if f.get("geometry")
            )
        if obj.get("type") == "Feature":
            return parse_boundary(obj.get("geometry") or [])
        return (BoundaryGeometry.from_geojson(obj),)
    return tuple(
        g if isinstance(g, BoundaryGeometry) else BoundaryGeometry.from_geojson(g)
        for g in obj
    )


@dataclass(frozen=True, slots=True, eq=False)
class Grid:
    """
    Interpolated values on a regular lattice plus a boundary containment mask.

    A Grid is only ever built complete. Both arrays are copied on construction
    and marked read-only, so a Grid can be handed across threads and cached
    without anyone mutating it.

    Attributes:
        values: float64 array (rows, cols); row 0 is the northern edge.
        mask: bool array (rows, cols); True where the cell center lies inside
            the boundary (or everywhere when no boundary was supplied).
        bounds: lattice extent; origin is (bounds.north, bounds.west).
        resolution: cell size in degrees.
    """
    values: np.ndarray = field(repr=False)
    mask: np.ndarray = field(repr=False)
    bounds: Bounds
    resolution: float

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=np.float64)
        mask = np.array(self.mask, dtype=bool)
        if values.ndim != 2:
            raise ValueError("values must be 2D (rows, cols)")
        if mask.shape != values.shape:
            raise ValueError("mask shape must match values shape")
        if not (self.resolution > 0):
            raise ValueError("resolution must be > 0")
        values.flags.writeable = False
        mask.flags.writeable = False
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "mask", mask)
        object.__setattr__(self, "resolution", float(self.resolution))

    @property
    def rows(self) -> int:
        return int(self.values.shape[0])

    @property
    def cols(self) -> int:
        return int(self.values.shape[1])

    @property
    def is_empty(self) -> bool:
        return self.rows == 0 or self.cols == 0

    def geo_metadata(self) -> Dict[str, Any]:
        """
        Georeferencing for the rendered overlay, using the same schema as the
        tile metadata sidecars: the image is stretched over `bounds`, top-left
        origin, negative latitude step.
        """
        b = self.bounds
        px_lon = b.width / self.cols if self.cols else self.resolution
        px_lat = -b.height / self.rows if self.rows else -self.resolution
        return {
            "crs": "EPSG:4326",
            "top_left_lon": b.west,
            "top_left_lat": b.north,
            "px_size_lon": px_lon,
            "px_size_lat": px_lat,
            "width": self.cols,
            "height": self.rows,
            "bbox": list(b.bbox),
            "bounds": b.to_dict(),
            "resolution": self.resolution,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grid": self.values.tolist(),
            "mask": self.mask.tolist(),
            "bounds": self.bounds.to_dict(),
            "resolution": self.resolution,
            "rows": self.rows,
            "cols": self.cols,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Grid":
        rows, cols = int(d["rows"]), int(d["cols"])
        values = np.array(d["grid"], dtype=np.float64).reshape(rows, cols)
        mask = np.array(d["mask"], dtype=bool).reshape(rows, cols)
        return cls(values=values, mask=mask, bounds=Bounds.from_mapping(d["bounds"]), resolution=d["resolution"])


def empty_grid(bounds: Bounds, resolution: float) -> Grid:
    return Grid(values=np.zeros((0, 0)), mask=np.zeros((0, 0), dtype=bool), bounds=bounds, resolution=resolution)


@dataclass(frozen=True, slots=True)
class ComputeRequest:
    """
    Message asking the orchestrator for a grid.

    `request_id` is minted by the submitter, strictly increasing per submission.
    """
    request_id: int
    samples: Tuple[Sample, ...]
    resolution: float
    idw_power: float
    boundary: Optional[Tuple[BoundaryGeometry, ...]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "samples", as_samples(self.samples))
        if self.boundary is not None:
            object.__setattr__(self, "boundary", parse_boundary(self.boundary))
        if not (isinstance(self.resolution, (int, float)) and math.isfinite(self.resolution) and self.resolution > 0):
            raise ValueError("resolution must be a finite number > 0")

    def to_message(self) -> Dict[str, Any]:
        return {
            "kind": "compute",
            "requestId": self.request_id,
            "samples": self.samples,
            "resolution": self.resolution,
            "idwPower": self.idw_power,
            "boundary": self.boundary,
        }

    @classmethod
    def from_message(cls, msg: Mapping[str, Any]) -> "ComputeRequest":
        return cls(
            request_id=int(msg["requestId"]),
            samples=msg.get("samples") or (),
            resolution=msg["resolution"],
            idw_power=float(msg.get("idwPower", 2.0)),
            boundary=msg.get("boundary"),
        )


@dataclass(frozen=True, slots=True)
class ComputeResult:
    request_id: int
    grid: Grid

    def to_message(self) -> Dict[str, Any]:
        return {"kind": "result", "requestId": self.request_id, "grid": self.grid}

    @classmethod
    def from_message(cls, msg: Mapping[str, Any]) -> "ComputeResult":
        return cls(request_id=int(msg["requestId"]), grid=msg["grid"])
