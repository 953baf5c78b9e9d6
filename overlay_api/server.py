from __future__ import annotations

import json
import threading
from typing import Any, Dict, List, Literal, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from common.config import bounds_from_config, idw_options_from_config, load_config
from common.logging_setup import get_logger, setup_logging
from common.types import ComputeRequest, Grid, Sample, parse_boundary
from orchestrator.cache import GridCache
from orchestrator.worker import GridOrchestrator
from raster.colors import legend_stops, ramp_color_fn
from raster.rasterize import encode_png, rasterize, to_data_url


log = get_logger("overlay_api")


class SampleIn(BaseModel):
    lat: float
    lon: float
    value: float


class GridRequest(BaseModel):
    samples: List[SampleIn]
    resolution: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)
    idw_power: Optional[float] = None
    # list of {type, coordinates} geometries, a Feature, or a FeatureCollection
    boundary: Optional[Any] = None


class OverlayRequest(GridRequest):
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    opacity: Optional[float] = Field(default=None, ge=0, le=1)
    palette: Optional[List[str]] = Field(default=None, min_length=2, max_length=2)


def _display_domain(req: OverlayRequest) -> tuple[float, float]:
    values = [s.value for s in req.samples]
    lo = req.min_value if req.min_value is not None else min(values)
    hi = req.max_value if req.max_value is not None else max(values)
    return float(lo), float(hi)


def create_app(P: Optional[Dict[str, Any]] = None) -> FastAPI:
    """
    Build the overlay API around one orchestrator (and so one cache).

    The orchestrator processes one request at a time; FastAPI runs sync
    endpoints on a thread pool, so compute calls are serialized with a lock.
    """
    P = P if P is not None else load_config()
    setup_logging(P.get("logging", {}).get("level"), force=True)

    grid_cfg = P.get("grid", {})
    render_cfg = P.get("render", {})
    default_resolution = float(grid_cfg.get("resolution", 0.1))
    default_opacity = float(render_cfg.get("opacity", 0.8))
    default_palette = list(render_cfg.get("palette", ["#ffffb2", "#bd0026"]))

    idw = idw_options_from_config(P)
    orchestrator = GridOrchestrator(
        bounds=bounds_from_config(P),
        cache=GridCache(int(P.get("cache", {}).get("capacity", 20))),
        options=idw,
    )
    lock = threading.Lock()
    seq = {"id": 0}

    def compute(req: GridRequest) -> Grid:
        try:
            boundary = parse_boundary(req.boundary) if req.boundary is not None else None
        except (AttributeError, KeyError, TypeError, ValueError, IndexError) as e:
            raise HTTPException(status_code=400, detail=f"invalid_boundary: {e}")
        with lock:
            seq["id"] += 1
            request = ComputeRequest(
                request_id=seq["id"],
                samples=tuple(Sample(lat=s.lat, lon=s.lon, value=s.value) for s in req.samples),
                resolution=req.resolution or default_resolution,
                idw_power=req.idw_power if req.idw_power is not None else idw.power,
                boundary=boundary,
            )
            return orchestrator.compute(request).grid

    app = FastAPI(title="IDW Overlay API", version="1.0.0")
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(P.get("server", {}).get("allow_origins", ["*"])),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "bounds": orchestrator.bounds.to_dict(),
            "cache": orchestrator.cache.stats(),
        }

    @app.get("/stats")
    def stats():
        return {"cache": orchestrator.cache.stats(), "keys": orchestrator.cache.keys()}

    @app.delete("/cache")
    def clear_cache():
        with lock:
            orchestrator.cache.clear()
        return {"cache": orchestrator.cache.stats()}

    @app.post("/grid")
    def grid_endpoint(req: GridRequest):
        """Interpolated values + mask as JSON, with georeferencing metadata."""
        grid = compute(req)
        return {**grid.to_dict(), "meta": grid.geo_metadata()}

    @app.post("/overlay")
    def overlay(req: OverlayRequest, format: Literal["png", "dataurl"] = "png"):
        """
        Return the colored overlay as PNG bytes with an `X-Geo-Metadata` header (JSON),
        or with `?format=dataurl` as JSON `{"image": "data:image/png;base64,...", "meta": {...}}`
        ready to hand to a map image layer.

        Display domain defaults to the sample min/max; colors come from a
        two-stop palette.
        """
        if not req.samples:
            return JSONResponse({"error": "no_samples"}, status_code=422)
        grid = compute(req)
        if grid.is_empty:
            return JSONResponse({"error": "empty_grid", "meta": grid.geo_metadata()}, status_code=422)

        lo, hi = _display_domain(req)
        palette = req.palette or default_palette
        color_fn = ramp_color_fn(palette[0], palette[1])
        opacity = req.opacity if req.opacity is not None else default_opacity
        png = encode_png(rasterize(grid, lo, hi, color_fn, opacity))

        meta = grid.geo_metadata()
        meta["domain"] = [lo, hi]
        meta["legend"] = legend_stops(lo, hi, color_fn)
        if format == "dataurl":
            return JSONResponse({"image": to_data_url(png), "meta": meta}, headers={"Cache-Control": "no-store"})
        headers = {
            "X-Geo-Metadata": json.dumps(meta),
            "Cache-Control": "no-store",
        }
        return Response(content=png, media_type="image/png", headers=headers)

    log.info(
        "Overlay API configured",
        extra={"extra": {"bounds": orchestrator.bounds.to_dict(), "cache_capacity": orchestrator.cache.capacity}},
    )
    return app


app = create_app()


# -------- local dev entrypoint --------
if __name__ == "__main__":
    _P = load_config()
    uvicorn.run(app, host=_P["server"]["host"], port=int(_P["server"]["port"]))
