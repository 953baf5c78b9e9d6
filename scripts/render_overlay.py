#!/usr/bin/env python3
"""
Render an IDW overlay PNG (+ georeferencing JSON sidecar) from JSON inputs.

Inputs:
- samples: JSON list of {"lat", "lon", "value"} records (rows missing any of
  them are skipped)
- boundary (optional): JSON list of {type, coordinates} geometries, a Feature,
  or a FeatureCollection

Writes {out}.png and {out}.json (same metadata schema as the API's
X-Geo-Metadata header).

Examples:
  python scripts/render_overlay.py --samples data/district_means.json \
      --boundary data/regions.geojson --out runtime/overlay
  python scripts/render_overlay.py --samples data/district_means.json \
      --resolution 0.05 --power 3 --min 20 --max 35 --out runtime/tmax
"""
from __future__ import annotations

import argparse
import dataclasses
import json
import sys
import time
from pathlib import Path

# Allow running as a plain script from the repo root
sys.path.append(str(Path(__file__).resolve().parents[1]))

from common.config import bounds_from_config, idw_options_from_config, load_config
from common.logging_setup import get_logger, setup_logging
from common.types import parse_boundary, samples_from_records
from common.utils import elapsed_ms
from interp.grid import build_grid
from raster.colors import legend_stops, ramp_color_fn
from raster.rasterize import encode_png, rasterize


log = get_logger("scripts.render_overlay")


def main() -> None:
    ap = argparse.ArgumentParser(description="Render an IDW overlay PNG")
    ap.add_argument("--config", default=None, help="YAML params (default: config/params.yaml)")
    ap.add_argument("--samples", required=True, help="JSON list of {lat, lon, value}")
    ap.add_argument("--boundary", default="", help="Boundary geometries (JSON/GeoJSON)")
    ap.add_argument("--out", default="runtime/overlay", help="Output path without extension")
    ap.add_argument("--resolution", type=float, default=None, help="Cell size (deg)")
    ap.add_argument("--power", type=float, default=None, help="IDW power")
    ap.add_argument("--opacity", type=float, default=None, help="Overlay opacity 0..1")
    ap.add_argument("--min", dest="vmin", type=float, default=None, help="Display domain min (default: sample min)")
    ap.add_argument("--max", dest="vmax", type=float, default=None, help="Display domain max (default: sample max)")
    ap.add_argument("--palette", nargs=2, default=None, metavar=("START", "END"), help="Two hex colors")
    args = ap.parse_args()

    P = load_config(args.config)
    setup_logging(P.get("logging", {}).get("level"), force=True)

    samples = samples_from_records(json.loads(Path(args.samples).read_text()))
    if not samples:
        raise SystemExit(f"No usable samples in {args.samples}")
    boundary = parse_boundary(json.loads(Path(args.boundary).read_text())) if args.boundary else None

    bounds = bounds_from_config(P)
    options = idw_options_from_config(P)
    if args.power is not None:
        options = dataclasses.replace(options, power=args.power)
    resolution = args.resolution or float(P["grid"]["resolution"])

    t0 = time.perf_counter()
    grid = build_grid(bounds, samples, resolution, options, boundary)
    if grid.is_empty:
        raise SystemExit(f"Empty grid for bounds {bounds.to_dict()}")

    vmin = args.vmin if args.vmin is not None else min(s.value for s in samples)
    vmax = args.vmax if args.vmax is not None else max(s.value for s in samples)
    palette = args.palette or P["render"]["palette"]
    color_fn = ramp_color_fn(palette[0], palette[1])
    opacity = args.opacity if args.opacity is not None else float(P["render"]["opacity"])
    pixels = rasterize(grid, vmin, vmax, color_fn, opacity)

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    png_path = out.with_suffix(".png")
    json_path = out.with_suffix(".json")
    png_path.write_bytes(encode_png(pixels))
    meta = grid.geo_metadata()
    meta["domain"] = [vmin, vmax]
    meta["legend"] = legend_stops(vmin, vmax, color_fn)
    json_path.write_text(json.dumps(meta, indent=2))

    log.info(
        "Overlay rendered",
        extra={"extra": {"rows": grid.rows, "cols": grid.cols, "samples": len(samples), "ms": elapsed_ms(t0)}},
    )
    print(f"[ok] wrote {png_path} and {json_path}")


if __name__ == "__main__":
    main()
