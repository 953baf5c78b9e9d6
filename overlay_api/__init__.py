"""
Overlay API: IDW overlay rendering service

- POST /overlay  (PNG bytes) with X-Geo-Metadata header (JSON); ?format=dataurl for JSON + data URL
- POST /grid     interpolated values + mask as JSON
- GET /health, GET /stats, DELETE /cache
"""
