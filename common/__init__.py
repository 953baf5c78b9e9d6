"""
Common: shared data model, geometry, logging and configuration

- types: Sample, Bounds, BoundaryGeometry, Grid, ComputeRequest/ComputeResult
- geo: degree-space distance and ray-casting boundary containment
- logging_setup: JSON line logging (LOG_LEVEL env)
- config: YAML params (config/params.yaml) merged over defaults
"""
