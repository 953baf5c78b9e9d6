"""
Overlay Test Suite

This package contains tests for the IDW overlay pipeline (interpolation,
boundary masking, rasterization, cached background compute, HTTP API).

Structure:
- unit/: Unit tests for individual components
- integration/: Integration tests for the HTTP API
"""
