"""
Wayfield - road network and chunked terrain pipeline for world servers.

This package turns authored road segments into smoothed splines, resolves
their junctions, rasterizes them into per-chunk signed distance fields and
streams the results to connected clients.
"""

__version__ = "0.1.0"
