"""gridtracer — Tracer Core Package.

Geometry kernel, intersectable primitives, and the uniform grid
acceleration structure used for nearest-hit queries.
"""
