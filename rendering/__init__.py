"""gridtracer — Rendering Package.

Camera, render world, parallel render runner, and image I/O.
"""
