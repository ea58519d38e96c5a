"""gridtracer — Shading Package.

Color sources, lights, and the composable shading strategies.
"""
