"""gridtracer — Scene Ingestion Package.

Text scene descriptions and Wavefront OBJ meshes.
"""
