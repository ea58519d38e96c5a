"""Line-oriented scene description parser.

Each non-empty line holds one directive followed by its arguments; ``#``
starts a comment. Named entities (colors, objects, shaders) must be defined
before they are referenced.

Directives
----------
::

    size W H
    camera px py pz  lx ly lz  ux uy uz  fov_degrees
    color NAME r g b
    texture NAME file.png use_bilinear(0|1)
    sphere NAME cx cy cz radius
    plane NAME px py pz nx ny nz
    mesh NAME file.obj
    point_light NAME x y z COLOR brightness
    flat_shader NAME COLOR
    phong_shader NAME AMBIENT DIFFUSE SPECULAR specular_power
    reflective_shader NAME SHADER reflectivity
    transparent_shader NAME index_of_refraction opacity SHADER
    shaded_object OBJECT SHADER
    background_shader SHADER
    ambient_light COLOR intensity
    enable_shadows 0|1
    recursion_depth_limit N

``size`` must precede ``camera`` (the aspect ratio comes from it). Relative
file names are resolved against the directory of the scene file.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Callable, Iterable

import numpy as np

from rendering.io_manager import load_png
from rendering.render_world import RenderWorld
from scene_ingestion.obj_loader import read_obj
from shading.colors import Color, FlatColor, Texture
from shading.lights import PointLight
from shading.shaders import (
    FlatShader,
    PhongShader,
    ReflectiveShader,
    Shader,
    TransparentShader,
)
from tracer_core.constants import TracerConfig, default_config
from tracer_core.primitives import Mesh, Plane, SceneObject, Sphere

logger = logging.getLogger(__name__)


class SceneParseError(ValueError):
    """Malformed scene description.

    Attributes
    ----------
    line_no : int
        1-based line number of the offending directive (0 if not tied to a
        line).
    """

    def __init__(self, message: str, line_no: int = 0, source: str = "<scene>") -> None:
        self.line_no = line_no
        self.source = source
        location = f"{source}:{line_no}" if line_no else source
        super().__init__(f"{location}: {message}")


class _Tokens:
    """Cursor over the arguments of one directive."""

    def __init__(self, args: list[str]) -> None:
        self._args = args
        self._pos = 0

    def word(self) -> str:
        if self._pos >= len(self._args):
            raise ValueError("missing argument")
        token = self._args[self._pos]
        self._pos += 1
        return token

    def number(self) -> float:
        token = self.word()
        try:
            return float(token)
        except ValueError:
            raise ValueError(f"expected a number, got {token!r}") from None

    def integer(self) -> int:
        token = self.word()
        try:
            return int(token)
        except ValueError:
            raise ValueError(f"expected an integer, got {token!r}") from None

    def vector(self) -> np.ndarray:
        return np.array([self.number(), self.number(), self.number()])

    def finish(self) -> None:
        if self._pos < len(self._args):
            raise ValueError(f"unexpected arguments: {' '.join(self._args[self._pos:])}")


class SceneParser:
    """Build a :class:`RenderWorld` from a scene description.

    Parameters
    ----------
    config : TracerConfig, optional
        Tolerances, grid settings and scene defaults. Default: built-in.
    """

    def __init__(self, config: TracerConfig | None = None) -> None:
        self._config = config or default_config()
        self._handlers: dict[str, Callable[[_Tokens], None]] = {
            "size": self._parse_size,
            "camera": self._parse_camera,
            "color": self._parse_color,
            "texture": self._parse_texture,
            "sphere": self._parse_sphere,
            "plane": self._parse_plane,
            "mesh": self._parse_mesh,
            "point_light": self._parse_point_light,
            "flat_shader": self._parse_flat_shader,
            "phong_shader": self._parse_phong_shader,
            "reflective_shader": self._parse_reflective_shader,
            "transparent_shader": self._parse_transparent_shader,
            "shaded_object": self._parse_shaded_object,
            "background_shader": self._parse_background_shader,
            "ambient_light": self._parse_ambient_light,
            "enable_shadows": self._parse_enable_shadows,
            "recursion_depth_limit": self._parse_recursion_depth_limit,
        }
        self._reset(Path("."))

    def _reset(self, base_dir: Path) -> None:
        cfg = self._config
        self._base_dir = base_dir
        self._world = RenderWorld(
            enable_shadows=cfg.enable_shadows,
            recursion_depth_limit=cfg.recursion_depth_limit,
            acceleration=cfg.acceleration,
            tolerances=cfg.tolerances,
        )
        self._colors: dict[str, Color] = {}
        self._objects: dict[str, SceneObject] = {}
        self._shaders: dict[str, Shader] = {}
        self._size: tuple[int, int] | None = None

    # ---------------------------------------------------------------
    # Entry points
    # ---------------------------------------------------------------

    def parse_file(self, path: Path | str) -> RenderWorld:
        """Parse a scene file.

        Raises
        ------
        FileNotFoundError
            If the scene file (or a file it references) does not exist.
        SceneParseError
            If the description is malformed.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Scene file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
        logger.info("Parsing scene: %s", path)
        return self.parse_lines(lines, base_dir=path.parent, source=str(path))

    def parse_lines(
        self,
        lines: Iterable[str],
        base_dir: Path | str = ".",
        source: str = "<scene>",
    ) -> RenderWorld:
        """Parse scene directives from an iterable of lines."""
        self._reset(Path(base_dir))

        for line_no, line in enumerate(lines, start=1):
            parts = line.split("#", 1)[0].split()
            if not parts:
                continue
            directive, args = parts[0], parts[1:]
            handler = self._handlers.get(directive)
            if handler is None:
                raise SceneParseError(f"unknown directive {directive!r}", line_no, source)
            tokens = _Tokens(args)
            try:
                handler(tokens)
                tokens.finish()
            except SceneParseError:
                raise
            except KeyError as exc:
                raise SceneParseError(exc.args[0], line_no, source) from exc
            except ValueError as exc:
                raise SceneParseError(f"{directive}: {exc}", line_no, source) from exc

        if self._size is None:
            raise SceneParseError("missing 'size' directive", 0, source)
        self._world.camera.set_resolution(*self._size)

        world = self._world
        logger.info(
            "Scene parsed: %d x %d, %d objects, %d lights, shadows=%s, depth limit=%d",
            self._size[0], self._size[1], len(world.objects), len(world.lights),
            world.enable_shadows, world.recursion_depth_limit,
        )
        if not world.objects:
            logger.warning("Scene %s contains no shaded objects", source)
        return world

    # ---------------------------------------------------------------
    # Lookups
    # ---------------------------------------------------------------

    def _lookup(self, table: dict, kind: str, name: str):
        try:
            return table[name]
        except KeyError:
            raise KeyError(f"unknown {kind} {name!r}") from None

    def _color(self, tokens: _Tokens) -> Color:
        return self._lookup(self._colors, "color", tokens.word())

    def _shader(self, tokens: _Tokens) -> Shader:
        return self._lookup(self._shaders, "shader", tokens.word())

    def _object(self, tokens: _Tokens) -> SceneObject:
        return self._lookup(self._objects, "object", tokens.word())

    def _resolve(self, filename: str) -> Path:
        path = Path(filename)
        return path if path.is_absolute() else self._base_dir / path

    # ---------------------------------------------------------------
    # Directive handlers
    # ---------------------------------------------------------------

    def _parse_size(self, tokens: _Tokens) -> None:
        width, height = tokens.integer(), tokens.integer()
        if width < 1 or height < 1:
            raise ValueError(f"image size must be positive, got {width} x {height}")
        self._size = (width, height)

    def _parse_camera(self, tokens: _Tokens) -> None:
        position, look_at, up = tokens.vector(), tokens.vector(), tokens.vector()
        fov_deg = tokens.number()
        if self._size is None:
            raise ValueError("'size' must appear before 'camera'")
        camera = self._world.camera
        camera.position_and_aim(position, look_at, up)
        camera.focus(1.0, self._size[0] / self._size[1], fov_deg * (math.pi / 180.0))

    def _parse_color(self, tokens: _Tokens) -> None:
        name = tokens.word()
        self._colors[name] = FlatColor(name, tokens.vector())

    def _parse_texture(self, tokens: _Tokens) -> None:
        name, filename = tokens.word(), tokens.word()
        bilinear = bool(tokens.integer())
        image = load_png(self._resolve(filename))
        self._colors[name] = Texture(name, image, bilinear)

    def _parse_sphere(self, tokens: _Tokens) -> None:
        name = tokens.word()
        center, radius = tokens.vector(), tokens.number()
        self._objects[name] = Sphere(center, radius, name=name, small_t=self._config.tolerances.small_t)

    def _parse_plane(self, tokens: _Tokens) -> None:
        name = tokens.word()
        point, normal = tokens.vector(), tokens.vector()
        if not np.any(normal):
            raise ValueError("plane normal must be non-zero")
        tol = self._config.tolerances
        self._objects[name] = Plane(
            point, normal, name=name, small_t=tol.small_t, parallel_epsilon=tol.parallel_epsilon
        )

    def _parse_mesh(self, tokens: _Tokens) -> None:
        name = tokens.word()
        data = read_obj(self._resolve(tokens.word()))
        tol = self._config.tolerances
        self._objects[name] = Mesh(
            data.vertices,
            data.triangles,
            uvs=data.uvs,
            triangle_uv_indices=data.triangle_uv_indices,
            name=name,
            small_t=tol.small_t,
            parallel_epsilon=tol.parallel_epsilon,
            weight_tolerance=tol.weight_tolerance,
        )

    def _parse_point_light(self, tokens: _Tokens) -> None:
        name = tokens.word()
        position = tokens.vector()
        color = self._color(tokens)
        self._world.lights.append(PointLight(name, position, color, tokens.number()))

    def _parse_flat_shader(self, tokens: _Tokens) -> None:
        name = tokens.word()
        self._shaders[name] = FlatShader(self._color(tokens), name=name)

    def _parse_phong_shader(self, tokens: _Tokens) -> None:
        name = tokens.word()
        ambient, diffuse, specular = self._color(tokens), self._color(tokens), self._color(tokens)
        self._shaders[name] = PhongShader(ambient, diffuse, specular, tokens.number(), name=name)

    def _parse_reflective_shader(self, tokens: _Tokens) -> None:
        name = tokens.word()
        shader = self._shader(tokens)
        self._shaders[name] = ReflectiveShader(shader, tokens.number(), name=name)

    def _parse_transparent_shader(self, tokens: _Tokens) -> None:
        name = tokens.word()
        ior, opacity = tokens.number(), tokens.number()
        self._shaders[name] = TransparentShader(ior, opacity, self._shader(tokens), name=name)

    def _parse_shaded_object(self, tokens: _Tokens) -> None:
        obj = self._object(tokens)
        self._world.add_object(obj, self._shader(tokens))

    def _parse_background_shader(self, tokens: _Tokens) -> None:
        self._world.background_shader = self._shader(tokens)

    def _parse_ambient_light(self, tokens: _Tokens) -> None:
        self._world.ambient_color = self._color(tokens)
        self._world.ambient_intensity = tokens.number()

    def _parse_enable_shadows(self, tokens: _Tokens) -> None:
        self._world.enable_shadows = bool(tokens.integer())

    def _parse_recursion_depth_limit(self, tokens: _Tokens) -> None:
        limit = tokens.integer()
        if limit < 0:
            raise ValueError(f"recursion depth limit must be >= 0, got {limit}")
        self._world.recursion_depth_limit = limit


def parse_scene(path: Path | str, config: TracerConfig | None = None) -> RenderWorld:
    """Parse a scene file into a :class:`RenderWorld`."""
    return SceneParser(config).parse_file(path)
