"""Tests for the scene description parser and the OBJ reader."""

from __future__ import annotations

import math
from pathlib import Path

import numpy as np
import pytest

from rendering.io_manager import save_png
from scene_ingestion.obj_loader import ObjParseError, read_obj
from scene_ingestion.scene_parser import SceneParseError, SceneParser, parse_scene
from shading.colors import Texture
from shading.shaders import PhongShader, ReflectiveShader, TransparentShader
from tracer_core.constants import AccelerationConfig, TracerConfig
from tracer_core.primitives import Mesh, Plane, Sphere

SCENE = """\
# three spheres over a floor
size 40 30
camera 0 1 5   0 0 0   0 1 0   60
color white 1 1 1
color grey 0.5 0.5 0.5
color sky 0.2 0.3 0.9
sphere ball 0 0 0 1
plane floor 0 -1 0 0 1 0
point_light key 2 5 3 white 250
flat_shader sky_shader sky
phong_shader matte grey grey white 30
reflective_shader mirror matte 0.4   # trailing comment
transparent_shader glass 1.5 0.8 matte
shaded_object ball glass
shaded_object floor mirror
background_shader sky_shader
ambient_light white 0.2
enable_shadows 0
recursion_depth_limit 5
"""

QUAD_OBJ = """\
# unit quad
v 0 0 0
v 1 0 0
v 1 1 0
v 0 1 0
vt 0 0
vt 1 0
vt 1 1
vt 0 1
f 1/1 2/2/1 3/3/1 4/4/1
"""


def parse(text: str, **kwargs):
    return SceneParser(**kwargs).parse_lines(text.splitlines(), source="test.txt")


# ===================================================================
# SCENE PARSER
# ===================================================================


class TestSceneParser:
    """Directive handling."""

    def test_full_scene(self) -> None:
        world = parse(SCENE)

        assert world.camera.number_pixels == (40, 30)
        assert world.camera.colors.shape == (30, 40, 3)
        assert [type(s.obj) for s in world.objects] == [Sphere, Plane]
        assert isinstance(world.objects[0].shader, TransparentShader)
        assert isinstance(world.objects[1].shader, ReflectiveShader)
        assert isinstance(world.objects[1].shader.shader, PhongShader)
        assert world.objects[1].shader.reflectivity == pytest.approx(0.4)

        assert len(world.lights) == 1
        assert world.lights[0].brightness == 250.0
        np.testing.assert_allclose(world.background_shader.color.rgb, [0.2, 0.3, 0.9])
        assert world.ambient_intensity == pytest.approx(0.2)
        assert world.enable_shadows is False
        assert world.recursion_depth_limit == 5

    def test_camera_geometry(self) -> None:
        world = parse(SCENE)
        camera = world.camera

        np.testing.assert_allclose(camera.position, [0.0, 1.0, 5.0])
        assert camera.aspect_ratio == pytest.approx(40 / 30)
        assert camera.field_of_view == pytest.approx(math.radians(60.0))
        assert float(np.dot(camera.look_vector, camera.vertical_vector)) == pytest.approx(0.0, abs=1e-12)

    def test_config_defaults_and_tolerances(self) -> None:
        """Scene defaults and tolerances come from the config."""
        config = TracerConfig(
            acceleration=AccelerationConfig(enabled=False, grid_size=(2, 3, 4)),
            recursion_depth_limit=7,
            enable_shadows=False,
        )
        world = parse("size 4 4\ncolor c 1 0 0\nsphere s 0 0 0 1\nflat_shader f c\nshaded_object s f\n", config=config)

        assert world.recursion_depth_limit == 7
        assert world.enable_shadows is False
        assert world.acceleration.grid_size == (2, 3, 4)
        assert not world.acceleration.enabled

    @pytest.mark.parametrize(
        "text, line_no",
        [
            ("size 4 4\nfrobnicate 1 2\n", 2),
            ("size 4 4\ncolor c 1 0 0\nflat_shader f nope\n", 3),
            ("size 4 4\nsphere s 0 0 0 1\nshaded_object s missing\n", 3),
            ("size 4 4\nshaded_object ghost missing\n", 2),
            ("size 4 4\nsphere s 0 0 zero 1\n", 2),
            ("size 4 4\ncolor c 1 0\n", 2),
            ("size 4 4\ncolor c 1 0 0 7\n", 2),
            ("size 4 0\n", 1),
            ("\n\ncamera 0 0 0 0 0 -1 0 1 0 60\nsize 4 4\n", 3),
            ("size 4 4\nrecursion_depth_limit -1\n", 2),
            ("size 4 4\nplane p 0 0 0 0 0 0\n", 2),
            ("size 4 4\ncolor c 1 1 1\nflat_shader f c\ntransparent_shader t 0.5 1 f\n", 4),
        ],
    )
    def test_errors_carry_line_number(self, text: str, line_no: int) -> None:
        with pytest.raises(SceneParseError) as excinfo:
            parse(text)

        assert excinfo.value.line_no == line_no
        assert f"test.txt:{line_no}" in str(excinfo.value)

    def test_missing_size(self) -> None:
        with pytest.raises(SceneParseError, match="size"):
            parse("color c 1 1 1\n")

    def test_parse_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse("size 4 4\nunknown\n")


class TestSceneFiles:
    """Scenes on disk with relative asset paths."""

    def test_mesh_and_texture_relative_to_scene(self, tmp_path: Path) -> None:
        assets = tmp_path / "assets"
        assets.mkdir()
        (assets / "quad.obj").write_text(QUAD_OBJ, encoding="utf-8")
        texels = np.zeros((2, 2, 3))
        texels[0, 0] = [1.0, 0.0, 0.0]
        save_png(texels, assets / "tex.png")

        scene = tmp_path / "scene.txt"
        scene.write_text(
            "size 8 8\n"
            "texture tex assets/tex.png 1\n"
            "mesh quad assets/quad.obj\n"
            "flat_shader textured tex\n"
            "shaded_object quad textured\n",
            encoding="utf-8",
        )

        world = parse_scene(scene)

        mesh = world.objects[0].obj
        assert isinstance(mesh, Mesh)
        assert mesh.num_parts == 2
        texture = world.objects[0].shader.color
        assert isinstance(texture, Texture)
        assert texture.use_bilinear_interpolation
        np.testing.assert_allclose(texture.texels[0, 0], [1.0, 0.0, 0.0], atol=1e-6)

    def test_missing_scene_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            parse_scene(tmp_path / "nope.txt")

    def test_missing_mesh_file(self, tmp_path: Path) -> None:
        scene = tmp_path / "scene.txt"
        scene.write_text("size 2 2\nmesh m missing.obj\n", encoding="utf-8")

        with pytest.raises(FileNotFoundError):
            parse_scene(scene)

    def test_corrupt_texture_file(self, tmp_path: Path) -> None:
        (tmp_path / "broken.png").write_bytes(b"this is not a png")
        scene = tmp_path / "scene.txt"
        scene.write_text("size 2 2\ntexture tex broken.png 0\n", encoding="utf-8")

        with pytest.raises(SceneParseError) as excinfo:
            parse_scene(scene)

        assert excinfo.value.line_no == 2
        assert "broken.png" in str(excinfo.value)


# ===================================================================
# OBJ READER
# ===================================================================


class TestReadObj:
    """Wavefront OBJ parsing."""

    def test_quad_fan_with_uvs(self, tmp_path: Path) -> None:
        path = tmp_path / "quad.obj"
        path.write_text(QUAD_OBJ, encoding="utf-8")

        data = read_obj(path)

        assert data.vertices.shape == (4, 3)
        assert data.triangles.tolist() == [[0, 1, 2], [0, 2, 3]]
        assert data.uvs.shape == (4, 2)
        assert data.triangle_uv_indices.tolist() == [[0, 1, 2], [0, 2, 3]]

    def test_plain_faces(self, tmp_path: Path) -> None:
        path = tmp_path / "tri.obj"
        path.write_text("v 0 0 0\nv 1 0 0\nv 0 1 0\nvn 0 0 1\nf 1//1 2//1 3//1\n", encoding="utf-8")

        data = read_obj(path)

        assert data.triangles.tolist() == [[0, 1, 2]]
        assert data.uvs is None
        assert data.triangle_uv_indices is None

    def test_partial_uvs_dropped(self, tmp_path: Path) -> None:
        path = tmp_path / "mixed.obj"
        path.write_text(
            "v 0 0 0\nv 1 0 0\nv 0 1 0\nv 1 1 0\nvt 0 0\nvt 1 0\nvt 0 1\n"
            "f 1/1 2/2 3/3\nf 2 4 3\n",
            encoding="utf-8",
        )

        data = read_obj(path)

        assert data.triangles.shape == (2, 3)
        assert data.triangle_uv_indices is None

    @pytest.mark.parametrize(
        "text",
        [
            "v 0 0 0\nv 1 0 0\nf 1 2 3\n",
            "v 0 0 0\nv 1 0 0\nv 0 1 0\nf 1 2\n",
            "v 0 0\n",
            "v 0 0 0\nv 1 0 0\nv 0 1 0\nf 1 x 3\n",
            "v 0 0 0\nv 1 0 0\nv 0 1 0\nvt 0 0\nf 1/1 2/2 3/3\n",
        ],
    )
    def test_malformed(self, tmp_path: Path, text: str) -> None:
        path = tmp_path / "bad.obj"
        path.write_text(text, encoding="utf-8")

        with pytest.raises(ObjParseError):
            read_obj(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            read_obj(tmp_path / "missing.obj")
