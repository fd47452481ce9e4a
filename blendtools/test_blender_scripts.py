"""Tests for the Blender-side scripts using stand-ins for bpy data."""

from __future__ import annotations

import contextlib
import io
import json
import math
from pathlib import Path
import tempfile
from types import SimpleNamespace
import unittest
from unittest import mock

from blendtools.blender_scripts import bridge, list_deps, render_frames, scene_info


def _abspath(path: str, library=None) -> str:
    base = "/lib" if library is not None else "/proj"
    return f"{base}/{path[2:]}" if path.startswith("//") else path


def _block(name: str, filepath: str, **extra) -> SimpleNamespace:
    return SimpleNamespace(name=name, filepath=filepath, **extra)


class TestBridge(unittest.TestCase):
    def test_script_args(self) -> None:
        self.assertEqual(bridge.script_args(["blender", "-b", "--", "a", "b"]), ["a", "b"])
        self.assertEqual(bridge.script_args(["blender", "-b"]), [])

    def test_read_payload(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "payload.json"
            path.write_text(json.dumps({"scene": "Shot"}), encoding="utf-8")
            self.assertEqual(bridge.read_payload(["blender", "--", str(path)]), {"scene": "Shot"})
        self.assertEqual(bridge.read_payload(["blender"]), {})

    def test_run_emits_result(self) -> None:
        out = io.StringIO()
        with mock.patch.object(bridge, "read_payload", return_value={"x": 1}):
            with contextlib.redirect_stdout(out):
                bridge.run(lambda payload: {"doubled": payload["x"] * 2})
        self.assertEqual(out.getvalue(), bridge.RESULT_PREFIX + '{"doubled": 2}\n')

    def test_run_reports_exception(self) -> None:
        def failing(payload):
            raise KeyError("Scene not found: Nope")

        out = io.StringIO()
        with mock.patch.object(bridge, "read_payload", return_value={}):
            with contextlib.redirect_stdout(out), self.assertRaises(SystemExit) as ctx:
                bridge.run(failing)
        self.assertEqual(ctx.exception.code, 1)
        line = out.getvalue().strip()
        self.assertTrue(line.startswith(bridge.ERROR_PREFIX))
        error = json.loads(line[len(bridge.ERROR_PREFIX) :])
        self.assertIn("KeyError", error["message"])
        self.assertIn("Traceback", error["traceback"])


class TestListDeps(unittest.TestCase):
    def setUp(self) -> None:
        lib = SimpleNamespace(name="props.blend")
        self.data = SimpleNamespace(
            images=[
                _block("wood", "//tex/wood.png", source="FILE", packed_file=None),
                _block("Render Result", "", source="VIEWER", packed_file=None),
                _block("noise", "", source="GENERATED", packed_file=None),
                _block("decal", "//tex/decal.png", source="FILE", packed_file=object()),
                _block("linked", "//tex/linked.png", source="FILE", packed_file=None, library=lib),
                _block("skin", "//tex/skin.<UDIM>.png", source="TILED", packed_files=[]),
            ],
            libraries=[_block("props.blend", "//libs/props.blend", packed_file=None)],
            sounds=[_block("hit", "", packed_file=None)],
            fonts=[_block("Bfont", "<builtin>"), _block("Title", "//fonts/title.ttf")],
            movieclips=[],
            cache_files=[_block("sim.abc", "/caches/sim.abc")],
            volumes=[],
        )

    def test_collects_file_backed_blocks(self) -> None:
        deps = list_deps.collect_dependencies(self.data, _abspath)
        names = [(d["kind"], d["name"]) for d in deps]
        self.assertEqual(
            names,
            [
                ("image", "wood"),
                ("image", "decal"),
                ("image", "linked"),
                ("image", "skin"),
                ("library", "props.blend"),
                ("font", "Title"),
                ("cache", "sim.abc"),
            ],
        )

    def test_packed_and_library_fields(self) -> None:
        deps = {d["name"]: d for d in list_deps.collect_dependencies(self.data, _abspath)}
        self.assertTrue(deps["decal"]["packed"])
        self.assertFalse(deps["wood"]["packed"])
        self.assertEqual(deps["wood"]["abspath"], "/proj/tex/wood.png")
        self.assertEqual(deps["linked"]["library"], "props.blend")
        self.assertEqual(deps["linked"]["abspath"], "/lib/tex/linked.png")
        self.assertIsNone(deps["wood"]["library"])

    def test_kind_filter(self) -> None:
        deps = list_deps.collect_dependencies(self.data, _abspath, kinds=["font", "cache"])
        self.assertEqual([d["kind"] for d in deps], ["font", "cache"])


def _camera_object(name: str, parent=None) -> SimpleNamespace:
    data = SimpleNamespace(
        name=f"{name}.data",
        type="PERSP",
        lens=35.0,
        lens_unit="MILLIMETERS",
        ortho_scale=6.0,
        sensor_width=36.0,
        sensor_height=24.0,
        sensor_fit="AUTO",
        clip_start=0.1,
        clip_end=1000.0,
        shift_x=0.0,
        shift_y=0.125,
        stereo=SimpleNamespace(interocular_distance=0.065, convergence_distance=1.95),
    )
    return SimpleNamespace(
        name=name,
        type="CAMERA",
        data=data,
        location=(1.0, -2.0, 3.0),
        rotation_euler=(math.pi / 2, 0.0, math.pi),
        parent=parent,
    )


def _scene(name: str = "Scene") -> SimpleNamespace:
    front = _camera_object("Front")
    side = _camera_object("Side", parent=SimpleNamespace(name="Rig"))
    objects = [
        front,
        side,
        SimpleNamespace(name="Cube", type="MESH"),
        SimpleNamespace(name="Suzanne", type="MESH"),
        SimpleNamespace(name="Sun", type="LIGHT"),
    ]
    render = SimpleNamespace(
        fps=24,
        fps_base=1.001,
        engine="CYCLES",
        resolution_x=1920,
        resolution_y=1080,
        resolution_percentage=100,
        pixel_aspect_x=1.0,
        pixel_aspect_y=1.0,
        filepath="//render/",
        image_settings=SimpleNamespace(file_format="PNG"),
        film_transparent=True,
        use_multiview=False,
    )
    return SimpleNamespace(
        name=name,
        frame_start=1,
        frame_end=120,
        frame_step=2,
        frame_current=7,
        render=render,
        objects=objects,
        camera=front,
        world=None,
        view_layers=[SimpleNamespace(name="ViewLayer")],
    )


class TestSceneInfo(unittest.TestCase):
    def test_describe_scene(self) -> None:
        info = scene_info.describe_scene(_scene())
        self.assertEqual(info["camera"], "Front")
        self.assertIsNone(info["world"])
        self.assertEqual(info["frame_step"], 2)
        self.assertEqual(info["object_counts"], {"CAMERA": 2, "LIGHT": 1, "MESH": 2})
        self.assertEqual([c["name"] for c in info["cameras"]], ["Front", "Side"])
        json.dumps(info)

    def test_describe_camera(self) -> None:
        scene = _scene()
        front, side = scene_info.describe_scene(scene)["cameras"]
        self.assertTrue(front["is_active"])
        self.assertFalse(side["is_active"])
        self.assertEqual(side["parent"], "Rig")
        self.assertEqual(front["rotation_deg"], [90.0, 0.0, 180.0])
        self.assertEqual(front["interocular_distance"], 0.065)
        self.assertEqual(front["shift_y"], 0.125)

    def test_collect_info_filters_scene(self) -> None:
        data = SimpleNamespace(
            filepath="/proj/shot.blend", version=(4, 2, 3), scenes=[_scene("A"), _scene("B")]
        )
        info = scene_info.collect_info(data, "B", "4.2.3 LTS")
        self.assertEqual([s["name"] for s in info["scenes"]], ["B"])
        self.assertEqual(info["file_version"], [4, 2, 3])
        with self.assertRaises(KeyError):
            scene_info.collect_info(data, "Missing")


class FakeRenderScene:
    def __init__(self) -> None:
        self.name = "Scene"
        self.camera = "original-camera"
        self.frame_current = 5
        self.frames_set = []

    def frame_set(self, frame: int) -> None:
        self.frames_set.append(frame)
        self.frame_current = frame


class TestRenderFrames(unittest.TestCase):
    def setUp(self) -> None:
        self.scene = FakeRenderScene()
        self.cameras = {
            "Front": SimpleNamespace(name="Front", matrix_world=[0.0]),
            "Side": SimpleNamespace(name="Side", matrix_world=[0.0]),
        }
        self.stills = []

    def render_still(self, scene, filepath: str) -> None:
        camera = scene.camera
        self.stills.append((camera.name, scene.frame_current, list(camera.matrix_world), filepath))

    def test_renders_in_order_and_restores_state(self) -> None:
        done = []
        tasks = [
            {"frame": 1, "camera": "Front", "filepath": "/o/f1.png"},
            {"frame": 3, "camera": "Side", "filepath": "/o/s3.png"},
        ]
        records = render_frames.run_tasks(
            self.scene, tasks, self.cameras, self.render_still, on_done=lambda **r: done.append(r)
        )
        self.assertEqual(
            [(s[0], s[1], s[3]) for s in self.stills],
            [("Front", 1, "/o/f1.png"), ("Side", 3, "/o/s3.png")],
        )
        self.assertEqual([r["index"] for r in records], [0, 1])
        self.assertEqual(done, records)
        self.assertEqual(self.scene.camera, "original-camera")
        self.assertEqual(self.scene.frame_current, 5)

    def test_eye_offset_is_applied_and_reverted(self) -> None:
        tasks = [
            {"frame": 1, "camera": "Front", "filepath": "/o/L.png", "eye_offset": -0.03},
            {"frame": 1, "camera": "Front", "filepath": "/o/R.png", "eye_offset": 0.03},
        ]
        with mock.patch.object(
            render_frames, "offset_camera_matrix", side_effect=lambda m, off: [m[0] + off]
        ):
            render_frames.run_tasks(self.scene, tasks, self.cameras, self.render_still)
        self.assertEqual([s[2] for s in self.stills], [[-0.03], [0.03]])
        self.assertEqual(self.cameras["Front"].matrix_world, [0.0])

    def test_missing_camera(self) -> None:
        tasks = [{"frame": 1, "camera": "Nope", "filepath": "/o/x.png"}]
        with self.assertRaises(KeyError):
            render_frames.run_tasks(self.scene, tasks, self.cameras, self.render_still)
        self.assertEqual(self.stills, [])

    def test_state_restored_after_failure(self) -> None:
        def explode(scene, filepath):
            raise RuntimeError("GPU out of memory")

        tasks = [{"frame": 9, "camera": "Side", "filepath": "/o/x.png"}]
        with self.assertRaises(RuntimeError):
            render_frames.run_tasks(self.scene, tasks, self.cameras, explode)
        self.assertEqual(self.scene.camera, "original-camera")
        self.assertEqual(self.scene.frame_current, 5)

    def test_apply_settings(self) -> None:
        scene = SimpleNamespace(
            render=SimpleNamespace(
                resolution_x=1920,
                resolution_y=1080,
                resolution_percentage=100,
                engine="BLENDER_EEVEE_NEXT",
                image_settings=SimpleNamespace(file_format="PNG"),
                film_transparent=False,
            ),
            cycles=SimpleNamespace(samples=4096),
            eevee=SimpleNamespace(taa_render_samples=64),
        )
        render_frames.apply_settings(
            scene,
            {
                "resolution": [640, 360],
                "percentage": 50,
                "engine": "CYCLES",
                "samples": 16,
                "file_format": "JPEG",
                "film_transparent": True,
            },
        )
        render = scene.render
        self.assertEqual((render.resolution_x, render.resolution_y), (640, 360))
        self.assertEqual(render.resolution_percentage, 50)
        self.assertEqual(scene.cycles.samples, 16)
        self.assertEqual(scene.eevee.taa_render_samples, 64)
        self.assertEqual(render.image_settings.file_format, "JPEG")
        self.assertTrue(render.film_transparent)

    def test_apply_settings_eevee_samples(self) -> None:
        scene = SimpleNamespace(
            render=SimpleNamespace(engine="BLENDER_EEVEE_NEXT"),
            eevee=SimpleNamespace(taa_render_samples=64),
        )
        render_frames.apply_settings(scene, {"samples": 8, "film_transparent": None})
        self.assertEqual(scene.eevee.taa_render_samples, 8)


if __name__ == "__main__":
    unittest.main()
