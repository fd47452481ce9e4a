"""Tests for stereo pair planning, eye offsets and the blend-stereo command."""

from __future__ import annotations

from pathlib import Path
import tempfile
import unittest
from unittest import mock

from blendtools import stereo
from blendtools.config import DEFAULT_STEREO_TEMPLATE, StereoConfig, ToolConfig
from blendtools.stereo import DEFAULT_SEPARATION, StereoPair, camera_separation, plan_pairs
from blendtools.testing_fakes import FakeRunner, make_info, make_scene, read_pixel, run_main


class TestSeparation(unittest.TestCase):
    def test_explicit_wins(self) -> None:
        scene = make_scene()
        self.assertEqual(camera_separation(scene, "Camera", StereoConfig(separation=0.2)), 0.2)

    def test_camera_interocular(self) -> None:
        scene = make_scene()
        scene["cameras"][0]["interocular_distance"] = 0.1
        self.assertEqual(camera_separation(scene, "Camera", StereoConfig()), 0.1)

    def test_default_when_camera_has_none(self) -> None:
        scene = make_scene()
        scene["cameras"][0]["interocular_distance"] = None
        self.assertEqual(camera_separation(scene, "Camera", StereoConfig()), DEFAULT_SEPARATION)

    def test_eye_tasks_are_symmetric(self) -> None:
        pair = StereoPair(3, "Camera", "out.png", "l.png", "r.png", separation=0.08)
        left, right = pair.eye_tasks()
        self.assertEqual((left.filepath, left.eye_offset), ("l.png", -0.04))
        self.assertEqual((right.filepath, right.eye_offset), ("r.png", 0.04))
        self.assertEqual({left.frame, right.frame}, {3})


class TestPlanPairs(unittest.TestCase):
    def setUp(self) -> None:
        self.cfg = ToolConfig()
        self.cfg.output.output_dir = "/out"
        self.cfg.output.name_template = DEFAULT_STEREO_TEMPLATE

    def test_eyes_beside_output(self) -> None:
        pairs = plan_pairs("/p/shot.blend", make_scene(), self.cfg, [1, 2], ["Camera"])
        self.assertEqual(
            [p.output for p in pairs],
            [str(Path("/out/shot_Camera_stereo_0001.png")), str(Path("/out/shot_Camera_stereo_0002.png"))],
        )
        self.assertEqual(pairs[0].left, str(Path("/out/shot_Camera_stereo_0001_L.png")))
        self.assertEqual(pairs[0].right, str(Path("/out/shot_Camera_stereo_0001_R.png")))

    def test_eye_directory(self) -> None:
        pairs = plan_pairs("/p/shot.blend", make_scene(), self.cfg, [1], ["Camera"], eye_dir="/tmp/eyes")
        self.assertEqual(pairs[0].left, str(Path("/tmp/eyes/shot_Camera_stereo_0001_L.png")))

    def test_template_collision(self) -> None:
        self.cfg.output.name_template = "{blend}_{frame}"
        scene = make_scene(cameras=("A", "B"))
        with self.assertRaises(ValueError):
            plan_pairs("/p/shot.blend", scene, self.cfg, [1], ["A", "B"])


class TestStereoCommand(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.out = Path(self._tmp.name) / "stereo"
        self.runner = FakeRunner(info=make_info([make_scene(frame_end=2)]), tile_size=(8, 6))

    def run_stereo(self, *argv):
        with mock.patch.object(stereo, "BlenderRunner", return_value=self.runner):
            return run_main(stereo.main, ["shot.blend", "-o", str(self.out), "--no-progress", *argv])

    def test_cross_eyed_pairs(self) -> None:
        code, _, err = self.run_stereo("--gap", "2")
        self.assertEqual(code, 0, err)
        outputs = sorted(p.name for p in self.out.iterdir())
        self.assertEqual(outputs, ["shot_Camera_stereo_0001.png", "shot_Camera_stereo_0002.png"])

        composite = str(self.out / outputs[0])
        # right eye (blue) on the left, left eye (red) on the right
        self.assertEqual(read_pixel(composite, 0, 0), (0, 0, 255, 255))
        self.assertEqual(read_pixel(composite, 9, 0), (0, 0, 0, 255))
        self.assertEqual(read_pixel(composite, 17, 5), (255, 0, 0, 255))

        tasks = self.runner.calls[1][2]["tasks"]
        self.assertEqual([t["eye_offset"] for t in tasks], [-0.0325, 0.0325, -0.0325, 0.0325])
        self.assertEqual(self.runner.calls[1][2]["settings"]["file_format"], "PNG")

    def test_keep_eyes_and_parallel(self) -> None:
        code, _, err = self.run_stereo("--frames", "1", "--keep-eyes", "--layout", "parallel", "--separation", "0.5")
        self.assertEqual(code, 0, err)
        names = sorted(p.name for p in self.out.iterdir())
        self.assertEqual(
            names,
            [
                "shot_Camera_stereo_0001.png",
                "shot_Camera_stereo_0001_L.png",
                "shot_Camera_stereo_0001_R.png",
            ],
        )
        self.assertEqual(read_pixel(str(self.out / names[0]), 0, 0), (255, 0, 0, 255))
        self.assertEqual(self.runner.calls[1][2]["tasks"][1]["eye_offset"], 0.25)

    def test_dry_run(self) -> None:
        code, out, _ = self.run_stereo("--dry-run", "--separation", "0.1")
        self.assertEqual(code, 0)
        self.assertEqual(out.splitlines()[0], f"Camera\t1\t0.1\t{self.out / 'shot_Camera_stereo_0001.png'}")
        self.assertFalse(self.out.exists())

    def test_exr_rejected(self) -> None:
        code, _, err = self.run_stereo("--format", "OPEN_EXR")
        self.assertEqual(code, 1)
        self.assertIn("OPEN_EXR", err)


if __name__ == "__main__":
    unittest.main()
