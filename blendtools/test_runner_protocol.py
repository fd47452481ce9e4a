"""Tests for the Blender command line and the stdout marker protocol.

The process tests run a stand-in ``blender`` executable, a small Python
script that answers the way a bundled script running inside Blender would.
"""

from __future__ import annotations

import os
from pathlib import Path
import stat
import sys
import tempfile
import textwrap
import unittest
from unittest import mock

from blendtools.blender_scripts import script_path
from blendtools.config import BlenderConfig
from blendtools.errors import BlenderProcessError, BlenderScriptError
from blendtools.runner import LOG_TAIL_LINES, BlenderRunner, decode_output

FAKE_BLENDER = textwrap.dedent(
    """\
    #!{python}
    import json
    import sys

    args = sys.argv[1:]
    with open(args[args.index("--") + 1], encoding="utf-8") as handle:
        payload = json.load(handle)
    print("Blender 4.2.3 LTS (hash 0000000 built 2024-10-14)")
    print("Read blend: " + args[args.index("--python-exit-code") - 1])
    mode = payload.get("mode", "ok")
    if mode == "ok":
        for index in range(2):
            print("BLENDTOOLS_EVENT:" + json.dumps({{"type": "rendered", "index": index}}))
        print("BLENDTOOLS_RESULT:" + json.dumps({{"payload": payload, "argv": args}}))
    elif mode == "error":
        print("BLENDTOOLS_ERROR:" + json.dumps(
            {{"message": "KeyError: 'Scene not found: Nope'", "traceback": "Traceback (most recent call last):"}}
        ))
        sys.exit(1)
    elif mode == "crash":
        print("Segmentation fault", file=sys.stderr)
        sys.exit(3)
    print("Blender quit")
    """
)


class TestDecodeOutput(unittest.TestCase):
    def test_markers_and_log(self) -> None:
        seen = []
        output = decode_output(
            [
                "Blender 4.2.3 LTS\n",
                'BLENDTOOLS_EVENT:{"type": "rendered", "index": 0}\n',
                "Fra:1 Mem:12.00M | Rendering\r\n",
                'BLENDTOOLS_RESULT:{"ok": true}\n',
                "Blender quit\n",
            ],
            on_event=seen.append,
        )
        self.assertTrue(output.has_result)
        self.assertEqual(output.result, {"ok": True})
        self.assertEqual(seen, [{"type": "rendered", "index": 0}])
        self.assertEqual(
            list(output.log),
            ["Blender 4.2.3 LTS", "Fra:1 Mem:12.00M | Rendering", "Blender quit"],
        )
        self.assertIsNone(output.error)

    def test_null_result_counts_as_result(self) -> None:
        output = decode_output(["BLENDTOOLS_RESULT:null"])
        self.assertTrue(output.has_result)
        self.assertIsNone(output.result)

    def test_no_result(self) -> None:
        self.assertFalse(decode_output(["hello"]).has_result)

    def test_error_marker(self) -> None:
        output = decode_output(['BLENDTOOLS_ERROR:{"message": "boom", "traceback": "tb"}'])
        self.assertEqual(output.error, {"message": "boom", "traceback": "tb"})

    def test_log_keeps_only_the_tail(self) -> None:
        output = decode_output(f"line {i}" for i in range(LOG_TAIL_LINES + 50))
        self.assertEqual(len(output.log), LOG_TAIL_LINES)
        self.assertEqual(output.log[0], "line 50")


class TestBuildCommand(unittest.TestCase):
    def runner(self, **kwargs) -> BlenderRunner:
        with mock.patch(
            "blendtools.runner.resolve_blender_executable", return_value="/opt/blender/blender"
        ):
            return BlenderRunner(BlenderConfig(**kwargs))

    def test_default_command(self) -> None:
        cmd = self.runner().build_command("/p/scene.blend", "/s/info.py", "/t/payload.json")
        self.assertEqual(
            cmd,
            [
                "/opt/blender/blender",
                "--background",
                "-Y",
                "/p/scene.blend",
                "--python-exit-code",
                "1",
                "--python",
                "/s/info.py",
                "--",
                "/t/payload.json",
            ],
        )

    def test_options_precede_blend_file(self) -> None:
        cmd = self.runner(
            factory_startup=True, enable_autoexec=True, extra_args=["--threads", "4"]
        ).build_command("/p/scene.blend", "/s/info.py")
        blend_index = cmd.index("/p/scene.blend")
        for option in ("--factory-startup", "-y", "--threads"):
            self.assertLess(cmd.index(option), blend_index)
        self.assertNotIn("-Y", cmd)
        self.assertNotIn("--", cmd)


class TestErrors(unittest.TestCase):
    def test_process_error_shows_tail(self) -> None:
        err = BlenderProcessError("failed", 2, [f"l{i}" for i in range(30)])
        text = str(err)
        self.assertIn("exit status 2", text)
        self.assertIn("l29", text)
        self.assertNotIn("l9\n", text)

    def test_unknown_script(self) -> None:
        with self.assertRaises(FileNotFoundError):
            script_path("does_not_exist")


@unittest.skipIf(os.name == "nt", "fake Blender relies on a shebang line")
class TestRunScript(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        root = Path(self._tmp.name)
        self.exe = root / "blender"
        self.exe.write_text(FAKE_BLENDER.format(python=sys.executable), encoding="utf-8")
        self.exe.chmod(self.exe.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        self.blend = root / "scene.blend"
        self.blend.write_bytes(b"BLENDER-v279")
        self.runner = BlenderRunner(BlenderConfig(executable=str(self.exe)))

    def test_result_and_events(self) -> None:
        events = []
        result = self.runner.run_script(
            "scene_info", str(self.blend), {"mode": "ok", "scene": "Shot"}, on_event=events.append
        )
        self.assertEqual(result["payload"], {"mode": "ok", "scene": "Shot"})
        self.assertEqual([e["index"] for e in events], [0, 1])

        argv = result["argv"]
        self.assertEqual(argv[0], "--background")
        self.assertIn("-Y", argv)
        self.assertEqual(argv[argv.index("--python") + 1], str(script_path("scene_info")))
        self.assertFalse(Path(argv[-1]).exists(), "payload file should be removed")

    def test_script_error(self) -> None:
        with self.assertRaises(BlenderScriptError) as ctx:
            self.runner.run_script("scene_info", str(self.blend), {"mode": "error"})
        self.assertIn("Scene not found", str(ctx.exception))
        self.assertTrue(ctx.exception.traceback_text.startswith("Traceback"))

    def test_process_failure_keeps_output(self) -> None:
        with self.assertRaises(BlenderProcessError) as ctx:
            self.runner.run_script("scene_info", str(self.blend), {"mode": "crash"})
        self.assertEqual(ctx.exception.returncode, 3)
        self.assertIn("Segmentation fault", ctx.exception.output_tail)

    def test_missing_result(self) -> None:
        with self.assertRaises(BlenderProcessError) as ctx:
            self.runner.run_script("scene_info", str(self.blend), {"mode": "silent"})
        self.assertEqual(ctx.exception.returncode, 0)
        self.assertIn("Blender quit", ctx.exception.output_tail)

    def test_missing_blend_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            self.runner.run_script("scene_info", str(self.blend.with_name("gone.blend")))


if __name__ == "__main__":
    unittest.main()
