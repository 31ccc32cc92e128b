import json
import logging
import os
import tempfile
import unittest
from unittest import mock

from PIL import Image

from loftmesh.cli import build_parser, main, params_from_args
from loftmesh.config import NormalMode
from loftmesh.log import setup_logging


def reset_package_logger() -> None:
    logger = logging.getLogger("loftmesh")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


class CliTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.addCleanup(reset_package_logger)

    def path(self, name: str) -> str:
        return os.path.join(self.tmp.name, name)


class TestArguments(CliTestCase):
    def test_every_option_reaches_params(self) -> None:
        args = build_parser().parse_args([
            "--rings", "40", "--segments", "48", "--normal-mode", "face",
            "--falloff-enabled", "off", "--swap-yz", "no", "--twist", "15",
        ])
        params = params_from_args(args)
        self.assertEqual((params.rings, params.segments), (40, 48))
        self.assertIs(params.normal_mode, NormalMode.FACE)
        self.assertFalse(params.falloff_enabled)
        self.assertFalse(params.swap_yz)
        self.assertEqual(params.twist, 15.0)

    def test_rejects_unknown_boolean(self) -> None:
        with self.assertRaises(SystemExit):
            build_parser().parse_args(["--swap-yz", "maybe"])


class TestMain(CliTestCase):
    small = ["--rings", "12", "--segments", "16"]

    def test_export_stl(self) -> None:
        out = self.path("vase.stl")
        self.assertEqual(main(self.small + ["--out", out, "--format", "stl"]), 0)
        with open(out) as f:
            self.assertTrue(f.read().startswith("solid"))

    def test_texture_and_check(self) -> None:
        tex = self.path("tex.png")
        Image.new("RGB", (16, 16), (128, 0, 0)).save(tex)
        out = self.path("vase.obj")
        self.assertEqual(main(self.small + ["--texture", tex, "--check", "--out", out]), 0)
        self.assertTrue(os.path.exists(out))
        self.assertTrue(os.path.exists(self.path("vase.mtl")))

    def test_profile_round_trip(self) -> None:
        saved = self.path("profile.json")
        self.assertEqual(main(self.small + ["--height", "3", "--save-profile", saved]), 0)
        with open(saved) as f:
            data = json.load(f)
        self.assertEqual(data["anchors"][-1]["position"][1], 3.0)
        self.assertEqual(main(self.small + ["--height", "3", "--profile", saved, "--check"]), 0)

    def test_export_failure_exits_with_error(self) -> None:
        out = self.path("vase.xyz")
        with self.assertLogs("loftmesh.cli", level="ERROR") as cm:
            self.assertEqual(main(self.small + ["--out", out]), 1)
        self.assertIn("[error]", cm.output[0])
        self.assertFalse(os.path.exists(out))

    def test_missing_texture(self) -> None:
        with self.assertLogs("loftmesh.cli", level="ERROR"):
            self.assertEqual(main(self.small + ["--texture", self.path("none.png")]), 1)

    def test_preview_loads_texture_in_the_background(self) -> None:
        tex = self.path("tex.png")
        Image.new("RGB", (16, 16), (255, 0, 0)).save(tex)
        seen = {}

        def fake_viewer(session, out_path, export_fmt):
            seen["texture_path"] = session.texture_path
            seen["height_field"] = session.height_field
            seen["out_path"] = out_path

        with mock.patch("loftmesh.viewer.run_viewer", side_effect=fake_viewer), \
                mock.patch("loftmesh.cli.decode_height_field") as decode:
            self.assertEqual(main(self.small + ["--texture", tex, "--preview"]), 0)
        decode.assert_not_called()
        self.assertEqual(seen["texture_path"], tex)
        self.assertEqual(seen["height_field"].source, tex)
        self.assertEqual(seen["out_path"], "loftmesh.stl")


class TestSetupLogging(CliTestCase):
    def test_reinit_replaces_handlers(self) -> None:
        log_file = self.path("run.log")
        logger = setup_logging(logging.DEBUG, log_file)
        self.assertEqual(len(logger.handlers), 2)
        logging.getLogger("loftmesh.session").info("[test] hello")
        logger = setup_logging(logging.INFO)
        self.assertEqual(len(logger.handlers), 1)
        with open(log_file, encoding="utf-8") as f:
            self.assertIn("[test] hello", f.read())


if __name__ == "__main__":
    unittest.main()
