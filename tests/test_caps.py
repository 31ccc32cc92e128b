import unittest

import numpy as np

from loftmesh.caps import build_caps, check_watertight
from loftmesh.config import LatheParams
from loftmesh.heightfield import HeightField
from loftmesh.session import build_mesh
from loftmesh.lathe import build_lathe_grid
from loftmesh.profile import Profile


def params(**kw):
    base = dict(rings=14, segments=20, radius=2.0, height=5.0,
                displacement_scale=0.4, displacement_bias=-0.1)
    base.update(kw)
    return LatheParams(**base)


def noisy_field() -> HeightField:
    rng = np.random.default_rng(11)
    return HeightField.from_array(rng.random((24, 24)))


class TestBuildCaps(unittest.TestCase):
    def test_centroid_is_ring_mean(self) -> None:
        result = build_mesh(params(twist=30.0), Profile.from_params(params()), noisy_field())
        grid = result.body
        for cap, ring in ((result.bottom, 0), (result.top, grid.rings - 1)):
            body_ring = grid.ring(ring)[:grid.segments]
            np.testing.assert_allclose(cap.centre, body_ring.mean(axis=0))

    def test_rim_is_a_copy_of_the_body_ring(self) -> None:
        result = build_mesh(params(), Profile.from_params(params()), noisy_field())
        np.testing.assert_array_equal(result.bottom.rim, result.body.ring(0))
        np.testing.assert_array_equal(result.top.rim, result.body.ring(result.body.rings - 1))

    def test_caps_face_away_from_the_body(self) -> None:
        p = params()
        bottom, top = build_caps(build_lathe_grid(p, Profile.from_params(p)))
        for cap, sign in ((bottom, -1.0), (top, 1.0)):
            tri = cap.positions[cap.indices]
            fn = np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])
            self.assertTrue(np.all(fn[:, 1] * sign > 0))
            np.testing.assert_array_equal(cap.normals[:, 1], sign)

    def test_fan_layout_and_uvs(self) -> None:
        p = params(segments=8)
        bottom, _ = build_caps(build_lathe_grid(p, Profile.from_params(p)))
        self.assertEqual(bottom.positions.shape, (10, 3))
        self.assertEqual(bottom.indices.shape, (8, 3))
        self.assertTrue(np.all(bottom.indices[:, 0] == 0))
        np.testing.assert_allclose(bottom.uvs[0], [0.5, 0.5])
        np.testing.assert_allclose(bottom.uvs[1], [1.0, 0.5])


class TestWatertight(unittest.TestCase):
    def test_built_mesh_is_watertight(self) -> None:
        for mode in ("horizontal", "vertex", "face"):
            p = params(normal_mode=mode, twist=20.0, taper=0.8)
            result = build_mesh(p, Profile.from_params(p), noisy_field())
            report = check_watertight(result.body, result.bottom, result.top)
            self.assertTrue(report.watertight, msg=f"{mode}: {report}")
            self.assertEqual(report.boundary_edges, 0)
            self.assertEqual(report.non_manifold_edges, 0)

    def test_loose_cap_vertex_is_reported(self) -> None:
        p = params()
        result = build_mesh(p, Profile.from_params(p))
        result.bottom.positions[3, 0] += 0.01
        with self.assertLogs("loftmesh.caps", level="WARNING"):
            report = check_watertight(result.body, result.bottom, result.top)
        self.assertFalse(report.watertight)
        self.assertEqual(report.unwelded_bottom, [2])
        self.assertEqual(report.unwelded_top, [])
        self.assertGreater(report.boundary_edges, 0)


if __name__ == "__main__":
    unittest.main()
