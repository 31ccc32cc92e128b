import math
import unittest

import numpy as np

from loftmesh.config import LatheParams
from loftmesh.lathe import analytic_normals, build_lathe_grid, grid_indices, ring_slopes
from loftmesh.profile import Profile


def build(**kw):
    base = dict(rings=10, segments=16, radius=2.0, height=5.0)
    base.update(kw)
    params = LatheParams(**base)
    return build_lathe_grid(params, Profile.from_params(params))


def face_normals(positions, indices):
    p = positions[indices]
    return np.cross(p[:, 1] - p[:, 0], p[:, 2] - p[:, 0]), p.mean(axis=1)


class TestLatheGrid(unittest.TestCase):
    def test_cylinder_radius_and_heights(self) -> None:
        grid = build()
        np.testing.assert_allclose(grid.ring_radii(), 2.0, atol=1e-9)
        heights = grid.grid(grid.positions)[:, 0, 1]
        np.testing.assert_allclose(heights, np.arange(10) * 5.0 / 9.0)

    def test_buffer_sizes(self) -> None:
        grid = build(rings=7, segments=12)
        self.assertEqual(grid.vertex_count, 7 * 13)
        self.assertEqual(grid.indices.shape, (2 * 6 * 12, 3))
        self.assertEqual(grid.indices.dtype, np.int32)
        self.assertEqual(grid.uvs.shape, (7 * 13, 2))

    def test_seam_column_copies_first_column(self) -> None:
        grid = build(twist=37.0, taper=0.6)
        dup = grid.seam_vertices()
        self.assertTrue(np.array_equal(grid.positions[dup], grid.positions[dup - grid.segments]))
        self.assertTrue(np.array_equal(grid.normals[dup], grid.normals[dup - grid.segments]))
        self.assertTrue(np.array_equal(grid.seam_index[dup], dup - grid.segments))

    def test_rebuild_is_idempotent(self) -> None:
        a = build(twist=20.0, taper=0.7)
        b = build(twist=20.0, taper=0.7)
        self.assertTrue(np.array_equal(a.positions, b.positions))
        self.assertTrue(np.array_equal(a.normals, b.normals))
        self.assertTrue(np.array_equal(a.indices, b.indices))

    def test_degenerate_counts_are_clamped(self) -> None:
        grid = build(rings=1, segments=2)
        self.assertEqual((grid.rings, grid.segments), (2, 3))
        self.assertEqual(len(grid.indices), 2 * 1 * 3)

    def test_taper_and_twist(self) -> None:
        grid = build(taper=0.5, twist=90.0)
        radii = grid.ring_radii()
        self.assertAlmostEqual(radii[0, 0], 2.0)
        self.assertAlmostEqual(radii[-1, 0], 1.0)
        top_first = grid.grid(grid.positions)[-1, 0]
        self.assertAlmostEqual(math.atan2(top_first[2], top_first[0]), math.pi / 2)

    def test_uvs(self) -> None:
        grid = build(texture_rotation=0.0)
        uv = grid.grid(grid.uvs)
        np.testing.assert_allclose(uv[:, 0, 0], 0.0)
        np.testing.assert_allclose(uv[:, -1, 0], 1.0)
        np.testing.assert_allclose(uv[0, :, 1], 0.0)
        np.testing.assert_allclose(uv[-1, :, 1], 1.0)

    def test_texture_rotation_shifts_u_with_height(self) -> None:
        grid = build(texture_rotation=180.0)
        uv = grid.grid(grid.uvs)
        self.assertAlmostEqual(uv[0, 0, 0], 0.0)
        self.assertAlmostEqual(uv[-1, 0, 0], 0.5)


class TestOrientation(unittest.TestCase):
    def test_cylinder_normals_point_outward(self) -> None:
        grid = build()
        p, n = grid.positions, grid.normals
        radial = p[:, [0, 2]] / np.linalg.norm(p[:, [0, 2]], axis=1, keepdims=True)
        np.testing.assert_allclose(np.sum(radial * n[:, [0, 2]], axis=1), 1.0, atol=1e-9)
        np.testing.assert_allclose(n[:, 1], 0.0, atol=1e-9)

    def test_narrowing_body_normals_tilt_up(self) -> None:
        grid = build(taper=0.5)
        self.assertTrue(np.all(grid.normals[:, 1] > 0))

    def test_triangles_wind_outward(self) -> None:
        grid = build(taper=0.8, twist=30.0)
        fn, centre = face_normals(grid.positions, grid.indices)
        dot = fn[:, 0] * centre[:, 0] + fn[:, 2] * centre[:, 2]
        self.assertTrue(np.all(dot > 0))

    def test_grid_indices_quad_layout(self) -> None:
        idx = grid_indices(2, 3)
        # a=0 b=1 d=4 c=5
        self.assertEqual(idx[0].tolist(), [0, 5, 1])
        self.assertEqual(idx[3].tolist(), [0, 4, 5])


class TestSlopes(unittest.TestCase):
    def test_cone_slope(self) -> None:
        radii = np.array([2.0, 1.5, 1.0, 0.5])
        heights = np.array([0.0, 1.0, 2.0, 3.0])
        np.testing.assert_allclose(ring_slopes(radii, heights), -0.5)

    def test_flat_step_has_zero_slope(self) -> None:
        radii = np.array([1.0, 2.0])
        heights = np.array([1.0, 1.0])
        np.testing.assert_allclose(ring_slopes(radii, heights), 0.0)

    def test_analytic_normal_is_unit(self) -> None:
        n = analytic_normals(np.array([0.0, 1.0, -2.0]), np.array([0.0, 1.0, 2.0]))
        np.testing.assert_allclose(np.linalg.norm(n, axis=1), 1.0)
        self.assertAlmostEqual(n[1, 1], -1.0 / math.sqrt(2.0))


if __name__ == "__main__":
    unittest.main()
