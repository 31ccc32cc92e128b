import unittest

import numpy as np

from loftmesh.config import LatheParams
from loftmesh.lathe import build_lathe_grid
from loftmesh.profile import Profile
from loftmesh.repair import compute_normals, enforce_outward, recompute_normals, smooth


def build(**kw):
    base = dict(rings=12, segments=16, radius=2.0, height=5.0)
    base.update(kw)
    params = LatheParams(**base)
    return build_lathe_grid(params, Profile.from_params(params))


def bump(grid, ring: int, col: int, amount: float) -> int:
    i = ring * grid.cols + col
    p = grid.positions[i]
    r = np.hypot(p[0], p[2])
    grid.positions[i, [0, 2]] *= (r + amount) / r
    grid.weld_seam()
    return i


class TestSmooth(unittest.TestCase):
    def test_pulls_a_spike_back(self) -> None:
        grid = build()
        i = bump(grid, 6, 5, 1.0)
        before = np.hypot(*grid.positions[i, [0, 2]])
        smooth(grid, 1)
        after = np.hypot(*grid.positions[i, [0, 2]])
        self.assertLess(after, before)

    def test_cap_rings_are_untouched(self) -> None:
        grid = build(taper=0.5)
        bump(grid, 1, 3, 0.5)
        first, last = grid.ring(0), grid.ring(grid.rings - 1)
        smooth(grid, 4)
        np.testing.assert_array_equal(grid.ring(0), first)
        np.testing.assert_array_equal(grid.ring(grid.rings - 1), last)

    def test_seam_closed_after_smoothing(self) -> None:
        grid = build(twist=45.0)
        bump(grid, 4, 0, 0.8)
        bump(grid, 7, grid.segments - 1, -0.5)
        smooth(grid, 3)
        dup = grid.seam_vertices()
        self.assertTrue(np.array_equal(grid.positions[dup], grid.positions[dup - grid.segments]))

    def test_spike_at_seam_spreads_to_both_sides(self) -> None:
        grid = build()
        bump(grid, 6, 0, 1.0)
        smooth(grid, 1)
        radii = grid.ring_radii()
        self.assertGreater(radii[6, 1], 2.0)
        self.assertGreater(radii[6, grid.segments - 1], 2.0)

    def test_zero_passes_and_tiny_grids_are_noops(self) -> None:
        grid = build()
        bump(grid, 5, 5, 1.0)
        before = grid.positions.copy()
        smooth(grid, 0)
        self.assertTrue(np.array_equal(grid.positions, before))

        small = build(rings=2)
        before = small.positions.copy()
        smooth(small, 5)
        self.assertTrue(np.array_equal(small.positions, before))


class TestNormals(unittest.TestCase):
    def test_recompute_matches_build_on_a_cone(self) -> None:
        grid = build(taper=0.5)
        expected = grid.normals.copy()
        grid.normals[:] = 0.0
        recompute_normals(grid)
        np.testing.assert_allclose(grid.normals, expected, atol=1e-9)

    def test_enforce_outward_flips_inward_normals(self) -> None:
        grid = build()
        grid.normals[:10] *= -1.0
        self.assertEqual(enforce_outward(grid), 10)
        self.assertEqual(enforce_outward(grid), 0)
        p, n = grid.positions, grid.normals
        self.assertTrue(np.all(n[:, 0] * p[:, 0] + n[:, 2] * p[:, 2] > 0))

    def test_compute_normals_from_topology(self) -> None:
        verts = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
        n = compute_normals(verts, np.array([[0, 1, 2]]), 3)
        np.testing.assert_allclose(n, [[0.0, 0.0, 1.0]] * 3)


if __name__ == "__main__":
    unittest.main()
