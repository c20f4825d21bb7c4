import unittest

import numpy as np

from panocube.errors import DegenerateInputError
from panocube.faces import FACE_ORDER, FaceId, face_coordinates, face_direction, face_grid, face_pixel, locate
from panocube.projection import direction_to_uv, direction_to_yaw_pitch, uv_to_direction, uv_to_source


class FaceTableTests(unittest.TestCase):
    def test_order_and_labels(self):
        self.assertEqual([f.value for f in FACE_ORDER], ["front", "back", "left", "right", "top", "bottom"])
        self.assertEqual(FaceId.FRONT.label, "Front (Z+)")
        self.assertEqual(FaceId.BOTTOM.label, "Bottom (Y-)")

    def test_orientation_formulas(self):
        x, y = 0.25, -0.5
        expected = {
            FaceId.FRONT: (-1, 0.5, -0.25),
            FaceId.BACK: (1, 0.5, 0.25),
            FaceId.LEFT: (-0.25, 0.5, 1),
            FaceId.RIGHT: (0.25, 0.5, -1),
            FaceId.TOP: (0.5, 1, -0.25),
            FaceId.BOTTOM: (-0.5, -1, -0.25),
        }
        for face, vec in expected.items():
            self.assertEqual(tuple(face_direction(face, x, y)), vec, face)

    def test_parse_accepts_strings(self):
        self.assertIs(FaceId.parse("Top"), FaceId.TOP)
        self.assertIs(FaceId.parse(FaceId.LEFT), FaceId.LEFT)
        with self.assertRaises(DegenerateInputError):
            FaceId.parse("north")

    def test_array_directions_broadcast_constants(self):
        dx, dy, dz = face_grid(FaceId.RIGHT, 4)
        self.assertEqual(dx.shape, (4, 4))
        self.assertTrue(np.all(dz == -1.0))
        self.assertTrue(np.all(dy[0] > 0))  # row 0 is the top of the face

    def test_pixel_centre_coordinates(self):
        np.testing.assert_allclose(face_coordinates(4), [-0.75, -0.25, 0.25, 0.75])
        self.assertEqual(face_pixel(-0.75, 0.75, 4), (0, 3))


class InverseMappingTests(unittest.TestCase):
    def test_locate_inverts_face_direction(self):
        for face in FACE_ORDER:
            for x, y in [(0.3, -0.7), (-0.9, 0.1), (0.0, 0.5)]:
                found, fx, fy = locate(face_direction(face, x, y))
                self.assertIs(found, face)
                self.assertAlmostEqual(fx, x)
                self.assertAlmostEqual(fy, y)

    def test_locate_scales_out(self):
        found, fx, fy = locate((0.5, -1.5, 0.25))
        self.assertIs(found, FaceId.BOTTOM)
        self.assertAlmostEqual(fx, -0.25 / 1.5)
        self.assertAlmostEqual(fy, 0.5 / 1.5)

    def test_locate_zero_vector(self):
        with self.assertRaises(DegenerateInputError):
            locate((0, 0, 0))


class ProjectionTests(unittest.TestCase):
    def test_axes(self):
        self.assertEqual(direction_to_uv(1, 0, 0), (0.5, 0.5))
        u, v = direction_to_uv(0, 5, 0)
        self.assertAlmostEqual(v, 1.0)
        u, v = direction_to_uv(0, 0, -2)
        self.assertAlmostEqual(u, 0.25)
        self.assertAlmostEqual(v, 0.5)

    def test_zero_direction_rejected(self):
        with self.assertRaises(DegenerateInputError):
            direction_to_uv(0.0, 0.0, 0.0)
        with self.assertRaises(DegenerateInputError):
            direction_to_uv(np.zeros(3), np.zeros(3), np.zeros(3))

    def test_array_matches_scalar(self):
        xs = np.array([0.2, -1.0, 0.7])
        ys = np.array([0.5, 0.1, -0.9])
        zs = np.array([-0.3, 0.4, 1.0])
        us, vs = direction_to_uv(xs, ys, zs)
        for i in range(3):
            u, v = direction_to_uv(float(xs[i]), float(ys[i]), float(zs[i]))
            self.assertAlmostEqual(us[i], u)
            self.assertAlmostEqual(vs[i], v)

    def test_uv_to_direction_round_trip(self):
        for u, v in [(0.3, 0.6), (0.9, 0.1), (0.5, 0.5)]:
            ru, rv = direction_to_uv(*uv_to_direction(u, v))
            self.assertAlmostEqual(ru, u)
            self.assertAlmostEqual(rv, v)

    def test_source_coordinates_flip_rows(self):
        self.assertEqual(uv_to_source(0.25, 1.0, 16, 8), (4.0, 0.0))
        self.assertEqual(uv_to_source(0.5, 0.0, 16, 8), (8.0, 8.0))

    def test_yaw_pitch(self):
        yaw, pitch = direction_to_yaw_pitch(0, 1, 0)
        self.assertAlmostEqual(pitch, 90.0)
        yaw, pitch = direction_to_yaw_pitch(1, 0, 0)
        self.assertAlmostEqual(yaw, 0.0)
        self.assertAlmostEqual(pitch, 0.0)


class EdgeContinuityTests(unittest.TestCase):
    """Neighbouring faces must project their shared edge onto the same panorama points."""

    def assert_edges_match(self, face_a, edge_a, face_b, edge_b):
        for t in np.linspace(-0.95, 0.95, 9):
            ua, va = direction_to_uv(*face_direction(face_a, *edge_a(t)))
            ub, vb = direction_to_uv(*face_direction(face_b, *edge_b(t)))
            self.assertAlmostEqual(ua, ub, places=9)
            self.assertAlmostEqual(va, vb, places=9)

    def test_horizontal_ring(self):
        right_edge = lambda t: (1.0, t)
        left_edge = lambda t: (-1.0, t)
        self.assert_edges_match(FaceId.FRONT, right_edge, FaceId.RIGHT, left_edge)
        self.assert_edges_match(FaceId.RIGHT, right_edge, FaceId.BACK, left_edge)
        self.assert_edges_match(FaceId.BACK, right_edge, FaceId.LEFT, left_edge)
        self.assert_edges_match(FaceId.LEFT, right_edge, FaceId.FRONT, left_edge)

    def test_top_and_bottom_meet_front(self):
        self.assert_edges_match(FaceId.FRONT, lambda t: (t, -1.0), FaceId.TOP, lambda t: (t, 1.0))
        self.assert_edges_match(FaceId.FRONT, lambda t: (t, 1.0), FaceId.BOTTOM, lambda t: (t, -1.0))


if __name__ == "__main__":
    unittest.main()
