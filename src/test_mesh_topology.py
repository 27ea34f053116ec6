import unittest
from collections import defaultdict
import numpy as np
from mesh_topology import *
from radial_order import dihedral_order, order_facets_around_edges
from mesh_utils import box_mesh, concatenate, merge_vertices


def edge_id(emap, u, v):
    """undirected edge id of a vertex pair"""
    return int(np.flatnonzero((emap.uE == sorted((u, v))).all(axis=1))[0])


def edge_sharing_boxes():
    """two unit cubes touching along the edge (1,1,0)-(1,1,1)"""
    return merge_vertices(*concatenate(box_mesh((0, 0, 0), (1, 1, 1)), box_mesh((1, 1, 0), (2, 2, 1))))


class TestEdgeMap(unittest.TestCase):

    def test_cube(self):
        V, F = box_mesh()
        emap = unique_edge_map(F)
        self.assertEqual(len(emap.E), 36)
        self.assertEqual(len(emap.uE), 18) # 12 cube edges + 6 diagonals
        self.assertTrue(all(emap.valence(ue) == 2 for ue in range(len(emap.uE))))
        self.assertTrue(np.all(emap.uE[:, 0] < emap.uE[:, 1]))

        # the two half-edges of a closed, oriented surface run in opposite directions
        for incident in emap.uE2E:
            self.assertNotEqual(emap.consistent(incident[0]), emap.consistent(incident[1]))

    def test_half_edge_layout(self):
        F = np.array([[0, 1, 2], [2, 1, 3]])
        emap = unique_edge_map(F)
        m = len(F)
        for f in range(m):
            for c in range(3):
                he = f + c * m
                self.assertEqual(emap.face(he), f)
                self.assertEqual(emap.corner(he), c)
                self.assertEqual(tuple(emap.E[he]), (F[f, (c + 1) % 3], F[f, (c + 2) % 3]))

        shared = edge_id(emap, 2, 1)
        self.assertEqual(tuple(emap.uE[shared]), (1, 2))
        self.assertEqual(emap.EMAP[0], shared)
        self.assertEqual(emap.uE2E[shared], [0, 1 + 2 * m]) # corner 0 of face 0, corner 2 of face 1

    def test_every_half_edge_in_one_incidence_list(self):
        V, F = edge_sharing_boxes()
        emap = unique_edge_map(F)
        seen = sorted(he for incident in emap.uE2E for he in incident)
        self.assertEqual(seen, list(range(3 * len(F))))
        for ue, incident in enumerate(emap.uE2E):
            self.assertTrue(all(emap.EMAP[he] == ue for he in incident))

    def test_triangle_adjacency(self):
        V, F = edge_sharing_boxes()
        emap = unique_edge_map(F)
        TT = triangle_adjacency(emap)
        ue = edge_id(emap, *np.flatnonzero((V == [1, 1, 0]).all(axis=1)),
                     *np.flatnonzero((V == [1, 1, 1]).all(axis=1)))
        for he in emap.uE2E[ue]:
            self.assertEqual(len(TT[emap.face(he)][emap.corner(he)]), 3)

        valences = sorted(emap.valence(u) for u in range(len(emap.uE)))
        self.assertEqual(valences[-1], 4)
        self.assertEqual(valences[-2], 2)


class TestComponents(unittest.TestCase):

    def test_disjoint_boxes(self):
        V, F = concatenate(box_mesh((0, 0, 0), (1, 1, 1)), box_mesh((3, 0, 0), (4, 1, 1)))
        C, counts = facet_components(unique_edge_map(F))
        self.assertEqual(counts.tolist(), [12, 12])
        self.assertEqual(C.tolist(), [0] * 12 + [1] * 12)

    def test_labels_follow_smallest_face(self):
        V, F = concatenate(box_mesh((0, 0, 0), (1, 1, 1)), box_mesh((3, 0, 0), (4, 1, 1)))
        F = np.concatenate([F[12:13], F[:12], F[13:]])
        C, counts = facet_components(unique_edge_map(F))
        self.assertEqual(C[0], 0)
        self.assertTrue(np.all(C[1:13] == 1))
        self.assertEqual(counts.tolist(), [12, 12])

    def test_edge_sharing_boxes_are_one_component(self):
        V, F = edge_sharing_boxes()
        C, counts = facet_components(unique_edge_map(F))
        self.assertEqual(counts.tolist(), [24])

    def test_face_adjacency_graph(self):
        V, F = box_mesh()
        G = face_adjacency_graph(unique_edge_map(F))
        self.assertEqual(G.number_of_nodes(), 12)
        self.assertEqual(G.number_of_edges(), 18)
        self.assertTrue(all(d == 3 for _, d in G.degree()))

        V, F = edge_sharing_boxes()
        G = face_adjacency_graph(unique_edge_map(F))
        # every face on the shared edge touches the other three
        self.assertEqual(sorted(d for _, d in G.degree())[-4:], [5, 5, 5, 5])

    def test_empty(self):
        C, counts = facet_components(unique_edge_map(np.zeros((0, 3), dtype=int)))
        self.assertEqual(len(C), 0)
        self.assertEqual(len(counts), 0)


class TestValidation(unittest.TestCase):

    def test_degenerate_triangle(self):
        with self.assertRaises(InvalidMeshError):
            unique_edge_map(np.array([[0, 1, 2], [3, 3, 4]]))

    def test_out_of_range(self):
        V, F = box_mesh()
        F = F.copy()
        F[5, 1] = 8
        with self.assertRaises(InvalidMeshError) as ctx:
            validate_mesh(V, F)
        self.assertIn("face 5", str(ctx.exception))

        F[5, 1] = -1
        with self.assertRaises(InvalidMeshError):
            validate_mesh(V, F)

    def test_shape(self):
        with self.assertRaises(InvalidMeshError):
            validate_mesh(np.zeros((4, 3)), np.array([[0, 1, 2, 3]]))
        with self.assertRaises(InvalidMeshError):
            validate_mesh(np.zeros((4, 2)), np.array([[0, 1, 2]]))

    def test_non_integer_indices(self):
        with self.assertRaises(InvalidMeshError):
            validate_faces(np.array([[0, 1, 2.5]]))
        self.assertEqual(validate_faces(np.array([[0.0, 1.0, 2.0]])).dtype, np.int64)

    def test_is_value_error(self):
        self.assertTrue(issubclass(InvalidMeshError, ValueError))


class TestOrientation(unittest.TestCase):

    def test_box_is_consistent(self):
        V, F = box_mesh()
        self.assertTrue(consistently_oriented(F))

    def test_flipped_face(self):
        V, F = box_mesh()
        F = F.copy()
        F[4] = F[4][::-1]
        conflicts = orientation_conflicts(F)
        self.assertEqual(len(conflicts), 3)
        self.assertTrue(all(set(e) <= set(F[4]) for e in conflicts))

    def test_simplex_map_key_order(self):
        M = SimplexMap(1, map_constructor=lambda: defaultdict(list))
        M[(3, 1)].append("x")
        M[(1, 3)].append("y")
        self.assertEqual(list(M.items()), [((1, 3), ["x", "y"])])

    def test_oriented_triangle_set(self):
        self.assertEqual(oriented_triangle_set([(2, 0, 1)]), {(0, 1, 2)})
        self.assertNotEqual(oriented_triangle_set([(2, 1, 0)]), {(0, 1, 2)})


class TestRadialOrder(unittest.TestCase):

    def test_fan_around_shared_edge(self):
        V, F = edge_sharing_boxes()
        emap = unique_edge_map(F)
        order = order_facets_around_edges(V, F, emap)
        s = int(np.flatnonzero((V == [1, 1, 0]).all(axis=1))[0])
        d = int(np.flatnonzero((V == [1, 1, 1]).all(axis=1))[0])
        ue = edge_id(emap, s, d)
        self.assertEqual(tuple(emap.uE[ue]), (s, d)) # axis is +z

        m = len(F)
        fan = order.uE2oE[ue]
        directions = []
        for he in fan:
            opposite = V[F[he % m, he // m]]
            directions.append(tuple(np.sign(opposite[:2] - [1, 1]).astype(int)))

        # counter-clockwise about +z, up to rotation
        expected = [(0, -1), (1, 0), (0, 1), (-1, 0)]
        start = expected.index(directions[0])
        self.assertEqual(directions, expected[start:] + expected[:start])

        for i, he in enumerate(fan):
            self.assertEqual(order.position[he], i)
            self.assertEqual(order.uE2C[ue][i], emap.consistent(he))

    def test_coplanar_faces_ordered_by_half_edge_id(self):
        # faces 0 and 1 lie in the same half-plane y = 0, x > 0 around the edge 0-1 (the z axis)
        V = np.array([[0, 0, 0], [0, 0, 1], [1, 0, 0], [2, 0, 0.5], [0, 1, 0]], dtype=float)
        F = np.array([[0, 1, 2], [1, 0, 3], [0, 1, 4]])
        emap = unique_edge_map(F)
        ue = emap.EMAP[6]
        self.assertEqual(emap.uE2E[ue], [6, 7, 8]) # corner 2 of every face

        ordered, flags = dihedral_order(V, F, emap, ue)
        self.assertEqual(ordered, [6, 7, 8])
        self.assertEqual(flags, [True, False, True])
        self.assertEqual(dihedral_order(V, F, emap, ue), (ordered, flags))

        # the tie follows the labels: relabeled, the other face of the pair comes first
        F2 = F[[1, 0, 2]]
        ordered2, _ = dihedral_order(V, F2, unique_edge_map(F2), ue)
        self.assertEqual(ordered2, [6, 7, 8])

        order = order_facets_around_edges(V, F, emap)
        self.assertEqual(order.uE2oE[ue], [6, 7, 8])

    def test_malformed_order(self):
        V, F = box_mesh()
        emap = unique_edge_map(F)

        def dropping_oracle(V, F, emap, ue):
            ordered, flags = dihedral_order(V, F, emap, ue)
            return ordered[:-1], flags[:-1]

        with self.assertRaises(HullInvariantError):
            order_facets_around_edges(V, F, emap, oracle=dropping_oracle)

    def test_wrong_flags(self):
        V, F = box_mesh()
        emap = unique_edge_map(F)

        def lying_oracle(V, F, emap, ue):
            ordered, flags = dihedral_order(V, F, emap, ue)
            return ordered, [not c for c in flags]

        with self.assertRaises(HullInvariantError) as ctx:
            order_facets_around_edges(V, F, emap, oracle=lying_oracle)
        self.assertIn("edge 0", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
