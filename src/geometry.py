"""geometric primitives used around the outer hull traversal"""

from typing import *
import numpy as np


WINDING_NUMBER_THRESHOLD = 0.5
"""points with a generalized winding number above this are inside"""

WINDING_NUMBER_MIN_FACES = 100
"""nodes of a WindingNumberTree with at most this many faces are not split further"""

SOLID_ANGLE_CHUNK = 1 << 18
"""(query point, triangle) pairs evaluated at once by solid_angle_sum"""


class SeedSelector(Protocol):
    """Pick a face of the given component that is on its outer hull,
    and whether that face has to be flipped to face outward."""

    def __call__(self, V: np.ndarray, F: np.ndarray, faces: np.ndarray) -> Tuple[int, bool]:
        ...


class PointInSolidOracle(Protocol):
    """Which query points are inside the closed, consistently oriented surface (V, G)?"""

    def __call__(self, V: np.ndarray, G: np.ndarray, points: np.ndarray) -> np.ndarray:
        ...


def per_face_normals(V: np.ndarray, F: np.ndarray, normalize=True) -> np.ndarray:
    T = V[F]
    N = np.cross(T[:, 1] - T[:, 0], T[:, 2] - T[:, 0])
    if normalize:
        lengths = np.linalg.norm(N, axis=1, keepdims=True)
        N = np.divide(N, lengths, out=np.zeros_like(N), where=lengths > 0)
    return N


def barycenters(V: np.ndarray, F: np.ndarray) -> np.ndarray:
    return V[F].mean(axis=1)


def bounding_box(V: np.ndarray, F: np.ndarray) -> np.ndarray:
    """(2, 3) array: min corner, max corner of the vertices referenced by F"""
    P = V[np.unique(F)]
    return np.stack([P.min(axis=0), P.max(axis=0)])


def boxes_overlap(A: np.ndarray, B: np.ndarray) -> bool:
    """closed boxes: touching counts as overlapping"""
    return not ((B[0] > A[1]).any() or (A[0] > B[1]).any())


def outer_facet(V: np.ndarray, F: np.ndarray, faces: np.ndarray) -> Tuple[int, bool]:
    """Find a face of `faces` that lies on their outer hull.

    Take the vertex furthest along +x; of its incident edges, the one closest to
    perpendicular to x; of the faces on that edge, the one whose normal is closest
    to parallel to x. Nothing lies beyond that face in the +x direction, so it is
    on the hull, and it faces outward iff its normal has a positive x component.
    ### Returns:
    (face index into F, whether the face must be flipped)
    """
    faces = np.asarray(faces)
    if len(faces) == 0:
        raise ValueError("can't pick an outer facet of an empty face set")
    sub = F[faces]

    verts = np.unique(sub)
    v = verts[np.argmax(V[verts, 0])]

    incident = faces[(sub == v).any(axis=1)]
    neighbors = np.unique(F[incident])
    neighbors = neighbors[neighbors != v]
    directions = V[neighbors] - V[v]
    lengths = np.linalg.norm(directions, axis=1)
    slope = np.divide(np.abs(directions[:, 0]), lengths, out=np.ones_like(lengths), where=lengths > 0)
    w = neighbors[np.argmin(slope)]

    on_edge = incident[(F[incident] == w).any(axis=1)]
    N = per_face_normals(V, F[on_edge])
    best = np.argmax(np.abs(N[:, 0]))
    return int(on_edge[best]), bool(N[best, 0] < 0)


def solid_angle_sum(T: np.ndarray, points: np.ndarray, chunk=SOLID_ANGLE_CHUNK) -> np.ndarray:
    """Winding number contribution of the triangles T (k, 3, 3) at every query point:
    sum of signed solid angles (Van Oosterom & Strackee) over 4 pi.
    Query points are processed in batches of about chunk / k."""
    points = np.asarray(points, dtype=float).reshape(-1, 3)
    w = np.zeros(len(points))
    if len(T) == 0 or len(points) == 0:
        return w

    dot = lambda x, y: np.einsum("qki,qki->qk", x, y)
    step = max(1, chunk // len(T))
    for start in range(0, len(points), step):
        P = points[start:start + step]
        a = T[None, :, 0, :] - P[:, None, :]
        b = T[None, :, 1, :] - P[:, None, :]
        c = T[None, :, 2, :] - P[:, None, :]

        la = np.linalg.norm(a, axis=2)
        lb = np.linalg.norm(b, axis=2)
        lc = np.linalg.norm(c, axis=2)

        det = dot(a, np.cross(b, c))
        denom = la * lb * lc + dot(a, b) * lc + dot(b, c) * la + dot(c, a) * lb
        w[start:start + step] = 2 * np.arctan2(det, denom).sum(axis=1) / (4 * np.pi)

    return w


def boundary_edges(F: np.ndarray) -> np.ndarray:
    """Directed edges of F not cancelled by an oppositely directed copy (with multiplicity).
    Empty for a closed, consistently oriented surface."""
    E = np.concatenate([F[:, [1, 2]], F[:, [2, 0]], F[:, [0, 1]]])
    if len(E) == 0:
        return E.reshape(0, 2)
    uE, EMAP = np.unique(np.sort(E, axis=1), axis=0, return_inverse=True)
    net = np.zeros(len(uE), dtype=np.int64)
    np.add.at(net, EMAP.reshape(-1), np.where(E[:, 0] < E[:, 1], 1, -1))

    forward = np.repeat(uE, np.clip(net, 0, None), axis=0)
    backward = np.repeat(uE[:, ::-1], np.clip(-net, 0, None), axis=0)
    return np.concatenate([forward, backward])


class WindingNumberTree:
    """Bounding-box hierarchy over the faces of a surface for fast winding number queries.

    Every node closes its patch of faces with a cap: a fan of triangles from the
    patch center to its boundary edges. Patch and cap together form a closed surface
    inside the node's box, so for a point outside the box the patch's winding number
    is exactly minus the cap's. A closed input has an empty cap at the root, and
    points outside the overall box cost nothing.
    """

    def __init__(self, V: np.ndarray, F: np.ndarray, min_faces=WINDING_NUMBER_MIN_FACES):
        self.V = V
        self.F = np.asarray(F, dtype=np.int64).reshape(-1, 3)
        self.children: List["WindingNumberTree"] = []

        corners = V[self.F].reshape(-1, 3)
        if len(corners):
            self.box = np.stack([corners.min(axis=0), corners.max(axis=0)])
            center = corners.mean(axis=0)
        else:
            self.box = np.array([[np.inf] * 3, [-np.inf] * 3])
            center = np.zeros(3)

        B = boundary_edges(self.F)
        self.cap = np.stack([V[B[:, 1]], V[B[:, 0]], np.broadcast_to(center, (len(B), 3))], axis=1)

        self._grow(min_faces)

    def _grow(self, min_faces: int):
        if len(self.F) <= min_faces or len(self.cap) - 2 >= len(self.F):
            return # leaf

        # median split of the barycenters along the longest side of the box
        d = np.argmax(self.box[1] - self.box[0])
        BC = barycenters(self.V, self.F)[:, d]
        left = BC <= np.median(BC)
        if left.all() or not left.any():
            return # badly balanced, keep as leaf

        self.children = [WindingNumberTree(self.V, self.F[left], min_faces),
                         WindingNumberTree(self.V, self.F[~left], min_faces)]

    def contains(self, points: np.ndarray) -> np.ndarray:
        """which points lie in the (closed) box of this node"""
        return ((points >= self.box[0]) & (points <= self.box[1])).all(axis=1)

    def winding_number(self, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=float).reshape(-1, 3)
        w = np.zeros(len(points))
        near = self.contains(points)

        if (~near).any():
            w[~near] = -solid_angle_sum(self.cap, points[~near])
        if near.any():
            if self.children:
                w[near] = sum(child.winding_number(points[near]) for child in self.children)
            else:
                w[near] = solid_angle_sum(self.V[self.F], points[near])
        return w


def winding_number(V: np.ndarray, F: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Generalized winding number of each query point w.r.t. the triangle surface (V, F).
    ~1 inside a closed outward-oriented surface, ~0 outside."""
    return WindingNumberTree(np.asarray(V, dtype=float), F).winding_number(points)


def points_inside(V: np.ndarray, G: np.ndarray, points: np.ndarray) -> np.ndarray:
    return winding_number(V, G, points) > WINDING_NUMBER_THRESHOLD


def remove_unreferenced(V: np.ndarray, F: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Drop vertices not used by any face.
    ### Returns:
    - V2, F2: compacted mesh
    - I: I[i] is the index in V of vertex i of V2
    """
    F = np.asarray(F, dtype=np.int64).reshape(-1, 3)
    I = np.unique(F)
    remap = np.full(len(V), -1, dtype=np.int64)
    remap[I] = np.arange(len(I))
    return V[I], remap[F], I
