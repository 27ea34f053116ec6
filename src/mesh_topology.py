from typing import *
from collections import defaultdict
from dataclasses import dataclass
import numpy as np
import networkx as nx


Vertex = int
Edge = Tuple[Vertex, Vertex]
Triangle = Tuple[Vertex, Vertex, Vertex]
Simplex = Tuple[Vertex, ...]
HalfEdge = int
"""flat half-edge id: face f, corner c -> f + c * num_faces"""


class InvalidMeshError(ValueError):
    """Input mesh is malformed (shape, index range, degenerate triangles)"""


class HullInvariantError(RuntimeError):
    """A structural precondition of the hull traversal does not hold"""


V = TypeVar("V")


class SimplexMap(Generic[V]):
    """A map from simplices to values of type V (with key order invariance)"""
    _map: Dict[Simplex, V]
    _input_dimension: Optional[int]

    def __init__(self, key_dimension: Optional[int], map_constructor: Callable[[], Dict[Simplex, V]] = dict):
        """key_dimension=None for no restriction on simplex dimension"""
        self._map = map_constructor()
        self._input_dimension = key_dimension

    def _key(self, simplex: Simplex) -> Simplex:
        if self._input_dimension is not None:
            assert len(simplex) == self._input_dimension + 1
        return tuple(sorted(int(v) for v in simplex))

    def __getitem__(self, simplex: Simplex) -> V:
        return self._map[self._key(simplex)]

    def items(self) -> Iterator[Tuple[Simplex, V]]:
        return self._map.items()


def edges(triangle: Triangle) -> Iterator[Edge]:
    """directed edges of a triangle, in corner order (opposite corner 0, 1, 2)"""
    a, b, c = triangle
    yield from ((b, c), (c, a), (a, b))


def validate_faces(F: np.ndarray, num_vertices: Optional[int] = None) -> np.ndarray:
    """Return F as an (m, 3) int array, or raise InvalidMeshError.
    Vertex indices are range-checked only if num_vertices is given."""
    F = np.asarray(F)
    if F.size == 0:
        F = F.reshape(0, 3)
    if F.ndim != 2 or F.shape[1] != 3:
        raise InvalidMeshError(f"face array must have shape (m, 3), got {F.shape}")
    if not np.issubdtype(F.dtype, np.integer):
        if not np.issubdtype(F.dtype, np.number) or not np.all(np.mod(F, 1) == 0):
            raise InvalidMeshError("face array contains non-integer vertex indices")
    F = F.astype(np.int64)
    if len(F) == 0:
        return F

    out_of_range = (F < 0).any(axis=1)
    if num_vertices is not None:
        out_of_range |= (F >= num_vertices).any(axis=1)
    if (bad := np.flatnonzero(out_of_range)).size:
        f = bad[0]
        raise InvalidMeshError(f"face {f} {F[f].tolist()} references a vertex outside [0, {num_vertices})")

    degenerate = (F[:, 0] == F[:, 1]) | (F[:, 1] == F[:, 2]) | (F[:, 2] == F[:, 0])
    if (bad := np.flatnonzero(degenerate)).size:
        f = bad[0]
        raise InvalidMeshError(f"face {f} {F[f].tolist()} is degenerate (repeated vertex index)")

    return F


def validate_mesh(V: np.ndarray, F: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Return V, F as (n, 3) float and (m, 3) int arrays, or raise InvalidMeshError"""
    V = np.asarray(V, dtype=float)
    if V.size == 0:
        V = V.reshape(0, 3)
    if V.ndim != 2 or V.shape[1] != 3:
        raise InvalidMeshError(f"vertex array must have shape (n, 3), got {V.shape}")
    return V, validate_faces(F, num_vertices=len(V))


@dataclass
class EdgeMap:
    """Half-edges of a triangle mesh grouped by the undirected edge they lie on."""

    E: np.ndarray
    """(3m, 2) directed half-edges; row f + c*m is the edge opposite corner c of face f"""
    uE: np.ndarray
    """(k, 2) unique undirected edges, each stored in canonical (min, max) direction"""
    EMAP: np.ndarray
    """(3m,) undirected edge id of every half-edge"""
    uE2E: List[List[HalfEdge]]
    """incidence list of every undirected edge (half-edge ids, increasing)"""

    @property
    def num_faces(self) -> int:
        return len(self.E) // 3

    def face(self, he: HalfEdge) -> int:
        return he % self.num_faces

    def corner(self, he: HalfEdge) -> int:
        return he // self.num_faces

    def valence(self, ue: int) -> int:
        return len(self.uE2E[ue])

    def consistent(self, he: HalfEdge) -> bool:
        """does the half-edge run along its undirected edge's canonical direction?"""
        return bool(self.E[he, 0] == self.uE[self.EMAP[he], 0])


def unique_edge_map(F: np.ndarray) -> EdgeMap:
    """Build the undirected-edge table of a face list (purely combinatorial)."""
    F = validate_faces(F)
    m = len(F)

    # corner c is opposite the directed edge F[(c+1)%3] -> F[(c+2)%3]
    E = np.concatenate([F[:, [1, 2]], F[:, [2, 0]], F[:, [0, 1]]])
    sortedE = np.sort(E, axis=1)
    if m:
        uE, EMAP = np.unique(sortedE, axis=0, return_inverse=True)
        EMAP = EMAP.reshape(-1)
    else:
        uE, EMAP = np.zeros((0, 2), dtype=np.int64), np.zeros(0, dtype=np.int64)

    uE2E: List[List[HalfEdge]] = [[] for _ in range(len(uE))]
    for he, ue in enumerate(EMAP):
        uE2E[ue].append(he)

    return EdgeMap(E=E, uE=uE, EMAP=EMAP, uE2E=uE2E)


def triangle_adjacency(emap: EdgeMap) -> List[List[List[HalfEdge]]]:
    """For every face f and corner c, the half-edges of *other* faces sharing that edge
    (more than one on non-manifold edges, none on boundary edges)."""
    m = emap.num_faces
    TT = [[[] for _ in range(3)] for _ in range(m)]
    for he, ue in enumerate(emap.EMAP):
        f, c = he % m, he // m
        TT[f][c] = [other for other in emap.uE2E[ue] if other % m != f]
    return TT


def face_adjacency_graph(emap: EdgeMap) -> nx.Graph:
    """faces are adjacent iff they share an undirected edge"""
    m = emap.num_faces
    G = nx.Graph(name="Face adjacency graph")
    G.add_nodes_from(range(m))
    for f, corners in enumerate(triangle_adjacency(emap)):
        for others in corners:
            G.add_edges_from((f, he % m) for he in others)
    return G


def facet_components(emap: EdgeMap) -> Tuple[np.ndarray, np.ndarray]:
    """Label connected components of the face adjacency graph.
    ### Returns:
    - C: component id of every face (ids ordered by their smallest face)
    - counts: number of faces in every component
    """
    m = emap.num_faces
    C = np.full(m, -1, dtype=np.int64)
    components = sorted(nx.connected_components(face_adjacency_graph(emap)), key=min)
    for cid, faces in enumerate(components):
        C[list(faces)] = cid

    counts = np.bincount(C, minlength=len(components)) if m else np.zeros(0, dtype=np.int64)
    return C, counts


def orientation_conflicts(T: Iterable[Triangle]) -> List[Edge]:
    """Edges shared by exactly two triangles that induce the *same* direction on it.
    Two triangles sharing an edge are consistently oriented if they induce opposite orientations on it."""
    directed_on: SimplexMap[List[Edge]] = SimplexMap(1, map_constructor=lambda: defaultdict(list))
    for tri in T:
        for edge in edges(tuple(int(v) for v in tri)):
            directed_on[edge].append(edge)

    return [key for key, directions in directed_on.items()
            if len(directions) == 2 and directions[0] == directions[1]]


def consistently_oriented(T: Iterable[Triangle]) -> bool:
    return not orientation_conflicts(T)


def oriented_triangle_set(T: Iterable[Triangle]) -> Set[Triangle]:
    """oriented triangles up to cyclic rotation (smallest vertex first)"""
    out = set()
    for tri in T:
        tri = tuple(int(v) for v in tri)
        i = tri.index(min(tri))
        out.add(tri[i:] + tri[:i])
    return out
