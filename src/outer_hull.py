"""Outer hull extraction of a triangle soup made of closed, possibly nested or
overlapping solids (typically the output of self-intersection resolution).

    G, J, flip = outer_hull(V, F)

G are the surviving triangles, consistently oriented outward, J[i] is the input
face G[i] came from and flip[f] says whether face f had to be reversed.
"""

from typing import *
from collections import deque
from dataclasses import dataclass, field
from enum import Enum, auto
import numpy as np
from tqdm import tqdm

from mesh_topology import (EdgeMap, HalfEdge, HullInvariantError, validate_mesh,
                           unique_edge_map, facet_components)
from radial_order import RadialOrder, RadialOrderOracle, dihedral_order, order_facets_around_edges
from geometry import (SeedSelector, PointInSolidOracle, outer_facet, points_inside,
                      bounding_box, boxes_overlap, barycenters)


class FanWalk(Enum):
    """how the successor face is picked among the faces around an edge"""
    NEAREST = auto()
    """only the adjacent face in the sweep direction; if it is resolved, the edge is done.
    Faces enclosed by the surface (e.g. a face shared by two welded solids) are never reached."""
    FIRST_UNRESOLVED = auto()
    """walk the whole fan (up to valence steps), cross into the first face not yet resolved.
    Reaches every face of the component, enclosed ones included; unreached faces are an error."""


@dataclass
class TraversalState:
    """mutable per-face and per-half-edge state, shared by all components of one run"""
    resolved: np.ndarray
    """(m,) face has its flip fixed"""
    flip: np.ndarray
    """(m,) face must be reversed to be consistently oriented"""
    edge_visits: np.ndarray
    """(3m,) number of times each half-edge was processed (never more than once)"""

    @staticmethod
    def fresh(num_faces: int) -> "TraversalState":
        return TraversalState(
            resolved=np.zeros(num_faces, dtype=bool),
            flip=np.zeros(num_faces, dtype=bool),
            edge_visits=np.zeros(3 * num_faces, dtype=np.int64),
        )


def traverse_component(F: np.ndarray, emap: EdgeMap, order: RadialOrder, state: TraversalState,
                       seed: int, seed_flip: bool, walk=FanWalk.NEAREST) -> int:
    """Breadth-first walk over half-edges from a seed face known to be on the hull,
    crossing every edge into the next face of the dihedral fan and propagating flips.
    ### Returns:
    number of faces resolved by this walk (seed included)
    """
    m = len(F)
    state.resolved[seed] = True
    state.flip[seed] = seed_flip
    num_resolved = 1
    queue: Deque[HalfEdge] = deque(seed + c * m for c in range(3))

    while queue:
        e = queue.popleft()
        if state.edge_visits[e]:
            continue # already processed
        state.edge_visits[e] += 1

        f, c = e % m, e // m
        f_flip = bool(state.flip[f])
        # source and destination of e according to f's resolved orientation
        fs, fd = F[f, (c + 1) % 3], F[f, (c + 2) % 3]
        if f_flip:
            fs, fd = fd, fs

        fan, pos, consistent = order.fan(e, emap)
        val = len(fan)
        direction = (1 if consistent else -1) * (-1 if f_flip else 1)

        ne = None
        for step in range(1, val + 1):
            candidate = fan[(pos + direction * step) % val]
            if not state.resolved[candidate % m]:
                ne = candidate
                break
            if walk is FanWalk.NEAREST:
                break

        if ne is None:
            continue # nothing left to cross into

        nf, nc = ne % m, ne // m
        # neighbor is stored consistently with f iff its half-edge ends where f's (stored) one starts
        nd = F[nf, (nc + 2) % 3]
        cons = (fd if f_flip else fs) == nd
        state.flip[nf] = f_flip if cons else not f_flip
        state.resolved[nf] = True
        num_resolved += 1

        for ne_other in (nf + ((nc + 1) % 3) * m, nf + ((nc + 2) % 3) * m):
            if not state.edge_visits[ne_other]:
                queue.append(ne_other)

    return num_resolved


def resolve_nesting(V: np.ndarray, hulls: List[np.ndarray], inside: PointInSolidOracle = points_inside,
                    verbose=False) -> np.ndarray:
    """Decide which components to keep: a component is dropped if a sample point of it
    (barycenter of its first face) is inside another kept component.
    Only pairs with overlapping bounding boxes are passed to the point-in-solid oracle.
    ### Args:
    - hulls: oriented faces of every component
    ### Returns:
    keep flag per component
    """
    n = len(hulls)
    keep = np.ones(n, dtype=bool)
    boxes = [bounding_box(V, G) for G in hulls]

    # O(n^2) pairs, but there are few components and most pairs are culled by their boxes
    for cid in range(n):
        if not keep[cid]:
            continue
        unresolved = [oid for oid in range(n)
                      if oid != cid and keep[oid] and boxes_overlap(boxes[cid], boxes[oid])]
        if not unresolved:
            continue

        query_points = np.array([barycenters(V, hulls[oid][:1])[0] for oid in unresolved])
        is_inside = np.asarray(inside(V, hulls[cid], query_points), dtype=bool)
        if len(is_inside) != len(unresolved):
            raise HullInvariantError(
                f"point-in-solid oracle answered {len(is_inside)} of {len(unresolved)} queries")

        for oid, enclosed in zip(unresolved, is_inside):
            if enclosed:
                keep[oid] = False
                if verbose: print(f"component {oid} is inside component {cid}, discarded")

    return keep


def oriented_faces(F: np.ndarray, faces: np.ndarray, flip: np.ndarray) -> np.ndarray:
    """rows of F for the given faces, with flipped ones reversed"""
    G = F[faces].copy()
    reverse = flip[faces]
    G[reverse] = G[reverse][:, ::-1]
    return G


def assemble(F: np.ndarray, component_faces: List[np.ndarray], flip: np.ndarray,
             keep: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """concatenate the faces of the kept components (in component order), reversing flipped ones"""
    kept = [faces for faces, k in zip(component_faces, keep) if k]
    if not kept:
        return np.zeros((0, 3), dtype=F.dtype), np.zeros(0, dtype=np.int64)

    J = np.concatenate(kept).astype(np.int64)
    return oriented_faces(F, J, flip), J


@dataclass
class OuterHull:
    G: np.ndarray
    """(k, 3) consistently oriented triangles of the outer hull"""
    J: np.ndarray
    """(k,) input face of every row of G"""
    flip: np.ndarray
    """(m,) orientation decision of every input face (only meaningful for faces in J)"""
    components: np.ndarray = field(repr=False)
    """(m,) connected component of every input face"""
    keep: np.ndarray = field(repr=False)
    """per component, whether it survived nesting resolution"""

    def __iter__(self):
        yield from (self.G, self.J, self.flip)


def outer_hull(V: np.ndarray, F: np.ndarray,
               radial_order: RadialOrderOracle = dihedral_order,
               seed: SeedSelector = outer_facet,
               inside: PointInSolidOracle = points_inside,
               walk=FanWalk.NEAREST, verbose=False, pbar=False) -> OuterHull:
    """Extract the outer hull of a triangle soup.
    ### Args:
    - V: (n, 3) vertex positions
    - F: (m, 3) triangles (0-based vertex indices)
    - radial_order, seed, inside: the geometric oracles (see radial_order.py, geometry.py)
    - walk: successor rule at edges shared by more than two faces
    - verbose: print what is being discarded
    - pbar: progress bars for the per-edge and per-component loops
    ### Raises:
    - InvalidMeshError: malformed input
    - HullInvariantError: broken upstream precondition (malformed radial order, unreachable faces)
    """
    V, F = validate_mesh(V, F)
    m = len(F)

    emap = unique_edge_map(F)
    order = order_facets_around_edges(V, F, emap, oracle=radial_order, pbar=pbar)
    C, counts = facet_components(emap)
    ncc = len(counts)
    if verbose: print(f"{m} faces, {len(emap.uE)} edges, {ncc} connected components")

    # faces of each component, in input order
    component_faces = [np.flatnonzero(C == cid) for cid in range(ncc)]
    state = TraversalState.fresh(m)
    hulls: List[np.ndarray] = []

    ids = range(ncc)
    if pbar: ids = tqdm(ids, desc="traversing components", ncols=100)

    for cid in ids:
        faces = component_faces[cid]
        f, f_flip = seed(V, F, faces)
        if C[f] != cid:
            raise HullInvariantError(f"seed face {f} of component {cid} belongs to component {C[f]}")

        num_resolved = traverse_component(F, emap, order, state, f, f_flip, walk=walk)
        resolved = faces[state.resolved[faces]]
        assert len(resolved) == num_resolved

        if len(resolved) < len(faces):
            unreached = faces[~state.resolved[faces]]
            if walk is FanWalk.FIRST_UNRESOLVED:
                raise HullInvariantError(
                    f"{len(unreached)} faces of component {cid} were not reached from seed face {f} "
                    f"(first: face {unreached[0]} {F[unreached[0]].tolist()})")
            if verbose: print(f"component {cid}: {len(unreached)} enclosed faces left out of the hull")

        component_faces[cid] = resolved
        hulls.append(oriented_faces(F, resolved, state.flip))

    keep = resolve_nesting(V, hulls, inside=inside, verbose=verbose)
    G, J = assemble(F, component_faces, state.flip, keep)
    if verbose: print(f"kept {keep.sum()} of {ncc} components, {len(G)} of {m} faces")

    return OuterHull(G=G, J=J, flip=state.flip, components=C, keep=keep)
