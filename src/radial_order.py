"""ordering of the faces incident to each undirected edge by dihedral angle"""

from typing import *
from dataclasses import dataclass
import numpy as np
from tqdm import tqdm
from mesh_topology import EdgeMap, HalfEdge, HullInvariantError


class RadialOrderOracle(Protocol):
    """Cyclic order of the half-edges on undirected edge `ue`, plus a flag per entry
    telling whether that half-edge runs along the edge's canonical direction.

    Convention: faces are ordered counter-clockwise (right-hand rule) about the
    canonical axis V[uE[ue, 1]] - V[uE[ue, 0]]. Must be total and deterministic."""

    def __call__(self, V: np.ndarray, F: np.ndarray, emap: EdgeMap, ue: int) -> Tuple[List[HalfEdge], List[bool]]:
        ...


def dihedral_order(V: np.ndarray, F: np.ndarray, emap: EdgeMap, ue: int) -> Tuple[List[HalfEdge], List[bool]]:
    """Floating-point radial order: sort by the angle of each face's half-plane about the edge axis.
    Ties (coplanar faces on the same side) are broken by half-edge id."""
    incident = emap.uE2E[ue]
    if len(incident) <= 2:
        # any cyclic order of two elements is the same
        return list(incident), [emap.consistent(he) for he in incident]

    m = emap.num_faces
    s, d = emap.uE[ue]
    axis = V[d] - V[s]
    axis = axis / np.linalg.norm(axis)

    # corner c of a face is the vertex opposite its half-edge c
    faces = np.array(incident) % m
    corners = np.array(incident) // m
    u = V[F[faces, corners]] - V[s]
    u -= np.outer(u @ axis, axis)

    lengths = np.linalg.norm(u, axis=1)
    if not (nonzero := np.flatnonzero(lengths > 0)).size:
        return list(incident), [emap.consistent(he) for he in incident]

    ref = u[nonzero[0]] / lengths[nonzero[0]]
    ortho = np.cross(axis, ref)
    angles = np.arctan2(u @ ortho, u @ ref)

    order = np.lexsort((np.array(incident), angles))
    ordered = [incident[i] for i in order]
    return ordered, [emap.consistent(he) for he in ordered]


@dataclass
class RadialOrder:
    """radial order of every undirected edge of a mesh"""

    uE2oE: List[List[HalfEdge]]
    """half-edges of every undirected edge, in cyclic radial order"""
    uE2C: List[List[bool]]
    """consistency flag of every entry of uE2oE"""
    position: np.ndarray
    """(3m,) index of every half-edge within its edge's cyclic order"""

    def fan(self, he: HalfEdge, emap: EdgeMap) -> Tuple[List[HalfEdge], int, bool]:
        """(cyclic order around he's edge, position of he in it, consistency flag of he)"""
        ue = emap.EMAP[he]
        pos = int(self.position[he])
        return self.uE2oE[ue], pos, self.uE2C[ue][pos]


def order_facets_around_edges(V: np.ndarray, F: np.ndarray, emap: EdgeMap,
                              oracle: RadialOrderOracle = dihedral_order, pbar=False) -> RadialOrder:
    """Query the radial order oracle for every undirected edge and check what it returns.
    Raises HullInvariantError if an edge's order is not a permutation of its incidence list
    or carries wrong consistency flags."""
    uE2oE: List[List[HalfEdge]] = []
    uE2C: List[List[bool]] = []
    position = np.full(len(emap.E), -1, dtype=np.int64)

    edge_ids = range(len(emap.uE))
    if pbar: edge_ids = tqdm(edge_ids, desc="ordering facets around edges", ncols=100)

    for ue in edge_ids:
        ordered, flags = oracle(V, F, emap, ue)
        ordered, flags = [int(he) for he in ordered], [bool(c) for c in flags]
        edge = tuple(emap.uE[ue].tolist())

        if sorted(ordered) != emap.uE2E[ue]:
            raise HullInvariantError(
                f"radial order of edge {ue} {edge} is not a permutation of its half-edges "
                f"(expected {emap.uE2E[ue]}, got {ordered})")
        if len(flags) != len(ordered):
            raise HullInvariantError(
                f"radial order of edge {ue} {edge} has {len(flags)} consistency flags for {len(ordered)} half-edges")
        if (bad := next((he for he, c in zip(ordered, flags) if c != emap.consistent(he)), None)) is not None:
            raise HullInvariantError(f"wrong consistency flag for half-edge {bad} on edge {ue} {edge}")

        for i, he in enumerate(ordered):
            position[he] = i
        uE2oE.append(ordered)
        uE2C.append(flags)

    return RadialOrder(uE2oE=uE2oE, uE2C=uE2C, position=position)
