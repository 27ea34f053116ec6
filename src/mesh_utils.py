from typing import List, Tuple, Optional
from pathlib import Path
from timeit import default_timer as time
from collections import Counter
import argparse
import numpy as np
import matplotlib.pyplot as plt
from mpl_toolkits.mplot3d.art3d import Poly3DCollection
from plyfile import PlyData, PlyElement
from outer_hull import outer_hull, FanWalk
from geometry import remove_unreferenced
from mesh_topology import consistently_oriented


Mesh = Tuple[np.ndarray, np.ndarray]


def read_mesh(input_file: str) -> Mesh:
    """Read vertex positions and triangles from a PLY file."""
    in_file = Path(input_file)
    if not in_file.exists():
        raise FileNotFoundError(f"File {in_file} not found!")

    plydata = PlyData.read(in_file)
    if not {"vertex", "face"} <= (elem_names := set(el.name for el in plydata.elements)):
        raise ValueError(f"PLY file needs vertex and face elements, found {elem_names}")

    vertex = plydata["vertex"]
    V = np.column_stack([vertex["x"], vertex["y"], vertex["z"]]).astype(float)

    face_props = [p.name for p in plydata["face"].properties]
    prop = "vertex_indices" if "vertex_indices" in face_props else "vertex_index"
    faces = plydata["face"][prop]
    if (degrees := set(Counter(map(len, faces)).keys())) - {3}:
        raise ValueError(f"only triangle meshes are supported, found faces of degree {sorted(degrees)}")

    F = np.array([list(face) for face in faces], dtype=np.int64).reshape(-1, 3)
    return V, F


def write_mesh(output_file: str, V: np.ndarray, F: np.ndarray, binary=False, description="") -> None:
    """Write a triangle mesh to a PLY file."""
    vertex_data = np.array([tuple(p) for p in V], dtype=[("x", "f8"), ("y", "f8"), ("z", "f8")])
    face_data = np.array([(list(f),) for f in F], dtype=[("vertex_indices", "i4", (3,))])

    comments = [description] if description else []
    PlyData([PlyElement.describe(vertex_data, "vertex"), PlyElement.describe(face_data, "face")],
            text=not binary, comments=comments).write(output_file)


def box_mesh(lo=(0.0, 0.0, 0.0), hi=(1.0, 1.0, 1.0)) -> Mesh:
    """Axis-aligned box as 12 triangles, oriented with outward normals.
    Vertex i sits at the corner with bits (x, y, z) = (i & 1, i >> 1 & 1, i >> 2 & 1)."""
    lo, hi = np.asarray(lo, dtype=float), np.asarray(hi, dtype=float)
    bits = np.array([[i & 1, i >> 1 & 1, i >> 2 & 1] for i in range(8)])
    V = lo + bits * (hi - lo)

    # counter-clockwise seen from outside: -x, +x, -y, +y, -z, +z
    quads = [(0, 4, 6, 2), (1, 3, 7, 5), (0, 1, 5, 4), (2, 6, 7, 3), (0, 2, 3, 1), (4, 5, 7, 6)]
    F = np.array([tri for a, b, c, d in quads for tri in ((a, b, c), (a, c, d))], dtype=np.int64)
    return V, F


def cube_mesh(center=(0.0, 0.0, 0.0), side=1.0) -> Mesh:
    center = np.asarray(center, dtype=float)
    return box_mesh(center - side / 2, center + side / 2)


def tetrahedron_mesh(a, b, c, d) -> Mesh:
    """tetrahedron on four points, oriented with outward normals"""
    V = np.array([a, b, c, d], dtype=float)
    F = np.array([(0, 2, 1), (0, 1, 3), (1, 2, 3), (0, 3, 2)], dtype=np.int64)
    if np.dot(np.cross(V[1] - V[0], V[2] - V[0]), V[3] - V[0]) < 0:
        F = F[:, ::-1].copy()
    return V, F


def concatenate(*meshes: Mesh) -> Mesh:
    """disjoint union of meshes (faces reindexed into the stacked vertex array)"""
    Vs, Fs, offset = [], [], 0
    for V, F in meshes:
        Vs.append(np.asarray(V, dtype=float))
        Fs.append(np.asarray(F, dtype=np.int64) + offset)
        offset += len(V)
    return np.concatenate(Vs).reshape(-1, 3), np.concatenate(Fs).reshape(-1, 3)


def merge_vertices(V: np.ndarray, F: np.ndarray) -> Mesh:
    """weld vertices with exactly equal coordinates"""
    V2, inverse = np.unique(V, axis=0, return_inverse=True)
    return V2, inverse.reshape(-1)[F]


def draw_mesh(V: np.ndarray, F: np.ndarray, title="", highlight: Optional[List[int]] = None):
    """3D preview of a triangle mesh (highlighted faces in red)."""
    fig = plt.figure()
    ax = fig.add_subplot(projection="3d")
    ax.set_title(title)
    colors = ["lightgray"] * len(F)
    for f in highlight or []:
        colors[f] = "red"
    ax.add_collection3d(Poly3DCollection(V[F], facecolors=colors, edgecolors="k", linewidths=0.3, alpha=0.8))

    lo, hi = V.min(axis=0), V.max(axis=0)
    ax.set_xlim(lo[0], hi[0]); ax.set_ylim(lo[1], hi[1]); ax.set_zlim(lo[2], hi[2])
    plt.show()


def hull_ply(input_file: str, output_file: str, strict=False, compact=False, verbose=False, pbar=False,
             show=False) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Extract the outer hull of a PLY mesh and write it to another PLY file."""
    V, F = read_mesh(input_file)
    if verbose: print(f"read {len(V)} vertices, {len(F)} faces from {input_file}")

    G, J, flip = outer_hull(V, F, walk=FanWalk.FIRST_UNRESOLVED if strict else FanWalk.NEAREST,
                            verbose=verbose, pbar=pbar)
    if verbose:
        print(f"{len(G)} faces on the outer hull, {np.count_nonzero(flip[J])} of them flipped")
        if not consistently_oriented(G):
            print("WARNING: output is not consistently oriented")

    V_out, G_out = (remove_unreferenced(V, G)[:2]) if compact else (V, G)
    write_mesh(output_file, V_out, G_out, description=f"outer hull of {Path(input_file).name}")
    print(f"Outer hull saved to {output_file}")

    if show:
        draw_mesh(V, F, title="input (hull faces in red)", highlight=J.tolist())

    return G, J, flip


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="outer hull extraction for triangle meshes (PLY).")
    parser.add_argument("--time", action="store_true", help="Print execution time.")
    subparsers = parser.add_subparsers(dest="command")

    hull_parser = subparsers.add_parser("hull", help="Extract the outer hull of a PLY mesh.")
    hull_parser.add_argument("input_file", type=str, help="Path to the input PLY file.")
    hull_parser.add_argument("output_file", type=str, help="Path to the output PLY file.")
    hull_parser.add_argument("--strict", action="store_true",
                             help="Walk the whole fan around each edge and fail on unreached faces (keeps enclosed faces).")
    hull_parser.add_argument("--compact", action="store_true", help="Drop vertices not used by the hull.")
    hull_parser.add_argument("--verbose", action="store_true", help="Print hull statistics.")
    hull_parser.add_argument("--pbar", action="store_true", help="Show progress bars.")
    hull_parser.add_argument("--show", action="store_true", help="Preview the result with matplotlib.")

    box_parser = subparsers.add_parser("box", help="Write an axis-aligned box mesh (for testing).")
    box_parser.add_argument("output_file", type=str, help="Path to the output PLY file.")
    box_parser.add_argument("--lo", type=float, nargs=3, default=[0.0, 0.0, 0.0])
    box_parser.add_argument("--hi", type=float, nargs=3, default=[1.0, 1.0, 1.0])

    args = parser.parse_args()
    t0 = time()
    if args.command == "hull":
        hull_ply(args.input_file, args.output_file, strict=args.strict, compact=args.compact,
                 verbose=args.verbose, pbar=args.pbar, show=args.show)
    elif args.command == "box":
        write_mesh(args.output_file, *box_mesh(args.lo, args.hi))
    else:
        parser.print_help()

    if args.time:
        print(f"Execution time: {time() - t0:.6f} seconds")
