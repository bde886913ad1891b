"""
Surface Geometry
================

Triangulated surfaces consumed by the view-factor engine.
"""

import math
from typing import Sequence

import numpy as np


class Surface:
    """
    Triangulated surface belonging to one thermal node.

    Triangle winding defines the emitting side: the normal is
    ``(v1 - v0) x (v2 - v0)``.
    """

    def __init__(self, node_id: str, triangles: np.ndarray):
        """
        Args:
            node_id: Thermal node the surface belongs to
            triangles: Array of shape (N, 3, 3), vertices in metres
        """
        triangles = np.asarray(triangles, dtype=float)
        if triangles.ndim != 3 or triangles.shape[1:] != (3, 3) or len(triangles) == 0:
            raise ValueError(f"surface '{node_id}': triangles must have shape (N, 3, 3)")
        self.node_id = node_id
        self.triangles = triangles

        cross = np.cross(triangles[:, 1] - triangles[:, 0], triangles[:, 2] - triangles[:, 0])
        norms = np.linalg.norm(cross, axis=1)
        if np.any(norms <= 0):
            raise ValueError(f"surface '{node_id}': degenerate triangle")
        self.areas = 0.5 * norms
        self.normals = cross / norms[:, None]

    @property
    def total_area(self) -> float:
        return float(np.sum(self.areas))

    def flipped(self) -> 'Surface':
        """Same surface emitting from the other side."""
        return Surface(self.node_id, self.triangles[:, [0, 2, 1]])

    def __repr__(self) -> str:
        return f"Surface(node_id={self.node_id!r}, triangles={len(self.triangles)}, area={self.total_area:.4g})"


def rectangle_surface(node_id: str,
                      origin: Sequence[float],
                      u: Sequence[float],
                      v: Sequence[float],
                      nu: int = 1,
                      nv: int = 1) -> Surface:
    """
    Planar rectangle ``origin + a*u + b*v`` for a, b in [0, 1].

    The normal is ``u x v``. Each of the ``nu * nv`` cells is split into
    two triangles.
    """
    origin = np.asarray(origin, dtype=float)
    u = np.asarray(u, dtype=float)
    v = np.asarray(v, dtype=float)
    triangles = []
    for i in range(nu):
        for j in range(nv):
            p00 = origin + (i / nu) * u + (j / nv) * v
            p10 = origin + ((i + 1) / nu) * u + (j / nv) * v
            p01 = origin + (i / nu) * u + ((j + 1) / nv) * v
            p11 = origin + ((i + 1) / nu) * u + ((j + 1) / nv) * v
            triangles.append([p00, p10, p11])
            triangles.append([p00, p11, p01])
    return Surface(node_id, np.array(triangles))


def parallel_plates_view_factor(a: float, b: float, c: float) -> float:
    """
    View factor between two directly opposed, aligned rectangles.

    Args:
        a: Rectangle side length
        b: Other side length
        c: Plate separation

    Returns:
        F_1->2 (equal plates, so also F_2->1)
    """
    X = a / c
    Y = b / c
    x1 = 1 + X * X
    y1 = 1 + Y * Y
    return (2 / (math.pi * X * Y)) * (
        math.log(math.sqrt(x1 * y1 / (x1 + Y * Y)))
        + X * math.sqrt(y1) * math.atan(X / math.sqrt(y1))
        + Y * math.sqrt(x1) * math.atan(Y / math.sqrt(x1))
        - X * math.atan(X)
        - Y * math.atan(Y)
    )


def perpendicular_plates_view_factor(w: float, h: float, length: float) -> float:
    """
    View factor from a horizontal rectangle (w x length) to a perpendicular
    rectangle (h x length) sharing the common edge of ``length``.
    """
    W = w / length
    H = h / length
    w2, h2 = W * W, H * H
    term_log = 0.25 * math.log(
        ((1 + w2) * (1 + h2) / (1 + w2 + h2))
        * (w2 * (1 + w2 + h2) / ((1 + w2) * (w2 + h2))) ** w2
        * (h2 * (1 + w2 + h2) / ((1 + h2) * (w2 + h2))) ** h2
    )
    return (1 / (math.pi * W)) * (
        W * math.atan(1 / W)
        + H * math.atan(1 / H)
        - math.sqrt(h2 + w2) * math.atan(1 / math.sqrt(h2 + w2))
        + term_log
    )
