"""
Monte Carlo View Factors
========================

Ray-traced estimate of the view factor between two node surfaces.

Rays leave uniformly distributed points on the source surface with
cosine-weighted directions; the fraction whose nearest hit lies on the
target surface estimates F_source->target. The standard error falls as
1/sqrt(n_rays).
"""

import math
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from ..core.errors import WorkerError
from ..utils.logger import get_logger
from .geometry import Surface


class RayQuality(Enum):
    """Accuracy/latency presets."""
    FAST = 'fast'
    DEFAULT = 'default'
    HIGH = 'high'

    @property
    def n_rays(self) -> int:
        return RAY_COUNTS[self]


RAY_COUNTS = {
    RayQuality.FAST: 10_000,
    RayQuality.DEFAULT: 100_000,
    RayQuality.HIGH: 1_000_000,
}


@dataclass
class ViewFactorEstimate:
    """Result of one Monte Carlo estimate."""
    source_id: str
    target_id: str
    view_factor: float
    n_rays: int
    hits: int
    standard_error: float
    duration_s: float


class MonteCarloViewFactor:
    """
    View-factor estimator over a fixed scene.

    Every surface in the scene can occlude. Rays are tested against all
    triangles except those of the source node, so a surface never shadows
    itself.
    """

    RAY_OFFSET = 1e-6          # m, origin lift along the normal
    EPSILON = 1e-10
    # Upper bound on ray-triangle pairs tested per batch
    MAX_PAIRS_PER_BATCH = 2_000_000

    def __init__(self, surfaces: Sequence[Surface]):
        """
        Args:
            surfaces: All surfaces of the scene
        """
        self.surfaces = list(surfaces)
        self.logger = get_logger()
        self._by_node: Dict[str, List[Surface]] = {}
        for s in self.surfaces:
            self._by_node.setdefault(s.node_id, []).append(s)

        self.triangles = np.concatenate([s.triangles for s in self.surfaces])
        self.owners = np.concatenate([[s.node_id] * len(s.triangles) for s in self.surfaces])

    def node_triangles(self, node_id: str):
        """Triangles, areas and normals of every surface of ``node_id``."""
        if node_id not in self._by_node:
            raise KeyError(f"No surface for node: {node_id}")
        group = self._by_node[node_id]
        return (np.concatenate([s.triangles for s in group]),
                np.concatenate([s.areas for s in group]),
                np.concatenate([s.normals for s in group]))

    @staticmethod
    def _tangent_frames(normals: np.ndarray):
        helper = np.where(np.abs(normals[:, :1]) < 0.9,
                          np.array([[1.0, 0.0, 0.0]]), np.array([[0.0, 1.0, 0.0]]))
        t1 = np.cross(normals, helper)
        t1 /= np.linalg.norm(t1, axis=1)[:, None]
        t2 = np.cross(normals, t1)
        return t1, t2

    def _sample_rays(self, rng: np.random.Generator, triangles, areas, normals, count: int):
        """Origins uniform over area, directions cosine-weighted (Malley's method)."""
        pick = rng.choice(len(triangles), size=count, p=areas / np.sum(areas))
        tri = triangles[pick]
        n = normals[pick]

        r1 = np.sqrt(rng.random(count))
        r2 = rng.random(count)
        origins = ((1 - r1)[:, None] * tri[:, 0]
                   + (r1 * (1 - r2))[:, None] * tri[:, 1]
                   + (r1 * r2)[:, None] * tri[:, 2])
        origins += self.RAY_OFFSET * n

        phi = 2 * math.pi * rng.random(count)
        radius = np.sqrt(rng.random(count))
        lx = radius * np.cos(phi)
        ly = radius * np.sin(phi)
        lz = np.sqrt(np.clip(1 - radius**2, 0.0, None))
        t1, t2 = self._tangent_frames(n)
        directions = lx[:, None] * t1 + ly[:, None] * t2 + lz[:, None] * n
        return origins, directions

    def _nearest_hits(self, origins: np.ndarray, directions: np.ndarray,
                      occluders: np.ndarray) -> np.ndarray:
        """
        Moller-Trumbore intersection of every ray with every occluder.

        Returns:
            Index of the nearest triangle hit per ray, -1 for misses
        """
        v0 = occluders[:, 0]
        e1 = occluders[:, 1] - v0
        e2 = occluders[:, 2] - v0

        pvec = np.cross(directions[:, None, :], e2[None, :, :])
        det = np.sum(e1[None, :, :] * pvec, axis=2)
        valid = np.abs(det) > self.EPSILON
        inv_det = np.where(valid, 1.0 / np.where(valid, det, 1.0), 0.0)

        tvec = origins[:, None, :] - v0[None, :, :]
        u = np.sum(tvec * pvec, axis=2) * inv_det
        valid &= (u >= 0.0) & (u <= 1.0)

        qvec = np.cross(tvec, e1[None, :, :])
        v = np.sum(directions[:, None, :] * qvec, axis=2) * inv_det
        valid &= (v >= 0.0) & (u + v <= 1.0)

        t = np.sum(e2[None, :, :] * qvec, axis=2) * inv_det
        valid &= t > self.EPSILON

        t = np.where(valid, t, np.inf)
        nearest = np.argmin(t, axis=1)
        hit = np.isfinite(t[np.arange(len(t)), nearest])
        return np.where(hit, nearest, -1)

    def estimate(self,
                 source_id: str,
                 target_id: str,
                 n_rays: int = RAY_COUNTS[RayQuality.DEFAULT],
                 seed: Optional[int] = None,
                 progress: Optional[Callable[[int, int], None]] = None,
                 cancel_event: Optional[threading.Event] = None,
                 batch_size: int = 8192) -> ViewFactorEstimate:
        """
        Estimate F_source->target.

        Args:
            source_id: Emitting node
            target_id: Receiving node
            n_rays: Number of rays to cast
            seed: Random seed for reproducible estimates
            progress: Called with (rays_completed, n_rays) after each batch
            cancel_event: Checked between batches

        Raises:
            WorkerError: cancelled through ``cancel_event``
        """
        if n_rays <= 0:
            raise ValueError("n_rays must be positive")
        if source_id == target_id:
            raise ValueError("source and target must be different nodes")
        if target_id not in self._by_node:
            raise KeyError(f"No surface for node: {target_id}")

        start = time.perf_counter()
        rng = np.random.default_rng(seed)
        triangles, areas, normals = self.node_triangles(source_id)

        keep = self.owners != source_id
        occluders = self.triangles[keep]
        occluder_owners = self.owners[keep]
        target_mask = occluder_owners == target_id

        # At least one progress report per percent of the rays
        per_batch = min(batch_size, max(256, math.ceil(n_rays / 100)))
        per_batch = max(64, min(per_batch, self.MAX_PAIRS_PER_BATCH // max(1, len(occluders))))
        done = 0
        hits = 0
        while done < n_rays:
            if cancel_event is not None and cancel_event.is_set():
                raise WorkerError(f"view factor {source_id}->{target_id} cancelled after {done} rays",
                                  cancelled=True)
            count = min(per_batch, n_rays - done)
            origins, directions = self._sample_rays(rng, triangles, areas, normals, count)
            nearest = self._nearest_hits(origins, directions, occluders)
            struck = nearest >= 0
            hits += int(np.count_nonzero(target_mask[nearest[struck]]))
            done += count
            if progress is not None:
                progress(done, n_rays)

        f = hits / n_rays
        duration = time.perf_counter() - start
        self.logger.debug(f"F({source_id}->{target_id}) = {f:.5f} from {n_rays} rays in {duration:.3f}s")
        return ViewFactorEstimate(
            source_id=source_id,
            target_id=target_id,
            view_factor=f,
            n_rays=n_rays,
            hits=hits,
            standard_error=math.sqrt(f * (1 - f) / n_rays),
            duration_s=duration,
        )
