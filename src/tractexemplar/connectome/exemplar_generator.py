"""
Exemplar Generation for a Whole Connectome

Creates one exemplar per edge before assignment starts, routes assigned
streamlines to their edge from multiple threads, finalizes every exemplar
and writes the results.
"""

import numpy as np
from typing import Dict, Iterable, List, Mapping, Tuple
import logging
from concurrent.futures import ThreadPoolExecutor

from tqdm import tqdm

from .exemplar import (
    BISECTION_ITERATIONS,
    ENDPOINT_CONVERGE_FRACTION,
    ConnectomeStreamline,
    Exemplar,
    ExemplarError,
    NodePair,
)
from ..tractography.streamline_utils import StreamlineUtils

logger = logging.getLogger(__name__)


class ExemplarGenerator:
    """
    Owns the exemplars of every edge of a connectome

    The edge table is fixed at construction, so routing a streamline to its
    exemplar needs no locking; each exemplar serializes its own updates.
    """

    def __init__(
        self,
        node_centroids: Mapping[int, np.ndarray],
        resolution: int = 200,
        step_size: float = 1.0,
        converge_fraction: float = ENDPOINT_CONVERGE_FRACTION,
        bisection_iterations: int = BISECTION_ITERATIONS
    ):
        """
        Initialize exemplars for all node pairs

        Args:
            node_centroids: Node label -> centre of mass (3,)
            resolution: Accumulation resolution of each exemplar
            step_size: Vertex spacing of the finalized exemplars in mm
            converge_fraction: Fraction of points pulled to each centre of mass
            bisection_iterations: Bisection iterations used during resampling
        """
        if step_size <= 0:
            raise ValueError(f"step_size must be positive, got {step_size}")

        self.resolution = resolution
        self.step_size = step_size
        self.node_ids = sorted(int(n) for n in node_centroids)

        self._exemplars: Dict[NodePair, Exemplar] = {}
        for i, first in enumerate(self.node_ids):
            for second in self.node_ids[i:]:
                nodes = NodePair(first, second)
                self._exemplars[nodes] = Exemplar(
                    resolution, nodes,
                    (node_centroids[first], node_centroids[second]),
                    converge_fraction=converge_fraction,
                    bisection_iterations=bisection_iterations
                )

        self.is_finalized = False

        logger.info(
            f"ExemplarGenerator initialized: {len(self.node_ids)} nodes, "
            f"{len(self._exemplars)} edges, resolution={resolution}, step_size={step_size}"
        )

    def __len__(self) -> int:
        return len(self._exemplars)

    def get_exemplar(self, a: int, b: int) -> Exemplar:
        """Exemplar of the edge between nodes a and b (either order)"""
        key = NodePair(min(a, b), max(a, b))
        try:
            return self._exemplars[key]
        except KeyError:
            raise ExemplarError(f"No exemplar for edge {tuple(key)}: unknown node") from None

    def exemplars(self) -> List[Exemplar]:
        """All exemplars, ordered by edge"""
        return [self._exemplars[key] for key in sorted(self._exemplars)]

    def add(self, streamline: ConnectomeStreamline):
        """Route a streamline to the exemplar of its edge"""
        self.get_exemplar(*streamline.nodes).add(streamline)

    def add_all(
        self,
        streamlines: Iterable[ConnectomeStreamline],
        n_threads: int = 1,
        progress: bool = True
    ) -> int:
        """
        Contribute many streamlines, optionally from several threads

        Args:
            streamlines: Assigned streamlines
            n_threads: Number of worker threads
            progress: Show a progress bar

        Returns:
            Number of streamlines added
        """
        streamlines = list(streamlines)
        logger.info(f"Accumulating {len(streamlines)} streamlines using {n_threads} thread(s)")

        pbar = tqdm(total=len(streamlines), desc="Exemplars", unit="streamline", disable=not progress)
        try:
            if n_threads <= 1:
                for streamline in streamlines:
                    self.add(streamline)
                    pbar.update(1)
            else:
                with ThreadPoolExecutor(max_workers=n_threads) as executor:
                    futures = [executor.submit(self.add, s) for s in streamlines]
                    for future in futures:
                        future.result()
                        pbar.update(1)
        finally:
            pbar.close()

        return len(streamlines)

    def finalize_all(self, n_threads: int = 1):
        """
        Finalize every exemplar exactly once

        Args:
            n_threads: Number of worker threads
        """
        if self.is_finalized:
            raise ExemplarError("Exemplars have already been finalized")

        logger.info(f"Finalizing {len(self._exemplars)} exemplars (step_size={self.step_size}mm)")

        exemplars = list(self._exemplars.values())
        if n_threads <= 1:
            for exemplar in exemplars:
                exemplar.finalize(self.step_size)
        else:
            with ThreadPoolExecutor(max_workers=n_threads) as executor:
                futures = [executor.submit(e.finalize, self.step_size) for e in exemplars]
                for future in futures:
                    future.result()

        self.is_finalized = True

        stats = self.get_statistics()
        logger.info(
            f"Finalized exemplars: {stats['n_connected_edges']}/{stats['n_edges']} edges "
            f"with streamlines, mean length {stats['mean_length']:.1f}mm"
        )

    def get_statistics(self) -> Dict:
        """Summary of edge weights and exemplar lengths"""
        exemplars = self.exemplars()
        connected = [e for e in exemplars if e.weight > 0 and not e.is_diagonal]

        stats = {
            'n_nodes': len(self.node_ids),
            'n_edges': len(exemplars),
            'n_connected_edges': len(connected),
            'total_weight': float(sum(e.weight for e in exemplars)),
            'mean_length': 0.0,
        }
        if self.is_finalized and connected:
            lengths = StreamlineUtils.compute_lengths([e.points for e in connected])
            stats['mean_length'] = float(np.mean(lengths))

        return stats

    def _finalized_exemplars(self) -> List[Exemplar]:
        if not self.is_finalized:
            raise ExemplarError("Exemplars must be finalized before they are saved")
        return self.exemplars()

    def save_tck(self, filepath: str):
        """Write all exemplars, ordered by edge, to a TCK file"""
        exemplars = self._finalized_exemplars()
        StreamlineUtils.save_tck([e.points for e in exemplars], filepath)

    def save_hdf5(self, filepath: str):
        """Write all exemplars to HDF5 with their nodes and weight as attributes"""
        exemplars = self._finalized_exemplars()
        names = [f"edge_{e.nodes.first:04d}_{e.nodes.second:04d}" for e in exemplars]
        attributes = [
            {'nodes': np.array(e.nodes, dtype=np.int64), 'weight': e.weight}
            for e in exemplars
        ]
        StreamlineUtils.save_hdf5([e.points for e in exemplars], filepath, names, attributes)

    def edge_table(self) -> List[Tuple[int, int, float, int]]:
        """(first node, second node, weight, number of points) for every edge"""
        return [
            (e.nodes.first, e.nodes.second, e.weight, len(e.points))
            for e in self.exemplars()
        ]
