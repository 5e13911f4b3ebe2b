"""
Connectome Node Assignment Module

Assigns streamlines to pairs of parcellation nodes and computes the node
centres of mass used to anchor exemplar endpoints.
"""

import numpy as np
from typing import Dict, List, Optional, Sequence, Tuple
import logging
from scipy import ndimage

from .exemplar import ConnectomeStreamline

logger = logging.getLogger(__name__)


class ConnectomeBuilder:
    """
    Assign streamlines to parcellation nodes by their endpoints

    Label 0 in the parcellation means "unassigned"; streamlines with an
    endpoint outside the image or in label 0 are not assigned.
    """

    def __init__(
        self,
        parcellation: np.ndarray,
        affine: Optional[np.ndarray] = None
    ):
        """
        Initialize connectome builder

        Args:
            parcellation: 3D parcellation map (x, y, z) of integer labels
            affine: Parcellation voxel-to-world affine (4x4). If provided,
                    streamline points are converted from world to voxel space.
        """
        self.parcellation = np.asarray(parcellation).astype(int)
        self.shape = self.parcellation.shape

        self.affine = affine
        if affine is not None:
            self.inv_affine = np.linalg.inv(affine)
        else:
            self.inv_affine = None

        self.n_nodes = int(np.max(self.parcellation)) if self.parcellation.size else 0

        logger.info(f"Connectome builder initialized: {self.n_nodes} nodes"
                    f"{', with affine transform' if affine is not None else ''}")

    def node_ids(self) -> List[int]:
        """Labels present in the parcellation, excluding 0"""
        labels = np.unique(self.parcellation)
        return [int(label) for label in labels if label > 0]

    def compute_node_centroids(self) -> Dict[int, np.ndarray]:
        """
        Compute the centre of mass of every node

        Returns:
            Dictionary mapping node label to centre of mass (3,), in world
            coordinates if an affine was given, voxel coordinates otherwise
        """
        labels = self.node_ids()
        if not labels:
            logger.warning("Parcellation contains no nodes")
            return {}

        coms = ndimage.center_of_mass(
            np.ones(self.shape), labels=self.parcellation, index=labels
        )

        centroids = {}
        for label, com in zip(labels, coms):
            centroids[label] = self._voxel_to_point(np.asarray(com, dtype=np.float64))

        logger.info(f"Computed centres of mass for {len(centroids)} nodes")
        return centroids

    def assign_streamline(
        self,
        streamline: np.ndarray,
        weight: float = 1.0
    ) -> Optional[ConnectomeStreamline]:
        """
        Assign a streamline to the nodes at its endpoints

        Args:
            streamline: Streamline coordinates (n_points, 3)
            weight: Streamline weight

        Returns:
            Streamline with nodes ordered as (start node, end node), or None
            if either endpoint is unassigned
        """
        if len(streamline) < 2:
            return None

        start_node = self._get_node_at_point(streamline[0])
        end_node = self._get_node_at_point(streamline[-1])

        if start_node <= 0 or end_node <= 0:
            return None

        return ConnectomeStreamline(streamline, (start_node, end_node), weight)

    def assign_streamlines(
        self,
        streamlines: Sequence[np.ndarray],
        weights: Optional[Sequence[float]] = None
    ) -> Tuple[List[ConnectomeStreamline], int]:
        """
        Assign a tractogram to node pairs

        Args:
            streamlines: List of streamlines, each shape (n_points, 3)
            weights: Optional per-streamline weights (default 1.0 each)

        Returns:
            assigned: Streamlines that reached a node at both ends
            n_unassigned: Number of streamlines that were dropped
        """
        if weights is not None and len(weights) != len(streamlines):
            raise ValueError(
                f"Number of weights ({len(weights)}) does not match "
                f"number of streamlines ({len(streamlines)})"
            )

        logger.info(f"Assigning {len(streamlines)} streamlines to nodes...")

        assigned = []
        n_unassigned = 0
        for idx, streamline in enumerate(streamlines):
            weight = 1.0 if weights is None else float(weights[idx])
            result = self.assign_streamline(streamline, weight)
            if result is None:
                n_unassigned += 1
            else:
                assigned.append(result)

        logger.info(f"Assigned {len(assigned)} streamlines, {n_unassigned} unassigned")

        return assigned, n_unassigned

    def build_connectome(
        self,
        assignments: Sequence[ConnectomeStreamline],
        symmetric: bool = True
    ) -> np.ndarray:
        """
        Sum streamline weights per node pair

        Args:
            assignments: Assigned streamlines
            symmetric: Make adjacency matrix symmetric

        Returns:
            Adjacency matrix (n_nodes + 1, n_nodes + 1), indexed by label
        """
        size = self.n_nodes + 1
        adjacency = np.zeros((size, size), dtype=np.float64)

        for streamline in assignments:
            first, second = streamline.nodes
            adjacency[first, second] += streamline.weight
            if symmetric and first != second:
                adjacency[second, first] += streamline.weight

        logger.info(f"Connectome built: {np.count_nonzero(adjacency)} non-zero entries")

        return adjacency

    def _point_to_voxel(self, point: np.ndarray) -> np.ndarray:
        """Convert point from world to voxel coordinates if affine is set"""
        if self.inv_affine is not None:
            point_hom = np.array([point[0], point[1], point[2], 1.0])
            voxel = self.inv_affine @ point_hom
            return voxel[:3]
        return np.asarray(point, dtype=np.float64)

    def _voxel_to_point(self, voxel: np.ndarray) -> np.ndarray:
        """Convert voxel coordinates to world coordinates if affine is set"""
        if self.affine is not None:
            voxel_hom = np.array([voxel[0], voxel[1], voxel[2], 1.0])
            return (self.affine @ voxel_hom)[:3]
        return voxel

    def _get_node_at_point(self, point: np.ndarray) -> int:
        """
        Get node label at a point

        Args:
            point: 3D coordinates (world or voxel space)

        Returns:
            Node label, 0 if unassigned, or -1 if out of bounds
        """
        voxel_point = self._point_to_voxel(point)
        x, y, z = np.round(voxel_point).astype(int)

        if (x < 0 or x >= self.shape[0] or
            y < 0 or y >= self.shape[1] or
            z < 0 or z >= self.shape[2]):
            return -1

        return int(self.parcellation[x, y, z])


def load_parcellation(parcellation_file: str) -> Tuple[np.ndarray, np.ndarray]:
    """
    Load parcellation from file

    Args:
        parcellation_file: Path to parcellation NIfTI

    Returns:
        Tuple of (parcellation array, affine matrix)
    """
    import nibabel as nib

    logger.info(f"Loading parcellation from {parcellation_file}")

    img = nib.load(parcellation_file)
    parcellation = np.round(img.get_fdata()).astype(int)
    affine = img.affine

    logger.info(f"Loaded parcellation: {int(np.max(parcellation))} nodes")

    return parcellation, affine
