"""
Streamline I/O and Measurement Utilities

Provides:
- Length computation
- Loading from TRK / TCK files
- Saving to TCK and HDF5
- Loading per-streamline weights
"""

import numpy as np
from typing import List, Tuple, Optional, Dict
import logging
from pathlib import Path
from datetime import datetime
import h5py

logger = logging.getLogger(__name__)


class StreamlineUtils:
    """Utilities for streamline I/O and measurement"""

    @staticmethod
    def compute_length(streamline: np.ndarray) -> float:
        """
        Compute streamline length in mm

        Args:
            streamline: Array of points (N, 3)

        Returns:
            Total length in mm
        """
        if len(streamline) < 2:
            return 0.0

        segments = np.diff(streamline, axis=0)
        lengths = np.linalg.norm(segments, axis=1)
        return float(np.sum(lengths))

    @staticmethod
    def compute_lengths(streamlines: List[np.ndarray]) -> np.ndarray:
        """
        Compute lengths for multiple streamlines

        Args:
            streamlines: List of streamlines

        Returns:
            Array of lengths (N,)
        """
        return np.array([StreamlineUtils.compute_length(s) for s in streamlines])

    @staticmethod
    def save_tck(
        streamlines: List[np.ndarray],
        filepath: str
    ):
        """
        Save streamlines in MRtrix TCK format

        Args:
            streamlines: List of streamlines in world coordinates
            filepath: Output file path
        """
        from nibabel.streamlines import Tractogram, TckFile

        logger.info(f"Saving {len(streamlines)} streamlines to TCK: {filepath}")

        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        tractogram = Tractogram(
            streamlines=[np.asarray(s, dtype=np.float32) for s in streamlines],
            affine_to_rasmm=np.eye(4)
        )
        TckFile(tractogram).save(str(filepath))

        logger.info(f"Saved to: {filepath}")

    @staticmethod
    def save_hdf5(
        streamlines: List[np.ndarray],
        filepath: str,
        names: Optional[List[str]] = None,
        attributes: Optional[List[Dict]] = None
    ):
        """
        Save streamlines to HDF5, one dataset per streamline

        Args:
            streamlines: List of streamlines
            filepath: Output file path
            names: Optional dataset names (default streamline_00000000, ...)
            attributes: Optional per-streamline attribute dictionaries
        """
        logger.info(f"Saving {len(streamlines)} streamlines to HDF5: {filepath}")

        output_path = Path(filepath)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with h5py.File(output_path, 'w') as h5f:
            group = h5f.create_group('streamlines')
            for i, streamline in enumerate(streamlines):
                dataset_name = names[i] if names is not None else f"streamline_{i:08d}"
                dataset = group.create_dataset(
                    dataset_name,
                    data=np.asarray(streamline, dtype=np.float32),
                    compression='gzip',
                    compression_opts=4
                )
                if attributes is not None:
                    for key, value in attributes[i].items():
                        dataset.attrs[key] = value

            h5f.attrs['n_streamlines'] = len(streamlines)
            h5f.attrs['timestamp'] = datetime.now().isoformat()

        logger.info(f"Saved to: {filepath}")

    @staticmethod
    def load_trk(filepath: str) -> Tuple[List[np.ndarray], Dict]:
        """
        Load streamlines from TRK file

        Args:
            filepath: Path to TRK file

        Returns:
            streamlines: List of streamlines (in RASMM/world coordinates)
            header: TRK header information
        """
        from nibabel.streamlines import load

        logger.info(f"Loading TRK file: {filepath}")

        trk = load(filepath)
        streamlines = list(trk.streamlines)

        header_info = {
            'voxel_to_rasmm': trk.header.get('voxel_to_rasmm', None),
            'dimensions': trk.header.get('dimensions', None),
            'voxel_sizes': trk.header.get('voxel_sizes', None),
            'nb_streamlines': len(streamlines)
        }

        logger.info(f"Loaded {len(streamlines)} streamlines")

        return streamlines, header_info

    @staticmethod
    def load_tck(filepath: str) -> List[np.ndarray]:
        """
        Load streamlines from TCK file

        Args:
            filepath: Path to TCK file

        Returns:
            streamlines: List of streamlines
        """
        from nibabel.streamlines import load

        logger.info(f"Loading TCK file: {filepath}")

        tck = load(filepath)
        streamlines = tck.streamlines

        logger.info(f"Loaded {len(streamlines)} streamlines")

        return list(streamlines)

    @staticmethod
    def load_streamlines(filepath: str) -> List[np.ndarray]:
        """Load streamlines from a TRK or TCK file, chosen by extension"""
        path = str(filepath)
        if path.endswith('.trk'):
            streamlines, _ = StreamlineUtils.load_trk(path)
            return streamlines
        if path.endswith('.tck'):
            return StreamlineUtils.load_tck(path)
        raise ValueError(f"Unsupported streamline format: {path}")

    @staticmethod
    def load_weights(filepath: str, n_streamlines: Optional[int] = None) -> np.ndarray:
        """
        Load per-streamline weights from a text file

        Lines starting with '#' are ignored; values may be separated by
        whitespace or newlines.

        Args:
            filepath: Path to weights file
            n_streamlines: Expected number of weights, checked if given

        Returns:
            Array of weights (N,)
        """
        logger.info(f"Loading streamline weights: {filepath}")

        weights = np.atleast_1d(np.loadtxt(filepath, comments='#', dtype=np.float64).ravel())

        if n_streamlines is not None and len(weights) != n_streamlines:
            raise ValueError(
                f"Weights file {filepath} has {len(weights)} entries, "
                f"expected {n_streamlines}"
            )
        if np.any(weights < 0):
            raise ValueError(f"Weights file {filepath} contains negative weights")

        return weights
