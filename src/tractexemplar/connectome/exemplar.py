"""
Connectome Exemplar Streamlines

Computes one representative streamline per connectome edge:
- Orientation-invariant weighted averaging of the assigned streamlines
- Endpoint convergence onto the node centres of mass
- Resampling to a fixed step size along the curve
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Tuple, Union

import numpy as np
import logging

logger = logging.getLogger(__name__)


# Fraction of the exemplar points at each end that is pulled toward the node centre of mass
ENDPOINT_CONVERGE_FRACTION = 0.25

# Number of halvings used when locating the next resampled vertex within a segment
BISECTION_ITERATIONS = 6

# Smallest resolution whose ends still converge (K >= 1) and whose midpoint is interior
MIN_RESOLUTION = 4


class ExemplarError(Exception):
    """Exception raised for exemplar contract violations"""
    pass


class InvalidStateError(ExemplarError):
    """Exception raised when an exemplar is used after finalization"""
    pass


class NodeOrderMismatchError(ExemplarError):
    """Exception raised when a streamline does not belong to the exemplar's edge"""
    pass


class NodePair(NamedTuple):
    """Pair of node indices, ordered as first / second"""
    first: int
    second: int

    @property
    def is_diagonal(self) -> bool:
        return self.first == self.second

    def reversed(self) -> "NodePair":
        return NodePair(self.second, self.first)


class Orientation(Enum):
    FORWARD = "forward"
    REVERSED = "reversed"
    MISMATCH = "mismatch"


def classify_orientation(streamline_nodes: Tuple[int, int], exemplar_nodes: Tuple[int, int]) -> Orientation:
    """
    Determine how a streamline's node order relates to an exemplar's node order

    Args:
        streamline_nodes: Nodes in the order the streamline endpoints reached them
        exemplar_nodes: Node order of the exemplar

    Returns:
        FORWARD, REVERSED, or MISMATCH if the pairs are unrelated
    """
    streamline_nodes = NodePair(*streamline_nodes)
    exemplar_nodes = NodePair(*exemplar_nodes)
    if streamline_nodes == exemplar_nodes:
        return Orientation.FORWARD
    if streamline_nodes == exemplar_nodes.reversed():
        return Orientation.REVERSED
    return Orientation.MISMATCH


class ConnectomeStreamline:
    """Streamline with a weight and the node pair it was assigned to"""

    def __init__(
        self,
        points: np.ndarray,
        nodes: Tuple[int, int],
        weight: float = 1.0
    ):
        points = np.asarray(points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"Streamline must have shape (n_points, 3), got {points.shape}")
        if len(points) < 2:
            raise ValueError(f"Streamline needs at least 2 points, got {len(points)}")
        if weight < 0:
            raise ValueError(f"Streamline weight must be non-negative, got {weight}")

        self.points = points
        self.nodes = NodePair(int(nodes[0]), int(nodes[1]))
        self.weight = float(weight)

    def __len__(self) -> int:
        return len(self.points)

    def __repr__(self) -> str:
        return (f"ConnectomeStreamline(n_points={len(self.points)}, "
                f"nodes={tuple(self.nodes)}, weight={self.weight})")


@dataclass
class AccumulationBuffer:
    """Weighted sums of interpolated streamline positions, one per slot"""
    sums: np.ndarray
    weight: float = 0.0

    @classmethod
    def empty(cls, resolution: int) -> "AccumulationBuffer":
        return cls(sums=np.zeros((resolution, 3), dtype=np.float64))

    @property
    def resolution(self) -> int:
        return len(self.sums)


@dataclass(frozen=True)
class FinalizedCurve:
    """Final exemplar polyline"""
    points: np.ndarray = field(repr=False)
    weight: float = 0.0

    def __post_init__(self):
        self.points.setflags(write=False)

    def __len__(self) -> int:
        return len(self.points)


def sample_streamline(
    points: np.ndarray,
    resolution: int,
    reverse: bool = False
) -> np.ndarray:
    """
    Linearly interpolate a streamline at evenly spaced fractional indices

    Slot i samples position (M-1) * i / resolution along the M input points,
    counted from the far end when reverse is set. The final input point is
    never reached from the near end; that is the exemplar's convention.

    Args:
        points: Streamline points (M, 3)
        resolution: Number of slots
        reverse: Walk the streamline back to front

    Returns:
        Sampled positions (resolution, 3)
    """
    n_points = len(points)
    interp_pos = (n_points - 1) * np.arange(resolution) / float(resolution)
    if reverse:
        interp_pos = (n_points - 1) - interp_pos

    lower = np.floor(interp_pos).astype(int)
    mu = (interp_pos - lower)[:, np.newaxis]
    at_end = lower == n_points - 1
    upper = np.where(at_end, lower, lower + 1)

    sampled = (1.0 - mu) * points[lower] + mu * points[upper]
    sampled[at_end] = points[-1]
    return sampled


def converge_endpoints(
    points: np.ndarray,
    node_coms: Tuple[np.ndarray, np.ndarray],
    fraction: float = ENDPOINT_CONVERGE_FRACTION
) -> np.ndarray:
    """
    Blend both ends of a curve toward the node centres of mass

    The first point is replaced by the first centre of mass, and the blend
    weight of the curve's own position grows linearly to 1 over the first
    floor(fraction * n) points; the last points are treated symmetrically.

    Args:
        points: Curve points (n, 3)
        node_coms: Centres of mass of the first and second node
        fraction: Fraction of points at each end that is pulled in

    Returns:
        Blended curve (n, 3)
    """
    points = np.array(points, dtype=np.float64)
    n_points = len(points)
    n_converging = int(fraction * n_points)
    if n_converging == 0:
        return points

    com_first = np.asarray(node_coms[0], dtype=np.float64)
    com_second = np.asarray(node_coms[1], dtype=np.float64)

    mu = (np.arange(n_converging) / float(n_converging))[:, np.newaxis]
    points[:n_converging] = mu * points[:n_converging] + (1.0 - mu) * com_first

    tail = np.arange(n_points - 1, n_points - 1 - n_converging, -1)
    mu = ((n_points - 1 - tail) / float(n_converging))[:, np.newaxis]
    points[tail] = mu * points[tail] + (1.0 - mu) * com_second

    return points


def find_point_at_distance(
    a: np.ndarray,
    b: np.ndarray,
    reference: np.ndarray,
    target_distance: float,
    iterations: int = BISECTION_ITERATIONS
) -> np.ndarray:
    """
    Bisection search for the point on segment [a, b] at a given distance from a reference

    The search assumes the distance to the reference crosses target_distance
    once along the segment, starting inside it at a. After n iterations the
    interpolation parameter is known to within 2^-n of the crossing.

    Args:
        a: Segment start (3,)
        b: Segment end (3,)
        reference: Point the distance is measured from (3,)
        target_distance: Desired Euclidean distance
        iterations: Number of halvings

    Returns:
        The last candidate point evaluated (3,)
    """
    target_sq = target_distance ** 2
    lower, mu, upper = 0.0, 0.5, 1.0
    p = (a + b) * 0.5
    for _ in range(iterations):
        if np.sum((p - reference) ** 2) > target_sq:
            upper = mu
        else:
            lower = mu
        mu = 0.5 * (lower + upper)
        p = a * (1.0 - mu) + b * mu
    return p


def resample_to_step_size(
    points: np.ndarray,
    step_size: float,
    iterations: int = BISECTION_ITERATIONS
) -> np.ndarray:
    """
    Resample a polyline so that consecutive vertices lie step_size apart

    Resampling starts from the middle point and walks out to each end in
    turn, so both halves are clipped symmetrically at the curve's ends.

    Args:
        points: Input polyline (n, 3), n >= 2
        step_size: Distance between output vertices
        iterations: Bisection iterations per vertex

    Returns:
        Resampled polyline (m, 3)
    """
    if step_size <= 0:
        raise ValueError(f"step_size must be positive, got {step_size}")
    points = np.asarray(points, dtype=np.float64)
    n_points = len(points)
    if n_points < 2:
        raise ValueError(f"Cannot resample a curve with {n_points} point(s)")

    step_sq = step_size ** 2
    last = n_points - 1
    mid = (n_points + 1) // 2
    vertices = [points[mid]]

    for step in (-1, 1):
        if step == 1:
            vertices.reverse()
        index = mid
        while True:
            while (0 <= index + step <= last
                   and np.sum((points[index + step] - vertices[-1]) ** 2) < step_sq):
                index += step
            if index == 0 or index == last:
                vertices.append(points[index])
                break
            vertices.append(find_point_at_distance(
                points[index], points[index + step], vertices[-1], step_size, iterations
            ))

    return np.array(vertices)


def finalize_buffer(
    buffer: AccumulationBuffer,
    nodes: NodePair,
    node_coms: Tuple[np.ndarray, np.ndarray],
    step_size: float,
    converge_fraction: float = ENDPOINT_CONVERGE_FRACTION,
    iterations: int = BISECTION_ITERATIONS
) -> FinalizedCurve:
    """
    Convert accumulated weighted sums into the final exemplar curve

    Args:
        buffer: Accumulated sums and total weight
        nodes: Node pair of the edge
        node_coms: Centres of mass of the two nodes
        step_size: Output vertex spacing in mm
        converge_fraction: Fraction of points pulled to each centre of mass
        iterations: Bisection iterations used during resampling

    Returns:
        Finalized curve
    """
    if not buffer.weight or nodes.is_diagonal:
        # No streamlines assigned, or a self-connection: straight line between the nodes
        logger.debug(f"Edge {tuple(nodes)}: degenerate (weight={buffer.weight}), "
                     f"emitting straight segment")
        return FinalizedCurve(
            np.array([node_coms[0], node_coms[1]], dtype=np.float64), buffer.weight
        )

    mean_points = buffer.sums / buffer.weight
    mean_points = converge_endpoints(mean_points, node_coms, converge_fraction)
    return FinalizedCurve(
        resample_to_step_size(mean_points, step_size, iterations), buffer.weight
    )


class Exemplar:
    """
    Representative streamline of a single connectome edge

    Streamlines are folded into a fixed-resolution buffer of weighted sums
    by add(), which may be called concurrently from several threads; a
    single call to finalize() then turns the buffer into the final curve.
    """

    def __init__(
        self,
        resolution: int,
        nodes: Tuple[int, int],
        node_coms: Tuple[np.ndarray, np.ndarray],
        converge_fraction: float = ENDPOINT_CONVERGE_FRACTION,
        bisection_iterations: int = BISECTION_ITERATIONS
    ):
        """
        Initialize an empty exemplar

        Args:
            resolution: Number of accumulation slots (>= MIN_RESOLUTION)
            nodes: Node pair; streamlines must match this order or its reverse
            node_coms: Centres of mass of nodes.first and nodes.second
            converge_fraction: Fraction of points pulled to each centre of mass
            bisection_iterations: Bisection iterations used during resampling
        """
        if int(resolution) < MIN_RESOLUTION:
            raise ValueError(f"Exemplar resolution must be at least {MIN_RESOLUTION}, got {resolution}")

        self.nodes = NodePair(int(nodes[0]), int(nodes[1]))
        com_first = np.array(node_coms[0], dtype=np.float64)
        com_second = np.array(node_coms[1], dtype=np.float64)
        com_first.setflags(write=False)
        com_second.setflags(write=False)
        self.node_coms = (com_first, com_second)
        self.converge_fraction = converge_fraction
        self.bisection_iterations = bisection_iterations

        self._state: Union[AccumulationBuffer, FinalizedCurve] = AccumulationBuffer.empty(int(resolution))
        self._mutex = threading.Lock()

    @property
    def is_finalized(self) -> bool:
        return isinstance(self._state, FinalizedCurve)

    @property
    def is_diagonal(self) -> bool:
        return self.nodes.is_diagonal

    @property
    def points(self) -> np.ndarray:
        """Accumulated sums while accumulating, the final curve afterwards"""
        if self.is_finalized:
            return self._state.points
        return self._state.sums

    @property
    def weight(self) -> float:
        return self._state.weight

    def __len__(self) -> int:
        return len(self.points)

    def __repr__(self) -> str:
        state = "finalized" if self.is_finalized else "accumulating"
        return f"Exemplar(nodes={tuple(self.nodes)}, n_points={len(self)}, weight={self.weight}, {state})"

    def add(self, streamline: ConnectomeStreamline):
        """
        Contribute a streamline toward the mean exemplar

        Args:
            streamline: Streamline assigned to this edge, in either node order

        Raises:
            InvalidStateError: If the exemplar has already been finalized
            NodeOrderMismatchError: If the streamline belongs to another edge
        """
        with self._mutex:
            if self.is_finalized:
                raise InvalidStateError(
                    f"Cannot add streamline to exemplar for edge {tuple(self.nodes)}: "
                    f"exemplar already finalized"
                )
            orientation = classify_orientation(streamline.nodes, self.nodes)
            if orientation is Orientation.MISMATCH:
                raise NodeOrderMismatchError(
                    f"Streamline with nodes {tuple(streamline.nodes)} cannot contribute to "
                    f"exemplar for edge {tuple(self.nodes)}"
                )
            buffer = self._state
            sampled = sample_streamline(
                streamline.points, buffer.resolution,
                reverse=orientation is Orientation.REVERSED
            )
            buffer.sums += sampled * streamline.weight
            buffer.weight += streamline.weight

    def finalize(self, step_size: float):
        """
        Convert the accumulated data into the final exemplar curve

        Args:
            step_size: Distance between consecutive output points in mm

        Raises:
            InvalidStateError: If the exemplar has already been finalized
        """
        if step_size <= 0:
            raise ValueError(f"step_size must be positive, got {step_size}")

        with self._mutex:
            if self.is_finalized:
                raise InvalidStateError(
                    f"Cannot finalize exemplar for edge {tuple(self.nodes)}: "
                    f"exemplar already finalized"
                )
            self._state = finalize_buffer(
                self._state, self.nodes, self.node_coms, step_size,
                self.converge_fraction, self.bisection_iterations
            )
