"""
Unit tests for streamline-to-node assignment
"""

import pytest
import numpy as np

from tractexemplar.connectome.construct import ConnectomeBuilder
from tractexemplar.connectome.exemplar import NodePair


class TestConnectomeBuilder:
    """Test node assignment and centres of mass"""

    @pytest.fixture
    def parcellation(self):
        """Two 2x2x2 nodes at opposite ends of a 10x10x10 volume"""
        parc = np.zeros((10, 10, 10), dtype=int)
        parc[0:2, 4:6, 4:6] = 1
        parc[8:10, 4:6, 4:6] = 2
        return parc

    @pytest.fixture
    def affine(self):
        affine = np.diag([2.0, 2.0, 2.0, 1.0])
        affine[:3, 3] = [-10.0, -10.0, -10.0]
        return affine

    def test_node_ids(self, parcellation):
        builder = ConnectomeBuilder(parcellation)

        assert builder.node_ids() == [1, 2]
        assert builder.n_nodes == 2

    def test_centroids_voxel_space(self, parcellation):
        builder = ConnectomeBuilder(parcellation)
        centroids = builder.compute_node_centroids()

        np.testing.assert_allclose(centroids[1], [0.5, 4.5, 4.5])
        np.testing.assert_allclose(centroids[2], [8.5, 4.5, 4.5])

    def test_centroids_world_space(self, parcellation, affine):
        builder = ConnectomeBuilder(parcellation, affine=affine)
        centroids = builder.compute_node_centroids()

        np.testing.assert_allclose(centroids[1], [-9.0, -1.0, -1.0])
        np.testing.assert_allclose(centroids[2], [7.0, -1.0, -1.0])

    def test_assign_keeps_endpoint_order(self, parcellation):
        builder = ConnectomeBuilder(parcellation)
        points = np.array([[0.5, 4.5, 4.5], [4.5, 4.5, 4.5], [8.6, 4.6, 4.4]])

        forward = builder.assign_streamline(points, weight=0.7)
        backward = builder.assign_streamline(points[::-1])

        assert forward.nodes == NodePair(1, 2)
        assert forward.weight == pytest.approx(0.7)
        assert backward.nodes == NodePair(2, 1)

    def test_assign_world_space(self, parcellation, affine):
        builder = ConnectomeBuilder(parcellation, affine=affine)
        points = np.array([[-9.0, -1.0, -1.0], [7.0, -1.0, -1.0]])

        result = builder.assign_streamline(points)
        assert result.nodes == NodePair(1, 2)

    def test_unassigned_endpoints(self, parcellation):
        builder = ConnectomeBuilder(parcellation)

        background = np.array([[0.5, 4.5, 4.5], [4.5, 4.5, 4.5]])
        outside = np.array([[0.5, 4.5, 4.5], [20.0, 4.5, 4.5]])

        assert builder.assign_streamline(background) is None
        assert builder.assign_streamline(outside) is None

    def test_assign_streamlines(self, parcellation):
        builder = ConnectomeBuilder(parcellation)
        streamlines = [
            np.array([[0.5, 4.5, 4.5], [8.5, 4.5, 4.5]]),
            np.array([[8.5, 4.5, 4.5], [0.5, 4.5, 4.5]]),
            np.array([[0.5, 4.5, 4.5], [4.5, 4.5, 4.5]]),
            np.array([[0.5, 4.5, 4.5], [1.0, 4.5, 4.5]]),
        ]

        assigned, n_unassigned = builder.assign_streamlines(streamlines, weights=[1.0, 2.0, 3.0, 4.0])

        assert n_unassigned == 1
        assert [tuple(s.nodes) for s in assigned] == [(1, 2), (2, 1), (1, 1)]
        assert [s.weight for s in assigned] == [1.0, 2.0, 4.0]

    def test_weights_length_mismatch(self, parcellation):
        builder = ConnectomeBuilder(parcellation)
        streamlines = [np.array([[0.5, 4.5, 4.5], [8.5, 4.5, 4.5]])]

        with pytest.raises(ValueError):
            builder.assign_streamlines(streamlines, weights=[1.0, 2.0])

    def test_build_connectome(self, parcellation):
        builder = ConnectomeBuilder(parcellation)
        streamlines = [
            np.array([[0.5, 4.5, 4.5], [8.5, 4.5, 4.5]]),
            np.array([[8.5, 4.5, 4.5], [0.5, 4.5, 4.5]]),
            np.array([[0.5, 4.5, 4.5], [1.0, 4.5, 4.5]]),
        ]
        assigned, _ = builder.assign_streamlines(streamlines, weights=[1.0, 2.0, 0.5])

        adjacency = builder.build_connectome(assigned)

        assert adjacency.shape == (3, 3)
        assert adjacency[1, 2] == pytest.approx(3.0)
        assert adjacency[2, 1] == pytest.approx(3.0)
        assert adjacency[1, 1] == pytest.approx(0.5)
        assert np.allclose(adjacency, adjacency.T)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
