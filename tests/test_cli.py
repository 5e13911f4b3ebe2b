"""
Integration tests for the command-line interface
"""

import json

import pytest
import numpy as np
import nibabel as nib

from tractexemplar.cli import main
from tractexemplar.tractography.streamline_utils import StreamlineUtils


HEADER_LINES = [
    "mrtrix image",
    "dim: 96,96,60,3",
    "vox: 2.5,2.5,2.5,1",
    "layout: +0,+1,+2,+3",
    "datatype: Float32LE",
    "dw_scheme: 0,0,0,0",
    "dw_scheme: 1,0,0,1000",
    "dw_scheme: 0,1,0,1000",
    "file: data.dat",
    "END",
]


class TestCLI:
    """Test the exemplars and header commands end to end"""

    @pytest.fixture
    def inputs(self, tmp_path):
        parc = np.zeros((20, 10, 10), dtype=np.int16)
        parc[0:3, 3:7, 3:7] = 1
        parc[17:20, 3:7, 3:7] = 2
        parc_path = tmp_path / "atlas.nii.gz"
        nib.save(nib.Nifti1Image(parc, np.eye(4)), str(parc_path))

        x = np.linspace(1.0, 18.0, 35)
        streamlines = []
        for offset in (-0.5, 0.0, 0.5):
            points = np.stack([x, np.full_like(x, 5.0 + offset), np.full_like(x, 5.0)], axis=1)
            streamlines.append(points)
        streamlines.append(streamlines[1][::-1].copy())
        # Ends in background
        streamlines.append(np.array([[1.0, 5.0, 5.0], [10.0, 5.0, 5.0]]))

        tck_path = tmp_path / "tracks.tck"
        StreamlineUtils.save_tck(streamlines, str(tck_path))

        weights_path = tmp_path / "weights.txt"
        np.savetxt(weights_path, [1.0, 2.0, 1.0, 0.5, 1.0])

        return tmp_path, parc_path, tck_path, weights_path

    def test_exemplars_command(self, inputs):
        tmp_path, parc_path, tck_path, weights_path = inputs
        output = tmp_path / "out" / "exemplars.tck"

        main([
            '--log-dir', str(tmp_path / "logs"),
            'exemplars',
            '--streamlines', str(tck_path),
            '--parcellation', str(parc_path),
            '--weights', str(weights_path),
            '--resolution', '50',
            '--step-size', '1.0',
            '--threads', '2',
            '--hdf5', str(tmp_path / "out" / "exemplars.h5"),
            '--output', str(output),
        ])

        exemplars = StreamlineUtils.load_tck(str(output))
        assert len(exemplars) == 3  # (1,1), (1,2), (2,2)
        assert len(exemplars[1]) > 10

        with open(tmp_path / "out" / "exemplars_info.json") as f:
            info = json.load(f)
        assert info['statistics']['n_unassigned'] == 1
        assert info['statistics']['total_weight'] == pytest.approx(4.5)
        assert info['config']['resolution'] == 50

        assert (tmp_path / "out" / "exemplars.h5").exists()
        assert (tmp_path / "out" / "exemplars_connectome.csv").exists()

        edge_lines = (tmp_path / "out" / "exemplars_edges.csv").read_text().splitlines()
        assert edge_lines[0] == "node_1,node_2,weight,n_points"
        assert edge_lines[1] == "1,1,0.000000,2"
        edges = np.loadtxt(tmp_path / "out" / "exemplars_edges.csv", delimiter=',', skiprows=1)
        assert edges.shape == (3, 4)
        np.testing.assert_allclose(edges[1, :3], [1, 2, 4.5])
        assert edges[1, 3] == len(exemplars[1])

    def test_header_command(self, tmp_path):
        header_path = tmp_path / "image.mih"
        header_path.write_text("\n".join(HEADER_LINES) + "\n")
        output = tmp_path / "header.json"

        main(['--log-dir', str(tmp_path / "logs"), 'header', '--input', str(header_path),
              '--output', str(output)])

        with open(output) as f:
            header = json.load(f)
        assert header['dim'] == [96, 96, 60, 3]
        assert header['datatype'] == "Float32LE"
        assert len(header['dw_scheme']) == 3

    def test_missing_input_exits(self, tmp_path):
        with pytest.raises(SystemExit):
            main(['--log-dir', str(tmp_path / "logs"), 'header', '--input', str(tmp_path / "missing.mih")])

    def test_no_command_exits(self, tmp_path):
        with pytest.raises(SystemExit):
            main(['--log-dir', str(tmp_path / "logs")])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
