"""
Unit tests for logging utilities
"""

import logging

import pytest

from tractexemplar.utils.logger import get_logger, log_decision


class TestLogger:
    """Test the package logger and decision log"""

    def test_package_logger(self, tmp_path):
        logger = get_logger(log_dir=str(tmp_path / "logs"))

        assert logger.name == "tractexemplar"
        assert get_logger() is logger

    def test_log_decision_appends(self, tmp_path):
        output = tmp_path / "logs" / "decision_log.md"

        log_decision("run_a", "connectome.exemplar_generator", "Generated 3 exemplars",
                     {'resolution': 50, 'step_size': 1.0}, output_file=str(output))
        log_decision("run_b", "connectome.exemplar_generator", "Generated 6 exemplars",
                     {'resolution': 200}, output_file=str(output))

        text = output.read_text(encoding='utf-8')
        assert "### [run_a] connectome.exemplar_generator" in text
        assert "**Decision**: Generated 3 exemplars" in text
        assert "- resolution = 50" in text
        assert "- step_size = 1.0" in text
        assert text.index("[run_a]") < text.index("[run_b]")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
