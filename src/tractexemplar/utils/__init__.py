"""Shared utilities"""

from .logger import get_logger, log_decision

__all__ = ['get_logger', 'log_decision']
