"""
CLI package for bmcfan

This package provides the command-line interface for managing machines,
running apply cycles and the scheduler daemon.
"""

from .interface import main

__all__ = ['main']
