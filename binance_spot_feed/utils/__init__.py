"""
Utilities Module for the Spot Connector
=======================================

Configuration management and logging setup.
"""

from .config import config, Config

__all__ = ['config', 'Config']
