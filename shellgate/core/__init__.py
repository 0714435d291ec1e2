"""
Core application components.
"""
from .connection import ConnectionManager

__all__ = ['ConnectionManager']
