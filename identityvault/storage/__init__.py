# Storage Module
"""
Persistence collaborators for the identity core.
"""

from .base import Store
from .memory import MemoryStore, UNIQUE_INDEXES

__all__ = [
    'Store',
    'MemoryStore',
    'UNIQUE_INDEXES',
]
