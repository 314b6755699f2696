"""
Definition stores for cluster persistence.
"""

from .base import DefinitionStore
from .file_backend import FileDefinitionStore, create_file_store

__all__ = [
    "DefinitionStore",
    "FileDefinitionStore",
    "create_file_store",
]
