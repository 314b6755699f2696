"""
In-memory definition cache.
"""

from .definition_cache import DefinitionCache

__all__ = ["DefinitionCache"]
