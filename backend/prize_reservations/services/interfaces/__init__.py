"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .competitions import Competition, CompetitionDirectory
from .memory_competitions import InMemoryCompetitionDirectory

__all__ = ['Competition', 'CompetitionDirectory', 'InMemoryCompetitionDirectory']
