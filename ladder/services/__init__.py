"""
Services package for the ladder backend.
"""

from .match_events import MatchUpdateDispatcher

__all__ = ['MatchUpdateDispatcher']
