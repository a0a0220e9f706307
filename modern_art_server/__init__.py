"""
This package contains all the pieces of the Modern Art auction game server.
"""

from .api import app
from .game import Game

__all__ = [
    "app",
    "Game",
]
