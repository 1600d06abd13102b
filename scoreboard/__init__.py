"""
scoreboard - HTTP server for Bracketeer

Serves the roster and the live bracket to the browser, and keeps both in a
small SQLite file so a restart picks up where the roster left off.
"""

from .server import app
from .db import BracketDB

__all__ = ["app", "BracketDB"]
