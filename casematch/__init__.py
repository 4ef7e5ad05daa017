"""casematch -- provider matching and progressive case notification engine."""

__version__ = "0.1.0"
