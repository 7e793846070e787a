"""CLI layer: argument parsing, terminal rendering, and error boundary.

This package is the outermost layer of the application.  It may import
from every other layer, but no other layer may import from ``cli``.
"""
