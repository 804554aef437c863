"""Continuum-percolation effective-property estimation for random composites."""

__version__ = "0.1.0"
