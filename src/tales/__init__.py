"""Transactional command bus for collaborative story fragments."""

__version__ = "0.1.0"
