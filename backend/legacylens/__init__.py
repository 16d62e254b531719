"""
LegacyLens - technical debt scanner for GitHub repositories
"""

__version__ = "1.0.0"
