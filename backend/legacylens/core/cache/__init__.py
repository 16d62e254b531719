"""
Cache management module
"""

from .cache_manager import CacheManager, CacheLevel, cache_manager

__all__ = ['CacheManager', 'CacheLevel', 'cache_manager']
