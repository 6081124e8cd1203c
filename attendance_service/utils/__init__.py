"""
Utility modules package.
"""

from .cache import load_cache, save_cache, get_payload_hash
from .timing import format_uptime

__all__ = [
    'load_cache',
    'save_cache',
    'get_payload_hash',
    'format_uptime',
]
