"""
Enrollment cache module.

Keeps the last enrollment payload fetched for each scope on disk, so a
session can still start when the backend is unreachable.
"""

import hashlib
import json
import os
import pickle
import time
from typing import Any, Dict, Optional, Tuple

from ..logging_config import get_logger

logger = get_logger(__name__)

ALL_SCOPES_KEY = ('all',)


def _scope_key(scope_id: Optional[str]) -> Tuple[str, ...]:
    """Cache key for a scope; the unscoped load never collides with a real scope id."""
    if scope_id is None:
        return ALL_SCOPES_KEY
    return ('scope', str(scope_id))


def get_payload_hash(payload: Any) -> str:
    """
    Compute hash of an enrollment payload for change detection.

    Args:
        payload: JSON-compatible enrollment payload

    Returns:
        MD5 hash string
    """
    data = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.md5(data.encode()).hexdigest()


def _read(cache_file: str) -> Dict[Tuple[str, ...], Dict[str, Any]]:
    if not os.path.exists(cache_file):
        return {}
    try:
        with open(cache_file, 'rb') as f:
            data = pickle.load(f)
    except (OSError, pickle.UnpicklingError, EOFError) as e:
        logger.error(f'Failed to read cache {cache_file}: {e}')
        return {}
    return data if isinstance(data, dict) else {}


def save_cache(payload: Any, scope_id: Optional[str], cache_file: str) -> None:
    """
    Store the payload fetched for a scope.

    Args:
        payload: Enrollment payload as returned by the backend
        scope_id: Scope it was fetched for (None = all enrollees)
        cache_file: Path to cache file
    """
    key = _scope_key(scope_id)
    data = _read(cache_file)
    payload_hash = get_payload_hash(payload)

    if data.get(key, {}).get('hash') == payload_hash:
        logger.debug(f'Enrollment cache for scope {key} unchanged')
        return

    data[key] = {
        'payload': payload,
        'hash': payload_hash,
        'timestamp': time.time(),
    }
    try:
        with open(cache_file, 'wb') as f:
            pickle.dump(data, f)
        logger.info(f'Enrollment cache saved for scope {key}')
    except OSError as e:
        logger.error(f'Failed to save cache: {e}')


def load_cache(scope_id: Optional[str], cache_file: str) -> Optional[Any]:
    """
    Load the cached payload for a scope.

    Args:
        scope_id: Scope to look up (None = all enrollees)
        cache_file: Path to cache file

    Returns:
        Cached payload, or None if there is none
    """
    key = _scope_key(scope_id)
    entry = _read(cache_file).get(key)
    if entry is None:
        logger.debug(f'No cached enrollment for scope {key}')
        return None

    age = time.time() - entry.get('timestamp', 0)
    logger.info(f'Cache found for scope {key} (age: {age:.0f} seconds)')
    return entry.get('payload')
