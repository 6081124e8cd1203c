"""
Enrollment store module.

Loads enrollees and their reference face embeddings, optionally
restricted to one scope (course).

Backend payload (GET /api/enrollees[?courseId=<scope>]):
    [
        {"id": 7, "firstName": "Ada", "lastName": "Lovelace",
         "embeddings": [[0.1, ...], "<base64 big-endian float32>"]},
        ...
    ]
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

import requests

from .config import Config
from .errors import EnrollmentError
from .logging_config import get_logger
from .models import Enrollee
from .utils.cache import load_cache, save_cache

logger = get_logger(__name__)


def _display_name(record: Dict[str, Any]) -> Optional[str]:
    if record.get('name'):
        return str(record['name'])
    parts = [record.get('firstName'), record.get('lastName')]
    name = ' '.join(str(p) for p in parts if p)
    return name or None


def parse_enrollees(payload: Iterable[Dict[str, Any]]) -> List[Enrollee]:
    """
    Convert a backend payload into Enrollee objects.

    Records without an id are skipped. Embeddings are kept raw here;
    EmbeddingCache decodes and validates them.

    Args:
        payload: List of enrollee dicts

    Returns:
        List of enrollees
    """
    enrollees: List[Enrollee] = []
    for record in payload:
        enrollee_id = record.get('id')
        if enrollee_id is None:
            logger.warning(f'Enrollee record without id, skipping: {record!r:.80}')
            continue

        embeddings = record.get('embeddings')
        if embeddings is None and record.get('embedding') is not None:
            embeddings = [record['embedding']]
        if not embeddings:
            logger.warning(f'Enrollee {enrollee_id} has no embeddings, skipping')
            continue

        enrollees.append(Enrollee(
            enrollee_id=enrollee_id,
            display_name=_display_name(record),
            embeddings=list(embeddings),
        ))
    return enrollees


class HttpEnrollmentStore:
    """
    Enrollment store backed by the backend HTTP API.

    The last successful payload per scope is cached on disk and used
    when the backend cannot be reached.
    """

    def __init__(self, config: Config, timeout: float = 10.0):
        """
        Args:
            config: Service configuration (backend_url, enrollment_cache_file)
            timeout: Request timeout in seconds
        """
        self.backend_url = config.backend_url.rstrip('/')
        self.cache_file = config.enrollment_cache_file
        self.timeout = timeout

    def load_enrollees(self, scope_id: Optional[str] = None) -> List[Enrollee]:
        """
        Fetch enrollees in scope from the backend.

        Args:
            scope_id: Course to filter by, or None for everyone

        Returns:
            List of enrollees

        Raises:
            EnrollmentError: If the backend fails and nothing is cached
        """
        url = f'{self.backend_url}/api/enrollees'
        params = {'courseId': scope_id} if scope_id is not None else None

        logger.info(f'Loading enrollees from backend (scope={scope_id})...')
        try:
            response = requests.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f'Failed to fetch enrollees from backend: {e}')
            payload = load_cache(scope_id, self.cache_file)
            if payload is None:
                raise EnrollmentError(f'Cannot load enrollees for scope {scope_id}: {e}') from e
            logger.warning('Using cached enrollment data')
            return parse_enrollees(payload)

        if not isinstance(payload, list):
            raise EnrollmentError(f'Unexpected enrollment payload from {url}: {type(payload).__name__}')

        save_cache(payload, scope_id, self.cache_file)
        enrollees = parse_enrollees(payload)
        logger.info(f'Fetched {len(enrollees)} enrollees from backend')
        return enrollees


class InMemoryEnrollmentStore:
    """Enrollment store over in-process data (tests, demos, dry runs)."""

    def __init__(
        self,
        enrollees: Iterable[Enrollee],
        scopes: Optional[Mapping[str, Iterable[Any]]] = None
    ):
        """
        Args:
            enrollees: All enrollees
            scopes: scope id -> enrollee ids enrolled in it
        """
        self.enrollees = list(enrollees)
        self.scopes = {scope: set(ids) for scope, ids in (scopes or {}).items()}

    def load_enrollees(self, scope_id: Optional[str] = None) -> List[Enrollee]:
        if scope_id is None:
            return list(self.enrollees)
        members = self.scopes.get(scope_id)
        if members is None:
            logger.warning(f'Unknown scope {scope_id}, no enrollees loaded')
            return []
        return [e for e in self.enrollees if e.enrollee_id in members]
