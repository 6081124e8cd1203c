"""
Attendance event sending module.

Appends 'present' records to the backend. Records are never updated or
deleted from here.
"""

import threading
from datetime import datetime
from typing import Any, List, Optional

import requests

from .config import Config
from .logging_config import get_logger
from .models import AttendanceRecord

logger = get_logger(__name__)


class HttpAttendanceRecorder:
    """Posts attendance records to the backend API."""

    def __init__(self, config: Config, timeout: float = 5.0):
        self.url = f"{config.backend_url.rstrip('/')}/api/attendance"
        self.camera_id = config.camera_id
        self.timeout = timeout

    def record_presence(
        self,
        enrollee_id: Any,
        scope_id: Optional[str],
        timestamp: datetime
    ) -> bool:
        """
        Send a presence record to backend.

        Args:
            enrollee_id: Enrollee ID
            scope_id: Course of the current session, if any
            timestamp: When the enrollee qualified

        Returns:
            True if the record was stored, or may have been (the request
            was sent but timed out waiting for the response)
        """
        record = AttendanceRecord.at(enrollee_id, timestamp, scope_id)
        payload = record.to_payload()
        payload['cameraId'] = self.camera_id

        try:
            logger.info(f'📤 Sending attendance for enrollee {enrollee_id} (scope={scope_id})')
            response = requests.post(self.url, json=payload, timeout=self.timeout)

            if response.ok:
                logger.info('✅ Attendance stored')
                return True

            logger.error(f'❌ Failed to store attendance: {response.status_code} {response.text}')
            return False

        except requests.exceptions.ConnectTimeout:
            logger.error(f'❌ Timeout connecting to {self.url}')
            return False
        except requests.exceptions.Timeout:
            # Sent but unanswered: the row may already exist, never resend
            logger.warning(f'⚠️ No response from {self.url}, assuming attendance was stored')
            return True
        except requests.exceptions.ConnectionError:
            logger.error(f'❌ Connection error sending attendance to {self.url}')
            return False
        except requests.exceptions.RequestException as e:
            logger.error(f'❌ Error sending attendance: {e}')
            return False


class InMemoryAttendanceRecorder:
    """Keeps attendance records in a list (tests and dry runs)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: List[AttendanceRecord] = []

    def record_presence(
        self,
        enrollee_id: Any,
        scope_id: Optional[str],
        timestamp: datetime
    ) -> bool:
        record = AttendanceRecord.at(enrollee_id, timestamp, scope_id)
        with self._lock:
            self._records.append(record)
        logger.info(f'Recorded attendance (dry run): {record}')
        return True

    @property
    def records(self) -> List[AttendanceRecord]:
        with self._lock:
            return list(self._records)
