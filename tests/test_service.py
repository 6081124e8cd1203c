import numpy as np
import pytest

from attendance_service.app import create_app
from attendance_service.enrollment import InMemoryEnrollmentStore
from attendance_service.errors import EnrollmentError
from attendance_service.events import InMemoryAttendanceRecorder
from attendance_service.models import BoundingBox, Enrollee, FaceObservation
from attendance_service.service import AttendanceService

EMBEDDING = np.array([0.0, 1.0, 0.0], dtype=np.float32)


class StillSource:
    def __init__(self):
        self.frame = np.zeros((120, 160, 3), dtype=np.uint8)

    def open(self):
        pass

    def next_frame(self):
        return self.frame

    def release(self):
        pass


class OneFacePipeline:
    def process(self, frame):
        return [FaceObservation(bbox=BoundingBox(0.25, 0.25, 0.5, 0.5), embedding=EMBEDDING)]


class BrokenPipeline:
    def process(self, frame):
        raise RuntimeError('no model')


class FailingStore:
    def __init__(self, store):
        self.store = store
        self.fail = False

    def load_enrollees(self, scope_id=None):
        if self.fail:
            raise EnrollmentError('backend unreachable')
        return self.store.load_enrollees(scope_id)


@pytest.fixture
def service(make_config):
    config = make_config(**{
        'processing.skipFrames': 0,
        'processing.detectionIntervalMs': 0,
        'processing.recognitionIntervalMs': 0,
        'attendance.minRecognitions': 1,
        'camera.id': 'room-1',
    })
    store = FailingStore(InMemoryEnrollmentStore(
        [Enrollee(5, 'Grace Hopper', [EMBEDDING])],
        scopes={'navy': [5]},
    ))
    return AttendanceService(
        config, StillSource(), OneFacePipeline(), store, InMemoryAttendanceRecorder()
    )


def test_cycles_update_tracks_and_frames(service):
    for _ in range(3):
        assert service.scheduler.run_cycle()

    tracks = service.tracks()
    assert len(tracks) == 1
    assert tracks[0].confirmed
    assert tracks[0].enrollee_id == 5
    assert service.frames.is_streaming()
    assert service.engine.recorder.records[0].enrollee_id == 5


def test_errors_are_counted_in_status(service):
    service.scheduler.pipeline = BrokenPipeline()
    service.scheduler.run_cycle()

    status = service.status()
    assert status['errors'] == 1
    assert status['lastError'] == 'RuntimeError: no model'
    assert status['running'] is False
    assert status['cameraId'] == 'room-1'


def test_health_endpoint(service):
    client = create_app(service).test_client()
    body = client.get('/health').get_json()

    assert body['status'] == 'ok'
    assert body['streaming'] is False
    assert body['activeTracks'] == 0
    assert body['uptime'] == '0s'


def test_tracks_endpoint(service):
    for _ in range(3):
        service.scheduler.run_cycle()
    client = create_app(service).test_client()

    tracks = client.get('/tracks').get_json()
    assert tracks[0]['trackId'] == 0
    assert tracks[0]['totalHits'] == 3
    assert tracks[0]['displayName'] == 'Grace Hopper'
    assert tracks[0]['bbox'] == {'x': 0.25, 'y': 0.25, 'width': 0.5, 'height': 0.5}


def test_session_reset_endpoint(service):
    for _ in range(3):
        service.scheduler.run_cycle()
    client = create_app(service).test_client()
    assert client.get('/session').get_json()['markedPresent'] == ['5']

    body = client.post('/session/reset', json={'scope': 'navy'}).get_json()

    assert body['scope'] == 'navy'
    assert body['markedPresent'] == []
    assert body['recognitionCounts'] == {}
    assert body['enrollees'] == 1


def test_session_reset_failure_returns_502(service):
    service.engine.store.fail = True
    client = create_app(service).test_client()

    response = client.post('/session/reset', json={})

    assert response.status_code == 502
    assert 'backend unreachable' in response.get_json()['error']
