import dataclasses

import pytest

from attendance_service.config import load_config, load_properties_file
from attendance_service.errors import ConfigError


def test_defaults():
    config = load_config()
    assert config.tracking_enabled is True
    assert config.tracking_max_distance == 0.3
    assert config.tracking_max_age == 10
    assert config.tracking_min_hits == 3
    assert config.recognition_threshold == 0.7
    assert config.attendance_min_recognitions == 5
    assert config.attendance_source == 'tracks'
    assert config.frame_interval_ms == 100
    assert config.skip_frames == 2
    assert config.detection_interval_ms == 500
    assert config.recognition_interval_ms == 1000
    assert config.stop_grace_ms == 1000
    assert config.session_scope is None
    assert config.camera_id == config.camera_source == '0'


def test_properties_override_environment(monkeypatch):
    monkeypatch.setenv('TRACKING_MAX_AGE', '4')
    monkeypatch.setenv('RECOGNITION_THRESHOLD', '0.55')

    config = load_config({'tracking.maxAge': '7'})

    assert config.tracking_max_age == 7
    assert config.recognition_threshold == 0.55


def test_environment_values(monkeypatch):
    monkeypatch.setenv('TRACKING_ENABLED', 'no')
    monkeypatch.setenv('SESSION_SCOPE', 'course-9')
    monkeypatch.setenv('CAMERA_SOURCE', 'rtsp://cam/stream')
    monkeypatch.setenv('CAMERA_ID', 'lobby')

    config = load_config()

    assert config.tracking_enabled is False
    assert config.session_scope == 'course-9'
    assert config.camera_source == 'rtsp://cam/stream'
    assert config.camera_id == 'lobby'


def test_config_is_immutable():
    config = load_config()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.tracking_max_age = 3


@pytest.mark.parametrize('key, value', [
    ('tracking.maxDistance', '1.5'),
    ('tracking.maxDistance', 'far'),
    ('tracking.maxAge', '-1'),
    ('tracking.minHits', '0'),
    ('tracking.enabled', 'maybe'),
    ('recognition.threshold', '1.2'),
    ('attendance.minRecognitions', '0'),
    ('attendance.source', 'faces'),
    ('processing.frameIntervalMs', '0'),
    ('processing.skipFrames', '-2'),
    ('service.port', '70000'),
])
def test_invalid_values_fail_at_load(key, value):
    with pytest.raises(ConfigError) as excinfo:
        load_config({key: value})
    assert key in str(excinfo.value)


def test_unknown_key_is_rejected():
    with pytest.raises(ConfigError, match='tracking.maxAgee'):
        load_config({'tracking.maxAgee': '3'})


def test_config_error_is_a_value_error():
    with pytest.raises(ValueError):
        load_config({'tracking.minHits': 'x'})


def test_properties_file(tmp_path):
    path = tmp_path / 'attendance.properties'
    path.write_text(
        '# tracking\n'
        'tracking.maxAge = 12\n'
        '\n'
        'session.scope=course-1\n'
        'backend.url=http://backend:8080/\n'
    )

    properties = load_properties_file(str(path))
    config = load_config(properties)

    assert properties['tracking.maxAge'] == '12'
    assert config.tracking_max_age == 12
    assert config.session_scope == 'course-1'
    assert config.backend_url == 'http://backend:8080/'


def test_properties_file_errors(tmp_path):
    with pytest.raises(ConfigError):
        load_properties_file(str(tmp_path / 'missing.properties'))

    path = tmp_path / 'bad.properties'
    path.write_text('tracking.maxAge\n')
    with pytest.raises(ConfigError, match='bad.properties:1'):
        load_properties_file(str(path))
