import numpy as np
import pytest

from attendance_service.models import BoundingBox, FaceObservation
from attendance_service.recognition.tracker import FaceTracker, TrackState


def _obs(x, y, w=0.2, h=0.2, embedding=None):
    return FaceObservation(bbox=BoundingBox(x, y, w, h), embedding=embedding)


def test_first_detection_creates_unconfirmed_track(make_config):
    tracker = FaceTracker(make_config())
    tracks = tracker.update([_obs(0.1, 0.1)], now=1.0)

    assert len(tracks) == 1
    track = tracks[0]
    assert track.track_id == 0
    assert track.total_hits == 1
    assert track.age == 0
    assert track.last_seen == 1.0
    assert not track.is_confirmed(tracker.min_hits)
    assert track.state(tracker.min_hits) is TrackState.NEW


def test_shifted_box_keeps_identity(make_config):
    tracker = FaceTracker(make_config())
    tracker.update([_obs(0.1, 0.1)], now=1.0)
    # IoU ~0.82, distance ~0.18
    tracks = tracker.update([_obs(0.12, 0.1)], now=2.0)

    assert len(tracks) == 1
    assert tracks[0].track_id == 0
    assert tracks[0].total_hits == 2
    assert tracks[0].age == 0
    assert tracks[0].bbox == BoundingBox(0.12, 0.1, 0.2, 0.2)
    assert tracks[0].state(tracker.min_hits) is TrackState.ACTIVE


def test_confirmed_on_min_hits(make_config):
    tracker = FaceTracker(make_config())
    for _ in range(2):
        tracker.update([_obs(0.1, 0.1)])
    assert tracker.confirmed_tracks() == []

    tracker.update([_obs(0.1, 0.1)])
    confirmed = tracker.confirmed_tracks()
    assert [t.track_id for t in confirmed] == [0]
    assert confirmed[0].state(tracker.min_hits) is TrackState.CONFIRMED


def test_distant_detection_starts_new_track(make_config):
    tracker = FaceTracker(make_config())
    tracker.update([_obs(0.1, 0.1)])
    tracks = tracker.update([_obs(0.6, 0.6)])

    assert [t.track_id for t in tracks] == [0, 1]
    assert tracks[0].age == 1
    assert tracks[1].age == 0


def test_distance_at_threshold_does_not_associate(make_config):
    tracker = FaceTracker(make_config(**{'tracking.maxDistance': 0.0}))
    tracker.update([_obs(0.1, 0.1)])
    tracks = tracker.update([_obs(0.1, 0.1)])
    assert [t.track_id for t in tracks] == [0, 1]


def test_track_evicted_after_max_age(make_config):
    tracker = FaceTracker(make_config(**{'tracking.maxAge': 10}))
    tracker.update([_obs(0.1, 0.1)])
    track = tracker.get_track(0)

    for cycle in range(1, 11):
        tracks = tracker.update([])
        assert [t.track_id for t in tracks] == [0]
        assert tracks[0].age == cycle

    assert tracker.update([]) == []
    assert tracker.get_track(0) is None
    assert track.state(tracker.min_hits) is TrackState.EVICTED


def test_match_resets_age(make_config):
    tracker = FaceTracker(make_config())
    tracker.update([_obs(0.1, 0.1)])
    tracker.update([])
    tracker.update([])
    assert tracker.get_track(0).age == 2

    tracker.update([_obs(0.1, 0.1)])
    assert tracker.get_track(0).age == 0
    assert tracker.get_track(0).total_hits == 2


def test_track_ids_are_unique_and_increasing(make_config):
    tracker = FaceTracker(make_config(**{'tracking.maxAge': 0}))
    seen = []
    for step in range(4):
        tracks = tracker.update([_obs(0.1 + 0.25 * (step % 2), 0.1)])
        seen.extend(t.track_id for t in tracks if t.total_hits == 1)

    assert seen == sorted(seen)
    assert len(set(seen)) == len(seen)


def test_disabled_tracking_never_retains(make_config):
    tracker = FaceTracker(make_config(**{'tracking.enabled': 'false'}))
    frame = [_obs(0.1, 0.1), _obs(0.4, 0.1), _obs(0.7, 0.1)]

    first = tracker.update(frame)
    second = tracker.update(frame)

    assert [t.track_id for t in first] == [0, 1, 2]
    assert [t.track_id for t in second] == [3, 4, 5]
    for track in first + second:
        assert track.total_hits == 1
        assert not track.is_confirmed(tracker.min_hits)
    assert tracker.track_count == 0


def test_embedding_only_replaced_when_present(make_config):
    tracker = FaceTracker(make_config())
    first = np.array([1.0, 0.0, 0.0], dtype=np.float32)
    tracker.update([_obs(0.1, 0.1, embedding=first)])
    tracker.update([_obs(0.1, 0.1)])
    np.testing.assert_array_equal(tracker.get_track(0).embedding, first)

    second = np.array([0.0, 1.0, 0.0], dtype=np.float32)
    tracker.update([_obs(0.1, 0.1, embedding=second)])
    np.testing.assert_array_equal(tracker.get_track(0).embedding, second)


def test_tie_goes_to_lowest_track_id(make_config):
    tracker = FaceTracker(make_config())
    tracker.update([_obs(0.1, 0.1), _obs(0.1, 0.1)])

    tracks = tracker.update([_obs(0.1, 0.1)])

    by_id = {t.track_id: t for t in tracks}
    assert by_id[0].total_hits == 2
    assert by_id[0].age == 0
    assert by_id[1].total_hits == 1
    assert by_id[1].age == 1


def test_tie_goes_to_lowest_observation_index(make_config):
    tracker = FaceTracker(make_config())
    tracker.update([_obs(0.1, 0.1)])
    marker = np.array([0.0, 0.0, 1.0], dtype=np.float32)

    tracks = tracker.update([
        _obs(0.1, 0.1, embedding=marker),
        _obs(0.1, 0.1),
    ])

    assert [t.track_id for t in tracks] == [0, 1]
    np.testing.assert_array_equal(tracks[0].embedding, marker)
    assert tracks[1].embedding is None


def test_greedy_prefers_global_minimum(make_config):
    tracker = FaceTracker(make_config(**{'tracking.maxDistance': 0.9}))
    tracker.update([_obs(0.1, 0.1), _obs(0.2, 0.1)])

    # Observation 0 sits exactly on track 1; observation 1 overlaps both.
    tracks = tracker.update([_obs(0.2, 0.1), _obs(0.15, 0.1)])

    by_id = {t.track_id: t for t in tracks}
    assert by_id[1].bbox == BoundingBox(0.2, 0.1, 0.2, 0.2)
    assert by_id[0].bbox == BoundingBox(0.15, 0.1, 0.2, 0.2)
    assert len(tracks) == 2


def test_invalid_box_never_associates(make_config):
    tracker = FaceTracker(make_config())
    tracker.update([FaceObservation(bbox=[(0.1, 0.1), (0.2, 0.3), (0.3, 0.1)])])
    tracks = tracker.update([FaceObservation(bbox=[(0.1, 0.1), (0.2, 0.3), (0.3, 0.1)])])
    assert [t.track_id for t in tracks] == [0, 1]


def test_snapshots_are_detached_copies(make_config):
    tracker = FaceTracker(make_config())
    tracker.update([_obs(0.1, 0.1)], now=5.0)
    snapshot = tracker.snapshots()[0]

    tracker.update([_obs(0.1, 0.1)], now=6.0)

    assert snapshot.total_hits == 1
    assert snapshot.last_seen == 5.0
    assert snapshot.label == 'Face #0'
    assert snapshot.to_dict()['bbox'] == {'x': 0.1, 'y': 0.1, 'width': 0.2, 'height': 0.2}


def test_recognized_snapshot_label(make_config):
    tracker = FaceTracker(make_config())
    tracker.update([_obs(0.1, 0.1)])
    tracker.get_track(0).set_identity('E1', 'Ada Lovelace')

    snapshot = tracker.snapshots()[0]
    assert snapshot.recognized
    assert snapshot.label == 'Ada Lovelace (ID: E1)'


def test_clear_keeps_id_sequence(make_config):
    tracker = FaceTracker(make_config())
    tracker.update([_obs(0.1, 0.1)])
    tracker.clear()
    assert tracker.track_count == 0

    tracks = tracker.update([_obs(0.1, 0.1)])
    assert tracks[0].track_id == 1


@pytest.mark.parametrize('count', [0, 1, 5])
def test_empty_store_creates_one_track_per_detection(make_config, count):
    tracker = FaceTracker(make_config())
    tracks = tracker.update([_obs(0.1 * i, 0.5, w=0.05, h=0.05) for i in range(count)])
    assert len(tracks) == count
