import numpy as np
import pytest

from posetrack3d import pipeline as pipeline_module
from posetrack3d.constants import (
    JOINT_COUNT,
    JOINT_L_SHOULDER,
    JOINT_NECK,
    JOINT_R_SHOULDER,
    JOINT_SPINE,
    JOINT_ABDOMEN_UPPER,
)
from posetrack3d.pipeline import PlaybackPipeline, RecordingPipeline, open_pipeline
from posetrack3d.track_cache import Track, read_track, save_track


@pytest.fixture
def volumes(make_volumes):
    # voxel (0, 0, 0) -> (-3, 3, -3), voxel (3, 0, 0) -> (3, 3, -3) on the small grid
    return make_volumes(4, 24, {
        JOINT_R_SHOULDER: (0, 0, 0, 0.9, (0.0, 0.0, 0.0)),
        JOINT_L_SHOULDER: (3, 0, 0, 0.8, (0.0, 0.0, 0.0)),
    })


def record_clip(source, config, volumes, times=(0.0, 0.5, 1.0)):
    pipeline = open_pipeline(str(source), config)
    assert isinstance(pipeline, RecordingPipeline)
    with pipeline:
        for t in times:
            pipeline.process(*volumes, elapsed=t)
    return pipeline


def test_record_writes_one_line_per_result(tmp_path, small_config, volumes):
    source = tmp_path / "clip.mp4"

    pipeline = record_clip(source, small_config, volumes)

    lines = (tmp_path / "clip.cache").read_text().splitlines()
    assert len(lines) == 3
    assert all(len(line.split("\t")) == JOINT_COUNT for line in lines)
    assert pipeline.closed


def test_recorded_state_has_derived_joints(tmp_path, small_config, volumes):
    pipeline = RecordingPipeline(str(tmp_path / "clip.cache"), small_config)

    state = pipeline.process(*volumes, elapsed=0.0)

    np.testing.assert_allclose(state.raw[JOINT_NECK], [0.0, 3.0, -3.0])
    np.testing.assert_array_equal(state.raw[JOINT_SPINE], state.raw[JOINT_ABDOMEN_UPPER])
    assert state.confidence[JOINT_R_SHOULDER] == pytest.approx(0.9)
    assert state.confidence[JOINT_NECK] == 0.0
    assert state.frames == 1


def test_recorded_track_holds_filtered_positions(tmp_path, small_config, volumes):
    pipeline = RecordingPipeline(str(tmp_path / "clip.cache"), small_config)
    pipeline.process(*volumes, elapsed=0.0)
    filtered = pipeline.state.filtered.copy()
    path = pipeline.close()

    track = read_track(path)

    np.testing.assert_array_equal(track[0].positions, filtered)
    assert track[0].timestamp == 0.0


def test_existing_track_selects_playback(tmp_path, small_config, volumes):
    source = tmp_path / "clip.mp4"
    record_clip(source, small_config, volumes)
    recorded = read_track(str(tmp_path / "clip.cache"))

    pipeline = open_pipeline(str(source), small_config)

    assert isinstance(pipeline, PlaybackPipeline)
    assert pipeline.mode == "playback"
    np.testing.assert_allclose(pipeline.state.filtered, recorded[0].positions)
    np.testing.assert_allclose(pipeline.update(0.7).filtered, recorded[1].positions)
    np.testing.assert_allclose(pipeline.update(9.0).filtered, recorded[2].positions)
    assert pipeline.finished


def test_playback_never_decodes(tmp_path, small_config, volumes, monkeypatch):
    source = tmp_path / "clip.mp4"
    record_clip(source, small_config, volumes)

    def fail(*args, **kwargs):
        raise AssertionError("decoder called during playback")

    monkeypatch.setattr(pipeline_module, "decode_joints", fail)

    with open_pipeline(str(source), small_config) as pipeline:
        for t in np.arange(0.0, 2.0, 0.1):
            pipeline.update(float(t))


def test_explicit_track_path(tmp_path, small_config, volumes):
    track_path = tmp_path / "tracks" / "take1.cache"

    with open_pipeline(str(tmp_path / "clip.mp4"), small_config, track_path=str(track_path)) as p:
        p.process(*volumes, elapsed=0.0)

    assert track_path.exists()
    assert not (tmp_path / "clip.cache").exists()


def test_track_written_when_processing_fails(tmp_path, small_config, volumes):
    path = tmp_path / "clip.cache"

    with pytest.raises(RuntimeError, match="stream lost"):
        with RecordingPipeline(str(path), small_config) as pipeline:
            pipeline.process(*volumes, elapsed=0.0)
            raise RuntimeError("stream lost")

    assert len(read_track(str(path))) == 1


def test_empty_recording_is_not_written(tmp_path, small_config):
    path = tmp_path / "clip.cache"

    assert RecordingPipeline(str(path), small_config).close() is None
    assert not path.exists()


def test_warm_up_is_not_recorded(tmp_path, small_config, volumes):
    calls = []

    def estimator(frames):
        calls.append(frames)
        return volumes

    pipeline = RecordingPipeline(str(tmp_path / "clip.cache"), small_config)
    state = pipeline.warm_up(estimator, np.zeros((8, 8, 3), dtype=np.uint8))

    assert len(calls) == 1 and len(calls[0]) == 3
    assert state.frames == 1
    assert len(pipeline.track) == 0


def test_volume_size_mismatch(tmp_path, small_config, volumes):
    pipeline = RecordingPipeline(str(tmp_path / "clip.cache"), small_config)
    heatmap, offsets = volumes

    with pytest.raises(ValueError):
        pipeline.process(heatmap.ravel()[:-1], offsets, elapsed=0.0)


def test_process_after_close(tmp_path, small_config, volumes):
    pipeline = RecordingPipeline(str(tmp_path / "clip.cache"), small_config)
    pipeline.close()

    with pytest.raises(RuntimeError):
        pipeline.process(*volumes, elapsed=0.0)


def test_playback_missing_track(tmp_path, small_config):
    with pytest.raises(FileNotFoundError):
        PlaybackPipeline(str(tmp_path / "missing.cache"), small_config)


def test_playback_rejects_wrong_joint_count(tmp_path, small_config):
    track = Track()
    track.record(np.zeros((24, 3)), np.zeros(24), 0.0)
    path = save_track(track, str(tmp_path / "clip.cache"))

    with pytest.raises(ValueError, match="28"):
        PlaybackPipeline(path, small_config)


def test_recording_requires_every_network_joint(tmp_path, small_config):
    small_config.num_joints = 23

    with pytest.raises(ValueError, match="num_joints=23"):
        open_pipeline(str(tmp_path / "clip.mp4"), small_config)
    assert not (tmp_path / "clip.cache").exists()
