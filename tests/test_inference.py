import threading

import numpy as np
import pytest

from posetrack3d.inference import AsyncInference, OnnxPoseEstimator, preprocess_frame


class BlockingEstimator:
    def __init__(self):
        self.release = threading.Event()
        self.started = threading.Event()
        self.calls = []

    def __call__(self, frames):
        self.calls.append(frames)
        self.started.set()
        self.release.wait(timeout=5.0)
        return np.full(4, len(self.calls), dtype=np.float32), np.zeros(12, dtype=np.float32)


def test_preprocess_frame_shape_and_range():
    frame = np.zeros((20, 30, 3), dtype=np.uint8)
    frame[..., 0] = 255  # blue in BGR

    tensor = preprocess_frame(frame, image_size=16)

    assert tensor.shape == (1, 3, 16, 16)
    assert tensor.dtype == np.float32
    np.testing.assert_allclose(tensor[0, 2], 1.0)
    np.testing.assert_allclose(tensor[0, :2], 0.0)


def test_preprocess_frame_rejects_gray():
    with pytest.raises(ValueError):
        preprocess_frame(np.zeros((20, 30), dtype=np.uint8))


def test_missing_model(tmp_path):
    pytest.importorskip("onnxruntime")

    with pytest.raises(FileNotFoundError):
        OnnxPoseEstimator(str(tmp_path / "missing.onnx"), show_progress=False)


def test_request_dropped_while_busy():
    estimator = BlockingEstimator()
    with AsyncInference(estimator) as runner:
        assert runner.submit(["a", "b", "c"])
        assert estimator.started.wait(timeout=5.0)

        assert runner.busy
        assert not runner.submit(["d", "e", "f"])
        assert runner.poll() is None

        estimator.release.set()
        heatmap, offsets = runner.wait(timeout=5.0)

    assert heatmap[0] == 1.0
    assert offsets.shape == (12,)
    assert runner.submitted == 1
    assert runner.dropped == 1
    assert estimator.calls == [("a", "b", "c")]


def test_worker_accepts_new_request_after_result():
    estimator = BlockingEstimator()
    estimator.release.set()
    with AsyncInference(estimator) as runner:
        runner.submit(["a", "b", "c"])
        runner.wait(timeout=5.0)

        assert not runner.busy
        assert runner.submit(["d", "e", "f"])
        heatmap, _ = runner.wait(timeout=5.0)

    assert heatmap[0] == 2.0
    assert runner.dropped == 0


def test_wait_without_request():
    with AsyncInference(BlockingEstimator()) as runner:
        assert runner.wait() is None
        assert runner.poll() is None
