import numpy as np
import pytest

from posetrack3d.volumes import HeatmapVolume, OffsetVolume, load_volumes


R, J = 3, 2


def test_nhwc_heatmap_index_formula():
    flat = np.zeros(J * R ** 3, dtype=np.float32)
    x, y, z, j = 2, 1, 0, 1
    flat[((y * R + x) * J + j) * R + z] = 5.0

    volume = HeatmapVolume(flat, R, J, layout="nhwc")

    assert volume.value(j, x, y, z) == 5.0
    assert volume.scores.sum() == 5.0


def test_nhwc_offset_index_formula():
    flat = np.zeros(3 * J * R ** 3, dtype=np.float32)
    x, y, z, j = 1, 2, 2, 0
    for axis, v in enumerate((0.25, -0.5, 0.75)):
        flat[((y * R + x) * 3 * J + axis * J + j) * R + z] = v

    volume = OffsetVolume(flat, R, J, layout="nhwc")

    np.testing.assert_array_equal(volume.offset(j, x, y, z), [0.25, -0.5, 0.75])


def test_nchw_channel_layout():
    heatmap = np.zeros((1, J * R, R, R), dtype=np.float32)
    offsets = np.zeros((1, 3 * J * R, R, R), dtype=np.float32)
    x, y, z, j = 0, 1, 2, 1
    heatmap[0, j * R + z, y, x] = 2.0
    offsets[0, (2 * J + j) * R + z, y, x] = 0.5

    hm, off = load_volumes(heatmap, offsets, R, J, layout="nchw")

    assert hm.value(j, x, y, z) == 2.0
    np.testing.assert_array_equal(off.offset(j, x, y, z), [0.0, 0.0, 0.5])


def test_layouts_agree(make_volumes):
    peaks = {0: (1, 2, 0, 0.9, (0.1, 0.2, 0.3)), 1: (2, 0, 1, 0.7, (-0.1, 0.0, 0.4))}
    a = load_volumes(*make_volumes(R, J, peaks, layout="nchw"), R, J, layout="nchw")
    b = load_volumes(*make_volumes(R, J, peaks, layout="nhwc"), R, J, layout="nhwc")

    np.testing.assert_array_equal(a[0].scores, b[0].scores)
    np.testing.assert_array_equal(a[1].offsets, b[1].offsets)


@pytest.mark.parametrize("size", [J * R ** 3 - 1, J * R ** 3 + 1, (J + 1) * R ** 3])
def test_heatmap_size_mismatch(size):
    with pytest.raises(ValueError, match="Heat map"):
        HeatmapVolume(np.zeros(size), R, J)


def test_offset_size_mismatch():
    with pytest.raises(ValueError, match="Offset"):
        OffsetVolume(np.zeros(J * R ** 3), R, J)


def test_unknown_layout():
    with pytest.raises(ValueError, match="layout"):
        HeatmapVolume(np.zeros(J * R ** 3), R, J, layout="nwhc")
