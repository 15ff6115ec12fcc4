import logging
import math

import numpy as np
import pytest

from vehicle_pf.utils.data_utils import build_timeseries
from vehicle_pf.utils.metrics import compute_ate, compute_trajectory_stats, pose_error

COLS = ["stamp", "x", "y", "theta"]


def trajectory(offset_x=0.0, offset_theta=0.0, times=(0.0, 0.1, 0.2, 0.3)):
    rows = [[t, 10.0 * t + offset_x, 0.0, 0.2 + offset_theta] for t in times]
    return build_timeseries(np.array(rows), cols=COLS)


def test_pose_error_components():
    np.testing.assert_allclose(pose_error([1.0, 2.0, 0.1], [1.5, 1.0, 0.3]), [0.5, 1.0, 0.2])


def test_pose_error_wraps_heading():
    error = pose_error([0.0, 0.0, 0.05], [0.0, 0.0, 2 * math.pi - 0.05])
    assert error[2] == pytest.approx(0.1)


def test_pose_error_rejects_bad_shape():
    with pytest.raises(ValueError, match="shape"):
        pose_error([0.0, 0.0], [0.0, 0.0, 0.0])


def test_compute_ate_identical_is_zero():
    assert compute_ate(trajectory(), trajectory(), verbose=False) == pytest.approx(0.0)


def test_compute_ate_constant_offset(caplog):
    with caplog.at_level(logging.INFO, logger="vehicle_pf.utils.metrics"):
        ate = compute_ate(trajectory(offset_x=1.0), trajectory(), verbose=True)
    assert ate == pytest.approx(1.0)
    assert "RMSE" in caplog.text


def test_compute_ate_warns_on_poor_alignment(caplog):
    estimated = trajectory(times=(0.0, 0.1, 5.0, 6.0))
    with caplog.at_level(logging.WARNING, logger="vehicle_pf.utils.metrics"):
        compute_ate(estimated, trajectory(), verbose=True)
    assert "aligned" in caplog.text


def test_compute_ate_rejects_arrays():
    with pytest.raises(ValueError, match="DataFrame"):
        compute_ate(np.zeros((3, 4)), trajectory())


def test_compute_ate_requires_columns():
    with pytest.raises(ValueError, match="missing required column 'y'"):
        compute_ate(trajectory().drop(columns=["y"]), trajectory())


def test_compute_ate_without_overlap():
    with pytest.raises(RuntimeError, match="0 matching frames"):
        compute_ate(trajectory(times=(10.0, 11.0)), trajectory(), verbose=False)


def test_trajectory_stats():
    stats = compute_trajectory_stats(
        trajectory(offset_x=0.5, offset_theta=2 * math.pi - 0.1), trajectory()
    )
    assert stats["ate"] == pytest.approx(0.5)
    assert stats["max_error"] == pytest.approx(0.5)
    assert stats["mean_heading_error"] == pytest.approx(0.1)
    assert stats["aligned_frames"] == 4
    assert stats["alignment_ratio"] == 1.0
