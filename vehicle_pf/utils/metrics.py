"""
Pose estimation error metrics.

Per-step pose error as reported by the vehicle's evaluation loop, and
trajectory-level statistics (Absolute Trajectory Error and friends) over
timestamp-indexed pandas DataFrames.
"""

import logging

import numpy as np
import pandas as pd

from vehicle_pf.utils.helpers import normalize_angle

# Configure module logger
logger = logging.getLogger(__name__)


def pose_error(groundtruth, estimate) -> np.ndarray:
    """
    Absolute per-component error between two poses.

    Parameters
    ----------
    groundtruth : array_like, shape (3,)
        True pose [x, y, theta].
    estimate : array_like, shape (3,)
        Estimated pose [x, y, theta].

    Returns
    -------
    ndarray, shape (3,)
        [|Δx|, |Δy|, |Δθ|] with the heading error wrapped into [0, π].

    Examples
    --------
    >>> pose_error([0.0, 0.0, 0.1], [0.5, -0.2, -0.1])
    array([0.5, 0.2, 0.2])
    """
    groundtruth = np.asarray(groundtruth, dtype=float)
    estimate = np.asarray(estimate, dtype=float)
    if groundtruth.shape != (3,) or estimate.shape != (3,):
        raise ValueError(
            f"Poses must have shape (3,), got {groundtruth.shape} and {estimate.shape}"
        )

    error = np.abs(estimate - groundtruth)
    error[2] = np.fmod(error[2], 2.0 * np.pi)
    if error[2] > np.pi:
        error[2] = 2.0 * np.pi - error[2]
    return error


def _validate(estimated_states, groundtruth_data, required_cols):
    if not isinstance(estimated_states, pd.DataFrame):
        raise ValueError(
            f"estimated_states must be a DataFrame, got {type(estimated_states).__name__}. "
            f"Did you call build_dataframes() and use states_df instead of states?"
        )

    if not isinstance(groundtruth_data, pd.DataFrame):
        raise ValueError(
            f"groundtruth_data must be a DataFrame, got {type(groundtruth_data).__name__}."
        )

    for col in required_cols:
        if col not in estimated_states.columns:
            raise ValueError(
                f"estimated_states missing required column '{col}'. "
                f"Available columns: {list(estimated_states.columns)}"
            )
        if col not in groundtruth_data.columns:
            raise ValueError(
                f"groundtruth_data missing required column '{col}'. "
                f"Available columns: {list(groundtruth_data.columns)}"
            )


def _align(estimated_states, groundtruth_data, cols):
    aligned = estimated_states[cols].join(
        groundtruth_data[cols], how="inner", rsuffix="_gt"
    )
    if len(aligned) == 0:
        raise RuntimeError(
            "Timestamp alignment produced 0 matching frames! "
            f"Estimated time range: [{estimated_states.index.min()}, {estimated_states.index.max()}], "
            f"Ground truth time range: [{groundtruth_data.index.min()}, {groundtruth_data.index.max()}]"
        )
    return aligned


def compute_ate(
    estimated_states: pd.DataFrame,
    groundtruth_data: pd.DataFrame,
    verbose: bool = True,
) -> float:
    """
    Absolute Trajectory Error: RMSE of position over matching timestamps.

    Parameters
    ----------
    estimated_states : pd.DataFrame
        Filter trajectory with datetime index and columns ['x', 'y'],
        typically ``ParticleFilter.states_df``.
    groundtruth_data : pd.DataFrame
        Ground truth with datetime index and columns ['x', 'y'].
    verbose : bool, optional
        Log alignment and error statistics. Default: True.

    Returns
    -------
    float
        Position RMSE in meters.

    Raises
    ------
    ValueError
        If inputs are not DataFrames or miss required columns.
    RuntimeError
        If no timestamps match.

    Examples
    --------
    >>> pf.build_dataframes()
    >>> gt = build_timeseries(scenario.groundtruth, ["stamp", "x", "y", "theta"])
    >>> ate = compute_ate(pf.states_df, gt, verbose=False)
    """
    _validate(estimated_states, groundtruth_data, ["x", "y"])
    aligned = _align(estimated_states, groundtruth_data, ["x", "y"])

    if verbose:
        alignment_pct = len(aligned) / len(estimated_states) * 100
        logger.info(f"ATE: aligned {len(aligned)} frames ({alignment_pct:.1f}% of estimates)")
        if alignment_pct < 90:
            logger.warning(
                f"Only {alignment_pct:.1f}% of frames aligned! "
                "Check that the filter and ground truth share a time base."
            )

    errors = np.sqrt(
        (aligned["x"] - aligned["x_gt"]) ** 2 + (aligned["y"] - aligned["y_gt"]) ** 2
    )
    ate = float(np.sqrt(np.mean(errors**2)))

    if verbose:
        logger.info(
            f"ATE: mean {np.mean(errors):.4f} m, max {np.max(errors):.4f} m, "
            f"RMSE {ate:.4f} m"
        )

    return ate


def compute_trajectory_stats(
    estimated_states: pd.DataFrame,
    groundtruth_data: pd.DataFrame,
) -> dict:
    """
    Detailed error statistics between an estimated and a true trajectory.

    Both frames need columns ['x', 'y', 'theta'].

    Returns
    -------
    dict
        'ate', 'mean_error', 'std_error', 'median_error', 'max_error',
        'min_error', 'mean_heading_error', 'aligned_frames',
        'alignment_ratio'.
    """
    cols = ["x", "y", "theta"]
    _validate(estimated_states, groundtruth_data, cols)
    aligned = _align(estimated_states, groundtruth_data, cols)

    errors = np.sqrt(
        (aligned["x"] - aligned["x_gt"]) ** 2 + (aligned["y"] - aligned["y_gt"]) ** 2
    )
    heading = np.abs(normalize_angle(aligned["theta"] - aligned["theta_gt"]))

    return {
        "ate": float(np.sqrt(np.mean(errors**2))),
        "mean_error": float(np.mean(errors)),
        "std_error": float(np.std(errors)),
        "median_error": float(np.median(errors)),
        "max_error": float(np.max(errors)),
        "min_error": float(np.min(errors)),
        "mean_heading_error": float(np.mean(heading)),
        "aligned_frames": len(aligned),
        "alignment_ratio": len(aligned) / len(estimated_states),
    }
