"""
Geometry and probability helpers shared by the filter, the simulator and
the metrics.

All functions accept scalars or numpy arrays and broadcast like numpy
ufuncs, so the same code path serves a single particle or a whole batch of
observations.
"""

import numpy as np
from scipy import stats


def dist(x1, y1, x2, y2):
    """
    Euclidean distance between (x1, y1) and (x2, y2).

    Parameters
    ----------
    x1, y1 : float or ndarray
        First point(s).
    x2, y2 : float or ndarray
        Second point(s).

    Returns
    -------
    float or ndarray
        sqrt((x2 - x1)² + (y2 - y1)²), broadcast over array inputs.
    """
    return np.sqrt((x2 - x1) ** 2 + (y2 - y1) ** 2)


def vehicle_to_map(x_p, y_p, theta_p, x_obs, y_obs):
    """
    Transform vehicle-frame coordinates into the map frame.

    Rigid transform (rotation + translation, no scaling) using the pose
    (x_p, y_p, θ_p) of the vehicle, or of a particle standing in for it:

        x_map = x_p + cosθ * x_obs - sinθ * y_obs
        y_map = y_p + sinθ * x_obs + cosθ * y_obs

    Returns
    -------
    tuple
        (x_map, y_map), scalars or arrays matching the observation inputs.
    """
    cos_t = np.cos(theta_p)
    sin_t = np.sin(theta_p)
    x_map = x_p + cos_t * x_obs - sin_t * y_obs
    y_map = y_p + sin_t * x_obs + cos_t * y_obs
    return x_map, y_map


def map_to_vehicle(x_p, y_p, theta_p, x_map, y_map):
    """Inverse of :func:`vehicle_to_map`."""
    dx = x_map - x_p
    dy = y_map - y_p
    cos_t = np.cos(theta_p)
    sin_t = np.sin(theta_p)
    return cos_t * dx + sin_t * dy, -sin_t * dx + cos_t * dy


def bicycle_motion(x, y, theta, velocity, yaw_rate, delta_t, eps=1e-5):
    """
    Noise-free bicycle model integrated over one time step.

    Motion Model
    ------------
    Straight line, |ω| < eps:

        x' = x + v * Δt * cos(θ)
        y' = y + v * Δt * sin(θ)
        θ' = θ

    Arc, otherwise:

        x' = x + v/ω * (sin(θ + ωΔt) - sin(θ))
        y' = y + v/ω * (cos(θ) - cos(θ + ωΔt))
        θ' = θ + ωΔt

    Heading is not normalized.

    Returns
    -------
    tuple
        (x', y', θ')
    """
    if abs(yaw_rate) < eps:
        return (
            x + velocity * delta_t * np.cos(theta),
            y + velocity * delta_t * np.sin(theta),
            theta,
        )
    theta_new = theta + yaw_rate * delta_t
    return (
        x + velocity / yaw_rate * (np.sin(theta_new) - np.sin(theta)),
        y + velocity / yaw_rate * (np.cos(theta) - np.cos(theta_new)),
        theta_new,
    )


def bivariate_gaussian(dx, dy, sig_x, sig_y):
    """
    Bivariate normal density with diagonal covariance.

        p = 1 / (2π σx σy) * exp(-(dx² / 2σx² + dy² / 2σy²))

    With zero correlation this factorizes into two univariate densities,
    which is how it is evaluated here.
    """
    return stats.norm.pdf(dx, loc=0.0, scale=sig_x) * stats.norm.pdf(dy, loc=0.0, scale=sig_y)


def normalize_angle(angle):
    """Wrap an angle (or array of angles) into [-π, π)."""
    return (angle + np.pi) % (2 * np.pi) - np.pi
