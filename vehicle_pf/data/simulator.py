#!/usr/bin/env python3
"""
Synthetic driving scenario generator.

Produces the same streams a real logging setup would feed the filter:
a landmark map, a ground-truth trajectory, control inputs, a noisy GPS
prior for initialization and per-step landmark detections in the vehicle
frame. Useful for demos and for end-to-end tests where real sensor logs
are not available.

Stream layout
-------------
- groundtruth : [time[s], x[m], y[m], theta[rad]]
- controls    : [time[s], velocity[m/s], yaw_rate[rad/s]]
- observations: list (one entry per time step) of LandmarkObs in the
  vehicle frame, ids cleared
"""

from dataclasses import dataclass, field
from typing import List

import numpy as np

from vehicle_pf.data.types import LandmarkObs, Map
from vehicle_pf.utils.helpers import bicycle_motion, map_to_vehicle


@dataclass
class Scenario:
    """Synchronized synthetic data streams for one drive."""

    map_landmarks: Map
    groundtruth: np.ndarray
    controls: np.ndarray
    gps: np.ndarray
    delta_t: float
    observations: List[List[LandmarkObs]] = field(default_factory=list)

    def __len__(self):
        return len(self.groundtruth)


def make_map(rng, num_landmarks=42, x_range=(-50.0, 300.0), y_range=(-100.0, 100.0)):
    """
    Scatter landmarks uniformly over a rectangle.

    Parameters
    ----------
    rng : numpy.random.Generator
        Source of randomness.
    num_landmarks : int
        Number of landmarks; ids are 1..num_landmarks.
    x_range, y_range : tuple of float
        Bounds of the rectangle (m).

    Returns
    -------
    Map
    """
    xs = rng.uniform(x_range[0], x_range[1], num_landmarks)
    ys = rng.uniform(y_range[0], y_range[1], num_landmarks)
    data = np.column_stack((np.arange(1, num_landmarks + 1), xs, ys))
    return Map.from_array(data)


def observe(pose, map_landmarks, sensor_range, sigma_landmark, rng):
    """
    Noisy detections of every landmark within ``sensor_range`` of ``pose``.

    Unlike the filter's square gate, the sensor footprint is circular.
    Detections are returned in the vehicle frame, in map order, with
    ``id = None``.
    """
    x, y, theta = pose
    observations = []
    for landmark in map_landmarks:
        if np.hypot(landmark.x - x, landmark.y - y) > sensor_range:
            continue
        x_obs, y_obs = map_to_vehicle(x, y, theta, landmark.x, landmark.y)
        x_obs += rng.normal(0.0, sigma_landmark[0])
        y_obs += rng.normal(0.0, sigma_landmark[1])
        observations.append(LandmarkObs(None, float(x_obs), float(y_obs)))
    return observations


def simulate_scenario(
    map_landmarks,
    initial_pose,
    controls,
    delta_t,
    sensor_range,
    sigma_landmark,
    sigma_gps,
    rng,
):
    """
    Drive the vehicle through ``controls`` and record every stream.

    The ground truth at step t is obtained from step t-1 with the control
    of step t-1, exactly as the filter's prediction consumes it.

    Parameters
    ----------
    map_landmarks : Map
        World model.
    initial_pose : array_like, shape (3,)
        True starting pose [x, y, theta].
    controls : array_like, shape (T, 2)
        Commanded [velocity, yaw_rate] per step.
    delta_t : float
        Time between steps (s).
    sensor_range : float
        Detection radius (m).
    sigma_landmark : array_like, shape (2,)
        Observation noise std-devs [σx, σy] (m).
    sigma_gps : array_like, shape (3,)
        Prior noise std-devs [σx, σy, σθ].
    rng : numpy.random.Generator
        Source of randomness.

    Returns
    -------
    Scenario
    """
    controls = np.asarray(controls, dtype=float).reshape(-1, 2)
    num_steps = len(controls)
    # Accumulated like the filter clock so timestamps match exactly
    times = np.concatenate(([0.0], np.cumsum(np.full(num_steps - 1, float(delta_t)))))

    groundtruth = np.zeros((num_steps, 4))
    groundtruth[:, 0] = times
    groundtruth[0, 1:] = initial_pose
    for t in range(1, num_steps):
        velocity, yaw_rate = controls[t - 1]
        groundtruth[t, 1:] = bicycle_motion(*groundtruth[t - 1, 1:], velocity, yaw_rate, delta_t)

    gps = np.asarray(initial_pose, dtype=float) + rng.normal(0.0, sigma_gps)

    scenario = Scenario(
        map_landmarks=map_landmarks,
        groundtruth=groundtruth,
        controls=np.column_stack((times, controls)),
        gps=gps,
        delta_t=delta_t,
    )
    for t in range(num_steps):
        scenario.observations.append(
            observe(groundtruth[t, 1:], map_landmarks, sensor_range, sigma_landmark, rng)
        )
    return scenario
