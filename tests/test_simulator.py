import math

import numpy as np
import pytest

from vehicle_pf.data.simulator import make_map, observe, simulate_scenario
from vehicle_pf.data.types import Map
from vehicle_pf.localization import ParticleFilter
from vehicle_pf.utils.data_utils import build_timeseries
from vehicle_pf.utils.metrics import compute_ate, compute_trajectory_stats, pose_error

DELTA_T = 0.1
SENSOR_RANGE = 50.0
SIGMA_POS = np.array([0.3, 0.3, 0.01])
SIGMA_LANDMARK = np.array([0.3, 0.3])


def test_make_map(rng):
    landmarks = make_map(rng, num_landmarks=10, x_range=(0.0, 5.0), y_range=(-1.0, 1.0))
    assert list(landmarks.ids) == list(range(1, 11))
    positions = landmarks.positions
    assert np.all((positions[:, 0] >= 0.0) & (positions[:, 0] <= 5.0))
    assert np.all((positions[:, 1] >= -1.0) & (positions[:, 1] <= 1.0))


def test_observe_is_circular_and_in_vehicle_frame(rng):
    landmarks = Map.from_array([[1, 0.0, 3.0], [2, 10.0, 10.0], [3, 0.0, -4.0]])
    observations = observe((0.0, 0.0, math.pi / 2), landmarks, 5.0, [0.0, 0.0], rng)

    assert len(observations) == 2
    assert all(obs.id is None for obs in observations)
    # Landmark straight ahead, then straight behind
    assert (observations[0].x, observations[0].y) == pytest.approx((3.0, 0.0), abs=1e-9)
    assert (observations[1].x, observations[1].y) == pytest.approx((-4.0, 0.0), abs=1e-9)


def test_simulate_scenario_streams(rng):
    landmarks = make_map(rng, num_landmarks=20)
    controls = np.column_stack((np.full(5, 10.0), np.zeros(5)))
    scenario = simulate_scenario(
        landmarks, [0.0, 0.0, 0.0], controls, DELTA_T, SENSOR_RANGE, SIGMA_LANDMARK, SIGMA_POS, rng
    )

    assert len(scenario) == 5
    assert len(scenario.observations) == 5
    np.testing.assert_allclose(scenario.groundtruth[:, 1], [0.0, 1.0, 2.0, 3.0, 4.0])
    np.testing.assert_array_equal(scenario.groundtruth[:, 0], scenario.controls[:, 0])
    assert scenario.gps.shape == (3,)


def test_filter_tracks_simulated_drive():
    rng = np.random.default_rng(17)
    landmarks = make_map(rng, num_landmarks=60, x_range=(-50.0, 150.0), y_range=(-60.0, 60.0))
    steps = 50
    controls = np.column_stack((np.full(steps, 10.0), np.full(steps, 0.05)))
    scenario = simulate_scenario(
        landmarks, [0.0, 0.0, 0.0], controls, DELTA_T, SENSOR_RANGE, SIGMA_LANDMARK, SIGMA_POS, rng
    )

    pf = ParticleFilter(seed=3)
    errors = []
    for t in range(len(scenario)):
        best = pf.step(
            DELTA_T,
            SIGMA_POS,
            scenario.controls[t, 1],
            scenario.controls[t, 2],
            SENSOR_RANGE,
            SIGMA_LANDMARK,
            scenario.observations[t],
            landmarks,
            prior=scenario.gps,
        )
        errors.append(pose_error(scenario.groundtruth[t, 1:], [best.x, best.y, best.theta]))
        assert len(pf.particles) == 100

    errors = np.array(errors)
    assert np.mean(errors[:, 0]) < 1.0
    assert np.mean(errors[:, 1]) < 1.0
    assert np.mean(errors[:, 2]) < 0.05

    pf.build_dataframes()
    gt = build_timeseries(scenario.groundtruth, cols=["stamp", "x", "y", "theta"])
    assert compute_ate(pf.states_df, gt, verbose=False) < 1.0
    assert compute_trajectory_stats(pf.states_df, gt)["aligned_frames"] == steps


def test_seeded_runs_are_reproducible():
    def run():
        rng = np.random.default_rng(5)
        landmarks = make_map(rng, num_landmarks=30, x_range=(-20.0, 60.0), y_range=(-30.0, 30.0))
        controls = np.column_stack((np.full(5, 5.0), np.full(5, 0.1)))
        scenario = simulate_scenario(
            landmarks, [0.0, 0.0, 0.0], controls, DELTA_T, SENSOR_RANGE, SIGMA_LANDMARK, SIGMA_POS, rng
        )
        pf = ParticleFilter(num_particles=30, seed=5)
        for t in range(len(scenario)):
            pf.step(
                DELTA_T, SIGMA_POS, scenario.controls[t, 1], scenario.controls[t, 2],
                SENSOR_RANGE, SIGMA_LANDMARK, scenario.observations[t], landmarks,
                prior=scenario.gps,
            )
        return pf.particles

    assert run() == run()
