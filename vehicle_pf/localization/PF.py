#!/usr/bin/env python3
"""
Particle Filter localization of a vehicle against a known landmark map,
with unknown correspondences resolved by nearest-neighbour association.

See Probabilistic Robotics:
    1. Page 252, Table 8.2 for the main MCL algorithm.
    2. Page 121, Table 5.3 for the velocity motion model.
    3. Page 110, Table 4.4 for low-variance resampling.

"""

import copy
import logging

import matplotlib.pyplot as plt
import numpy as np

from vehicle_pf.data.types import LandmarkObs, Particle
from vehicle_pf.utils.data_utils import build_timeseries
from vehicle_pf.utils.helpers import (
    bicycle_motion,
    bivariate_gaussian,
    dist,
    vehicle_to_map,
)

logger = logging.getLogger(__name__)

# Default number of particles
NUM_PARTICLES = 100
# Yaw rates below this are integrated as straight-line motion
YAW_RATE_EPS = 1e-5


class ParticleFilter:
    """
    Monte Carlo localization of a vehicle pose (x, y, θ).

    The posterior belief is represented by a set of weighted particles, each
    one a hypothesis of the full vehicle pose. A filter step runs the three
    stages of Table 8.2 of Probabilistic Robotics:

        1. **Prediction**: propagate every particle through the bicycle
           motion model and inject process noise.
        2. **Update**: weight every particle by the likelihood of the current
           landmark observations given its pose.
        3. **Resampling**: draw a new set with replacement, proportionally
           to the weights, with the resampling wheel.

    Motion Model (Bicycle Model)
    ---------------------------
    For |ω| < 1e-5 (straight line):

        x_t = x_{t-1} + v * Δt * cos(θ_{t-1})
        y_t = y_{t-1} + v * Δt * sin(θ_{t-1})
        θ_t = θ_{t-1}

    Otherwise (exact integral over the arc):

        x_t = x_{t-1} + v/ω * [sin(θ_{t-1} + ωΔt) - sin(θ_{t-1})]
        y_t = y_{t-1} + v/ω * [cos(θ_{t-1}) - cos(θ_{t-1} + ωΔt)]
        θ_t = θ_{t-1} + ωΔt

    followed by additive noise ε ~ N(0, diag(σx², σy², σθ²)).

    Measurement Model
    ----------------
    Observations arrive in the vehicle frame as (x, y) landmark positions
    without identity. For every particle they are moved to the map frame
    using the particle pose, matched to the nearest landmark within sensor
    range, and scored with a bivariate Gaussian:

        w^[m] = Π_k 1/(2π σx σy) * exp(-(Δx_k²/2σx² + Δy_k²/2σy²))

    Weights are relative likelihoods and are not normalized.

    Parameters
    ----------
    num_particles : int, optional
        Number of particles M. Default: 100.
    seed : int, optional
        Seed for the filter's random generator.
    rng : numpy.random.Generator, optional
        Generator to use instead of creating one from ``seed``. Every draw
        (initialization, prediction noise, resampling) comes from this one
        stream, so a fixed seed reproduces a run exactly.

    Attributes
    ----------
    particles : list of Particle
        Current particle set in canonical order.
    is_initialized : bool
        True once :meth:`init` has run.
    states : ndarray, shape (T, 4)
        Best-particle trajectory [time, x, y, θ] recorded by :meth:`step`.
    states_df : pandas.DataFrame
        Time-indexed view of ``states``, built by :meth:`build_dataframes`.

    Examples
    --------
    >>> pf = ParticleFilter(seed=42)
    >>> pf.init(6.35, 1.91, 0.0, [0.3, 0.3, 0.01])
    >>> pf.prediction(0.1, [0.3, 0.3, 0.01], velocity=10.0, yaw_rate=0.05)
    >>> pf.update_weights(50.0, [0.3, 0.3], observations, map_landmarks)
    >>> pf.resample()
    >>> best = pf.best_particle()

    Notes
    -----
    The cycle operations do not check their preconditions: calling
    prediction, update or resampling before :meth:`init` is a caller error,
    and so is resampling a set whose weights are all zero.
    """

    def __init__(self, num_particles=NUM_PARTICLES, seed=None, rng=None):
        self.num_particles = num_particles
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.particles = []
        self.is_initialized = False

        # Previous control and elapsed time, used by step()
        self.velocity = 0.0
        self.yaw_rate = 0.0
        self.timestamp = 0.0
        self.states = np.zeros((0, 4))

    @property
    def weights(self):
        """Particle weights as an array, in canonical order."""
        return np.array([p.weight for p in self.particles], dtype=float)

    def init(self, x, y, theta, std):
        """
        Seed the particle set around a prior pose estimate (e.g. GPS).

        Initial Distribution
        -------------------
            x_0^[m] ~ N(x, σx²)
            y_0^[m] ~ N(y, σy²)
            θ_0^[m] ~ N(θ, σθ²)

        drawn independently, particle by particle, in x, y, θ order.

        Parameters
        ----------
        x, y, theta : float
            Prior pose estimate.
        std : array_like, shape (3,)
            Standard deviations [σx, σy, σθ] of the prior.

        Notes
        -----
        All weights start at 1.0 and particle ids are their indices. Calling
        this again replaces the current set.
        """
        std_x, std_y, std_theta = std

        self.particles = []
        for i in range(self.num_particles):
            self.particles.append(
                Particle(
                    id=i,
                    x=float(self.rng.normal(x, std_x)),
                    y=float(self.rng.normal(y, std_y)),
                    theta=float(self.rng.normal(theta, std_theta)),
                    weight=1.0,
                )
            )

        self.is_initialized = True
        logger.debug(
            f"Initialized {self.num_particles} particles around "
            f"({x:.3f}, {y:.3f}, {theta:.3f})"
        )

    def prediction(self, delta_t, std_pos, velocity, yaw_rate):
        """
        Propagate every particle through the motion model (prediction step).

        Parameters
        ----------
        delta_t : float
            Elapsed time since the previous step (s), > 0.
        std_pos : array_like, shape (3,)
            Process noise standard deviations [σx, σy, σθ].
        velocity : float
            Commanded linear velocity v (m/s).
        yaw_rate : float
            Commanded yaw rate ω (rad/s).

        Notes
        -----
        Noise is drawn fresh for each particle on each call. Particles evolve
        independently, so iteration order does not matter.
        """
        std_x, std_y, std_theta = std_pos

        for particle in self.particles:
            x, y, theta = bicycle_motion(
                particle.x,
                particle.y,
                particle.theta,
                velocity,
                yaw_rate,
                delta_t,
                eps=YAW_RATE_EPS,
            )

            # Add process noise
            particle.x = float(x + self.rng.normal(0.0, std_x))
            particle.y = float(y + self.rng.normal(0.0, std_y))
            particle.theta = float(theta + self.rng.normal(0.0, std_theta))

    def data_association(self, predicted, observations):
        """
        Label each observation with the id of its nearest predicted landmark.

        Parameters
        ----------
        predicted : list of LandmarkObs
            Map-frame landmark positions within sensor range.
        observations : list of LandmarkObs
            Map-frame observations. Their ``id`` is overwritten in place;
            positions are untouched.

        Notes
        -----
        On equal distances the first landmark in ``predicted`` wins. With
        no predicted landmarks every observation is left unmatched
        (``id = None``).
        """
        if not predicted:
            for obs in observations:
                obs.id = None
            return

        pred_x = np.array([pred.x for pred in predicted], dtype=float)
        pred_y = np.array([pred.y for pred in predicted], dtype=float)
        for obs in observations:
            distances = dist(obs.x, obs.y, pred_x, pred_y)
            # argmin returns the first minimum
            obs.id = predicted[int(np.argmin(distances))].id

    def update_weights(
        self, sensor_range, std_landmark, observations, map_landmarks, annotate=False
    ):
        """
        Weight every particle by the likelihood of the observations (update step).

        For each particle:

            1. Gate the map with a square window of half-width
               ``sensor_range`` centred on the particle.
            2. Transform the observations from the vehicle frame to the map
               frame with the particle pose.
            3. Associate each transformed observation with its nearest
               gated landmark.
            4. Reset the weight to 1.0 and multiply in the bivariate
               Gaussian density of every matched observation.

        Parameters
        ----------
        sensor_range : float
            Sensor range (m).
        std_landmark : array_like, shape (2,)
            Observation noise standard deviations [σx, σy] (m).
        observations : list of LandmarkObs
            Landmark detections in the vehicle frame, shared by all particles.
        map_landmarks : Map
            Known landmark map.
        annotate : bool, optional
            Record each particle's associations and map-frame observation
            coordinates with :meth:`set_associations`. Default: False.

        Notes
        -----
        Observations left unmatched contribute a neutral factor, so a
        particle that sees no landmark keeps weight 1.0.
        """
        sig_x, sig_y = std_landmark

        landmark_ids = map_landmarks.ids
        landmark_xy = map_landmarks.positions
        obs_x = np.array([obs.x for obs in observations], dtype=float)
        obs_y = np.array([obs.y for obs in observations], dtype=float)

        for particle in self.particles:
            # Landmarks within sensor range (square window)
            in_range = (np.abs(particle.x - landmark_xy[:, 0]) <= sensor_range) & (
                np.abs(particle.y - landmark_xy[:, 1]) <= sensor_range
            )
            predictions = [
                LandmarkObs(int(lm_id), float(lm_x), float(lm_y))
                for lm_id, (lm_x, lm_y) in zip(landmark_ids[in_range], landmark_xy[in_range])
            ]

            # Vehicle frame -> map frame
            map_x, map_y = vehicle_to_map(particle.x, particle.y, particle.theta, obs_x, obs_y)
            map_observations = [
                LandmarkObs(obs.id, float(mx), float(my))
                for obs, mx, my in zip(observations, map_x, map_y)
            ]

            self.data_association(predictions, map_observations)

            # First landmark wins for duplicate ids
            by_id = {}
            for pred in predictions:
                by_id.setdefault(pred.id, pred)

            particle.weight = 1.0
            associations, sense_x, sense_y, dx, dy = [], [], [], [], []
            for obs in map_observations:
                if obs.id is None:
                    continue
                pred = by_id[obs.id]
                associations.append(obs.id)
                sense_x.append(obs.x)
                sense_y.append(obs.y)
                dx.append(obs.x - pred.x)
                dy.append(obs.y - pred.y)

            # Observations are independent: multiply their densities
            if associations:
                densities = bivariate_gaussian(np.array(dx), np.array(dy), sig_x, sig_y)
                particle.weight = float(np.prod(densities))

            if annotate:
                self.set_associations(particle, associations, sense_x, sense_y)

    def resample(self):
        """
        Draw a new particle set proportionally to weight (resampling wheel).

        Resampling Algorithm
        -------------------
            index ~ U{0, ..., M-1}
            beta = 0
            repeat M times:
                beta += U[0, 2 * max(w))
                while beta > w[index]:
                    beta -= w[index]
                    index = (index + 1) mod M
                keep a copy of particle[index]

        Notes
        -----
        Copies keep the id of their source particle, so ids may repeat or
        go missing afterwards. The new list replaces the old one as a whole.
        """
        weights = self.weights
        num = len(self.particles)
        max_weight = float(np.max(weights))
        if max_weight <= 0.0:
            logger.warning(
                "Resampling with all particle weights at zero; "
                "check sensor range and landmark noise."
            )

        index = int(self.rng.integers(0, num))
        beta = 0.0
        resampled_particles = []
        for _ in range(num):
            beta += self.rng.uniform(0.0, max_weight) * 2.0
            while beta > weights[index]:
                beta -= weights[index]
                index = (index + 1) % num
            resampled_particles.append(copy.deepcopy(self.particles[index]))

        self.particles = resampled_particles

    @staticmethod
    def set_associations(particle, associations, sense_x, sense_y):
        """
        Attach diagnostic associations to a particle.

        Parameters
        ----------
        particle : Particle
            Particle to annotate.
        associations : list of int
            Landmark id of each association.
        sense_x, sense_y : list of float
            Map-frame coordinates of each association.

        The three sequences are stored as given; keeping them the same
        length is up to the caller.
        """
        particle.associations = list(associations)
        particle.sense_x = list(sense_x)
        particle.sense_y = list(sense_y)

    @staticmethod
    def get_associations(particle):
        """Associated landmark ids as a space-separated string."""
        return " ".join(str(int(a)) for a in particle.associations)

    @staticmethod
    def get_sense_coord(particle, coord):
        """
        Sensed map coordinates as a space-separated string.

        ``coord`` selects ``"X"`` (sense_x) or ``"Y"`` (sense_y). Values use
        six significant digits.
        """
        if coord == "X":
            values = particle.sense_x
        elif coord == "Y":
            values = particle.sense_y
        else:
            raise ValueError(f"coord must be 'X' or 'Y', got {coord!r}")
        return " ".join(f"{float(v):g}" for v in values)

    def best_particle(self):
        """Highest-weight particle (the first one on ties)."""
        return self.particles[int(np.argmax(self.weights))]

    def estimate(self):
        """
        Weighted mean pose of the particle set.

        Returns
        -------
        ndarray, shape (3,)
            [x, y, θ]; θ is the weighted circular mean in [-π, π].
        """
        weights = self.weights
        xs = np.array([p.x for p in self.particles])
        ys = np.array([p.y for p in self.particles])
        thetas = np.array([p.theta for p in self.particles])
        theta = np.arctan2(
            np.average(np.sin(thetas), weights=weights),
            np.average(np.cos(thetas), weights=weights),
        )
        return np.array(
            [np.average(xs, weights=weights), np.average(ys, weights=weights), theta]
        )

    def step(
        self,
        delta_t,
        sigma_pos,
        velocity,
        yaw_rate,
        sensor_range,
        sigma_landmark,
        observations,
        map_landmarks,
        prior=None,
    ):
        """
        Run one full filter cycle on a new set of observations.

        On the first call the filter is initialized from ``prior`` with
        ``sigma_pos`` as uncertainty. Later calls predict with the control
        received on the previous call. Then weights are updated (with
        association diagnostics), the best particle is recorded in
        ``states`` and the set is resampled.

        Parameters
        ----------
        delta_t : float
            Time since the previous call (s).
        sigma_pos : array_like, shape (3,)
            Prior / process noise [σx, σy, σθ].
        velocity, yaw_rate : float
            Control received with this message, applied on the next call.
        sensor_range : float
            Sensor range (m).
        sigma_landmark : array_like, shape (2,)
            Observation noise [σx, σy].
        observations : list of LandmarkObs
            Vehicle-frame detections.
        map_landmarks : Map
            Known landmark map.
        prior : array_like, shape (3,), optional
            Prior pose [x, y, θ]; required on the first call.

        Returns
        -------
        Particle
            The best particle, before resampling.
        """
        if not self.is_initialized:
            self.init(prior[0], prior[1], prior[2], sigma_pos)
        else:
            self.prediction(delta_t, sigma_pos, self.velocity, self.yaw_rate)
            self.timestamp += delta_t

        self.update_weights(
            sensor_range, sigma_landmark, observations, map_landmarks, annotate=True
        )
        best = copy.deepcopy(self.best_particle())
        self.state_update(best)
        self.resample()

        self.velocity = velocity
        self.yaw_rate = yaw_rate

        logger.debug(
            f"t={self.timestamp:.2f}s best particle {best.id} at "
            f"({best.x:.3f}, {best.y:.3f}, {best.theta:.3f}) "
            f"associations [{self.get_associations(best)}]"
        )
        return best

    def state_update(self, particle):
        """Append a particle's pose to the trajectory history."""
        self.states = np.append(
            self.states,
            np.array([[self.timestamp, particle.x, particle.y, particle.theta]]),
            axis=0,
        )

    def build_dataframes(self):
        """Build ``states_df``, the time-indexed best-particle trajectory."""
        self.states_df = build_timeseries(self.states, cols=["stamp", "x", "y", "theta"])
        return self.states_df

    def plot_data(self, map_landmarks=None, groundtruth=None, ax=None):
        """
        Plot the current particle set and the estimated trajectory.

        Plot Elements
        ------------
        - **Particles**: orange dots
        - **Estimate**: red line through recorded best particles
        - **Ground truth**: blue line, if given ([time, x, y, θ] rows)
        - **Landmarks**: black stars labelled with their ids, if a map is given

        Returns
        -------
        matplotlib.axes.Axes
        """
        if ax is None:
            _, ax = plt.subplots()
        ax.cla()

        if groundtruth is not None:
            groundtruth = np.asarray(groundtruth)
            ax.plot(groundtruth[:, 1], groundtruth[:, 2], "b", label="Ground truth")

        if len(self.states):
            ax.plot(self.states[:, 1], self.states[:, 2], "r", label="Best particle")

        ax.scatter(
            [p.x for p in self.particles],
            [p.y for p in self.particles],
            s=20,
            c="orange",
            alpha=0.8,
            label="Particles",
        )

        if map_landmarks is not None and len(map_landmarks):
            positions = map_landmarks.positions
            for landmark in map_landmarks:
                ax.text(landmark.x, landmark.y, str(landmark.id), alpha=0.5, fontsize=8)
            ax.scatter(
                positions[:, 0],
                positions[:, 1],
                s=200,
                c="k",
                alpha=0.2,
                marker="*",
                label="Landmarks",
            )

        ax.set_title("Particle Filter Vehicle Localization")
        ax.legend(loc="center left", bbox_to_anchor=(1, 0.5))
        return ax


if __name__ == "__main__":
    from vehicle_pf.data.simulator import make_map, simulate_scenario
    from vehicle_pf.utils.metrics import compute_ate

    logging.basicConfig(level=logging.INFO)

    # Time between observations (s)
    delta_t = 0.1
    # Sensor range (m)
    sensor_range = 50.0
    # GPS / process noise [x [m], y [m], theta [rad]]
    sigma_pos = np.array([0.3, 0.3, 0.01])
    # Landmark measurement noise [x [m], y [m]]
    sigma_landmark = np.array([0.3, 0.3])

    rng = np.random.default_rng(0)
    map_landmarks = make_map(rng)
    controls = np.column_stack((np.full(200, 10.0), 0.1 * np.sin(np.arange(200) / 30.0)))
    scenario = simulate_scenario(
        map_landmarks,
        [0.0, 0.0, 0.0],
        controls,
        delta_t,
        sensor_range,
        sigma_landmark,
        sigma_pos,
        rng,
    )

    pf = ParticleFilter(seed=1)
    for t in range(len(scenario)):
        pf.step(
            delta_t,
            sigma_pos,
            scenario.controls[t, 1],
            scenario.controls[t, 2],
            sensor_range,
            sigma_landmark,
            scenario.observations[t],
            map_landmarks,
            prior=scenario.gps,
        )

    pf.build_dataframes()
    gt = build_timeseries(scenario.groundtruth, cols=["stamp", "x", "y", "theta"])
    logger.info(f"ATE: {compute_ate(pf.states_df, gt, verbose=False):.3f} m")
    pf.plot_data(map_landmarks, scenario.groundtruth)
    plt.show()
