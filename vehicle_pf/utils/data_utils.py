"""
Data transformation utilities.

Converts filter outputs (trajectory arrays, particle sets) into pandas
DataFrames for analysis, metrics and plotting.
"""

import numpy as np
import pandas as pd

PARTICLE_COLUMNS = ["id", "x", "y", "theta", "weight"]


def build_timeseries(data, cols):
    """
    Convert a trajectory array to a DataFrame with a datetime index.

    Parameters
    ----------
    data : ndarray
        Array whose first column holds timestamps in seconds.
    cols : list of str
        Column names. The first one must be 'stamp'.

    Returns
    -------
    pandas.DataFrame
        Frame indexed by ``stamp`` (datetime), remaining columns as given.

    Raises
    ------
    ValueError
        If the first column name is not 'stamp' or the widths disagree.

    Examples
    --------
    >>> states = np.array([[0.0, 0.0, 0.0, 0.0], [0.1, 1.0, 0.0, 0.01]])
    >>> df = build_timeseries(states, cols=["stamp", "x", "y", "theta"])
    >>> list(df.columns)
    ['x', 'y', 'theta']
    """
    if not cols or cols[0] != "stamp":
        raise ValueError(f"First column must be 'stamp', got {cols!r}")
    data = np.asarray(data, dtype=float)
    if data.ndim == 1:
        data = data.reshape(1, -1) if data.size else data.reshape(0, len(cols))
    if data.shape[1] != len(cols):
        raise ValueError(
            f"Data has {data.shape[1]} columns but {len(cols)} names were given: {cols}"
        )
    timeseries = pd.DataFrame(data, columns=cols)
    timeseries["stamp"] = pd.to_datetime(timeseries["stamp"], unit="s")
    return timeseries.set_index("stamp")


def particles_to_frame(particles):
    """
    Tabulate a particle set, one row per particle in canonical order.

    Diagnostic associations are rendered as space-separated strings in an
    ``associations`` column.
    """
    rows = [
        {
            "id": p.id,
            "x": p.x,
            "y": p.y,
            "theta": p.theta,
            "weight": p.weight,
            "associations": " ".join(str(a) for a in p.associations),
        }
        for p in particles
    ]
    return pd.DataFrame(rows, columns=PARTICLE_COLUMNS + ["associations"])
