"""Data augmentation for spatial capture-recapture models.

Observed histories only cover the ntot animals that were detected. Padding
the individual axis with M - ntot all-zero histories gives the model a fixed
number of potential animals, some of which were present but never detected.
This module also builds the initial values the sampler starts from.

Typical usage example:

    sim = OpenSCR(seed=1).simulate(**kwargs)
    packed = pack_open(sim, M=150)
    model = OpenSCR().compile_pymc_model(**packed)
"""

import logging

import numpy as np

def augment(history: np.ndarray, M: int, axis: int = 0) -> np.ndarray:
    """Pad the individual axis of a history with all-zero rows up to M.

    Args:
        history: detection array, where `axis` indexes detected animals
        M: upper bound on the population size
        axis: index of the individual axis

    Returns:
        array with M entries along `axis`, the first ntot being `history`
    """
    history = np.asarray(history)
    ntot = history.shape[axis]
    if ntot > M:
        raise ValueError(f'{ntot} detected animals exceeds augmentation M={M}')

    shape = list(history.shape)
    shape[axis] = M - ntot
    all_zero_history = np.zeros(shape, dtype=history.dtype)

    return np.concatenate((history, all_zero_history), axis=axis)

def initial_z(ntot: int, M: int, T: int) -> np.ndarray:
    """M by T alive states: detected animals alive throughout, others not."""
    if ntot > M:
        raise ValueError(f'{ntot} detected animals exceeds augmentation M={M}')
    z = np.zeros((M, T), dtype=int)
    z[:ntot] = 1
    return z

def initial_centers(history: np.ndarray, traps: np.ndarray, M: int, xlim,
                    ylim, rng: np.random.Generator) -> np.ndarray:
    """Starting activity centers for the augmented population.

    Detected animals start at the mean location of the traps they were
    detected in, the rest start at uniform locations in the state space.

    Args:
        history: ntot by J detections per animal and trap, summed over time
        traps: J by 2 trap coordinates
    """
    history = np.asarray(history)
    traps = np.asarray(traps, dtype=float)

    centers = np.column_stack([
        rng.uniform(xlim[0], xlim[1], M),
        rng.uniform(ylim[0], ylim[1], M)
    ])

    # rows without detections keep their uniform draw
    weights = (history > 0).astype(float)
    detected = np.flatnonzero(weights.sum(axis=1) > 0)
    if len(detected):
        w = weights[detected]
        centers[detected] = w @ traps / w.sum(axis=1, keepdims=True)

    return centers

def pack_closed(sim: dict, M: int, seed: int = None) -> dict:
    """Constants, data, and inits for the closed model.

    The closed model only sees trap by occasion totals, so the augmentation
    lives entirely in the latent inclusion indicators.
    """
    rng = np.random.default_rng(seed)
    traps = np.asarray(sim['traps'], dtype=float)
    n = np.asarray(sim['n'])
    trap_count, occasion_count = n.shape
    xlim, ylim = sim['xlim'], sim['ylim']

    constants = {'M': M, 'J': trap_count, 'K': occasion_count}
    data = {'n': n, 'trapxy': traps, 'xlim': xlim, 'ylim': ylim}

    centers = np.column_stack([
        rng.uniform(xlim[0], xlim[1], M),
        rng.uniform(ylim[0], ylim[1], M)
    ])
    span = max(xlim[1] - xlim[0], ylim[1] - ylim[0])
    inits = {
        'sigma': span / 10,
        'lam0': 0.5,
        'psi': 0.5,
        'z': np.ones(M, dtype=int),
        'sx': centers[:, 0],
        'sy': centers[:, 1]
    }

    return {'constants': constants, 'data': data, 'inits': inits}

def pack_open(sim: dict, M: int, seed: int = None) -> dict:
    """Constants, data, and inits for the open model from observed y (T, n, J)."""
    rng = np.random.default_rng(seed)
    traps = np.asarray(sim['traps'], dtype=float)
    y = np.asarray(sim['y'])
    y = y.reshape(y.shape[0], -1, len(traps))
    step_count, ntot, trap_count = y.shape
    xlim, ylim = sim['xlim'], sim['ylim']

    logging.debug(f'Augmenting {ntot} detected animals to M={M}')
    y_augmented = augment(y, M, axis=1)

    constants = {'M': M, 'J': trap_count, 'T': step_count}
    data = {'y': y_augmented, 'trapxy': traps, 'xlim': xlim, 'ylim': ylim,
            'K': sim['K']}

    z_init = initial_z(ntot, M, step_count)
    centers = initial_centers(y.sum(axis=0), traps, M, xlim, ylim, rng)
    span = max(xlim[1] - xlim[0], ylim[1] - ylim[0])

    inits = {
        'sigma': span / 10,
        'lam0': 0.5,
        'phi': 0.5,
        'gamma': np.full(step_count, 0.5),
        'sx': centers[:, 0],
        'sy': centers[:, 1]
    }
    for t in range(step_count):
        inits[f'z_{t}'] = z_init[:, t]

    return {'constants': constants, 'data': data, 'inits': inits}
