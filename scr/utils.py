import numpy as np
from scipy.spatial.distance import cdist

def squared_distance(centers, traps):
    """Squared euclidean distance between each activity center and trap."""
    centers = np.asarray(centers, dtype=float).reshape(-1, 2)
    traps = np.asarray(traps, dtype=float).reshape(-1, 2)
    if len(centers) == 0:
        return np.zeros((0, len(traps)))
    return cdist(centers, traps, 'sqeuclidean')

def half_normal(sq_distance, lam0, sigma):
    """Encounter rate that decays with distance from the activity center."""
    return lam0 * np.exp(-sq_distance / (2 * sigma ** 2))

def cloglog_detection(rate):
    """Probability of at least one encounter given a Poisson rate."""
    return 1 - np.exp(-rate)

def freeman_tukey(observed, expected) -> float:
    '''Freeman-Tukey discrepancy between observed and expected counts.'''
    observed = np.asarray(observed, dtype=float)
    expected = np.asarray(expected, dtype=float)
    D = np.power(np.sqrt(observed) - np.sqrt(expected), 2).sum()
    return D
