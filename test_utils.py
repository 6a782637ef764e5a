import numpy as np

from scr.utils import freeman_tukey, squared_distance, half_normal
from scr.utils import cloglog_detection

def test_freeman_tukey():
    o = [5,5]
    e = [4,4]
    D = freeman_tukey(o, e)
    should_be = 0.11
    assert np.isclose(D, should_be, atol=0.01)

def test_squared_distance():
    centers = np.array([[0., 0.], [3., 4.]])
    traps = np.array([[0., 0.], [3., 0.]])

    d2 = squared_distance(centers, traps)
    should_be = np.array([[0., 9.], [25., 16.]])

    assert np.allclose(d2, should_be)

def test_squared_distance_no_animals():
    traps = np.array([[0., 0.], [3., 0.], [1., 1.]])
    d2 = squared_distance(np.empty((0, 2)), traps)
    assert d2.shape == (0, 3)

def test_half_normal():
    rate = half_normal(np.array([0., 2 * 5. ** 2]), lam0=0.4, sigma=5.)
    assert np.allclose(rate, [0.4, 0.4 * np.exp(-1)])

def test_cloglog_detection():
    p = cloglog_detection(np.array([0., 0.5, 50.]))
    assert p[0] == 0
    assert np.isclose(p[1], 1 - np.exp(-0.5))
    assert np.isclose(p[2], 1)
