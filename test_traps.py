import numpy as np
import pytest

from scr.traps import trap_grid, state_space

def test_trap_grid_count():
    traps = trap_grid((0, 100), (0, 100), count=10, buffer=5)

    assert traps.shape == (100, 2)
    assert traps.min() == 5
    assert traps.max() == 95

    # x varies fastest
    assert np.array_equal(traps[:3], [[5, 5], [15, 5], [25, 5]])

def test_trap_grid_rectangular_count():
    traps = trap_grid((0, 10), (0, 4), count=(5, 3))

    assert traps.shape == (15, 2)
    assert np.array_equal(np.unique(traps[:, 1]), [0, 2, 4])

def test_trap_grid_spacing():
    traps = trap_grid((0, 6), (0, 6), spacing=1, buffer=1)

    assert traps.shape == (25, 2)
    assert np.array_equal(np.unique(traps[:, 0]), [1, 2, 3, 4, 5])

def test_trap_grid_is_deterministic():
    a = trap_grid((0, 1), (0, 1), count=4)
    b = trap_grid((0, 1), (0, 1), count=4)
    assert np.array_equal(a, b)

@pytest.mark.parametrize('kwargs', [
    {'xlim': (10, 0), 'ylim': (0, 10), 'count': 3},
    {'xlim': (0, 10), 'ylim': (0, 10), 'count': 3, 'buffer': 5},
    {'xlim': (0, 10), 'ylim': (0, 10), 'count': 0},
    {'xlim': (0, 10), 'ylim': (0, 10), 'spacing': -1},
    {'xlim': (0, 10), 'ylim': (0, 10)},
    {'xlim': (0, 10), 'ylim': (0, 10), 'count': 3, 'spacing': 1},
])
def test_trap_grid_invalid(kwargs):
    with pytest.raises(ValueError):
        trap_grid(**kwargs)

def test_state_space():
    traps = trap_grid((0, 10), (0, 10), count=3)
    xlim, ylim = state_space(traps, buffer=2)

    assert xlim == (-2, 12)
    assert ylim == (-2, 12)
