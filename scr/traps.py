"""Regular trap layouts over a rectangular state space.

Typical usage example:

    traps = trap_grid((0, 100), (0, 100), count=10, buffer=5)
    xlim, ylim = state_space(traps, buffer=20)
"""

import numpy as np

def trap_grid(xlim, ylim, count=None, spacing=None, buffer=0.0) -> np.ndarray:
    """Place traps on a regular grid inside the bounds.

    Args:
        xlim: (xmin, xmax) of the domain
        ylim: (ymin, ymax) of the domain
        count: traps per axis, an int or an (nx, ny) pair
        spacing: distance between neighbouring traps
        buffer: distance kept between the outer traps and the domain edge

    Returns:
        J by 2 array of trap coordinates, x varying fastest
    """
    if (count is None) == (spacing is None):
        raise ValueError('Provide exactly one of count or spacing')

    axes = []
    for axis, (lo, hi) in enumerate((xlim, ylim)):
        lo = lo + buffer
        hi = hi - buffer
        if hi <= lo:
            raise ValueError(f'Degenerate bounds ({lo}, {hi}) after buffer {buffer}')

        if count is not None:
            n = _axis_count(count, axis)
            if n < 1:
                raise ValueError(f'Trap count must be positive, got {n}')
            axes.append(np.linspace(lo, hi, n))
        else:
            if spacing <= 0:
                raise ValueError(f'Trap spacing must be positive, got {spacing}')
            # small tolerance so the upper bound is included
            axes.append(np.arange(lo, hi + spacing * 1e-9, spacing))

    xx, yy = np.meshgrid(axes[0], axes[1])
    traps = np.column_stack([xx.ravel(), yy.ravel()])

    if len(traps) == 0:
        raise ValueError('Trap grid is empty')

    return traps

def _axis_count(count, axis):
    if np.ndim(count) == 0:
        return int(count)
    return int(count[axis])

def state_space(traps, buffer):
    """Bounds of the state space, i.e., the trap extent plus a buffer."""
    traps = np.asarray(traps, dtype=float)
    xmin, ymin = traps.min(axis=0) - buffer
    xmax, ymax = traps.max(axis=0) + buffer
    return (xmin, xmax), (ymin, ymax)
