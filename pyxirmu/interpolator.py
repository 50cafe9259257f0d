"""
Interpolation utilities:

- :class:`Interpolator`, to look up correlation function multipoles on the separation grid
- :class:`TabulatedPower`, to cache power spectrum multipoles tabulated on the wavenumber grid
"""

import numpy as np
from scipy import interpolate

from .utils import BaseClass, DomainError


class Interpolator(BaseClass):
    """
    1D interpolation of tabulated values, within the tabulated range only.

    Attributes
    ----------
    x : array
        Strictly increasing coordinates.

    y : array
        Tabulated values.

    kind : string
        Interpolation scheme.
    """
    _allowed_kinds = ['linear', 'cspline']

    def __init__(self, x, y, kind='cspline'):
        """
        Initialize :class:`Interpolator`.

        Parameters
        ----------
        x : array_like
            Strictly increasing coordinates, at least 2 points.

        y : array_like
            Values at ``x``.

        kind : string, default='cspline'
            Either 'linear' or 'cspline' (natural cubic spline).
        """
        self.x = np.array(x, dtype='f8')
        self.y = np.array(y, dtype='f8')
        if self.x.ndim != 1 or self.x.size < 2:
            raise ValueError('Interpolator requires at least 2 points')
        if self.y.shape != self.x.shape:
            raise ValueError('x and y must have the same shape, got {} and {}'.format(self.x.shape, self.y.shape))
        if np.any(np.diff(self.x) <= 0.):
            raise ValueError('x must be strictly increasing')
        if kind not in self._allowed_kinds:
            raise ValueError('kind should be one of {}'.format(self._allowed_kinds))
        self.kind = kind
        if kind == 'linear':
            self._spline = interpolate.make_interp_spline(self.x, self.y, k=1)
        else:
            self._spline = interpolate.CubicSpline(self.x, self.y, bc_type='natural')

    def __call__(self, x):
        """Interpolate at ``x``, which must be within the tabulated range."""
        x = np.asarray(x, dtype='f8')
        if np.any((x < self.x[0]) | (x > self.x[-1])):
            raise DomainError('Input x out of interpolation range [{:.4g}, {:.4g}]'.format(self.x[0], self.x[-1]))
        return self._spline(x)[()]


class TabulatedPower(BaseClass):
    """
    Power spectrum (or any function of wavenumber) tabulated on a grid and interpolated
    with a cubic spline in :math:`\\ln k`, with optional power-law extrapolation.
    """
    def __init__(self, k, pk, extrapolate_below=False, extrapolate_above=False):
        """
        Initialize :class:`TabulatedPower`.

        Parameters
        ----------
        k : array_like
            Strictly increasing, positive wavenumbers, at least 2 points.

        pk : array_like
            Values at ``k``. If all positive, interpolation is performed in log-log space.

        extrapolate_below : bool, default=False
            Whether to extrapolate below ``k[0]`` (power law through the first two points);
            else evaluation below ``k[0]`` raises a :class:`DomainError`.

        extrapolate_above : bool, default=False
            Same as ``extrapolate_below``, above ``k[-1]``.
        """
        self.k = np.array(k, dtype='f8')
        self.pk = np.array(pk, dtype='f8')
        if self.k.ndim != 1 or self.k.size < 2:
            raise ValueError('TabulatedPower requires at least 2 points')
        if self.pk.shape != self.k.shape:
            raise ValueError('k and pk must have the same shape, got {} and {}'.format(self.k.shape, self.pk.shape))
        if self.k[0] <= 0. or np.any(np.diff(self.k) <= 0.):
            raise ValueError('k must be positive and strictly increasing')
        self.extrapolate_below = bool(extrapolate_below)
        self.extrapolate_above = bool(extrapolate_above)
        self.loglog = bool(np.all(self.pk > 0.))
        values = np.log(self.pk) if self.loglog else self.pk
        self._spline = interpolate.CubicSpline(np.log(self.k), values, bc_type='natural')

    def _extrapolate(self, k, iedge, inext):
        k0, p0 = self.k[iedge], self.pk[iedge]
        k1, p1 = self.k[inext], self.pk[inext]
        # A power law needs two non-zero values with the same sign
        if p0 * p1 <= 0.:
            return np.zeros_like(k)
        index = np.log(p1 / p0) / np.log(k1 / k0)
        return p0 * (k / k0)**index

    def __call__(self, k):
        """Return tabulated function at ``k``."""
        k = np.asarray(k, dtype='f8')
        if np.any(k <= 0.):
            raise DomainError('Input k must be positive')
        below, above = k < self.k[0], k > self.k[-1]
        if not self.extrapolate_below and np.any(below):
            raise DomainError('Input k below tabulated range k = {:.4g}'.format(self.k[0]))
        if not self.extrapolate_above and np.any(above):
            raise DomainError('Input k above tabulated range k = {:.4g}'.format(self.k[-1]))
        toret = np.empty_like(k)
        inside = ~(below | above)
        values = self._spline(np.log(k[inside]))
        toret[inside] = np.exp(values) if self.loglog else values
        toret[below] = self._extrapolate(k[below], 0, 1)
        toret[above] = self._extrapolate(k[above], -1, -2)
        return toret[()]
