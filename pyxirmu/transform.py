r"""
Transforms of power spectrum multipoles into correlation function multipoles:

.. math::

    \xi_{\ell}(r) = \frac{i^{\ell}}{2 \pi^{2}} \int dk k^{2} P_{\ell}(k) j_{\ell}(kr)

- :class:`MultipoleTransform` performs the transform for a fixed wavenumber sampling
- :class:`AdaptiveMultipoleTransform` tunes that sampling to meet relative and absolute accuracy goals
"""

import numpy as np
from scipy import interpolate

from .fftlog import SphericalBesselTransform, taper_window
from .utils import BaseClass, NotInitializedError


def multipole_transform_normalization(ell, ndim=3, sign=+1):
    r"""
    Return the (real) normalization coefficient of the multipole transform of order ``ell``.

    For ``ndim = 3``, :math:`i^{\ell} / (2 \pi^{2})` (``sign = +1``, from wavenumber to separation)
    or :math:`4 \pi (-i)^{\ell}` (``sign = -1``, from separation to wavenumber).
    For ``ndim = 2``, the prefactors are :math:`1 / (2 \pi)` and :math:`2 \pi`.
    The real part of the phase is returned for even ``ell`` and its imaginary part for odd ``ell``,
    such that odd multipoles are carried as real functions.

    Parameters
    ----------
    ell : int
        Multipole order.

    ndim : int, default=3
        Number of dimensions, 2 or 3.

    sign : int, default=+1
        Direction of the transform, +1 or -1.

    Returns
    -------
    coef : float
    """
    if ell < 0:
        raise ValueError('Multipole order must be non-negative, got {}'.format(ell))
    if sign not in (-1, 1):
        raise ValueError('sign must be +1 or -1, got {}'.format(sign))
    prefactors = {3: (1. / (2. * np.pi**2), 4. * np.pi), 2: (1. / (2. * np.pi), 2. * np.pi)}
    if ndim not in prefactors:
        raise ValueError('ndim must be one of {}, got {}'.format(list(prefactors), ndim))
    prefactor = prefactors[ndim][0 if sign > 0 else 1]
    phase = (sign * 1j)**ell
    return prefactor * (phase.imag if ell % 2 else phase.real)


class MultipoleTransform(BaseClass):
    """
    Spherical Bessel transform with a fixed log-spaced wavenumber sampling,
    evaluated on a given set of separations.

    The wavenumber range is such that :math:`kr` spans :math:`[\\epsilon_{v}, 1/\\epsilon_{v}]`
    for every separation :math:`r`, extended on both sides by ``taper`` decades
    over which the input function is smoothly tapered to zero.
    """
    def __init__(self, ell, coef, r, veps, samples_per_decade, taper=0.2, minfolds=2, engine='numpy'):
        """
        Initialize :class:`MultipoleTransform`.

        Parameters
        ----------
        ell : int
            Multipole order.

        coef : float
            Normalization coefficient, see :func:`multipole_transform_normalization`.

        r : array_like
            Separations where to evaluate the transform.

        veps : float
            Truncation parameter, in (0, 1).

        samples_per_decade : float
            Minimum number of wavenumber samples per decade.

        taper : float, default=0.2
            Width of the edge tapers, in decades.

        minfolds : int, default=2
            Zero-padding factor, see :class:`FFTlog`.

        engine : string, default='numpy'
            FFT engine, see :func:`fftlog.get_engine`.
        """
        self.ell = ell
        self.coef = coef
        self.r = np.array(r, dtype='f8', ndmin=1)
        if np.any(self.r <= 0.):
            raise ValueError('Separations must be positive')
        if not 0. < veps < 1.:
            raise ValueError('veps must be in (0, 1), got {}'.format(veps))
        if samples_per_decade < 1:
            raise ValueError('samples_per_decade must be >= 1, got {}'.format(samples_per_decade))
        self.veps = veps
        self.taper = taper
        self.kmin = veps / self.r.max() / 10**taper
        self.kmax = 10**taper / (veps * self.r.min())
        self.nk = int(np.ceil(np.log10(self.kmax / self.kmin) * samples_per_decade)) + 1
        self.k = np.geomspace(self.kmin, self.kmax, self.nk)
        self.window = taper_window(self.k, left=taper, right=taper)
        self.fftlog = SphericalBesselTransform(self.k, ell=ell, coef=coef, minfolds=minfolds, engine=engine)

    @property
    def samples_per_decade(self):
        """Achieved number of wavenumber samples per decade."""
        return (self.nk - 1) / np.log10(self.kmax / self.kmin)

    def __call__(self, fun):
        """Return transform of the function of wavenumber ``fun`` at separations :attr:`r`."""
        fk = np.broadcast_to(np.asarray(fun(self.k), dtype='f8'), self.k.shape)
        s, xi = self.fftlog(fk * self.window)
        return interpolate.CubicSpline(np.log(s), xi)(np.log(self.r))


class AdaptiveMultipoleTransform(BaseClass):
    r"""
    Spherical Bessel transform whose wavenumber sampling is adapted to meet the accuracy goal,
    at each separation :math:`r`:

    .. math::

        |\xi(r) - \xi_{\mathrm{ref}}(r)| \leq \max(\epsilon_{\mathrm{rel}} |\xi_{\mathrm{ref}}(r)|, \epsilon_{\mathrm{abs}} r^{p})

    where :math:`\xi_{\mathrm{ref}}` is obtained with the most accurate sampling.
    """
    _noptimize = 4

    def __init__(self, ell, coef, r, relerr, abserr, abspow, taper=0.2, engine='numpy'):
        """
        Initialize :class:`AdaptiveMultipoleTransform`.

        Parameters
        ----------
        ell : int
            Multipole order.

        coef : float
            Normalization coefficient, see :func:`multipole_transform_normalization`.

        r : array_like
            Separations where to evaluate the transform.

        relerr : float
            Relative accuracy goal.

        abserr : float
            Absolute accuracy goal, at :math:`r = 1`.

        abspow : float
            Power of :math:`r` scaling the absolute accuracy goal.

        taper : float, default=0.2
            Width of the edge tapers, in decades.

        engine : string, default='numpy'
            FFT engine, see :func:`fftlog.get_engine`.
        """
        if relerr <= 0.:
            raise ValueError('relerr must be positive, got {}'.format(relerr))
        if abserr < 0.:
            raise ValueError('abserr must be non-negative, got {}'.format(abserr))
        self.ell = ell
        self.coef = coef
        self.r = np.array(r, dtype='f8', ndmin=1)
        self.relerr = relerr
        self.abserr = abserr
        self.abspow = abspow
        self.taper = taper
        self.engine = engine
        self._transform = self._reference = None

    @property
    def is_initialized(self):
        """Whether :meth:`initialize` has been called."""
        return self._transform is not None

    def _get_transform(self, veps, samples_per_decade):
        return MultipoleTransform(self.ell, self.coef, self.r, veps, samples_per_decade, taper=self.taper, engine=self.engine)

    def _get_initialized_transform(self):
        if not self.is_initialized:
            raise NotInitializedError('Call initialize() first')
        return self._transform

    @property
    def veps(self):
        """Truncation parameter of the chosen sampling."""
        return self._get_initialized_transform().veps

    @property
    def kmin(self):
        """Minimum wavenumber of the chosen sampling."""
        return self._get_initialized_transform().kmin

    @property
    def kmax(self):
        """Maximum wavenumber of the chosen sampling."""
        return self._get_initialized_transform().kmax

    @property
    def nk(self):
        """Number of wavenumbers of the chosen sampling."""
        return self._get_initialized_transform().nk

    @property
    def samples_per_decade(self):
        """Number of wavenumbers per decade of the chosen sampling."""
        return self._get_initialized_transform().samples_per_decade

    def get_tolerance(self, xi_ref, margin=1.):
        """Return tolerated absolute difference to ``xi_ref``, tightened by ``margin``."""
        return np.maximum(self.relerr * np.abs(xi_ref), self.abserr * self.r**self.abspow) / margin

    def is_accurate(self, xi, xi_ref, margin=1.):
        """Whether ``xi`` matches ``xi_ref`` within tolerance."""
        return bool(np.all(np.abs(xi - xi_ref) <= self.get_tolerance(xi_ref, margin=margin)))

    def initialize(self, fun, out, min_samples_per_decade, margin=2., veps_max=0.01, veps_min=1e-6, optimize=False):
        """
        Choose the wavenumber sampling meeting the accuracy goal tightened by ``margin``,
        and write the corresponding transform of ``fun`` into ``out``.

        Parameters
        ----------
        fun : callable
            Function of wavenumber to transform.

        out : array
            Output array, of the size of :attr:`r`, filled in place.

        min_samples_per_decade : int
            Minimum number of wavenumber samples per decade.

        margin : float, default=2.
            Factor (>= 1) by which the accuracy goal is tightened during initialization.

        veps_max : float, default=0.01
            Largest (least accurate) truncation parameter to try, < 1.

        veps_min : float, default=1e-6
            Smallest truncation parameter, used for the reference transform.

        optimize : bool, default=False
            If ``True``, bisect to find the largest truncation parameter meeting the accuracy goal.

        Returns
        -------
        accurate : bool
            Whether the accuracy goal was met.
        """
        if margin < 1.:
            raise ValueError('margin must be >= 1, got {}'.format(margin))
        if veps_min <= 0. or veps_max <= veps_min:
            raise ValueError('Expected 0 < veps_min < veps_max, got {} and {}'.format(veps_min, veps_max))
        if veps_max >= 1.:
            raise ValueError('veps_max must be < 1, got {}'.format(veps_max))
        self._reference = self._get_transform(veps_min, 2 * min_samples_per_decade)
        xi_ref = self._reference(fun)

        veps, veps_fail, accurate = veps_max, None, False
        while True:
            transform = self._get_transform(veps, min_samples_per_decade)
            xi = transform(fun)
            if self.is_accurate(xi, xi_ref, margin=margin):
                accurate = True
                break
            if veps <= veps_min:
                break
            veps_fail = veps
            veps = max(veps / 2., veps_min)

        if accurate and optimize and veps_fail is not None:
            for i in range(self._noptimize):
                veps_mid = np.sqrt(veps * veps_fail)
                transform_mid = self._get_transform(veps_mid, min_samples_per_decade)
                xi_mid = transform_mid(fun)
                if self.is_accurate(xi_mid, xi_ref, margin=margin):
                    veps, transform, xi = veps_mid, transform_mid, xi_mid
                else:
                    veps_fail = veps_mid

        if not accurate:
            self.log_warning('ell = {:d} transform did not meet accuracy goal (relerr = {:.3g}, abserr = {:.3g}) down to veps = {:.3g}.'.format(self.ell, self.relerr, self.abserr, veps_min))
        self.log_debug('ell = {:d} transform initialized with veps = {:.3g}, nk = {:d}.'.format(self.ell, veps, transform.nk))
        self._transform = transform
        out[...] = xi
        return accurate

    def transform(self, fun, out, bypass_termination_test=False):
        """
        Transform ``fun`` with the sampling chosen by :meth:`initialize`, writing the result into ``out``.

        Parameters
        ----------
        fun : callable
            Function of wavenumber to transform.

        out : array
            Output array, of the size of :attr:`r`, filled in place.

        bypass_termination_test : bool, default=False
            If ``True``, skip the comparison to the reference transform and report success.

        Returns
        -------
        accurate : bool
            Whether the accuracy goal was met (always ``True`` if ``bypass_termination_test``).
        """
        out[...] = self._get_initialized_transform()(fun)
        if bypass_termination_test:
            return True
        return self.is_accurate(out, self._reference(fun))
