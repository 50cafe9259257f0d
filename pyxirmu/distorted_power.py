r"""
Implementation of the anisotropic correlation function :math:`\xi(r, \mu)` of a power spectrum :math:`P(k)`
modified by a distortion :math:`D(k, \mu)` (e.g. redshift-space distortions):

.. math::

    P_{\ell}(k) = P(k) \frac{2 \ell + 1}{2} \int_{-1}^{1} d\mu D(k, \mu) \mathcal{L}_{\ell}(\mu)

    \xi(r, \mu) = \sum_{\ell} \xi_{\ell}(r) \mathcal{L}_{\ell}(\mu)

where each :math:`\xi_{\ell}` is the spherical Bessel transform of :math:`P_{\ell}`, see :mod:`transform`.
"""

import time
import functools

import numpy as np

from .utils import BaseClass, InvalidArgumentError, DomainError, NotInitializedError, legendre, get_multipole
from .interpolator import Interpolator, TabulatedPower
from .transform import AdaptiveMultipoleTransform, multipole_transform_normalization


class DistortedPowerCorrelation(BaseClass):
    """
    Correlation function multipoles of a distorted power spectrum.

    Power spectrum multipoles are tabulated on a log-spaced wavenumber grid, transformed with one
    :class:`AdaptiveMultipoleTransform` per multipole, and correlation function multipoles
    are interpolated on a linearly-spaced separation grid.
    Relative accuracy goals of each multipole are calibrated by :meth:`initialize`
    according to its largest contribution to :math:`\\xi(r, \\mu)`.

    Note
    ----
    :meth:`initialize` and :meth:`transform` update internal state in place;
    calls must be serialized by the caller.

    Attributes
    ----------
    kgrid : array
        Log-spaced wavenumbers where power spectrum multipoles are tabulated.

    rgrid : array
        Linearly-spaced separations where correlation function multipoles are computed.

    ells : list
        Multipole orders.
    """
    def __init__(self, power, distortion, klo, khi, nk, rmin, rmax, nr, ellmax, symmetric=True,
                 relerr=1e-2, abserr=1e-5, abspow=0., mu_order=40, engine='numpy'):
        r"""
        Initialize :class:`DistortedPowerCorrelation`.

        Parameters
        ----------
        power : callable
            Power spectrum, taking wavenumbers (array) as input.

        distortion : callable
            Distortion :math:`D(k, \mu)`, taking (broadcastable) arrays of wavenumbers and :math:`\mu` as input.

        klo : float
            Minimum wavenumber of the tabulation grid, > 0.

        khi : float
            Maximum wavenumber of the tabulation grid, > ``klo``.

        nk : int
            Number of log-spaced wavenumbers, >= 2.

        rmin : float
            Minimum separation, > 0.

        rmax : float
            Maximum separation, > ``rmin``.

        nr : int
            Number of linearly-spaced separations, >= 2.

        ellmax : int
            Maximum multipole order, >= 0.

        symmetric : bool, default=True
            If ``True``, :math:`D(k, \mu)` is assumed even in :math:`\mu` and only even multipoles are computed;
            ``ellmax`` must then be even.

        relerr : float, default=1e-2
            Relative accuracy goal on :math:`\xi(r, \mu)`.

        abserr : float, default=1e-5
            Absolute accuracy goal on :math:`\xi(r, \mu)` at :math:`r = 1`.

        abspow : float, default=0.
            The absolute accuracy goal at :math:`r` is ``abserr * r**abspow``.

        mu_order : int, default=40
            Number of Gauss-Legendre nodes for the :math:`\mu`-integration of the distortion.

        engine : string, default='numpy'
            FFT engine, 'numpy' or 'fftw'.
        """
        if klo <= 0:
            raise InvalidArgumentError('Expected klo > 0, got {}'.format(klo))
        if khi <= klo:
            raise InvalidArgumentError('Expected klo < khi, got {} and {}'.format(klo, khi))
        if nk < 2:
            raise InvalidArgumentError('Expected nk >= 2, got {}'.format(nk))
        if rmin <= 0:
            raise InvalidArgumentError('Expected rmin > 0, got {}'.format(rmin))
        if rmax <= rmin:
            raise InvalidArgumentError('Expected rmin < rmax, got {} and {}'.format(rmin, rmax))
        if nr < 2:
            raise InvalidArgumentError('Expected nr >= 2, got {}'.format(nr))
        if ellmax < 0:
            raise InvalidArgumentError('Expected ellmax >= 0, got {}'.format(ellmax))
        if symmetric and ellmax % 2:
            raise InvalidArgumentError('Expected even ellmax when symmetric, got {}'.format(ellmax))
        if relerr <= 0:
            raise InvalidArgumentError('Expected relerr > 0, got {}'.format(relerr))
        if abserr < 0:
            raise InvalidArgumentError('Expected abserr >= 0, got {}'.format(abserr))
        if mu_order < 1:
            raise InvalidArgumentError('Expected mu_order >= 1, got {}'.format(mu_order))
        self.power = power
        self.distortion = distortion
        self.ellmax = int(ellmax)
        self.symmetric = bool(symmetric)
        self.relerr = relerr
        self.abserr = abserr
        self.abspow = abspow
        self.mu_order = int(mu_order)
        self.engine = engine

        self.kgrid = np.geomspace(klo, khi, int(nk))
        self.min_samples_per_decade = int(np.ceil(nk / np.log10(khi / klo)))
        self.rgrid = np.linspace(rmin, rmax, int(nr))
        self.log_debug('Using {:d} log-spaced k in [{:.4g}, {:.4g}] and {:d} linear-spaced r in [{:.4g}, {:.4g}].'.format(self.kgrid.size, klo, khi, self.rgrid.size, rmin, rmax))

        self.ells = list(range(0, self.ellmax + 1, self.dell))
        # Provisional accuracy goals, until calibrated by initialize()
        self._transformer = [self._get_transformer(ell, relerr / 10., abserr / (2 * self.nells)) for ell in self.ells]
        self._xi_moments = [np.zeros(self.rgrid.size, dtype='f8') for ell in self.ells]
        self._interpolator = [None] * self.nells
        self._saved_power_multipole = [None] * self.nells
        self._rbig = np.zeros(self.nells, dtype='f8')
        self._mubig = np.zeros(self.nells, dtype='f8')
        self._relbig = np.zeros(self.nells, dtype='f8')
        self._initialized = False

    @property
    def dell(self):
        """Step between multipole orders."""
        return 2 if self.symmetric else 1

    @property
    def nells(self):
        """Number of multipoles."""
        return len(self.ells)

    @property
    def is_initialized(self):
        """Whether :meth:`initialize` has completed."""
        return self._initialized

    def _get_transformer(self, ell, relerr, abserr):
        coef = multipole_transform_normalization(ell, ndim=3, sign=+1)
        return AdaptiveMultipoleTransform(ell, coef, self.rgrid, relerr, abserr, self.abspow, engine=self.engine)

    def _get_index(self, ell):
        # Index of multipole ell in per-multipole lists
        if int(ell) != ell or ell < 0 or ell > self.ellmax or (self.symmetric and ell % 2):
            raise DomainError('Invalid multipole order ell = {} (ellmax = {:d}, symmetric = {})'.format(ell, self.ellmax, self.symmetric))
        return int(ell) // self.dell

    def _check_initialized(self):
        if not self._initialized:
            raise NotInitializedError('Call initialize() first')

    @staticmethod
    def _check_mu(mu):
        if not np.all(np.abs(mu) <= 1.):
            raise DomainError('Expected -1 <= mu <= 1')

    def get_power(self, k, mu):
        r"""Return distorted power spectrum :math:`P(k) D(k, \mu)`."""
        self._check_mu(mu)
        return self.power(k) * self.distortion(k, mu)

    def get_power_multipole(self, k, ell):
        """Return power spectrum multipole of order ``ell`` at ``k``, integrating the distortion over :math:`\\mu`."""
        self._get_index(ell)
        k = np.asarray(k, dtype='f8')
        multipole = get_multipole(lambda mu: self.distortion(k[..., None], mu), ell, nmu=self.mu_order)
        return self.power(k) * multipole

    def _init_power_multipoles(self):
        # Tabulate power spectrum multipoles on kgrid
        t0 = time.time()
        for ill, ell in enumerate(self.ells):
            pk = np.broadcast_to(self.get_power_multipole(self.kgrid, ell), self.kgrid.shape)
            self._saved_power_multipole[ill] = TabulatedPower(self.kgrid, pk, extrapolate_below=True, extrapolate_above=True)
        self.log_debug('Power spectrum multipoles tabulated in elapsed time {:.2f} s.'.format(time.time() - t0))

    def get_saved_power_multipole(self, k, ell):
        """Return power spectrum multipole of order ``ell`` at ``k``, interpolated from its tabulation on :attr:`kgrid`."""
        ill = self._get_index(ell)
        if self._saved_power_multipole[ill] is None:
            raise NotInitializedError('Power spectrum multipole ell = {} has not been tabulated yet'.format(ell))
        return self._saved_power_multipole[ill](k)

    def _get_k_function(self, ell, saved=True):
        return functools.partial(self.get_saved_power_multipole if saved else self.get_power_multipole, ell=ell)

    def _set_interpolator(self, ill):
        self._interpolator[ill] = Interpolator(self.rgrid, self._xi_moments[ill], kind='cspline')

    def initialize(self, nmu=20, margin=2., veps_max=0.01, veps_min=1e-6, optimize=False):
        r"""
        Compute correlation function multipoles, calibrating accuracy goals of each multipole.

        A first pass transforms all multipoles with provisional accuracy goals.
        The largest relative contribution of each multipole to :math:`\xi(r, \mu)` is then measured on :attr:`rgrid`
        times ``nmu`` values of :math:`\mu`, and the relative accuracy goal of each multipole is set to
        ``relerr / nells`` divided by this contribution (if non-zero), the absolute one to ``abserr / nells``.
        A second pass transforms all multipoles with these goals.

        Parameters
        ----------
        nmu : int, default=20
            Number of :math:`\mu` values, in :math:`[0, 1]` if :attr:`symmetric` else :math:`[-1, 1]`, >= 2.

        margin : float, default=2.
            Factor (>= 1) tightening the accuracy goals when choosing the transform sampling.

        veps_max : float, default=0.01
            Largest truncation parameter tried by the transforms, < 1.

        veps_min : float, default=1e-6
            Smallest truncation parameter, > 0 and < ``veps_max``.

        optimize : bool, default=False
            Whether the second pass should refine the sampling to the least expensive one meeting the accuracy goals.
        """
        if nmu < 2:
            raise InvalidArgumentError('Expected nmu >= 2, got {}'.format(nmu))
        if margin < 1:
            raise InvalidArgumentError('Expected margin >= 1, got {}'.format(margin))
        if veps_max <= veps_min:
            raise InvalidArgumentError('Expected veps_max > veps_min, got {} and {}'.format(veps_max, veps_min))
        if veps_min <= 0:
            raise InvalidArgumentError('Expected veps_min > 0, got {}'.format(veps_min))
        if veps_max >= 1:
            raise InvalidArgumentError('Expected veps_max < 1, got {}'.format(veps_max))
        t0 = time.time()
        self._initialized = False
        self._init_power_multipoles()
        for ill, ell in enumerate(self.ells):
            self._transformer[ill].initialize(self._get_k_function(ell), self._xi_moments[ill], self.min_samples_per_decade,
                                              margin=margin, veps_max=veps_max, veps_min=veps_min, optimize=False)
            self._set_interpolator(ill)
        t1 = time.time()
        self.log_info('Provisional transforms computed in elapsed time {:.2f} s.'.format(t1 - t0))

        self._calibrate(nmu)

        ninaccurate = 0
        for ill, ell in enumerate(self.ells):
            relerr = self.relerr / self.nells
            # _relbig is zero if xi(r, mu) is negligible everywhere
            if self._relbig[ill] > 0.:
                relerr /= self._relbig[ill]
            self.log_debug('ell = {:d}: biggest contribution {:.4g} at (r = {:.4g}, mu = {:.4g}), relerr = {:.4g}.'.format(ell, self._relbig[ill], self._rbig[ill], self._mubig[ill], relerr))
            self._transformer[ill] = self._get_transformer(ell, relerr, self.abserr / self.nells)
            accurate = self._transformer[ill].initialize(self._get_k_function(ell), self._xi_moments[ill], self.min_samples_per_decade,
                                                         margin=margin, veps_max=veps_max, veps_min=veps_min, optimize=optimize)
            ninaccurate += not accurate
            self._set_interpolator(ill)
        if ninaccurate:
            self.log_warning('{:d} / {:d} multipoles did not meet their accuracy goal.'.format(ninaccurate, self.nells))
        self._initialized = True
        self.log_info('Correlation function multipoles computed in elapsed time {:.2f} s.'.format(time.time() - t0))

    def _calibrate(self, nmu):
        # Find the biggest relative contribution of each multipole to xi(r, mu), on rgrid x mu
        dmu = 2. / self.dell / (nmu - 1.)
        mu = 1. - dmu * np.arange(nmu)
        xi = np.array([interpolator(self.rgrid) for interpolator in self._interpolator])
        poly = np.array([legendre(ell, mu) for ell in self.ells])
        terms = xi[:, :, None] * poly[:, None, :]
        xisum = np.sum(terms, axis=0)
        # Skip (r, mu) where xi is negligible
        mask = (np.abs(xisum) >= self.abserr * self.rgrid[:, None]**self.abspow) & (xisum != 0.)
        relfrac = np.zeros_like(terms)
        np.divide(np.abs(terms), np.abs(xisum), out=relfrac, where=mask[None, ...])
        relfrac = relfrac.reshape(self.nells, -1)
        # argmax returns the first occurrence, iterating over r then mu
        imax = np.argmax(relfrac, axis=-1)
        self._relbig = relfrac[np.arange(self.nells), imax]
        ir, imu = np.unravel_index(imax, (self.rgrid.size, nmu))
        found = self._relbig > 0.
        self._rbig = np.where(found, self.rgrid[ir], 0.)
        self._mubig = np.where(found, mu[imu], 0.)

    def transform(self, interpolate_power_multipoles=True, bypass_termination_test=False):
        """
        Recompute correlation function multipoles with the current accuracy goals, without recalibration.
        Must be called after :meth:`initialize`.

        Parameters
        ----------
        interpolate_power_multipoles : bool, default=True
            If ``True``, tabulate power spectrum multipoles again and transform their interpolation;
            else transform power spectrum multipoles integrated on-the-fly (slower, no interpolation error).

        bypass_termination_test : bool, default=False
            If ``True``, do not check transforms against their reference.

        Returns
        -------
        accurate : bool
            Whether all multipoles met their accuracy goal.
        """
        if interpolate_power_multipoles:
            self._init_power_multipoles()
        accurate = True
        for ill, ell in enumerate(self.ells):
            fun = self._get_k_function(ell, saved=interpolate_power_multipoles)
            accurate &= self._transformer[ill].transform(fun, self._xi_moments[ill], bypass_termination_test=bypass_termination_test)
            self._set_interpolator(ill)
        return accurate

    def get_correlation_multipole(self, r, ell):
        """Return correlation function multipole of order ``ell`` at ``r``."""
        self._check_initialized()
        ill = self._get_index(ell)
        r = np.asarray(r, dtype='f8')
        if np.any((r < self.rgrid[0]) | (r > self.rgrid[-1])):
            raise DomainError('Expected {:.4g} <= r <= {:.4g}'.format(self.rgrid[0], self.rgrid[-1]))
        return self._interpolator[ill](r)

    def get_correlation(self, r, mu):
        r"""Return correlation function :math:`\xi(r, \mu)`."""
        self._check_initialized()
        self._check_mu(mu)
        return sum(self.get_correlation_multipole(r, ell) * legendre(ell, mu) for ell in self.ells)

    def get_transform(self, ell):
        """Return :class:`AdaptiveMultipoleTransform` instance for multipole ``ell``."""
        return self._transformer[self._get_index(ell)]

    def get_biggest_contribution(self, ell):
        """
        Return the biggest relative contribution of multipole ``ell`` to :math:`\\xi(r, \\mu)`
        found during :meth:`initialize`.

        Returns
        -------
        r : float
            Separation of the biggest contribution (0 if none).

        mu : float
            :math:`\\mu` of the biggest contribution (0 if none).

        rel : float
            Absolute value of the ratio of the multipole term to :math:`\\xi(r, \\mu)`.
        """
        self._check_initialized()
        ill = self._get_index(ell)
        return float(self._rbig[ill]), float(self._mubig[ill]), float(self._relbig[ill])

    def summary(self):
        """Return a summary of grids and multipole transforms."""
        lines = ['P(k, mu) interpolated at {:d} log-spaced points covering k = [{:.4g}, {:.4g}] h/Mpc'.format(self.kgrid.size, self.kgrid[0], self.kgrid[-1]),
                 'xi(r, mu) interpolated at {:d} linear-spaced points covering r = [{:.4g}, {:.4g}] Mpc/h'.format(self.rgrid.size, self.rgrid[0], self.rgrid[-1]),
                 'using {} multipoles up to ell = {:d}'.format('even' if self.symmetric else 'even+odd', self.ellmax)]
        if not self._initialized:
            lines.append('not initialized')
            return '\n'.join(lines)
        for ell in self.ells:
            r, mu, rel = self.get_biggest_contribution(ell)
            amt = self.get_transform(ell)
            lines.append('initialized ell = {:d} adaptive transform:'.format(ell))
            lines.append('  relerr = {:.4g} @(r = {:.4g} Mpc/h, mu = {:.4g}, rel = {:.4g}), abserr = {:.4g} (abspow = {:.4g}),'.format(amt.relerr, r, mu, rel, amt.abserr, amt.abspow))
            lines.append('  veps = {:.4g}, kmin = {:.4g} h/Mpc, kmax = {:.4g} h/Mpc, nk = {:d} ({:d} samples/decade)'.format(amt.veps, amt.kmin, amt.kmax, amt.nk, int(np.floor(amt.samples_per_decade))))
        return '\n'.join(lines)

    def __str__(self):
        return self.summary()

    def log_summary(self):
        """Log :meth:`summary`."""
        for line in self.summary().split('\n'):
            self.log_info(line)
