"""
Implementation of the FFTlog algorithm, very much inspired by mcfit (https://github.com/eelregit/mcfit) and implementation in
https://github.com/sfschen/velocileptors/blob/master/velocileptors/Utils/spherical_bessel_transform_fftw.py,
restricted to one transform at a time, plus the edge tapering of FAST-PT.
"""

import os

import numpy as np
from scipy.special import loggamma


class FFTlog(object):
    r"""
    Implementation of the FFTlog algorithm presented in https://jila.colorado.edu/~ajsh/FFTLog/, which computes the generic integral:

    .. math::

        G(y) = \int_{0}^{\infty} \frac{dx}{x} F(x) K(xy)

    with :math:`F(x)` input function, :math:`K(xy)` a kernel.

    This transform is (mathematically) invariant under a power law transformation:

    .. math::

        G_{q}(y) = \int_{0}^{\infty} \frac{dx}{x} F_{q}(x) K_{q}(xy)

    where :math:`F_{q}(x) = G(x)x^{-q}`, :math:`K_{q}(t) = K(t)t^{q}` and :math:`G_{q}(y) = G(y)y^{q}`.
    """
    def __init__(self, x, kernel, q=0, minfolds=2, lowring=True, xy=1, check_level=0, engine='numpy', **engine_kwargs):
        r"""
        Initialize :class:`FFTlog`.

        Parameters
        ----------
        x : array_like
            Input log-spaced coordinates. Must be strictly increasing.

        kernel : callable
            Mellin transform of the kernel:
            .. math:: U_{K}(z) = \int_{0}^{\infty} t^{z-1} K(t) dt

        q : float
            Power-law tilt to regularise integration.

        minfolds : int
            The padded size is the minimum :math:`2^n` such that ``2**n > minfolds * x.size``.

        lowring : bool
            If ``True`` set output coordinates according to the low-ringing condition, otherwise set it with ``xy``.

        xy : float
            Enforce the reciprocal product (i.e. ``x[0] * y[-1]``) of the input ``x`` and output ``y`` coordinates.

        check_level : int
            If non-zero run sanity checks on input.

        engine : string, default='numpy'
            FFT engine. See :meth:`set_engine`.

        engine_kwargs : dict
            Arguments for FFT engine.
        """
        self.kernel = kernel
        self.q = q
        self.x = np.asarray(x, dtype='f8')
        if self.x.ndim != 1 or self.x.size < 2:
            raise ValueError('x must be a 1D array of at least 2 points')
        self.xy = xy
        self.check_level = check_level
        self.minfolds = minfolds
        self.lowring = lowring
        self.setup()
        self.set_engine(engine, **engine_kwargs)

    def set_engine(self, engine='numpy', **engine_kwargs):
        """
        Set up FFT engine.
        See :func:`get_engine`

        Parameters
        ----------
        engine : BaseFFTEngine, string, default='numpy'
            FFT engine, or one of ['numpy', 'fftw'].

        engine_kwargs : dict
            Arguments for FFT engine.
        """
        self._engine = get_engine(engine, size=self.padded_size, **engine_kwargs)

    def setup(self):
        """Set up u funtions."""
        self.size = self.x.size
        self.delta = np.log(self.x[-1] / self.x[0]) / (self.size - 1)

        nfolds = (self.size * self.minfolds - 1).bit_length()
        self.padded_size = 2**nfolds
        npad = self.padded_size - self.size
        self.padded_size_in_left, self.padded_size_in_right = npad // 2, npad - npad // 2
        self.padded_size_out_left, self.padded_size_out_right = npad - npad // 2, npad // 2

        if self.check_level:
            if not np.allclose(np.log(self.x[1:] / self.x[:-1]), self.delta, rtol=1e-3):
                raise ValueError('Input x must be log-spaced')

        if self.lowring:
            self.lnxy = self.delta / np.pi * np.angle(self.kernel(self.q + 1j * np.pi / self.delta))
        else:
            self.lnxy = np.log(self.xy) + self.delta

        self.y = np.exp(self.lnxy - self.delta) / self.x[::-1]

        m = np.arange(0, self.padded_size // 2 + 1)
        self.padded_x = pad(self.x, (self.padded_size_in_left, self.padded_size_in_right), extrap='log')
        self.padded_y = pad(self.y, (self.padded_size_out_left, self.padded_size_out_right), extrap='log')
        self.padded_prefactor = self.padded_x**(-self.q)
        self.padded_postfactor = self.padded_y**(-self.q)
        u = self.kernel(self.q + 2j * np.pi / self.padded_size / self.delta * m)
        self.padded_u = u * np.exp(-2j * np.pi * self.lnxy / self.padded_size / self.delta * m)

    def __call__(self, fun, extrap=0, keep_padding=False):
        """
        Perform the transform.

        Parameters
        ----------
        fun : array_like
            Function to be transformed.
            Last dimension should match the size of the input x-coordinates.

        extrap : float, string
            How to extrapolate function outside of ``x`` range to fit the integration range.
            If 'log', performs a log-log extrapolation.
            If 'edge', pad ``fun`` with its edge values.
            Else, pad ``fun`` with the provided value.
            Pass a tuple to differentiate between left and right sides.

        keep_padding : bool
            Whether to return function padded to the number of points in the integral.
            By default, crop it to its original size.

        Returns
        -------
        y : numpy.ndarray
            Array of new coordinates.

        fftloged : numpy.ndarray
            Transformed function.
        """
        padded_fun = pad(fun, (self.padded_size_in_left, self.padded_size_in_right), axis=-1, extrap=extrap)
        fftloged = self._engine.backward(self._engine.forward(padded_fun * self.padded_prefactor) * self.padded_u) * self.padded_postfactor
        if keep_padding:
            return self.padded_y, fftloged
        return self.y, fftloged[..., self.padded_size_out_left:self.padded_size_out_left + self.size]


class SphericalBesselTransform(FFTlog):
    r"""
    Spherical Bessel transform of order :math:`\ell`, defined as:

    .. math::
        g(r) = c \int dk k^{2} f(k) j_{\ell}(kr)

    With :math:`c = i^{\ell} / (2 \pi^{2})` this maps a power spectrum multipole onto a correlation function multipole.
    """
    def __init__(self, k, ell=0, coef=1., q=0, **kwargs):
        """
        Initialize spherical Bessel transform.

        Parameters
        ----------
        k : array_like
            Input log-spaced wavenumbers.

        ell : int
            Order of the spherical Bessel function.

        coef : float, default=1.
            Normalization coefficient :math:`c`.

        q : float
            Power-law tilt to regularise integration, on top of the 1.5 matching the :math:`k^{3}` of the integrand.

        kwargs : dict
            Arguments for :class:`FFTlog`.
        """
        self.ell = ell
        self.coef = coef
        FFTlog.__init__(self, k, SphericalBesselJKernel(ell), q=1.5 + q, **kwargs)
        # Kernel is sqrt(2/pi) j_ell
        self.padded_prefactor *= self.padded_x**3 * np.sqrt(np.pi / 2.)
        self.padded_postfactor *= coef


def pad(array, pad_width, axis=-1, extrap=0):
    """
    Pad array along ``axis``.

    Parameters
    ----------
    array : array_like
        Input array to be padded.

    pad_width : int, tuple of ints
        Number of points to be added on both sides of the array.
        Pass a tuple to differentiate between left and right sides.

    axis : int
        Axis along which padding is to be applied.

    extrap : string, float
        If 'log', performs a log-log extrapolation.
        If 'edge', pad ``array`` with its edge values.
        Else, pad ``array`` with the provided value.
        Pass a tuple to differentiate between left and right sides.

    Returns
    -------
    array : numpy.ndarray
        Padded array.
    """
    array = np.asarray(array)

    try:
        pad_width_left, pad_width_right = pad_width
    except (TypeError, ValueError):
        pad_width_left = pad_width_right = pad_width

    if isinstance(extrap, str):
        extrap_left = extrap_right = extrap
    else:
        try:
            extrap_left, extrap_right = extrap
        except (TypeError, ValueError):
            extrap_left = extrap_right = extrap

    axis = axis % array.ndim
    to_axis = [1] * array.ndim
    to_axis[axis] = -1

    def _pad_side(width, extrap, side):
        index, inner = (0, 1) if side == 'left' else (-1, -2)
        end = np.take(array, [index], axis=axis)
        if extrap == 'edge':
            return np.repeat(end, width, axis=axis)
        if extrap == 'log':
            ratio = np.take(array, [inner], axis=axis) / end
            if side == 'left':
                return end * ratio ** np.arange(-width, 0).reshape(to_axis)
            return end / ratio ** np.arange(1, width + 1).reshape(to_axis)
        return np.full(array.shape[:axis] + (width,) + array.shape[axis + 1:], extrap, dtype=array.dtype)

    return np.concatenate([_pad_side(pad_width_left, extrap_left, 'left'), array,
                           _pad_side(pad_width_right, extrap_right, 'right')], axis=axis)


def taper_window(x, left=0.2, right=0.2):
    r"""
    Window going smoothly from 0 at the edges of the log-spaced ``x`` to 1,
    as :math:`t - \sin(2 \pi t) / (2 \pi)` with :math:`t` the distance to the edge in units of the taper width.
    Adapted from FAST-PT's ``p_window``.

    Parameters
    ----------
    x : array_like
        Log-spaced coordinates.

    left : float, default=0.2
        Width of the low-end taper, in decades. 0 for no tapering.

    right : float, default=0.2
        Width of the high-end taper, in decades. 0 for no tapering.

    Returns
    -------
    window : numpy.ndarray
    """
    logx = np.log10(x)
    window = np.ones_like(logx)
    for width, distance in [(left, logx - logx[0]), (right, logx[-1] - logx)]:
        if width > 0:
            t = distance / width
            window *= np.where(t < 1., t - np.sin(2. * np.pi * t) / (2. * np.pi), 1.)
    return window


class BaseFFTEngine(object):

    """Base FFT engine."""

    def __init__(self, size, nthreads=None):
        """
        Initialize FFT engine.

        Parameters
        ----------
        size : int
            Array size.

        nthreads : int, default=None
            Number of threads.
        """
        self.size = size
        if nthreads is not None:
            os.environ['OMP_NUM_THREADS'] = str(nthreads)
        self.nthreads = int(os.environ.get('OMP_NUM_THREADS', 1))


class NumpyFFTEngine(BaseFFTEngine):

    """FFT engine based on :mod:`numpy.fft`."""

    def forward(self, fun):
        """Forward transform of ``fun``."""
        return np.fft.rfft(fun, axis=-1)

    def backward(self, fun):
        """Backward transform of ``fun``."""
        return np.fft.hfft(fun, n=self.size, axis=-1) / self.size


try: import pyfftw
except ImportError: pyfftw = None


class FFTWEngine(BaseFFTEngine):

    """FFT engine based on :mod:`pyfftw`."""

    def __init__(self, size, nthreads=None, wisdom=None, plan='measure'):
        """
        Initialize :mod:`pyfftw` engine.

        Parameters
        ----------
        size : int
            Array size.

        nthreads : int, default=None
            Number of threads.

        wisdom : string, tuple, default=None
            :mod:`pyfftw` wisdom, to speed up initialization of FFTs.
            If a string, should be a path to the save FFT wisdom (with :func:`numpy.save`).
            If a tuple, directly corresponds to the wisdom.

        plan : string, default='measure'
            Choices are ['estimate', 'measure', 'patient', 'exhaustive'].
            The increasing amount of effort spent during the planning stage to create the fastest possible transform.
            Usually 'measure' is a good compromise.
        """
        if pyfftw is None:
            raise NotImplementedError('Install pyfftw to use {}'.format(self.__class__.__name__))
        super(FFTWEngine, self).__init__(size, nthreads=nthreads)
        plan = plan.lower()
        allowed_plans = ['estimate', 'measure', 'patient', 'exhaustive']
        if plan not in allowed_plans:
            raise ValueError('Plan {} unknown'.format(plan))
        plan = 'FFTW_{}'.format(plan.upper())

        if isinstance(wisdom, str):
            wisdom = tuple(np.load(wisdom))
        if wisdom is not None:
            pyfftw.import_wisdom(wisdom)
        else:
            pyfftw.forget_wisdom()
        self.fftw_f = pyfftw.empty_aligned(self.size, dtype='float64')
        self.fftw_fk = pyfftw.empty_aligned(self.size // 2 + 1, dtype='complex128')
        self.fftw_gk = pyfftw.empty_aligned(self.size // 2 + 1, dtype='complex128')
        self.fftw_g = pyfftw.empty_aligned(self.size, dtype='float64')

        self.fftw_forward_object = pyfftw.FFTW(self.fftw_f, self.fftw_fk, direction='FFTW_FORWARD', flags=(plan,), threads=self.nthreads)
        self.fftw_backward_object = pyfftw.FFTW(self.fftw_gk, self.fftw_g, direction='FFTW_BACKWARD', flags=(plan,), threads=self.nthreads)

    def forward(self, fun):
        """Forward transform of ``fun``."""
        if fun.ndim > 1:
            return np.array([self.forward(f) for f in fun])
        self.fftw_f[...] = fun
        return self.fftw_forward_object(normalise_idft=True).copy()

    def backward(self, fun):
        """Backward transform of ``fun``."""
        if fun.ndim > 1:
            return np.array([self.backward(f) for f in fun])
        self.fftw_gk[...] = np.conj(fun)
        return self.fftw_backward_object(normalise_idft=True).copy()


def get_engine(engine, *args, **kwargs):
    """
    Return FFT engine.

    Parameters
    ----------
    engine : BaseFFTEngine, string
        FFT engine, or one of ['numpy', 'fftw'].

    args, kwargs : tuple, dict
        Arguments for FFT engine.

    Returns
    -------
    engine : BaseFFTEngine
    """
    if isinstance(engine, str):
        if engine.lower() == 'numpy':
            return NumpyFFTEngine(*args, **kwargs)
        if engine.lower() == 'fftw':
            return FFTWEngine(*args, **kwargs)
        raise ValueError('FFT engine {} is unknown'.format(engine))
    return engine


class BaseKernel(object):

    """Base kernel."""

    def __call__(self, z):
        return self.eval(z)

    def __eq__(self, other):
        return other.__class__ == self.__class__


class SphericalBesselJKernel(BaseKernel):

    r"""(Mellin transform of) spherical Bessel kernel :math:`\sqrt{2 / \pi} j_{\nu}`."""

    def __init__(self, nu):
        self.nu = nu

    def __eq__(self, other):
        return other.__class__ == self.__class__ and other.nu == self.nu

    def eval(self, z):
        return np.exp(np.log(2) * (z - 1.5) + loggamma(0.5 * (self.nu + z)) - loggamma(0.5 * (3 + self.nu - z)))
