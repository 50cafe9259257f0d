"""A few utilities: logging, base class, exceptions and angular multipoles."""

import os
import sys
import time
import logging
import traceback

import numpy as np
from scipy import special


class InvalidArgumentError(ValueError):

    """Raised when construction or calibration parameters are malformed."""


class DomainError(ValueError):

    """Raised when an accessor is called with out-of-range arguments."""


class NotInitializedError(RuntimeError):

    """Raised when a quantity is requested before it has been computed."""


def exception_handler(exc_type, exc_value, exc_traceback):
    """Print exception with a logger."""
    # Do not print traceback if the exception has been handled and logged
    _logger_name = 'Exception'
    log = logging.getLogger(_logger_name)
    line = '='*100
    log.critical('\n' + line + '\n' + ''.join(traceback.format_exception(exc_type, exc_value, exc_traceback)) + line)
    if exc_type is KeyboardInterrupt:
        log.critical('Interrupted by the user.')
    else:
        log.critical('An error occured.')


def mkdir(dirname):
    """Try to create ``dirname`` and catch :class:`OSError`."""
    try:
        os.makedirs(dirname)
    except OSError:
        return


def setup_logging(level=logging.INFO, stream=sys.stdout, filename=None, filemode='w', **kwargs):
    """
    Set up logging.

    Parameters
    ----------
    level : string, int, default=logging.INFO
        Logging level.

    stream : _io.TextIOWrapper, default=sys.stdout
        Where to stream.

    filename : string, default=None
        If not ``None`` stream to file name.

    filemode : string, default='w'
        Mode to open file, only used if filename is not ``None``.

    kwargs : dict
        Other arguments for :func:`logging.basicConfig`.
    """
    # Cannot provide stream and filename kwargs at the same time to logging.basicConfig, so handle different cases
    if isinstance(level, str):
        level = {'info': logging.INFO, 'debug': logging.DEBUG, 'warning': logging.WARNING}[level.lower()]
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    t0 = time.time()

    class MyFormatter(logging.Formatter):

        def format(self, record):
            self._style._fmt = '[%09.2f] ' % (time.time() - t0) + ' %(asctime)s %(name)-28s %(levelname)-8s %(message)s'
            return super(MyFormatter, self).format(record)

    fmt = MyFormatter(datefmt='%m-%d %H:%M ')
    if filename is not None:
        mkdir(os.path.dirname(filename))
        handler = logging.FileHandler(filename, mode=filemode)
    else:
        handler = logging.StreamHandler(stream=stream)
    handler.setFormatter(fmt)
    logging.basicConfig(level=level, handlers=[handler], **kwargs)
    sys.excepthook = exception_handler


class BaseMetaClass(type):

    """Metaclass to add logging attributes to :class:`BaseClass` derived classes."""

    def __new__(meta, name, bases, class_dict):
        cls = super().__new__(meta, name, bases, class_dict)
        cls.set_logger()
        return cls

    def set_logger(cls):
        """
        Add attributes for logging:

        - logger
        - methods log_debug, log_info, log_warning, log_error, log_critical
        """
        cls.logger = logging.getLogger(cls.__name__)

        def make_logger(level):

            @classmethod
            def logger(cls, *args, **kwargs):
                return getattr(cls.logger, level)(*args, **kwargs)

            return logger

        for level in ['debug', 'info', 'warning', 'error', 'critical']:
            setattr(cls, 'log_{}'.format(level), make_logger(level))


class BaseClass(object, metaclass=BaseMetaClass):
    """
    Base class that implements :meth:`copy`.
    To be used throughout this package.
    """
    def __copy__(self):
        new = self.__class__.__new__(self.__class__)
        new.__dict__.update(self.__dict__)
        return new

    def copy(self, **kwargs):
        new = self.__copy__()
        new.__dict__.update(kwargs)
        return new


def legendre(ell, mu):
    """Return Legendre polynomial of order ``ell`` evaluated at ``mu``."""
    return special.legendre(ell)(mu)


def get_multipole(fun, ell, nmu=40):
    r"""
    Return multipole of order ``ell`` of the function ``fun`` of :math:`\mu`:

    .. math::

        f_{\ell} = \frac{2 \ell + 1}{2} \int_{-1}^{1} d\mu f(\mu) \mathcal{L}_{\ell}(\mu)

    Parameters
    ----------
    fun : callable
        Function of :math:`\mu`, taking an array of :math:`\mu` values and returning
        an array whose last axis runs along :math:`\mu`.

    ell : int
        Multipole order.

    nmu : int, default=40
        Number of Gauss-Legendre nodes.

    Returns
    -------
    multipole : float, array
        Multipole, with the shape of ``fun`` output minus the last axis.
    """
    if ell < 0:
        raise ValueError('Multipole order must be non-negative, got {}'.format(ell))
    mu, wmu = np.polynomial.legendre.leggauss(nmu)
    weights = (2 * ell + 1) / 2. * wmu * legendre(ell, mu)
    return np.sum(np.asarray(fun(mu)) * weights, axis=-1)
