import os
import logging
import tempfile

import numpy as np
import pytest

from pyxirmu import setup_logging, InvalidArgumentError, DomainError, NotInitializedError
from pyxirmu.utils import BaseClass, legendre, get_multipole


def test_legendre():
    mu = np.linspace(-1., 1., 11)
    assert np.allclose(legendre(0, mu), 1.)
    assert np.allclose(legendre(1, mu), mu)
    assert np.allclose(legendre(2, mu), (3. * mu**2 - 1.) / 2.)
    assert np.allclose(legendre(4, mu), (35. * mu**4 - 30. * mu**2 + 3.) / 8.)


def test_multipole():
    # mu^2 = 1/3 L_0 + 2/3 L_2
    poles = [get_multipole(lambda mu: mu**2, ell) for ell in range(5)]
    assert np.allclose(poles, [1. / 3., 0., 2. / 3., 0., 0.])
    k = np.logspace(-2, 0, 5)
    pole = get_multipole(lambda mu: k[:, None] * (1. + mu**2), 0, nmu=10)
    assert pole.shape == k.shape
    assert np.allclose(pole, 4. / 3. * k)
    with pytest.raises(ValueError):
        get_multipole(lambda mu: mu, -1)


def test_exceptions():
    assert issubclass(InvalidArgumentError, ValueError)
    assert issubclass(DomainError, ValueError)
    assert issubclass(NotInitializedError, RuntimeError)


def test_base_class():

    class Dummy(BaseClass):

        def __init__(self, value):
            self.value = value

    dummy = Dummy(1.)
    copy = dummy.copy()
    assert copy is not dummy and copy.value == dummy.value
    copy = dummy.copy(value=2.)
    assert copy.value == 2. and dummy.value == 1.
    assert isinstance(Dummy.logger, logging.Logger) and Dummy.logger.name == 'Dummy'
    dummy.log_info('Dummy info.')
    dummy.log_debug('Dummy debug.')


def test_logging():
    with tempfile.TemporaryDirectory() as tmp_dir:
        fn = os.path.join(tmp_dir, 'log', 'test.log')
        setup_logging('debug', filename=fn)
        logger = logging.getLogger('Test')
        logger.info('Logging to file.')
        for handler in logging.root.handlers:
            handler.flush()
        assert os.path.isfile(fn)
        with open(fn, 'r') as file:
            assert 'Logging to file.' in file.read()
        for handler in logging.root.handlers:
            handler.close()
    setup_logging()
    assert logging.root.level == logging.INFO


if __name__ == '__main__':

    setup_logging()
    test_legendre()
    test_multipole()
    test_exceptions()
    test_base_class()
    test_logging()
