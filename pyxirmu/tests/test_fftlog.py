import os
import warnings

import numpy as np
import pytest

from pyxirmu.fftlog import FFTlog, SphericalBesselTransform, SphericalBesselJKernel, pad, taper_window, get_engine, NumpyFFTEngine


def test_pad():
    array = np.arange(1., 5.)
    assert np.allclose(pad(array, 2, extrap=0.), [0., 0., 1., 2., 3., 4., 0., 0.])
    assert np.allclose(pad(array, (1, 2), extrap='edge'), [1., 1., 2., 3., 4., 4., 4.])
    array = 2.**np.arange(4)
    assert np.allclose(pad(array, (2, 1), extrap='log'), 2.**np.arange(-2, 5))
    assert np.allclose(pad(array, 1, extrap=(0., 'edge')), [0., 1., 2., 4., 8., 8.])
    array = np.ones((3, 4))
    assert pad(array, 2, axis=-1).shape == (3, 8)
    assert pad(array, 2, axis=0).shape == (7, 4)


def test_taper_window():
    x = np.logspace(-3, 3, 601)
    window = taper_window(x, left=0.5, right=1.)
    assert np.allclose(window[[0, -1]], 0.)
    assert np.all((window >= 0.) & (window <= 1.))
    mask = (x >= 10**-2.5) & (x <= 10**2.)
    assert np.allclose(window[mask], 1.)
    assert np.all(np.diff(window[x < 1e-2]) >= 0.)
    assert np.all(np.diff(window[x > 1e2]) <= 0.)
    assert np.allclose(taper_window(x, left=0., right=0.), 1.)


def test_engine():
    engine = get_engine('numpy', size=16)
    assert isinstance(engine, NumpyFFTEngine)
    assert get_engine(engine) is engine
    with pytest.raises(ValueError):
        get_engine('unknown', size=16)
    fun = np.random.RandomState(seed=42).uniform(size=16)
    assert np.allclose(engine.backward(engine.forward(fun).conj()), fun)


def test_fftlog():
    k = np.logspace(-5, 2, 1024)
    fftlog = FFTlog(k, SphericalBesselJKernel(0), q=1.5, check_level=1)
    assert fftlog.padded_size == 2048
    assert fftlog.y.size == k.size and np.all(np.diff(fftlog.y) > 0.)
    y, fun = fftlog(np.exp(-k**2 / 2.), keep_padding=True)
    assert y.size == fun.size == fftlog.padded_size
    with pytest.raises(ValueError):
        FFTlog(np.linspace(1., 2., 10), SphericalBesselJKernel(0), check_level=1)
    with pytest.raises(ValueError):
        FFTlog([1.], SphericalBesselJKernel(0))


def test_escape_sequences():
    import pyxirmu
    dirname = os.path.dirname(pyxirmu.__file__)
    for basename in sorted(os.listdir(dirname)):
        if not basename.endswith('.py'): continue
        fn = os.path.join(dirname, basename)
        with open(fn, 'r') as file:
            source = file.read()
        with warnings.catch_warnings():
            warnings.simplefilter('error')
            compile(source, fn, 'exec')


def test_spherical_bessel():
    # int dk k^(ell + 2) exp(-k^2 / 2) j_ell(kr) = sqrt(pi / 2) r^ell exp(-r^2 / 2)
    k = np.logspace(-5, 2, 1024)
    for ell in [0, 1, 2, 4]:
        transform = SphericalBesselTransform(k, ell=ell, coef=2.)
        r, xi = transform(k**ell * np.exp(-k**2 / 2.))
        mask = (r > 0.5) & (r < 3.)
        ref = 2. * np.sqrt(np.pi / 2.) * r[mask]**ell * np.exp(-r[mask]**2 / 2.)
        assert np.allclose(xi[mask], ref, rtol=1e-3, atol=1e-6)
