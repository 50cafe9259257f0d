import numpy as np
import pytest

from pyxirmu import MultipoleTransform, AdaptiveMultipoleTransform, multipole_transform_normalization, NotInitializedError


def power_law(k):
    return k**-2


def xi_power_law(r, ell=0):
    # int_0^inf dx j_ell(x), for P(k) = k^-2
    integral = {0: np.pi / 2., 1: 1., 2: np.pi / 4., 4: 3. * np.pi / 16.}[ell]
    return multipole_transform_normalization(ell) * integral / r


def test_normalization():
    assert np.allclose(multipole_transform_normalization(0), 1. / (2. * np.pi**2))
    assert np.allclose(multipole_transform_normalization(1), 1. / (2. * np.pi**2))
    assert np.allclose(multipole_transform_normalization(2), -1. / (2. * np.pi**2))
    assert np.allclose(multipole_transform_normalization(3), -1. / (2. * np.pi**2))
    assert np.allclose(multipole_transform_normalization(4), 1. / (2. * np.pi**2))
    assert np.allclose(multipole_transform_normalization(2, sign=-1), -4. * np.pi)
    assert np.allclose(multipole_transform_normalization(1, sign=-1), -4. * np.pi)
    assert np.allclose(multipole_transform_normalization(0, ndim=2), 1. / (2. * np.pi))
    with pytest.raises(ValueError):
        multipole_transform_normalization(-1)
    with pytest.raises(ValueError):
        multipole_transform_normalization(0, ndim=4)
    with pytest.raises(ValueError):
        multipole_transform_normalization(0, sign=2)


def test_multipole_transform():
    r = np.linspace(10., 100., 31)
    for ell in [0, 1, 2]:
        transform = MultipoleTransform(ell, multipole_transform_normalization(ell), r, veps=1e-4, samples_per_decade=100)
        assert transform.kmin * r.max() < 1e-4 and transform.kmax * r.min() > 1e4
        assert transform.samples_per_decade >= 100
        assert np.allclose(transform(power_law), xi_power_law(r, ell=ell), rtol=1e-2)
    with pytest.raises(ValueError):
        MultipoleTransform(0, 1., r, veps=1., samples_per_decade=100)
    with pytest.raises(ValueError):
        MultipoleTransform(0, 1., r, veps=1e-3, samples_per_decade=0)
    with pytest.raises(ValueError):
        MultipoleTransform(0, 1., -r, veps=1e-3, samples_per_decade=10)


def test_adaptive_transform():
    r = np.linspace(10., 100., 31)
    ell = 0
    coef = multipole_transform_normalization(ell)
    transform = AdaptiveMultipoleTransform(ell, coef, r, relerr=1e-3, abserr=1e-8, abspow=0.)
    assert not transform.is_initialized
    out = np.zeros_like(r)
    with pytest.raises(NotInitializedError):
        transform.transform(power_law, out)
    with pytest.raises(NotInitializedError):
        transform.veps
    assert transform.initialize(power_law, out, 50, margin=2., veps_max=0.1, veps_min=1e-6)
    assert transform.is_initialized
    assert 1e-6 <= transform.veps <= 0.1
    assert transform.nk > 0 and transform.kmin < transform.kmax
    assert transform.samples_per_decade >= 50
    assert np.allclose(out, xi_power_law(r), rtol=2e-3)

    out2 = np.zeros_like(r)
    assert transform.transform(power_law, out2)
    assert np.allclose(out2, out, rtol=1e-12)
    out3 = np.zeros_like(r)
    assert transform.transform(power_law, out3, bypass_termination_test=True)
    assert np.array_equal(out3, out2)

    optimized = AdaptiveMultipoleTransform(ell, coef, r, relerr=1e-3, abserr=1e-8, abspow=0.)
    assert optimized.initialize(power_law, np.zeros_like(r), 50, margin=2., veps_max=0.1, veps_min=1e-6, optimize=True)
    assert optimized.veps >= transform.veps

    for kwargs in [dict(margin=0.5), dict(veps_max=1e-6, veps_min=1e-6), dict(veps_min=0.), dict(veps_max=1.)]:
        with pytest.raises(ValueError):
            transform.initialize(power_law, out, 50, **kwargs)
    with pytest.raises(ValueError):
        AdaptiveMultipoleTransform(ell, coef, r, relerr=0., abserr=1e-8, abspow=0.)


def test_accuracy_goal():
    r = np.linspace(10., 100., 4)
    transform = AdaptiveMultipoleTransform(0, 1., r, relerr=1e-2, abserr=1e-3, abspow=1.)
    assert np.allclose(transform.get_tolerance(np.ones_like(r), margin=2.), 1e-3 * r / 2.)
    assert transform.is_accurate(np.ones_like(r) * 1.005, np.ones_like(r))
    assert not transform.is_accurate(np.ones_like(r) * 1.2, np.ones_like(r))
    assert not transform.is_accurate(np.ones_like(r) * 1.04, np.ones_like(r), margin=10.)
