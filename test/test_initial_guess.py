# -*- coding: utf-8 -*-

import numpy as np
import pytest
from casadi import inf

from conftest import build_van_der_pol, tug_ig, van_der_pol_ig
from daeoc.initial_guess import (
    default_value,
    fill_algebraic,
    ig_constant,
    ig_from_trajectory,
    ig_linear,
    ig_simulated,
)
from daeoc.occopy.transcription import RadauCollocation, TrapezoidalTranscription


@pytest.mark.parametrize('bounds, value', [
    ((-1, 3), 1.),
    ((2, inf), 2.),
    ((-inf, -4), -4.),
    ((-inf, inf), 0.),
])
def test_default_value(bounds, value):
    assert default_value(bounds) == value


def test_constant_uses_bounds():
    ocp = build_van_der_pol()
    ig = ig_constant(ocp.dm, 0, 10, x={'x2': 1.})
    assert ig.x['x1'](3.) == pytest.approx(0.375)
    assert ig.x['x2'](3.) == 1.
    assert ig.u['u'](3.) == 0.
    assert ig.y['z'](3.) == 0.


def test_linear(tug):
    ig = ig_linear(tug.dm, 0, 8, {'x': 0, 'v': 0}, {'x': 128})
    assert float(ig.x['x'](4.)) == pytest.approx(64.)
    assert ig.x['v'](4.) == 0.
    tt = TrapezoidalTranscription(21)
    tt.transcript(tug)
    trj = tt.solve(ig)
    assert trj.success
    assert trj.J == pytest.approx(768., rel=1e-2)


def test_simulated(tug):
    ig = ig_simulated(tug.dm, 0, 8, {'x': 0., 'v': 0.}, {'u': lambda t: 12 - 3*t})
    assert float(ig.x['x'](8.)) == pytest.approx(128., rel=1e-4)
    assert ig.u['u'](2.) == pytest.approx(6.)


def test_fill_algebraic():
    ocp = build_van_der_pol()
    ig = ig_linear(ocp.dm, 0, 10, {'x1': 0, 'x2': 1}, {'x1': 0, 'x2': 0})
    fill_algebraic(ocp.dm, ig)
    for t in [0., 5., 10.]:
        x2 = float(ig.x['x2'](t))
        assert float(ig.y['z'](t)) == pytest.approx(1 - x2**2, abs=1e-3)


def test_from_trajectory(tug):
    tt = RadauCollocation(11)
    tt.transcript(tug)
    trj = tt.solve(tug_ig())
    ig = ig_from_trajectory(trj)
    assert float(ig.x['x'](trj.t[3])) == pytest.approx(trj.x['x'][3])
    assert np.isfinite(float(ig.u['u'](trj.tf)))
    tt = TrapezoidalTranscription(21)
    tt.transcript(tug)
    assert tt.solve(ig).success


def test_fill_algebraic_from_solution(vdp):
    tt = TrapezoidalTranscription(21)
    tt.transcript(vdp)
    trj = tt.solve(van_der_pol_ig())
    ig = fill_algebraic(vdp.dm, trj.get_interpolator())
    assert float(ig.y['z'](trj.t[5])) == pytest.approx(1 - trj.x['x2'][5]**2, abs=1e-2)
    assert float(ig.y['z'](trj.tf)) == pytest.approx(1 - trj.x['x2'][-1]**2, abs=1e-6)
