# -*- coding: utf-8 -*-

import math

import numpy as np
import pytest

from conftest import tug_ig
from daeoc.occopy.dynamics import DynamicalSystem
from daeoc.occopy.transcription import HermiteSimpsonTranscription
from daeoc.simulation import TrajectorySimulator, consistent_algebraic, solve_algebraic


def decay_system():
    dm = DynamicalSystem(has_y=True)
    x = dm.add_state('x')
    y = dm.add_algebraic('y')
    dm.add_control('u')
    dm.set_der(x, -y)
    dm.add_algebraic_equation(y - 2*x)
    return dm


def test_ode_simulation():
    dm = DynamicalSystem()
    x = dm.add_state('x')
    u = dm.add_control('u')
    dm.set_der(x, -u*x)
    trj = TrajectorySimulator(dm).simulate({'x': 1.}, {'u': 1.}, t0=0., tf=1., n_points=11)
    assert len(trj.t) == 11
    assert len(trj.u['u']) == 10
    assert trj.x['x'][-1] == pytest.approx(math.exp(-1), rel=1e-6)
    assert trj.status == 'Simulated'


def test_dae_simulation():
    dm = decay_system()
    trj = TrajectorySimulator(dm).simulate({'x': 1.}, {'u': 0.}, tf=1.)
    assert trj.x['x'][-1] == pytest.approx(math.exp(-2), rel=1e-6)
    assert np.allclose(trj.y['y'], 2*np.array(trj.x['x']), atol=1e-9)


def test_time_varying_control():
    dm = DynamicalSystem()
    x = dm.add_state('x')
    u = dm.add_control('u')
    dm.set_der(x, u)
    trj = TrajectorySimulator(dm).simulate({'x': 0.}, {'u': lambda t: 2*t}, tf=2.)
    assert trj.x['x'][-1] == pytest.approx(4., rel=1e-6)


def test_missing_initial_state():
    with pytest.raises(KeyError, match="'x'"):
        TrajectorySimulator(decay_system()).simulate({}, {'u': 0.})


def test_consistent_algebraic():
    y = consistent_algebraic(decay_system(), {'x': 1.5}, {'u': 0.}, {}, 0.)
    assert y == {'y': pytest.approx(3.)}


def test_inconsistent_algebraic():
    dm = DynamicalSystem(has_y=True)
    x = dm.add_state('x')
    y = dm.add_algebraic('y')
    dm.set_der(x, y)
    dm.add_algebraic_equation(y**2 + 1)
    _, f_alg = dm.dae_functions()
    with pytest.raises(ValueError, match="consistent"):
        solve_algebraic(f_alg, [0.], [], [], 0., [1.])


def test_resimulate_solution(tug_dae):
    tt = HermiteSimpsonTranscription(21)
    tt.transcript(tug_dae)
    trj = tt.solve(tug_ig(with_algebraic=True))
    sim = TrajectorySimulator(tug_dae.dm)
    resimulated = sim.resimulate(trj)
    assert resimulated.t == trj.t
    assert resimulated.x['x'][-1] == pytest.approx(128., rel=1e-6)
    assert sim.max_state_deviation(trj) < 1e-4
