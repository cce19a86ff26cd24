# -*- coding: utf-8 -*-

import pytest

from daeoc.occopy.dynamics import DiscreteTrajectory, DynamicalSystem, SinglePhaseOCP


@pytest.fixture(autouse=True)
def user_config(tmp_path, monkeypatch):
    path = tmp_path / 'daeoc_cfg.json'
    monkeypatch.setenv('DAEOC_CFG_PATH', str(path))
    return path


def build_tug(with_algebraic=False):
    """
    Rest-to-rest double integrator over 128 length units with a time
    penalty. Optimum: tf = 8, J = 768, u(t) = 12 - 3t.
    """
    dm = DynamicalSystem(has_y=with_algebraic)
    x = dm.add_state('x')
    v = dm.add_state('v')
    u = dm.add_control('u')
    dm.set_der(x, v)
    if with_algebraic:
        a = dm.add_algebraic('a')
        dm.set_der(v, a)
        dm.add_algebraic_equation(a - u)
    else:
        dm.set_der(v, u)

    ocp = SinglePhaseOCP(dm)
    ocp.add_lagrangian(0.5*u**2)
    ocp.add_mayer(72*ocp.tf)

    ocp.add_bc(ocp.x0.x, 0)
    ocp.add_bc(ocp.xf.x, 128)
    ocp.add_bc(ocp.x0.v, 0)
    ocp.add_bc(ocp.xf.v, 0)
    ocp.add_bc(ocp.t0, 0)
    return ocp


def tug_ig(with_algebraic=False):
    ig = DiscreteTrajectory()
    ig.t0 = 0
    ig.tf = 8
    ig.x['x'] = lambda t: 0.5*12*t**2 - 1/6*3*t**3
    ig.x['v'] = lambda t: 12*t - 1.5*t**2
    ig.u['u'] = lambda t: 12 - 3*t
    if with_algebraic:
        ig.y['a'] = lambda t: 12 - 3*t
    return ig


def build_simple():
    """
    min ∫ x² dt, x' = u, |u| <= 1, x(0) = x(3) = 1. Optimum J = 2/3.
    """
    dm = DynamicalSystem()
    x = dm.add_state('x')
    u = dm.add_control('u', bounds=(-1, 1))
    dm.set_der(x, u)

    ocp = SinglePhaseOCP(dm)
    ocp.add_lagrangian(x**2)

    ocp.add_bc(ocp.x0.x, 1)
    ocp.add_bc(ocp.xf.x, 1)
    ocp.add_bc(ocp.t0, 0)
    ocp.add_bc(ocp.tf, 3)
    return ocp


def build_van_der_pol(as_ode=False):
    """
    Van der Pol oscillator with the damping written as an algebraic state:
    x1' = z x1 - x2 + u, x2' = x1, 0 = z - (1 - x2²).
    """
    dm = DynamicalSystem(has_y=not as_ode)
    x1 = dm.add_state('x1', bounds=(-0.25, 1))
    x2 = dm.add_state('x2')
    u = dm.add_control('u', bounds=(-1, 1))
    if as_ode:
        z = 1 - x2**2
    else:
        z = dm.add_algebraic('z')
        dm.add_algebraic_equation(z - (1 - x2**2))
    dm.set_der(x1, z*x1 - x2 + u)
    dm.set_der(x2, x1)

    ocp = SinglePhaseOCP(dm)
    ocp.add_lagrangian(x1**2 + x2**2 + u**2)

    ocp.add_bc(ocp.x0.x1, 0)
    ocp.add_bc(ocp.x0.x2, 1)
    ocp.add_bc(ocp.t0, 0)
    ocp.add_bc(ocp.tf, 10)
    return ocp


def van_der_pol_ig():
    ig = DiscreteTrajectory()
    ig.t0 = 0
    ig.tf = 10
    ig.x['x1'] = lambda t: 0.
    ig.x['x2'] = lambda t: 1.
    ig.y['z'] = lambda t: 0.
    ig.u['u'] = lambda t: 0.
    return ig


@pytest.fixture
def tug():
    return build_tug()


@pytest.fixture
def tug_dae():
    return build_tug(with_algebraic=True)


@pytest.fixture
def simple():
    return build_simple()


@pytest.fixture
def vdp():
    return build_van_der_pol()
