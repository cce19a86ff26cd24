# -*- coding: utf-8 -*-

import numpy as np
from scipy.interpolate import interp1d as I

from daeoc.occopy.dynamics import DiscreteTrajectory
from daeoc.simulation import TrajectorySimulator, solve_algebraic, as_function


def default_value(bounds):
    """Midpoint of finite bounds, the finite bound if one-sided, else 0"""
    lb, ub = bounds
    lb_finite = np.isfinite(lb)
    ub_finite = np.isfinite(ub)
    if lb_finite and ub_finite:
        return 0.5*(lb + ub)
    if lb_finite:
        return float(lb)
    if ub_finite:
        return float(ub)
    return 0.


def _fill(dm, group, target, given):
    given = {} if given is None else given
    for name in getattr(dm, group):
        if name in given:
            target[name] = as_function(given[name])
        else:
            target[name] = as_function(default_value(dm.bounds[name]))


def _fill_params(dm, ig, p):
    p = {} if p is None else p
    for name in dm.p:
        ig.p[name] = float(p[name]) if name in p else default_value(dm.bounds[name])


def ig_constant(dm, t0, tf, x=None, y=None, u=None, p=None):
    ig = DiscreteTrajectory()
    ig.t0 = t0
    ig.tf = tf
    _fill(dm, 'x', ig.x, x)
    _fill(dm, 'y', ig.y, y)
    _fill(dm, 'u', ig.u, u)
    _fill_params(dm, ig, p)
    return ig


def ig_linear(dm, t0, tf, x0, xf, y=None, u=None, p=None):
    """
    States interpolated linearly between the initial and final values;
    states missing in x0 or xf take the constant default guess.
    """
    ig = ig_constant(dm, t0, tf, y=y, u=u, p=p)
    for name in dm.x:
        if name in x0 and name in xf:
            ig.x[name] = I([t0, tf], [x0[name], xf[name]])
        elif name in x0:
            ig.x[name] = as_function(x0[name])
        elif name in xf:
            ig.x[name] = as_function(xf[name])
    return ig


def ig_simulated(dm, t0, tf, x0, u, p=None, n_points=100, y_guess=None):
    """
    Initial guess from a forward simulation of the DAE under the given
    control laws (callables or constants).
    """
    sim = TrajectorySimulator(dm).simulate(x0, u, p, t0, tf, n_points=n_points, y_guess=y_guess)
    ig = sim.get_interpolator()
    for name in dm.u:
        ig.u[name] = as_function(u[name])
    return ig


def ig_from_trajectory(trj):
    return trj.get_interpolator(patch_tu=True)


def fill_algebraic(dm, ig, n_samples=50):
    """
    Replaces the algebraic guesses of ig with values consistent with its
    state and control guesses.
    """
    if not dm.ny:
        return ig
    _, f_alg = dm.dae_functions()
    Dt = ig.tf - ig.t0
    eps = 1e-9*Dt
    ts = np.linspace(ig.t0 + eps, ig.tf - eps, n_samples)
    tus = ig.control_times(ts)
    pv = np.array([float(ig.p[name]) for name in dm.p])
    y = np.array([float(ig.y[name](ts[0])) if name in ig.y else default_value(dm.bounds[name])
                  for name in dm.y])
    ys = []
    for t, tu in zip(ts, tus):
        x = np.array([float(ig.x[name](t)) for name in dm.x])
        u = np.array([float(ig.u[name](tu)) for name in dm.u])
        y = solve_algebraic(f_alg, x, u, pv, t, y)
        ys.append(y)
    ys = np.array(ys)
    for j, name in enumerate(dm.y):
        ig.y[name] = I(ts, ys[:, j], fill_value=(ys[0, j], ys[-1, j]), bounds_error=False)
    return ig
