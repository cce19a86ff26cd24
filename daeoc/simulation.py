# -*- coding: utf-8 -*-

import logging

import numpy as np
from scipy.integrate import solve_ivp
from scipy.optimize import root

from daeoc.occopy.dynamics import DiscreteTrajectory

logger = logging.getLogger(__name__)


def _values(d, names):
    try:
        return np.array([float(d[name]) for name in names])
    except KeyError as e:
        raise KeyError(f"Missing value for {e}. Expected: {list(names)}")


def as_function(u):
    if callable(u):
        return u
    return lambda t, v=float(u): v


def solve_algebraic(f_alg, x, u, p, t, y_guess):
    """
    Solves g(x, y, u, p, t) = 0 for y with a Newton-type root finder.
    """
    y_guess = np.asarray(y_guess, dtype=float)
    if y_guess.size == 0:
        return y_guess

    def residual(y):
        return f_alg(x, y, u, p, t).full().flatten()

    output = root(residual, y_guess, method='hybr', tol=1e-12)
    if not output.success:
        raise ValueError(f"Could not find consistent algebraic states at t = {t}: {output.message}")
    return output.x


def consistent_algebraic(dm, x, u, p, t, y_guess=None):
    """
    Algebraic states consistent with the given states, controls and
    parameters (dictionaries by name). Returns a dictionary by name.
    """
    _, f_alg = dm.dae_functions()
    if y_guess is None:
        y_guess = {}
    y0 = [float(y_guess.get(name, 0.)) for name in dm.y]
    y = solve_algebraic(f_alg,
                        _values(x, dm.x),
                        _values(u, dm.u),
                        _values(p, dm.p),
                        t, y0)
    return dict(zip(dm.y.keys(), [float(v) for v in y]))


class TrajectorySimulator(object):
    """
    Forward simulation of an index-1 DAE: the algebraic states are solved
    from g = 0 at every evaluation of the differential right-hand side.
    """
    def __init__(self, dm):
        self.dm = dm
        self.f_ode, self.f_alg = dm.dae_functions()

    def _rhs(self, u_fcns, p):
        y_last = [self._y_guess]

        def f(t, x):
            u = np.array([float(fcn(t)) for fcn in u_fcns])
            y = solve_algebraic(self.f_alg, x, u, p, t, y_last[0])
            y_last[0] = y
            return self.f_ode(x, y, u, p, t).full().flatten()
        return f

    def simulate(self, x0, u, p=None, t0=0., tf=1., n_points=100, y_guess=None,
                 method='LSODA', t_eval=None, **solver_kwargs):
        dm = self.dm
        p = {} if p is None else p
        u_fcns = [as_function(u[name]) for name in dm.u]
        pv = _values(p, dm.p)
        x0v = _values(x0, dm.x)
        self._y_guess = np.zeros(dm.ny) if y_guess is None else _values(y_guess, dm.y)
        if t_eval is None:
            t_eval = np.linspace(t0, tf, n_points)
        options = {'rtol': 1e-8, 'atol': 1e-10}
        options.update(solver_kwargs)
        output = solve_ivp(self._rhs(u_fcns, pv), (t0, tf), x0v, method=method,
                           t_eval=t_eval, **options)
        if not output.success:
            raise RuntimeError(f"DAE simulation failed: {output.message}")
        trj = DiscreteTrajectory()
        trj.t0 = float(t0)
        trj.tf = float(tf)
        trj.t = [float(t) for t in output.t]
        trj.tu = [0.5*(a + b) for a, b in zip(trj.t[:-1], trj.t[1:])]
        for j, name in enumerate(dm.x):
            trj.x[name] = [float(v) for v in output.y[j]]
        ys = []
        y = self._y_guess
        for i, t in enumerate(output.t):
            uv = np.array([float(fcn(t)) for fcn in u_fcns])
            y = solve_algebraic(self.f_alg, output.y[:, i], uv, pv, t, y)
            ys.append(y)
        for j, name in enumerate(dm.y):
            trj.y[name] = [float(y[j]) for y in ys]
        for fcn, name in zip(u_fcns, dm.u):
            trj.u[name] = [float(fcn(t)) for t in trj.tu]
        trj.p.update({name: float(v) for name, v in zip(dm.p, pv)})
        trj.status = 'Simulated'
        return trj

    def resimulate(self, trj, method='LSODA', **solver_kwargs):
        """
        Integrates the DAE interval by interval from the initial state of a
        solved trajectory, holding each piecewise constant control.
        """
        dm = self.dm
        pv = _values(trj.p, dm.p)
        x = np.array([trj.x[name][0] for name in dm.x], dtype=float)
        y = np.array([trj.y[name][0] for name in dm.y], dtype=float)
        states = [x]
        alg = [y]
        options = {'rtol': 1e-10, 'atol': 1e-12}
        options.update(solver_kwargs)
        for k in range(len(trj.t) - 1):
            uk = {name: trj.u[name][k] for name in dm.u}
            self._y_guess = alg[-1]
            u_fcns = [as_function(uk[name]) for name in dm.u]
            output = solve_ivp(self._rhs(u_fcns, pv), (trj.t[k], trj.t[k + 1]), states[-1],
                               method=method, **options)
            if not output.success:
                raise RuntimeError(f"DAE simulation failed in interval {k}: {output.message}")
            x = output.y[:, -1]
            uv = np.array([uk[name] for name in dm.u], dtype=float)
            y = solve_algebraic(self.f_alg, x, uv, pv, trj.t[k + 1], alg[-1])
            states.append(x)
            alg.append(y)
        sim = DiscreteTrajectory()
        sim.t0, sim.tf = trj.t[0], trj.t[-1]
        sim.t = list(trj.t)
        sim.tu = list(trj.tu)
        for j, name in enumerate(dm.x):
            sim.x[name] = [float(s[j]) for s in states]
        for j, name in enumerate(dm.y):
            sim.y[name] = [float(s[j]) for s in alg]
        for name in dm.u:
            sim.u[name] = list(trj.u[name])
        sim.p.update(trj.p)
        sim.status = 'Simulated'
        return sim

    def max_state_deviation(self, trj):
        sim = self.resimulate(trj)
        deviation = 0.
        for name in self.dm.x:
            diff = np.abs(np.array(sim.x[name]) - np.array(trj.x[name]))
            deviation = max(deviation, float(diff.max()))
        logger.debug("Maximum state deviation after re-simulation: %.3e", deviation)
        return deviation
