#!/usr/bin/python
# -*- coding: utf-8 -*-

import json
import warnings
from collections import OrderedDict

import numpy as np
from casadi import MX, Function, interpolant, vertcat, inf


class AttrOrderedDict(OrderedDict):
    def __getattr__(self, v):
        if v.startswith('_'):
            raise AttributeError(v)
        try:
            return self[v]
        except KeyError:
            raise AttributeError(v)


def _vcat(symbols, name='empty'):
    symbols = list(symbols)
    if not symbols:
        return MX.sym(name, 0)
    return vertcat(*symbols)


def _as_mx(expr):
    if isinstance(expr, MX):
        return expr
    return MX(expr)


def _normalize_bounds(bounds):
    try:
        len(bounds)
    except TypeError:
        bounds = (bounds, bounds)
    lb, ub = bounds
    if lb > ub:
        raise ValueError(f"Lower bound {lb} is greater than upper bound {ub}")
    return (lb, ub)


class DynamicalSystem(object):
    """
    Semi-explicit DAE  x' = f(x, y, u, p, t),  0 = g(x, y, u, p, t)

    States, algebraic states, controls and parameters are CasADi symbols
    registered by name. Derivatives are attached with set_der and the
    algebraic equations with add_algebraic_equation.
    """
    def __init__(self, has_t=True, has_y=False, has_p=False):
        self._has_t = has_t
        self._has_y = has_y
        self._has_p = has_p
        self.x = AttrOrderedDict()
        self.u = AttrOrderedDict()
        self.y = AttrOrderedDict()
        self.p = AttrOrderedDict()
        self.f = OrderedDict()
        self.bounds = {}
        self.algebraic_equations = []
        self.constraints = []
        self.interpolants = {}
        self.t = MX.sym('t')

    @property
    def nx(self):
        return len(self.x)

    @property
    def ny(self):
        return len(self.y)

    @property
    def nu(self):
        return len(self.u)

    @property
    def np(self):
        return len(self.p)

    @property
    def names(self):
        return list(self.x) + list(self.y) + list(self.u) + list(self.p)

    def _add_variable(self, group, name, bounds):
        if name in self.bounds:
            raise ValueError(f"Variable '{name}' is already defined")
        v = MX.sym(name)
        self.bounds[name] = _normalize_bounds(bounds)
        group[name] = v
        return v

    def add_state(self, name, bounds=(-inf, inf)):
        return self._add_variable(self.x, name, bounds)

    def add_control(self, name, bounds=(-inf, inf)):
        return self._add_variable(self.u, name, bounds)

    def add_param(self, name, bounds=(-inf, inf)):
        if not self._has_p:
            raise ValueError("Parameters require a system created with has_p=True")
        return self._add_variable(self.p, name, bounds)

    def add_algebraic(self, name, bounds=(-inf, inf)):
        if not self._has_y:
            raise ValueError("Algebraic states require a system created with has_y=True")
        return self._add_variable(self.y, name, bounds)

    def _state_name(self, state):
        if not isinstance(state, str) and not state.is_symbolic():
            raise KeyError(f"A state symbol or name is required, got the expression {state}")
        name = state if isinstance(state, str) else state.name()
        if name not in self.x:
            raise KeyError(f"'{name}' is not a state. States: {list(self.x.keys())}")
        return name

    def set_der(self, state, expr):
        self.f[self._state_name(state)] = expr

    def der(self, state):
        return self.f[self._state_name(state)]

    def add_algebraic_equation(self, expr):
        self.algebraic_equations.append(expr)

    def add_constraint(self, *args, **kwargs):
        self.constraints.append(Constraint(*args, **kwargs))

    def add_interpolant(self, name, grid, values, method='linear'):
        """
        Tabulated data as a function of the independent variable,
        returned as an expression of t.
        """
        grid = [float(v) for v in grid]
        values = [float(v) for v in values]
        if len(grid) != len(values):
            raise ValueError(f"Interpolant '{name}': grid has {len(grid)} points "
                             f"but {len(values)} values were given")
        I = interpolant(name, method, [grid], values)
        self.interpolants[name] = I
        return I(self.t)

    def check_dynamics(self):
        missing = [name for name in self.x if name not in self.f]
        if missing:
            raise ValueError(f"No derivative defined for states {missing}")
        n_alg = sum(_as_mx(g).numel() for g in self.algebraic_equations)
        if n_alg != self.ny:
            raise ValueError(f"The system has {self.ny} algebraic states "
                             f"but {n_alg} algebraic equations")

    def args(self):
        return [_vcat(v.values(), name) for v, name in
                [(self.x, 'x'), (self.y, 'y'), (self.u, 'u'), (self.p, 'p')]] + [self.t]

    def args_x(self):
        return [_vcat(v.values(), name) for v, name in
                [(self.x, 'x'), (self.y, 'y'), (self.p, 'p')]] + [self.t]

    def dae_functions(self):
        args = self.args()
        rhs = _vcat([_as_mx(self.f[name]) for name in self.x])
        f_ode = Function('ode', args, [rhs], ['x', 'y', 'u', 'p', 't'], ['xdot'])
        alg = _vcat([_as_mx(g) for g in self.algebraic_equations])
        f_alg = Function('alg', args, [alg], ['x', 'y', 'u', 'p', 't'], ['g'])
        return f_ode, f_alg


class Constraint(object):
    def __init__(self, expr, bounds=(0, 0), ctr_type='xu'):
        if ctr_type not in ['x', 'xu', 'bc']:
            raise ValueError(f"Unknown constraint type '{ctr_type}'")
        self.expr = expr
        self.bounds = _normalize_bounds(bounds)
        self.ctr_type = ctr_type

    @property
    def is_equality(self):
        return self.bounds[0] == self.bounds[1]


class SinglePhaseOCP(object):
    def __init__(self, dm):
        dm.check_dynamics()
        self.dm = dm
        self.bc = []
        self.mayer = 0
        self.lagrangian = 0
        self.x0 = AttrOrderedDict()
        self.xf = AttrOrderedDict()
        self.y0 = AttrOrderedDict()
        self.yf = AttrOrderedDict()
        self.t0 = MX.sym('t0')
        self.tf = MX.sym('tf')
        for k in self.dm.x.keys():
            self.x0[k] = MX.sym(k)
            self.xf[k] = MX.sym(k)
        for k in self.dm.y.keys():
            self.y0[k] = MX.sym(k)
            self.yf[k] = MX.sym(k)

    def add_mayer(self, expr):
        self.mayer += expr

    def add_lagrangian(self, expr):
        self.lagrangian += expr

    def add_bc(self, expr, bounds=(0, 0)):
        self.bc.append(Constraint(expr, bounds, 'bc'))

    def boundary_args(self):
        return [
            _vcat(self.x0.values(), 'x0'),
            _vcat(self.y0.values(), 'y0'),
            self.t0,
            _vcat(self.xf.values(), 'xf'),
            _vcat(self.yf.values(), 'yf'),
            self.tf,
            _vcat(self.dm.p.values(), 'p'),
            ]


class DiscreteTrajectory(object):
    SUCCESS_STATUS = ('Solve_Succeeded', 'Solved_To_Acceptable_Level')

    def __init__(self):
        self.t0 = 0
        self.tf = 1
        self.t = []
        self.tu = []
        self.x = AttrOrderedDict()
        self.y = AttrOrderedDict()
        self.u = AttrOrderedDict()
        self.p = AttrOrderedDict()
        self.status = None
        self.J = None
        self.solver_stats = {}

    @property
    def success(self):
        if self.solver_stats.get('success'):
            return True
        return self.status in self.SUCCESS_STATUS

    @classmethod
    def load_from_json(cls, f):
        d = json.load(f)
        trj = cls()
        trj.x.update(d['x'])
        trj.y.update(d['y'])
        trj.u.update(d['u'])
        trj.p.update(d['p'])
        trj.t = d['t']
        trj.tu = d['tu']
        trj.t0 = trj.t[0]
        trj.tf = trj.t[-1]
        if 'status' in d:
            trj.status = d['status']
        else:
            warnings.warn("No solver status found in the trajectory")
        if 'J' in d:
            trj.J = d['J']
        return trj

    def get_interpolator(self, patch_tu=False):
        from scipy.interpolate import interp1d as I
        t = list(self.t)
        tu = list(self.tu)
        if patch_tu and len(tu) > 1:
            tu[0] = t[0]
            tu[-1] = t[-1]
        trj_i = DiscreteTrajectory()
        for name, values in self.x.items():
            trj_i.x[name] = I(t, values)
        for name, values in self.y.items():
            trj_i.y[name] = I(t, values)
        for name, values in self.u.items():
            if len(tu) == 1:
                trj_i.u[name] = lambda t, v=values[0]: v
            else:
                trj_i.u[name] = I(tu, values)
        trj_i.p = self.p
        trj_i.t = t
        trj_i.tu = tu
        trj_i.t0 = t[0]
        trj_i.tf = t[-1]
        return trj_i

    def interval_index(self, t):
        """Index of the control interval containing t"""
        k = int(np.searchsorted(self.t, t, side='right')) - 1
        return min(max(k, 0), len(self.tu) - 1)

    def control_at(self, name, t):
        return self.u[name][self.interval_index(t)]

    def control_times(self, times):
        """times clipped to [tu[0], tu[-1]], where control interpolants are defined"""
        times = np.asarray(times, dtype=float)
        if len(self.tu) == 0:
            return times
        return np.clip(times, self.tu[0], self.tu[-1])

    def get_state_control_sequence(self, translation_dict=None):
        tx = np.array(self.t)
        tu = np.array(self.tu)
        xi2ui = np.zeros_like(tx, dtype=int)
        for i in range(tx.shape[0]):
            posterior_controls = np.argwhere(tx[i] <= tu)
            if posterior_controls.size > 0:
                xi2ui[i] = posterior_controls.min()
            else:
                xi2ui[i] = tu.size - 1
        indep_label = 'independent_variable'
        if translation_dict:
            if indep_label in translation_dict:
                indep_label = translation_dict[indep_label]
        point_list = []
        for i, t in enumerate(tx):
            point = self.get_state_control_at_index(i, xi2ui[i], translation_dict)
            point[indep_label] = float(t)
            point_list.append(point)
        return point_list

    def get_state_control_at_index(self,
                                   xi: int,
                                   ui: int,
                                   translation_dict: dict=None):
        if translation_dict is None:
            translation_dict = {}
        point = {}
        indexes = {'x': xi, 'u': ui, 'p': None}
        trj_vars = {
            'x': (self.x, self.y),
            'u': (self.u,),
            'p': (self.p,),
            }
        for idx, variable_lists in trj_vars.items():
            for variable_list in variable_lists:
                for name, values in variable_list.items():
                    if name in translation_dict:
                        name = translation_dict[name]
                    i = indexes[idx]
                    if i is None:
                        point[name] = values
                    else:
                        point[name] = values[i]
        return point

    def _get_dict(self):
        d = {
            'x': {k: [float(v) for v in vals] for k, vals in self.x.items()},
            'y': {k: [float(v) for v in vals] for k, vals in self.y.items()},
            'u': {k: [float(v) for v in vals] for k, vals in self.u.items()},
            'p': {k: float(v) for k, v in self.p.items()},
            't': [float(v) for v in self.t],
            'tu': [float(v) for v in self.tu],
            'status': self.status,
            'J': None if self.J is None else float(self.J),
            }
        return d

    def to_json(self):
        return json.dumps(self._get_dict())

    def save_to_json(self, f):
        json.dump(self._get_dict(), f)
