# -*- coding: utf-8 -*-

import logging
import warnings
from collections import OrderedDict

import numpy as np
from casadi import MX, Function, collocation_points, integrator, nlpsol, vertcat, inf

from daeoc.config import Config
from daeoc.occopy.dynamics import DiscreteTrajectory, _as_mx

logger = logging.getLogger(__name__)


def uniform_mesh(n_nodes):
    if n_nodes is None or n_nodes < 2:
        raise ValueError(f"At least two nodes are required, got {n_nodes}")
    return [k/(n_nodes - 1) for k in range(n_nodes)]


def check_mesh(mesh):
    mesh = [float(tau) for tau in mesh]
    if len(mesh) < 2:
        raise ValueError("A mesh needs at least two nodes")
    if mesh[0] != 0. or mesh[-1] != 1.:
        raise ValueError(f"A mesh must start at 0 and end at 1, got [{mesh[0]}, {mesh[-1]}]")
    if any(b <= a for a, b in zip(mesh[:-1], mesh[1:])):
        raise ValueError("Mesh nodes must be strictly increasing")
    return mesh


class Transcription(object):
    """
    Direct transcription of a SinglePhaseOCP into an NLP.

    The decision vector is [t0, tf, X, Y, U, P, ...] where X and Y hold the
    states and algebraic states at the mesh nodes, U the piecewise constant
    controls of each interval and P the static parameters. Schemes append
    their own blocks (midpoints, collocation points) after P.
    """
    default_solver_options = {}
    nlp_options = {}

    def __init__(self, n_nodes=None, mesh=None):
        if mesh is None:
            mesh = uniform_mesh(n_nodes)
        self.mesh = check_mesh(mesh)
        self.n = len(self.mesh)

    @property
    def mesh_mid(self):
        return [0.5*(a + b) for a, b in zip(self.mesh[:-1], self.mesh[1:])]

    # NLP assembly ---------------------------------------------------------
    def _add_block(self, label, sym, lb, ub, group=None, taus=None):
        offset = sum(size for _, size, _, _ in self.blocks.values())
        size = sym.numel()
        self.blocks[label] = (offset, size, group, taus)
        self._w.append(sym)
        self._lbw += list(lb)
        self._ubw += list(ub)

    def _add_constraint(self, expr, bounds, label):
        expr = _as_mx(expr)
        size = expr.numel()
        self._g.append(expr)
        self._lbg += [bounds[0]]*size
        self._ubg += [bounds[1]]*size
        if size == 1:
            self.ctr_labels.append(label)
        else:
            self.ctr_labels += [f"{label} [{i}]" for i in range(size)]

    def _bounds(self, group):
        dm = self.ocp.dm
        names = getattr(dm, group).keys()
        lb = [dm.bounds[name][0] for name in names]
        ub = [dm.bounds[name][1] for name in names]
        return lb, ub

    def time_at(self, tau):
        return self.t0 + (self.tf - self.t0)*tau

    def step(self, k):
        return (self.tf - self.t0)*(self.mesh[k + 1] - self.mesh[k])

    def transcript(self, ocp):
        self.ocp = ocp
        dm = ocp.dm
        n = self.n
        nx, ny, nu, npar = dm.nx, dm.ny, dm.nu, dm.np
        self.ctr_labels = []
        self.blocks = OrderedDict()
        self._w, self._lbw, self._ubw = [], [], []
        self._g, self._lbg, self._ubg = [], [], []

        tb = MX.sym('t', 2)
        self.t0 = tb[0]
        self.tf = tb[1]
        self._add_block('T', tb, [-inf, -inf], [inf, inf], 't')

        xlb, xub = self._bounds('x')
        ylb, yub = self._bounds('y')
        ulb, uub = self._bounds('u')
        plb, pub = self._bounds('p')

        X = MX.sym('X', nx*n)
        Y = MX.sym('Y', ny*n)
        U = MX.sym('U', nu*(n - 1))
        P = MX.sym('P', npar)
        self._add_block('X', X, xlb*n, xub*n, 'x', self.mesh)
        self._add_block('Y', Y, ylb*n, yub*n, 'y', self.mesh)
        self._add_block('U', U, ulb*(n - 1), uub*(n - 1), 'u', self.mesh_mid)
        self._add_block('P', P, plb, pub, 'p')
        self.X = [X[nx*k:nx*(k + 1)] for k in range(n)]
        self.Y = [Y[ny*k:ny*(k + 1)] for k in range(n)]
        self.U = [U[nu*k:nu*(k + 1)] for k in range(n - 1)]
        self.P = P

        self.f_ode, self.f_alg = dm.dae_functions()
        self.f_lagr = Function('lagr', dm.args(), [_as_mx(ocp.lagrangian)])

        # Dynamics and Lagrange term -------------------------------------
        J = self._discretize()
        # Algebraic equations at the nodes ----------------------------------
        if ny:
            for k, j in self._node_algebraic_pairs():
                tk = self.time_at(self.mesh[k])
                g_k = self.f_alg(self.X[k], self.Y[k], self.U[j], P, tk)
                self._add_constraint(g_k, (0, 0), f"Algebraic equations at node {k}")
        self._path_constraints()
        # Boundary constraints -------------------------------------------
        args_b = ocp.boundary_args()
        argvals_b = (self.X[0], self.Y[0], self.t0, self.X[-1], self.Y[-1], self.tf, P)
        for i, bc in enumerate(ocp.bc):
            f_bc = Function(f'bc_{i}', args_b, [_as_mx(bc.expr)])
            self._add_constraint(f_bc(*argvals_b), bc.bounds, f"Boundary condition {i}")
        self._add_constraint(self.tf - self.t0, (0, inf), "Positive time span")
        # Cost functional ------------------------------------------------
        f_mayer = Function('mayer', args_b, [_as_mx(ocp.mayer)])
        J += f_mayer(*argvals_b)
        self.J = J

        self.nlp_vars = self._w
        self.nlp_lb = self._lbw
        self.nlp_ub = self._ubw
        self.constraints = self._g
        self.constraints_lb = self._lbg
        self.constraints_ub = self._ubg
        self.problem = {'f': self.J, 'x': vertcat(*self._w), 'g': vertcat(*self._g)}
        logger.debug("Transcribed OCP with %d variables and %d constraints",
                     len(self._lbw), len(self._lbg))

    def _discretize(self):
        raise NotImplementedError

    def _node_algebraic_pairs(self):
        """(node, control interval) pairs where g = 0 is imposed"""
        return [(k, min(k, self.n - 2)) for k in range(self.n)]

    def _path_constraints(self):
        dm = self.ocp.dm
        n = self.n
        P = self.P
        for i, ctr in enumerate(dm.constraints):
            if ctr.ctr_type == 'x':
                f_ctr = Function(f'f_ctr_{i}', dm.args_x(), [_as_mx(ctr.expr)])
                for k in range(n):
                    tk = self.time_at(self.mesh[k])
                    ctr_val = f_ctr(self.X[k], self.Y[k], P, tk)
                    self._add_constraint(ctr_val, ctr.bounds, f"Path constraint {i} at node {k}")
            elif ctr.ctr_type == 'xu':
                f_ctr = Function(f'f_ctr_{i}', dm.args(), [_as_mx(ctr.expr)])
                for k in range(n - 1):
                    tk = self.time_at(self.mesh[k])
                    ctr_val = f_ctr(self.X[k], self.Y[k], self.U[k], P, tk)
                    self._add_constraint(ctr_val, ctr.bounds, f"Path constraint {i} at node {k}")
                # Last node, only for inequality constraints
                if not ctr.is_equality:
                    ctr_val = f_ctr(self.X[-1], self.Y[-1], self.U[-1], P, self.tf)
                    self._add_constraint(ctr_val, ctr.bounds, f"Path constraint {i} at node {n - 1}")
            else:
                raise ValueError(f"Constraint of type '{ctr.ctr_type}' cannot be a path constraint")

    # Initial guess ------------------------------------------------------
    def _sample_guess(self, ig, group, taus, debug_ig=False):
        dm = self.ocp.dm
        if group == 't':
            return [ig.t0, ig.tf]
        if group == 'p':
            values = []
            for p_name in dm.p.keys():
                try:
                    values.append(ig.p[p_name])
                except KeyError:
                    raise KeyError(f"""The initialization trajectory provided did \
not contain an initial guess for the parameter '{p_name}'. \
Problem parameters: {list(dm.p.keys())} \
Initial guess params: {list(ig.p.keys())}""")
            return values
        names = list(getattr(dm, group).keys())
        guesses = getattr(ig, group)
        fcns = []
        for name in names:
            if name in guesses:
                fcns.append(guesses[name])
            elif group == 'y':
                warnings.warn(f"No initial guess for the algebraic state '{name}', using 0")
                fcns.append(lambda t: 0.)
            else:
                kind = {'x': 'state', 'u': 'control'}[group]
                raise KeyError(f"""The initialization trajectory provided did \
not contain an initial guess for the {kind} '{name}'. \
Problem {kind}s: {names} \
Initial guess {kind}s: {list(guesses.keys())}""")
        Dt = ig.tf - ig.t0
        eps = 1e-9*Dt
        values = []
        for tau in taus:
            t = ig.t0 + eps + (Dt - 2*eps)*tau
            for name, fcn in zip(names, fcns):
                try:
                    val = float(fcn(t))
                except ValueError:
                    logger.error("Could not sample the initial guess of '%s' at t = %s "
                                 "(guess range [%s, %s])", name, t, ig.t0, ig.tf)
                    raise
                if debug_ig:
                    logger.debug("%s(%s) = %s", name, t, val)
                values.append(val)
        return values

    def initial_guess_vector(self, ig, debug_ig=False):
        w0 = []
        for label, (offset, size, group, taus) in self.blocks.items():
            block = self._sample_guess(ig, group, taus, debug_ig)
            assert len(block) == size, f"Initial guess block {label} has wrong size"
            w0 += block
        return [float(val) for val in w0]

    # Solution -------------------------------------------------------------
    def solver_options(self, solver_options=None):
        cfg = Config()
        options = dict(cfg['ipopt'])
        options.update(self.default_solver_options)
        if solver_options:
            options.update(solver_options)
        opts = {'ipopt': options, 'print_time': cfg['print_time']}
        opts.update(self.nlp_options)
        return opts

    def solve(self, ig, solver_options=None, debug_ig=False):
        w0 = self.initial_guess_vector(ig, debug_ig)
        self.solver = solver = nlpsol('solver', 'ipopt', self.problem,
                                      self.solver_options(solver_options))
        sol = solver(x0=w0, lbx=self.nlp_lb, ubx=self.nlp_ub,
                     lbg=self.constraints_lb, ubg=self.constraints_ub)
        self.sol = sol
        self.w_out = w_out = sol['x'].full().flatten()
        dt = self.unpack(w_out)
        dt.solver_stats = solver.stats()
        dt.status = dt.solver_stats.get('return_status')
        dt.J = float(sol['f'])
        logger.info("%s with %d nodes: %s, J = %.6g", type(self).__name__,
                    self.n, dt.status, dt.J)
        return dt

    def _block_values(self, w_out, label):
        offset, size, _, _ = self.blocks[label]
        return w_out[offset:offset + size]

    def unpack(self, w_out):
        dm = self.ocp.dm
        dt = DiscreteTrajectory()
        dt.t0, dt.tf = [float(v) for v in self._block_values(w_out, 'T')]
        for group, label, n_points in (('x', 'X', self.n), ('y', 'Y', self.n), ('u', 'U', self.n - 1)):
            names = list(getattr(dm, group).keys())
            values = self._block_values(w_out, label)
            out = getattr(dt, group)
            for j, name in enumerate(names):
                out[name] = [float(values[k*len(names) + j]) for k in range(n_points)]
        p = self._block_values(w_out, 'P')
        for j, name in enumerate(dm.p.keys()):
            dt.p[name] = float(p[j])
        dt.t = [dt.t0 + (dt.tf - dt.t0)*tau for tau in self.mesh]
        dt.tu = [dt.t0 + (dt.tf - dt.t0)*tau for tau in self.mesh_mid]
        return dt

    def constraint_violation(self):
        """Largest bound violation of the constraints at the last solution"""
        g = self.sol['g'].full().flatten()
        lbg = np.array(self.constraints_lb, dtype=float)
        ubg = np.array(self.constraints_ub, dtype=float)
        violation = np.maximum(lbg - g, 0) + np.maximum(g - ubg, 0)
        return float(violation.max()) if violation.size else 0.


class TrapezoidalTranscription(Transcription):
    def _discretize(self):
        P = self.P
        J = 0
        for k in range(self.n - 1):
            h = self.step(k)
            tk = self.time_at(self.mesh[k])
            tk1 = self.time_at(self.mesh[k + 1])
            Xk, Xk1 = self.X[k], self.X[k + 1]
            Yk, Yk1 = self.Y[k], self.Y[k + 1]
            Uk = self.U[k]
            f_k = self.f_ode(Xk, Yk, Uk, P, tk)
            f_k1 = self.f_ode(Xk1, Yk1, Uk, P, tk1)
            self._add_constraint(Xk1 - Xk - h*0.5*(f_k1 + f_k), (0, 0),
                                 f"Collocation at node {k}")
            J += 0.5*h*self.f_lagr(Xk, Yk, Uk, P, tk)
            J += 0.5*h*self.f_lagr(Xk1, Yk1, Uk, P, tk1)
        return J


class HermiteSimpsonTranscription(Transcription):
    """
    Separated Hermite-Simpson scheme. States and algebraic states at the
    interval midpoints are extra decision variables.
    """
    def _discretize(self):
        dm = self.ocp.dm
        n = self.n
        nx, ny = dm.nx, dm.ny
        P = self.P
        xlb, xub = self._bounds('x')
        ylb, yub = self._bounds('y')
        Xm = MX.sym('Xm', nx*(n - 1))
        Ym = MX.sym('Ym', ny*(n - 1))
        self._add_block('Xm', Xm, xlb*(n - 1), xub*(n - 1), 'x', self.mesh_mid)
        self._add_block('Ym', Ym, ylb*(n - 1), yub*(n - 1), 'y', self.mesh_mid)
        J = 0
        for k in range(n - 1):
            h = self.step(k)
            tk = self.time_at(self.mesh[k])
            tk1 = self.time_at(self.mesh[k + 1])
            tm = 0.5*(tk + tk1)
            Xk, Xk1, Xmk = self.X[k], self.X[k + 1], Xm[nx*k:nx*(k + 1)]
            Yk, Yk1, Ymk = self.Y[k], self.Y[k + 1], Ym[ny*k:ny*(k + 1)]
            Uk = self.U[k]
            f_k = self.f_ode(Xk, Yk, Uk, P, tk)
            f_k1 = self.f_ode(Xk1, Yk1, Uk, P, tk1)
            f_m = self.f_ode(Xmk, Ymk, Uk, P, tm)
            self._add_constraint(Xmk - 0.5*(Xk + Xk1) - h/8*(f_k - f_k1), (0, 0),
                                 f"Hermite interpolation at interval {k}")
            self._add_constraint(Xk1 - Xk - h/6*(f_k + 4*f_m + f_k1), (0, 0),
                                 f"Simpson collocation at interval {k}")
            if ny:
                self._add_constraint(self.f_alg(Xmk, Ymk, Uk, P, tm), (0, 0),
                                     f"Algebraic equations at midpoint {k}")
            L_k = self.f_lagr(Xk, Yk, Uk, P, tk)
            L_k1 = self.f_lagr(Xk1, Yk1, Uk, P, tk1)
            L_m = self.f_lagr(Xmk, Ymk, Uk, P, tm)
            J += h/6*(L_k + 4*L_m + L_k1)
        return J


def lagrange_collocation_coefficients(tau_root):
    """
    Derivative matrix C[j, r] of the Lagrange basis built on tau_root and
    quadrature weights B for the points tau_root[1:] on [0, 1].
    """
    d = len(tau_root) - 1
    C = np.zeros((d + 1, d + 1))
    for j in range(d + 1):
        p = np.poly1d([1])
        for r in range(d + 1):
            if r != j:
                p *= np.poly1d([1, -tau_root[r]])/(tau_root[j] - tau_root[r])
        pder = np.polyder(p)
        for r in range(d + 1):
            C[j, r] = pder(tau_root[r])
    B = np.zeros(d + 1)
    for j in range(1, d + 1):
        p = np.poly1d([1])
        for r in range(1, d + 1):
            if r != j:
                p *= np.poly1d([1, -tau_root[r]])/(tau_root[j] - tau_root[r])
        pint = np.polyint(p)
        B[j] = pint(1.0) - pint(0.0)
    return C, B


class RadauCollocation(Transcription):
    """
    Legendre-Gauss-Radau orthogonal collocation of the given degree on
    every mesh interval. The last collocation point of an interval is the
    next mesh node, so the algebraic equations are imposed at the
    collocation points (with the interval control) and at the first node.
    """
    def __init__(self, n_nodes=None, mesh=None, degree=3):
        super(RadauCollocation, self).__init__(n_nodes, mesh)
        if degree < 1:
            raise ValueError(f"Collocation degree must be at least 1, got {degree}")
        self.degree = degree
        self.tau_root = [0.] + list(collocation_points(degree, 'radau'))
        self.C, self.B = lagrange_collocation_coefficients(self.tau_root)

    def _interior_taus(self):
        d = self.degree
        return [a + (b - a)*self.tau_root[r]
                for a, b in zip(self.mesh[:-1], self.mesh[1:])
                for r in range(1, d)]

    def _node_algebraic_pairs(self):
        return [(0, 0)]

    def _discretize(self):
        dm = self.ocp.dm
        n = self.n
        d = self.degree
        nx, ny = dm.nx, dm.ny
        P = self.P
        xlb, xub = self._bounds('x')
        ylb, yub = self._bounds('y')
        n_int = (n - 1)*(d - 1)
        Xc = MX.sym('Xc', nx*n_int)
        Yc = MX.sym('Yc', ny*n_int)
        if n_int:
            taus = self._interior_taus()
            self._add_block('Xc', Xc, xlb*n_int, xub*n_int, 'x', taus)
            self._add_block('Yc', Yc, ylb*n_int, yub*n_int, 'y', taus)
        J = 0
        for k in range(n - 1):
            h = self.step(k)
            Uk = self.U[k]
            Xkr = [self.X[k]]
            Ykr = [self.Y[k]]
            for r in range(1, d):
                i = k*(d - 1) + r - 1
                Xkr.append(Xc[nx*i:nx*(i + 1)])
                Ykr.append(Yc[ny*i:ny*(i + 1)])
            Xkr.append(self.X[k + 1])
            Ykr.append(self.Y[k + 1])
            for r in range(1, d + 1):
                t_kr = self.time_at(self.mesh[k] + (self.mesh[k + 1] - self.mesh[k])*self.tau_root[r])
                xp = 0
                for j in range(d + 1):
                    xp += float(self.C[j, r])*Xkr[j]
                f_kr = self.f_ode(Xkr[r], Ykr[r], Uk, P, t_kr)
                self._add_constraint(h*f_kr - xp, (0, 0), f"Collocation at interval {k}, point {r}")
                if ny:
                    self._add_constraint(self.f_alg(Xkr[r], Ykr[r], Uk, P, t_kr), (0, 0),
                                         f"Algebraic equations at interval {k}, point {r}")
                J += float(self.B[r])*h*self.f_lagr(Xkr[r], Ykr[r], Uk, P, t_kr)
        return J


class MultipleShootingTranscription(Transcription):
    """
    Every mesh interval is integrated with a SUNDIALS integrator (IDAS for
    DAEs, CVODES for ODEs) over normalized time, the interval length and
    start time entering as parameters. The Lagrange term is integrated as
    a quadrature.
    """
    default_solver_options = {'hessian_approximation': 'limited-memory'}

    def __init__(self, n_nodes=None, mesh=None, integrator='auto', integrator_options=None):
        super(MultipleShootingTranscription, self).__init__(n_nodes, mesh)
        self.integrator_plugin = integrator
        self.integrator_options = {} if integrator_options is None else integrator_options

    def build_integrator(self):
        dm = self.ocp.dm
        nx, ny, nu, npar = dm.nx, dm.ny, dm.nu, dm.np
        plugin = self.integrator_plugin
        if plugin == 'auto':
            plugin = 'idas' if ny else 'cvodes'
        xs = MX.sym('xs', nx)
        ys = MX.sym("ys", ny) if ny else MX(0, 1)
        pp = MX.sym('pp', nu + npar + 2)
        us = pp[:nu]
        ps = pp[nu:nu + npar]
        h = pp[nu + npar]
        tk = pp[nu + npar + 1]
        s = MX.sym('s')
        t = tk + h*s
        dae = {
            'x': xs,
            'p': pp,
            't': s,
            'ode': h*self.f_ode(xs, ys, us, ps, t),
            'quad': h*self.f_lagr(xs, ys, us, ps, t),
            }
        if ny:
            dae['z'] = ys
            dae['alg'] = self.f_alg(xs, ys, us, ps, t)
        logger.debug("Building %s interval integrator", plugin)
        return integrator('F', plugin, dae, 0.0, 1.0, self.integrator_options)

    def _discretize(self):
        dm = self.ocp.dm
        self.F = F = self.build_integrator()
        P = self.P
        J = 0
        for k in range(self.n - 1):
            h = self.step(k)
            tk = self.time_at(self.mesh[k])
            args = {'x0': self.X[k], 'p': vertcat(self.U[k], P, h, tk)}
            if dm.ny:
                args['z0'] = self.Y[k]
            res = F(**args)
            self._add_constraint(res['xf'] - self.X[k + 1], (0, 0),
                                 f"Continuity at node {k + 1}")
            J += res['qf']
        return J
