# -*- coding: utf-8 -*-

import logging

import numpy as np

from daeoc.config import Config
from daeoc.mesh import estimate_interval_errors, refine_mesh
from daeoc.occopy.transcription import TrapezoidalTranscription, uniform_mesh

logger = logging.getLogger(__name__)


def check_trj_in_bounds(dm, trj, n_samples=100, tol=1e-6):
    """
    Raises ValueError at the first state, algebraic state or control of trj
    found outside its bounds. trj may hold sampled values or callables.
    """
    def samples(values, times):
        if callable(values):
            return [(t, float(values(t))) for t in times]
        return list(zip(times, values))

    Dt = trj.tf - trj.t0
    eps = 1e-9*Dt
    s_range = np.linspace(trj.t0 + eps, trj.tf - eps, n_samples)
    for group in ('x', 'y', 'u'):
        for name, values in getattr(trj, group).items():
            if name not in dm.bounds:
                continue
            lb, ub = dm.bounds[name]
            if callable(values):
                times = trj.control_times(s_range) if group == 'u' else s_range
            else:
                times = trj.tu if group == 'u' else trj.t
            for t, v in samples(values, times):
                if not (lb - tol <= v <= ub + tol):
                    raise ValueError(f"""Point in trajectory: {name}({t:.4g}) = {v:.6g} \
is outside its bounds ({lb}, {ub})""")


class GridSequencing(object):
    """
    Solves the problem on a sequence of grids. Each solution warm starts
    the next, finer, transcription.
    """
    def __init__(self, ocp, n_nodes_sequence, transcription=TrapezoidalTranscription,
                 solver_options=None, **transcription_kwargs):
        if not n_nodes_sequence:
            raise ValueError("At least one grid size is required")
        self.ocp = ocp
        self.n_nodes_sequence = list(n_nodes_sequence)
        self.transcription = transcription
        self.transcription_kwargs = transcription_kwargs
        self.solver_options = {} if solver_options is None else solver_options
        self.trjs_steps = []

    def get_solver_cpu_times(self):
        return [trj.solver_stats.get('t_wall_total') for trj in self.trjs_steps]

    def solve(self, ig):
        self.trjs_steps = []
        for i, n_nodes in enumerate(self.n_nodes_sequence):
            tt = self.transcription(n_nodes, **self.transcription_kwargs)
            tt.transcript(self.ocp)
            trj = tt.solve(ig, self.solver_options)
            logger.info("Grid %d/%d (%d nodes): %s, J = %.6g", i + 1,
                        len(self.n_nodes_sequence), n_nodes, trj.status, trj.J)
            self.trjs_steps.append(trj)
            ig = trj.get_interpolator(patch_tu=True)
        self.tt = tt
        return trj


class MeshRefinement(object):
    """
    Solve, estimate the local error of every interval and refine the mesh
    until the largest error is below the tolerance.
    """
    def __init__(self, ocp, n_nodes, transcription=TrapezoidalTranscription,
                 config=None, solver_options=None, **transcription_kwargs):
        cfg = Config()
        self.config = {
            'tol': cfg['mesh_tol'],
            'max_refinements': cfg['max_refinements'],
            'max_nodes': cfg['max_nodes'],
            'min_nodes': cfg['min_nodes'],
            'delete_factor': 1e-2,
            'stop_on_failure': True,
            }
        if config:
            self.config.update(config)
        self.ocp = ocp
        self.mesh = uniform_mesh(n_nodes)
        self.transcription = transcription
        self.transcription_kwargs = transcription_kwargs
        self.solver_options = {} if solver_options is None else solver_options
        self.trjs_steps = []
        self.max_errors = []
        self.converged = False

    def solve(self, ig):
        cfg = self.config
        dm = self.ocp.dm
        self.trjs_steps = []
        self.max_errors = []
        self.converged = False
        mesh = self.mesh
        for it in range(cfg['max_refinements'] + 1):
            tt = self.transcription(mesh=mesh, **self.transcription_kwargs)
            tt.transcript(self.ocp)
            trj = tt.solve(ig, self.solver_options)
            self.trjs_steps.append(trj)
            self.tt = tt
            self.mesh = mesh
            if not trj.success:
                logger.warning("Mesh iteration %d: solver returned %s", it, trj.status)
                if cfg['stop_on_failure']:
                    raise RuntimeError(f"The NLP of mesh iteration {it} failed: {trj.status}")
            errors = estimate_interval_errors(dm, trj)
            max_error = float(errors.max())
            self.max_errors.append(max_error)
            logger.info("Mesh iteration %d: %d nodes, max error %.3e", it, len(mesh), max_error)
            if max_error <= cfg['tol']:
                self.converged = True
                break
            if it == cfg['max_refinements']:
                logger.warning("Reached maximum times (%d) of mesh refinements", cfg['max_refinements'])
                break
            new_mesh = refine_mesh(mesh, errors, cfg['tol'], cfg['max_nodes'],
                                   cfg['min_nodes'], cfg['delete_factor'])
            if new_mesh == mesh:
                logger.warning("The mesh cannot be refined further")
                break
            ig = trj.get_interpolator(patch_tu=True)
            mesh = new_mesh
        return trj
