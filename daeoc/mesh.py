import logging
import warnings

import numpy as np

logger = logging.getLogger(__name__)


def estimate_interval_errors(dm, trj):
    """
    Relative local error of every mesh interval of a solved trajectory.

    The node-to-node state step is compared with a Simpson step whose
    midpoint state comes from the Hermite cubic through the nodes. The
    algebraic states at the midpoint are taken as the node average.
    """
    f_ode, _ = dm.dae_functions()
    p = np.array([trj.p[name] for name in dm.p], dtype=float)
    t = np.array(trj.t, dtype=float)
    n = t.shape[0]
    X = np.array([trj.x[name] for name in dm.x], dtype=float).reshape(dm.nx, n)
    Y = np.array([trj.y[name] for name in dm.y], dtype=float).reshape(dm.ny, n)
    U = np.array([trj.u[name] for name in dm.u], dtype=float).reshape(dm.nu, n - 1)
    errors = np.zeros(n - 1)
    for k in range(n - 1):
        h = t[k + 1] - t[k]
        tm = 0.5*(t[k] + t[k + 1])
        xk, xk1 = X[:, k], X[:, k + 1]
        yk, yk1 = Y[:, k], Y[:, k + 1]
        uk = U[:, k]
        f_k = f_ode(xk, yk, uk, p, t[k]).full().flatten()
        f_k1 = f_ode(xk1, yk1, uk, p, t[k + 1]).full().flatten()
        xm = 0.5*(xk + xk1) + h/8*(f_k - f_k1)
        ym = 0.5*(yk + yk1)
        f_m = f_ode(xm, ym, uk, p, tm).full().flatten()
        x_simpson = xk + h/6*(f_k + 4*f_m + f_k1)
        scale = 1 + np.max(np.abs(xk)) if xk.size else 1
        errors[k] = np.max(np.abs(x_simpson - xk1))/scale if xk.size else 0.
    return errors


def refine_mesh(mesh, errors, tol, max_nodes, min_nodes=3, delete_factor=1e-2):
    """
    New normalized mesh from the interval errors of a solution.

    Intervals above tol are split in half. Runs of four consecutive
    intervals below tol*delete_factor lose every other node. Nodes are
    only deleted if the result keeps at least min_nodes, and splits are
    restricted to the worst intervals when max_nodes would be exceeded.
    """
    mesh = list(mesh)
    errors = list(errors)
    if len(errors) != len(mesh) - 1:
        raise ValueError(f"Expected {len(mesh) - 1} interval errors, got {len(errors)}")
    n_int = len(errors)
    threshold_delete = tol*delete_factor
    to_split = [k for k in range(n_int) if errors[k] > tol]
    budget = max_nodes - len(mesh)
    if len(to_split) > budget:
        if budget <= 0:
            warnings.warn(f"Reached maximum nodes ({max_nodes}) of mesh refinements")
            to_split = []
        else:
            worst = sorted(to_split, key=lambda k: errors[k], reverse=True)[:budget]
            to_split = sorted(worst)

    def build(allow_delete):
        new_mesh = [mesh[0]]
        i = 0
        while i < n_int:
            if i in to_split:
                new_mesh.append(0.5*(mesh[i] + mesh[i + 1]))
                new_mesh.append(mesh[i + 1])
                i += 1
            elif allow_delete and i + 3 < n_int and \
                    all(errors[j] <= threshold_delete for j in range(i, i + 4)):
                # keep nodes i + 2 and i + 4
                new_mesh.append(mesh[i + 2])
                new_mesh.append(mesh[i + 4])
                i += 4
            else:
                new_mesh.append(mesh[i + 1])
                i += 1
        return new_mesh

    new_mesh = build(allow_delete=True)
    if len(new_mesh) < min_nodes:
        warnings.warn(f"Reached minimum nodes ({min_nodes}) of mesh refinements")
        new_mesh = build(allow_delete=False)
    logger.debug("Mesh refinement: %d intervals split, %d -> %d nodes",
                 len(to_split), len(mesh), len(new_mesh))
    return new_mesh
