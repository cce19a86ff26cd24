# -*- coding: utf-8 -*-

import numpy as np
import xarray as xr
from openpyxl import Workbook

from daeoc.occopy.dynamics import DiscreteTrajectory


NODE_DIM = 'node_t'
INTERVAL_DIM = 'interval_t'


def trajectory_to_dataset(trj):
    """Return an xarray Dataset with the node and control-interval values of trj

    States and algebraic states live on the node coordinate 'node_t',
    controls on the interval midpoint coordinate 'interval_t'. Parameters,
    objective and solver status are stored as attributes.
    """
    clashes = [name for name in list(trj.x) + list(trj.y) + list(trj.u)
               if name in (NODE_DIM, INTERVAL_DIM)]
    if clashes:
        raise ValueError(f"Variables {clashes} clash with the dataset coordinates "
                         f"'{NODE_DIM}' and '{INTERVAL_DIM}'")
    data_vars = {}
    for name, values in trj.x.items():
        data_vars[name] = ((NODE_DIM,), np.array(values, dtype=float), {'kind': 'state'})
    for name, values in trj.y.items():
        data_vars[name] = ((NODE_DIM,), np.array(values, dtype=float), {'kind': 'algebraic'})
    for name, values in trj.u.items():
        data_vars[name] = ((INTERVAL_DIM,), np.array(values, dtype=float), {'kind': 'control'})
    attrs = {f'p_{name}': float(v) for name, v in trj.p.items()}
    attrs['t0'] = float(trj.t0)
    attrs['tf'] = float(trj.tf)
    if trj.status is not None:
        attrs['status'] = str(trj.status)
    if trj.J is not None:
        attrs['J'] = float(trj.J)
    return xr.Dataset(
        data_vars,
        coords={NODE_DIM: np.array(trj.t, dtype=float),
                INTERVAL_DIM: np.array(trj.tu, dtype=float)},
        attrs=attrs,
        )


def dataset_to_trajectory(ds):
    trj = DiscreteTrajectory()
    groups = {'state': trj.x, 'algebraic': trj.y, 'control': trj.u}
    for name, var in ds.data_vars.items():
        groups[var.attrs['kind']][name] = [float(v) for v in var.values]
    trj.p.update({k[2:]: float(v) for k, v in ds.attrs.items() if k.startswith('p_')})
    trj.t = [float(v) for v in ds[NODE_DIM].values]
    trj.tu = [float(v) for v in ds[INTERVAL_DIM].values]
    trj.t0 = float(ds.attrs.get('t0', trj.t[0]))
    trj.tf = float(ds.attrs.get('tf', trj.t[-1]))
    trj.status = ds.attrs.get('status')
    trj.J = ds.attrs.get('J')
    return trj


def save_to_netcdf(trj, path):
    trajectory_to_dataset(trj).to_netcdf(path, engine='scipy')


def load_from_netcdf(path):
    with xr.open_dataset(path, engine='scipy') as ds:
        return dataset_to_trajectory(ds.load())


def save_to_excel(trj, path):
    wb = Workbook()
    ws = wb.active
    ws.title = 'nodes'
    names = list(trj.x) + list(trj.y)
    ws.append(['t'] + names)
    for i, t in enumerate(trj.t):
        row = [float(t)]
        row += [float(trj.x[name][i]) for name in trj.x]
        row += [float(trj.y[name][i]) for name in trj.y]
        ws.append(row)
    ws = wb.create_sheet('controls')
    ws.append(['tu'] + list(trj.u))
    for i, t in enumerate(trj.tu):
        ws.append([float(t)] + [float(trj.u[name][i]) for name in trj.u])
    ws = wb.create_sheet('summary')
    ws.append(['t0', float(trj.t0)])
    ws.append(['tf', float(trj.tf)])
    ws.append(['status', None if trj.status is None else str(trj.status)])
    ws.append(['J', None if trj.J is None else float(trj.J)])
    for name, v in trj.p.items():
        ws.append([f'p_{name}', float(v)])
    wb.save(path)
