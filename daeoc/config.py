#!/usr/bin/python
# -*- coding: utf-8 -*-

import json
import os
from os.path import expanduser

import yaml

home = expanduser("~")

DAEOC_CFG_PATH = os.path.join(home, '.daeoc_cfg')

default_options = {
    'ipopt': {
        'max_iter': 3000,
        'print_level': 0,
        },
    'print_time': False,
    'n_nodes': 40,
    'mesh_tol': 1e-4,
    'max_refinements': 10,
    'max_nodes': 2000,
    'min_nodes': 3,
    }


def config_path():
    return os.environ.get('DAEOC_CFG_PATH', DAEOC_CFG_PATH)


class Config(dict):
    def __init__(self, path=None):
        dict.__init__(self)
        self.path = config_path() if path is None else path
        self.update(json.loads(json.dumps(default_options)))
        try:
            with open(self.path, 'r') as f:
                self.update(json.loads(f.read()))
        except IOError:
            self.save()

    def save(self):
        with open(self.path, 'w') as f:
            f.write(json.dumps(dict(self)))


def load_yaml_config(path, defaults=None):
    """
    Reads a YAML mapping and merges it over a copy of the defaults.
    """
    config = {} if defaults is None else dict(defaults)
    with open(path, 'r') as ymlfile:
        loaded = yaml.safe_load(ymlfile)
    if loaded is None:
        return config
    if not isinstance(loaded, dict):
        raise ValueError(f"The configuration file {path} must contain a mapping, "
                         f"found {type(loaded).__name__}")
    config.update(loaded)
    return config
