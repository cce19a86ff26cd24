#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from setuptools import setup

setup(name='daeoc',
      version='1.0',
      description='Direct transcription of DAE-constrained optimal control problems',
      packages=['daeoc', 'daeoc.occopy'],
      python_requires='>=3.8',
      zip_safe=False, install_requires=['casadi>=3.6', 'numpy', 'PyYAML', 'xarray', 'scipy', 'openpyxl'],
      extras_require={'test': ['pytest']})
