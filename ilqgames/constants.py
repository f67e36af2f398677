#!/usr/bin/env python

"""Numerical constants shared across the package"""

import numpy as np

π = np.pi

# Acceleration due to gravity (m/s/s).
GRAVITY = 9.81

# Small number for use in approximate equality checking.
SMALL_NUMBER = 1e-4

INFINITY = np.inf
