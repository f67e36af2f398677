#!/usr/bin/env python

"""Exceptions raised while setting up or solving a game"""


class ilqgamesError(Exception):
    """Base class for all errors raised by this package"""


class ConfigurationError(ilqgamesError, ValueError):
    """Malformed problem setup, detected once at construction time"""


class SolverFailure(ilqgamesError, RuntimeError):
    """An outer iteration could not be completed

    The outer loop fills in ``iteration`` and ``stage`` before reporting.
    """

    def __init__(self, message, iteration=None, stage=None):
        super().__init__(message)
        self.iteration = iteration
        self.stage = stage

    def __str__(self):
        msg = super().__str__()
        if self.iteration is None:
            return msg
        stage = getattr(self.stage, "name", self.stage)
        return f"{msg} (iteration {self.iteration}, stage {stage})"


class NumericalFailure(SolverFailure):
    """The coupled LQ step was singular, ill-conditioned or non-finite"""

    def __init__(self, message, time_index=None, **kwargs):
        super().__init__(message, **kwargs)
        self.time_index = time_index


class NonFiniteValue(SolverFailure):
    """NaN or Inf showed up in a linearization, quadraticization or rollout"""
