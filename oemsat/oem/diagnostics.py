"""
oemsat.oem.diagnostics
======================

Diagnostics of a single inversion run. The termination codes agree with
the first element of the OEM diagnostics vector used by ARTS.
"""
from enum import IntEnum

import numpy as np


class TerminationCode(IntEnum):
    """Reason for the termination of an inversion run."""
    CONVERGED = 0
    MAX_ITER = 1
    MAX_GAMMA = 2
    NUMERIC_FAILURE = 9
    HIGH_START_COST = 99


class OEMDiagnostics:
    """
    Collects the outcome of an inversion run.

    Attributes:

        code(:class:`TerminationCode`): The termination code. :code:`None`
            while the run hasn't terminated.

        cost_start(:code:`float`): The cost of the a priori state.

        cost_end(:code:`float`): The cost of the final state.

        cost_y_end(:code:`float`): The measurement contribution to the cost
            of the final state.

        iterations(:code:`int`): The number of iterations used.

        gamma_history(:code:`list`): The damping factor of every trial step
            of a Levenberg-Marquardt run.

        errors(:code:`list`): Error messages of failed runs.
    """
    def __init__(self):
        self.code = None
        self.cost_start = np.nan
        self.cost_end = np.nan
        self.cost_y_end = np.nan
        self.iterations = 0
        self.gamma_history = []
        self.errors = []

    @property
    def converged(self):
        return self.code == TerminationCode.CONVERGED

    @property
    def terminated(self):
        return self.code is not None

    def to_vector(self):
        """
        The diagnostics vector
        :code:`[code, cost_start, cost_end, cost_y_end, iterations]`.
        """
        code = np.nan if self.code is None else float(self.code)
        return np.array([code,
                         self.cost_start,
                         self.cost_end,
                         self.cost_y_end,
                         float(self.iterations)])

    def __repr__(self):
        name = None if self.code is None else self.code.name
        return ("OEMDiagnostics(code={}, cost_start={:g}, cost_end={:g}, "
                "iterations={})".format(name,
                                        self.cost_start,
                                        self.cost_end,
                                        self.iterations))
