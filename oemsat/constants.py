"""
oemsat.constants
================

Physical constants used by the state mapping. The constants are bundled
into an immutable :class:`PhysicalConstants` object which is passed
explicitly to the code that needs it.
"""
from dataclasses import dataclass

import numpy as np
from typhon.constants import boltzmann


@dataclass(frozen=True)
class PhysicalConstants:
    """
    Physical constants required to convert between retrieval units.

    Attributes:

        boltzmann(:code:`float`): The Boltzmann constant in J / K.
    """
    boltzmann: float = boltzmann

    def number_density(self, p, t):
        """
        Total number density of an ideal gas.

        Arguments:

            p: Pressure in Pa.

            t: Temperature in K.

        Returns:

            The number density :math:`p / (k_B T)` in molecules per m³.
        """
        return np.asarray(p) / (self.boltzmann * np.asarray(t))


DEFAULT_CONSTANTS = PhysicalConstants()
