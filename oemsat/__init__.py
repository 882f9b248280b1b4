"""

The :code:`oemsat` package provides optimal estimation (OEM) retrievals
of atmospheric temperature and composition from remote sensing
measurements. The forward model that simulates the measurements is not
part of the package. It is supplied by the user as a Python function.

Overview
--------

The :func:`run_inversion` function is the core of the package. It takes
the a priori state, the measurement vector, the inverse covariance
matrices and a forward model, and runs a linear, Gauss-Newton or
Levenberg-Marquardt inversion. The result holds the retrieved state,
the gain matrix and the diagnostics of the run. Independent inversions
can be run in parallel using :func:`run_batch`.

Retrieval quantities
--------------------

State vectors are built from physical fields by the :class:`StateCodec`.
It maps the temperature and VMR fields of an
:class:`AtmosphericFields` object onto the grids of a list of retrieval
quantities and back. Quantities can be retrieved in absolute units, in
units relative to the a priori field or as number densities.

Data flow
---------

The :class:`RetrievalCalculation` class wires everything together. The
data describing a concrete scene is expected to be provided by a **data
provider**, which must provide get methods for all data required for
the retrieval: the atmospheric fields, the a priori covariances of the
retrieval quantities, the measurement vector and the observation error
covariance. When the :code:`run(simulate, data_provider, *args, **kwargs)`
method is called, the arguments :code:`*args` and :code:`**kwargs` are
forwarded to the getter methods of the data provider.
"""
from oemsat.atmosphere import AtmosphericFields
from oemsat.constants import DEFAULT_CONSTANTS, PhysicalConstants
from oemsat.oem import OEMResult, run_inversion
from oemsat.oem.batch import run_batch
from oemsat.retrieval import RetrievalCalculation
from oemsat.retrieval.codec import StateCodec
from oemsat.retrieval.quantities import AbsSpecies, Temperature

__all__ = ["AtmosphericFields",
           "PhysicalConstants",
           "DEFAULT_CONSTANTS",
           "OEMResult",
           "run_inversion",
           "run_batch",
           "RetrievalCalculation",
           "StateCodec",
           "AbsSpecies",
           "Temperature"]
