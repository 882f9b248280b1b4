"""
oemsat.retrieval
================

The :code:`retrieval` module wires OEM inversions to atmospheric fields
and data providers. The retrieval functionality is provided by a small
class structure:

1. :class:`RetrievalCalculation` holds the retrieval quantities and the
   OEM settings and runs retrievals for given scenes.

2. :class:`oemsat.retrieval.quantities.RetrievalQuantity` defines the
   quantities that can be retrieved and the units in which they are
   retrieved.

3. :class:`RetrievalRun` represents a single inversion and holds its
   results.

Retrieving quantities
=====================

Quantities to retrieve are added to a retrieval calculation using
:meth:`RetrievalCalculation.add`:

::

    retrieval = RetrievalCalculation()
    retrieval.add(Temperature())
    retrieval.add(AbsSpecies("H2O", unit = "rel"))
    run = retrieval.run(simulate, data_provider)

The data provider must provide the atmospheric fields (see
:meth:`oemsat.atmosphere.AtmosphericFields.from_data_provider`), a
:code:`get_<name>_covariance` or :code:`get_<name>_precision` method for
each retrieval quantity, the measurement vector through :code:`get_y` and
the observation error covariance matrix through
:code:`get_observation_error_covariance`.

The a priori state of the retrieval is computed from the atmospheric
fields returned by the data provider.

Reference
=========
"""
import weakref

import matplotlib.pyplot as plt
import numpy as np
import scipy.linalg
import scipy.sparse
from loguru import logger

from oemsat.atmosphere import AtmosphericFields
from oemsat.constants import DEFAULT_CONSTANTS
from oemsat.errors import InputError
from oemsat.oem import run_inversion
from oemsat.oem.diagnostics import OEMDiagnostics, TerminationCode
from oemsat.oem.error_analysis import (averaging_kernel,
                                       observation_error_covariance,
                                       smoothing_error_covariance)
from oemsat.oem.forward_model import FieldForwardModel
from oemsat.retrieval.codec import StateCodec
from oemsat.retrieval.quantities import (AbsSpecies,
                                         NumberDensity,
                                         Relative,
                                         RetrievalQuantity,
                                         Temperature,
                                         VMR,
                                         get_unit)
from oemsat.settings import default_settings


def _to_dense(matrix):
    if scipy.sparse.issparse(matrix):
        return matrix.toarray()
    return np.asarray(matrix, dtype=np.float64)


def _get_optional(data_provider, name, *args, **kwargs):
    try:
        f = getattr(data_provider, name)
    except AttributeError:
        return None
    return f(*args, **kwargs)

################################################################################
# RetrievalRun
################################################################################


class RetrievalRun:
    """
    A single OEM inversion of a retrieval calculation.

    Attributes:

        name(:code:`str`): A name to identity the retrieval run.

        settings(:code:`dict`): The OEM settings of the run.

        retrieval_quantities(:code:`list`): The retrieved quantities.

        rq_indices(:code:`dict`): Maps retrieval quantities to their
            index ranges in the state vector.

        fields(:class:`oemsat.atmosphere.AtmosphericFields`): The a priori
            fields.

        retrieved_fields(:class:`oemsat.atmosphere.AtmosphericFields`): The
            fields corresponding to the retrieved state.

        y(:code:`numpy.ndarray`): The measurement vector.

        codec(:class:`oemsat.retrieval.codec.StateCodec`): The state vector
            codec of the run.

        xa, x, yf, jacobian, dxdy, avk, covmat_so, covmat_ss, covmat_sx_inv,
            covmat_so_inv: Results of the inversion. :code:`None` where not
            available.

        diagnostics(:class:`oemsat.oem.diagnostics.OEMDiagnostics`): The
            diagnostics of the inversion.

        oem_diagnostics(:code:`numpy.ndarray`): The five-element diagnostics
            vector.

        oem_errors(:code:`list`): Error messages if the inversion failed.
    """
    def __init__(self,
                 name,
                 calculation,
                 settings,
                 retrieval_quantities):
        self.name = name
        self.settings = dict(settings)
        self.retrieval_quantities = list(retrieval_quantities)
        self.rq_indices = {}
        self._calculation = weakref.ref(calculation)

        self.codec = None
        self.fields = None
        self.retrieved_fields = None
        self.y = None
        self.xa = None
        self.x = None
        self.yf = None
        self.jacobian = None
        self.dxdy = None
        self.avk = None
        self.covmat_so = None
        self.covmat_ss = None
        self.covmat_sx_inv = None
        self.covmat_so_inv = None
        self.diagnostics = None
        self.oem_diagnostics = None
        self.oem_errors = None

    @property
    def calculation(self):
        calculation = self._calculation()
        if calculation:
            return calculation
        else:
            raise ValueError("The corresponding retrieval calculation has "
                             "been deleted.")

    #
    # A priori setup
    #

    def _get_precision_block(self, q, data_provider, *args, **kwargs):
        """
        The inverse a priori covariance matrix of a retrieval quantity.
        """
        precmat = _get_optional(data_provider, "get_" + q.name + "_precision",
                                *args, **kwargs)
        if precmat is not None:
            return _to_dense(precmat)

        covmat = _get_optional(data_provider, "get_" + q.name + "_covariance",
                               *args, **kwargs)
        if covmat is None:
            raise InputError("The data provider must provide a get method for "
                             "the covariance or the precision matrix of "
                             "retrieval quantity {}.".format(q.name))
        return scipy.linalg.inv(_to_dense(covmat))

    def setup_a_priori(self, data_provider, *args, **kwargs):
        """
        Gather the a priori state, the inverse covariance matrices and the
        measurement vector from the data provider.

        Arguments:

            data_provider: The data provider describing the scene.

            *args, **kwargs: Passed on to the data provider.
        """
        calculation = self.calculation
        self.fields = AtmosphericFields.from_data_provider(
            data_provider, calculation.get_abs_species(), *args, **kwargs
        )

        self.codec = StateCodec(self.retrieval_quantities,
                                calculation.constants)
        self.xa = self.codec.forward(self.fields)
        indices = self.codec.jacobian_indices(self.fields)

        blocks = []
        for q, (i, j) in zip(self.retrieval_quantities, indices):
            self.rq_indices[q] = (i, j)
            block = self._get_precision_block(q, data_provider, *args, **kwargs)
            if block.shape != (j - i, j - i):
                raise InputError("The a priori covariance of retrieval "
                                 "quantity {} has shape {} but the quantity "
                                 "has {} elements."
                                 .format(q.name, block.shape, j - i))
            blocks.append(block)
        self.covmat_sx_inv = scipy.sparse.block_diag(blocks, format = "csr")

        try:
            self.y = np.asarray(data_provider.get_y(*args, **kwargs),
                                dtype=np.float64).ravel()
        except AttributeError:
            raise InputError("The data provider must provide the measurement "
                             "vector through a get_y method.")

        try:
            f = data_provider.get_observation_error_covariance
        except AttributeError:
            raise InputError("The data provider must provide a "
                             "get_observation_error_covariance method.")
        covmat_so = _to_dense(f(*args, **kwargs))
        self.covmat_so_inv = scipy.linalg.inv(covmat_so)

    def run(self, simulate, data_provider, *args, jacobian = None, **kwargs):
        """
        Run the inversion.

        Errors raised by the inversion are caught and recorded in the
        diagnostics with code 9.

        Arguments:

            simulate: Function simulating the measurement from an
                :class:`oemsat.atmosphere.AtmosphericFields` object.

            data_provider: The data provider describing the scene.

            jacobian: Optional function computing the Jacobian w.r.t. the
                state vector from an
                :class:`oemsat.atmosphere.AtmosphericFields` object.

            *args, **kwargs: Passed on to the data provider.
        """
        self.setup_a_priori(data_provider, *args, **kwargs)

        forward_model = FieldForwardModel(simulate,
                                          self.codec,
                                          self.fields,
                                          jacobian = jacobian)

        try:
            result = run_inversion(xa = self.xa,
                                   y = self.y,
                                   covmat_sx_inv = self.covmat_sx_inv,
                                   covmat_so_inv = self.covmat_so_inv,
                                   forward_model = forward_model,
                                   **self.settings)
            self.diagnostics = result.diagnostics
            self.x = result.x
            self.yf = result.yf
            self.jacobian = result.jacobian
            self.dxdy = result.dxdy
            if self.x is not None:
                self.retrieved_fields = self.codec.inverse(self.x, self.fields)
        except Exception as e:
            logger.error("Error in OEM computation: {}", e)
            self.diagnostics = OEMDiagnostics()
            self.diagnostics.code = TerminationCode.NUMERIC_FAILURE
            self.diagnostics.errors = ["Error in OEM computation.", str(e)]
            self.x = None
            self.yf = None
            self.jacobian = None
            self.dxdy = None
            self.retrieved_fields = None

        self.oem_diagnostics = self.diagnostics.to_vector()

        if self.dxdy is not None and self.jacobian is not None:
            self.avk = averaging_kernel(self.dxdy, self.jacobian)
            self.covmat_so = observation_error_covariance(self.dxdy,
                                                          self.covmat_so_inv)
            self.covmat_ss = smoothing_error_covariance(self.avk,
                                                        self.covmat_sx_inv)
        else:
            self.avk = None
            self.covmat_so = None
            self.covmat_ss = None

        if self.diagnostics.code == TerminationCode.NUMERIC_FAILURE:
            self.oem_errors = self.diagnostics.errors
        else:
            self.oem_errors = None

    #
    # Results
    #

    def get_result(self, q, attribute = "x", interpolate = False):
        """
        Get results for a given retrieval quantity.

        Arguments:

            q: The retrieval quantity.

            attribute(:code:`str`): The state vector to get the result
                from, :code:`"x"` or :code:`"xa"`.

            interpolate(:code:`bool`): If :code:`True`, return the physical
                field of the quantity on the grids of the atmosphere instead
                of the block of the state vector.

        Returns:

            The result or :code:`None` if no result is available.
        """
        if q not in self.rq_indices:
            return None

        if interpolate:
            fields = self.retrieved_fields if attribute == "x" else self.fields
            if fields is None:
                return None
            return np.copy(q.get_field(fields))

        x = getattr(self, attribute)
        if x is None:
            return None
        i, j = self.rq_indices[q]
        return x[i:j]

    def get_xa(self, q, interpolate = True):
        """A priori state of a given retrieval quantity."""
        return self.get_result(q, attribute = "xa", interpolate = interpolate)

    def get_avk(self, q):
        """The averaging kernel block of a given retrieval quantity."""
        if self.avk is None or q not in self.rq_indices:
            return None
        i, j = self.rq_indices[q]
        return self.avk[i:j, i:j]

    #
    # Plotting functions
    #

    def plot_result(self,
                    q,
                    ax = None,
                    include_prior = True):
        """
        Plot retrieved profile of given quantity against pressure.

        Works only in 1-dimensional atmospheres.

        Args:
            q: The retrieval quantity of which to plot the results
            ax: matplotlib Axes object in which to plot the results. If
                 None, a new axes object is constructed using subplots(1, 1).
            include_prior: If :code:`True` also the a priori profile is
                plotted using a dashed line.
        """
        x = self.get_result(q, interpolate = True)
        if x is None:
            raise ValueError("No result for retrieval quantity {} available."
                             .format(q.name))
        if self.fields.atmosphere_dim != 1:
            raise ValueError("Plotting of results is only supported for 1D "
                             "atmospheres.")

        if ax is None:
            _, ax = plt.subplots(1, 1)

        p = self.fields.p_grid
        ls = ax.plot(x.ravel(), p, label = q.name)

        if include_prior:
            xa = self.get_xa(q, interpolate = True)
            ax.plot(xa.ravel(), p, c = ls[0].get_color(), ls = "--")

        ax.set_yscale("log")
        if not ax.yaxis_inverted():
            ax.invert_yaxis()
        return ax

    def plot_jacobian(self, q, ax = None):
        """
        Plot the Jacobian of the measurement w.r.t. a given retrieval
        quantity.

        Args:
            q: The retrieval quantity w.r.t. to which the Jacobian should be
                plotted.
            ax: matplotlib Axes object in which to plot the results. If
                 None, a new axes object is constructed using subplots(1, 1).
        """
        if self.jacobian is None or q not in self.rq_indices:
            raise ValueError("No Jacobian for retrieval quantity {} available."
                             .format(q.name))
        i, j = self.rq_indices[q]
        dydx = self.jacobian[:, i:j]

        if ax is None:
            _, ax = plt.subplots(1, 1)

        for k in range(dydx.shape[0]):
            ax.plot(dydx[k, :], label = "Channel {}".format(k))
        return ax

################################################################################
# RetrievalCalculation
################################################################################


class RetrievalCalculation:
    """
    The :class:`RetrievalCalculation` takes care of the book-keeping around
    retrieval quantities as well as the execution of the retrieval
    calculation.

    Attributes:

        retrieval_quantities(:code:`list`): The quantities to retrieve.

        settings(:code:`dict`): The OEM settings, see
            :mod:`oemsat.settings`.

        abs_species(:code:`list`): Absorption species of the atmosphere.
            If empty, the species of the retrieval quantities are used.

        constants(:class:`oemsat.constants.PhysicalConstants`): Constants
            used for unit conversions.

        results(:class:`RetrievalRun`): The run of the last call to
            :meth:`run`.
    """
    def __init__(self,
                 abs_species = (),
                 settings = None,
                 constants = DEFAULT_CONSTANTS):
        self.retrieval_quantities = []
        self.abs_species = list(abs_species)
        self.settings = default_settings()
        if settings is not None:
            self.settings.update(settings)
        self.constants = constants
        self.results = None

    def add(self, rq):
        """
        Add a retrieval quantity to the retrieval calculation.

        Arguments:

            rq(:class:`oemsat.retrieval.quantities.RetrievalQuantity`): The
                retrieval quantity to retrieve.
        """
        if not isinstance(rq, RetrievalQuantity):
            raise InputError("Retrieval quantities must inherit from "
                             "RetrievalQuantity.")
        if rq in self.retrieval_quantities:
            raise InputError("Retrieval quantity {} has already been added."
                             .format(rq))
        self.retrieval_quantities += [rq]

    def get_abs_species(self):
        """
        Absorption species of the atmosphere: the given species list
        followed by species of retrieval quantities that are not part of
        it.
        """
        species = list(self.abs_species)
        for q in self.retrieval_quantities:
            if isinstance(q, AbsSpecies) and q.species not in species:
                species.append(q.species)
        return species

    def run(self, simulate, data_provider, *args, jacobian = None, **kwargs):
        """
        Run a retrieval.

        Arguments:

            simulate: Function simulating the measurement from an
                :class:`oemsat.atmosphere.AtmosphericFields` object.

            data_provider: The data provider describing the scene.

            jacobian: Optional function computing the Jacobian.

            *args, **kwargs: Passed on to the data provider.

        Returns:

            The :class:`RetrievalRun` holding the results.
        """
        if len(self.retrieval_quantities) == 0:
            raise InputError("Can't perform retrieval without retrieval "
                             "quantities.")
        retrieval = RetrievalRun("Retrieval",
                                 self,
                                 self.settings,
                                 self.retrieval_quantities)
        retrieval.run(simulate, data_provider, *args,
                      jacobian = jacobian, **kwargs)
        self.results = retrieval
        return retrieval


__all__ = ["RetrievalCalculation",
           "RetrievalRun",
           "RetrievalQuantity",
           "Temperature",
           "AbsSpecies",
           "VMR",
           "Relative",
           "NumberDensity",
           "get_unit",
           "StateCodec"]
