"""
oemsat.retrieval.codec
======================

The :class:`StateCodec` maps between the physical fields of the
atmosphere and the state vector of a retrieval.

Each retrieval quantity owns one contiguous block of the state vector.
Values within a block are ordered column-major over the retrieval grids
of the quantity, i.e. pressure varies fastest, followed by latitude and
longitude.

In the forward direction, the fields are regridded onto the retrieval
grids without extrapolation. In the inverse direction, values are
regridded from the retrieval grids back to the atmosphere with constant
extrapolation beyond the ends of the retrieval grids.
"""
import numpy as np
from loguru import logger

from oemsat.constants import DEFAULT_CONSTANTS
from oemsat.errors import InputError
from oemsat.grids import (atm_to_retrieval_gridpos,
                          retrieval_to_atm_gridpos,
                          regrid_field)
from oemsat.retrieval.quantities import RetrievalQuantity


class StateCodec:
    """
    Conversion between atmospheric fields and state vectors.

    Attributes:

        quantities(:code:`list`): The retrieval quantities in the order of
            their blocks in the state vector.

        constants(:class:`oemsat.constants.PhysicalConstants`): The physical
            constants used for unit conversions.
    """
    def __init__(self, quantities, constants = DEFAULT_CONSTANTS):
        quantities = list(quantities)
        for q in quantities:
            if not isinstance(q, RetrievalQuantity):
                raise InputError("Retrieval quantities must inherit from "
                                 "RetrievalQuantity, got {}.".format(q))
        self.quantities = quantities
        self.constants = constants

    def jacobian_indices(self, fields):
        """
        Index ranges of the retrieval quantities in the state vector.

        Arguments:

            fields(:class:`oemsat.atmosphere.AtmosphericFields`): The
                atmosphere which defines default retrieval grids.

        Returns:

            List of tuples :code:`(start, stop)`, one for each quantity.
        """
        indices = []
        i = 0
        for q in self.quantities:
            n = q.get_size(fields)
            indices.append((i, i + n))
            i += n
        return indices

    def state_size(self, fields):
        """Length of the state vector."""
        indices = self.jacobian_indices(fields)
        if not indices:
            return 0
        return indices[-1][1]

    def forward(self, fields):
        """
        Build the state vector from atmospheric fields.

        Arguments:

            fields(:class:`oemsat.atmosphere.AtmosphericFields`): The fields
                from which to compute the state vector, typically the
                a priori state.

        Returns:

            The state vector as :code:`numpy.ndarray`.
        """
        dim = fields.atmosphere_dim
        blocks = []
        for q in self.quantities:
            grids = q.get_grids(fields)
            gps = atm_to_retrieval_gridpos(grids, fields.grids, dim)
            field = regrid_field(q.get_field(fields), dim, *gps)

            nd = None
            if q.unit.requires_number_density:
                t = regrid_field(fields.t_field, dim, *gps)
                p = grids[0].reshape(-1, 1, 1)
                nd = self.constants.number_density(p, t)

            x = q.unit.to_x(field, nd)
            blocks.append(x.ravel(order = "F"))
            logger.debug("Encoded {} into {} state vector elements.",
                         q, blocks[-1].size)

        if not blocks:
            return np.zeros(0)
        return np.concatenate(blocks)

    def inverse(self, x, fields):
        """
        Map a state vector back to the atmosphere.

        Quantities are processed in the order they were given. Conversions
        from number density use the temperature at the time the quantity
        is processed, so a temperature retrieved earlier in the list is
        taken into account.

        Arguments:

            x(:code:`numpy.ndarray`): The state vector.

            fields(:class:`oemsat.atmosphere.AtmosphericFields`): The
                reference fields. These are not modified.

        Returns:

            New :class:`oemsat.atmosphere.AtmosphericFields` object holding
            the fields corresponding to :code:`x`.

        Raises:

            InputError: If the length of :code:`x` doesn't match the
                retrieval quantities.
        """
        x = np.asarray(x, dtype=np.float64).ravel()
        indices = self.jacobian_indices(fields)
        n = indices[-1][1] if indices else 0
        if x.size != n:
            raise InputError("The length {} of the state vector doesn't match "
                             "the {} elements of the retrieval quantities."
                             .format(x.size, n))

        result = fields.copy()
        dim = result.atmosphere_dim
        for q, (i, j) in zip(self.quantities, indices):
            grids = q.get_grids(result)
            values = x[i:j].reshape(q.get_shape(result), order = "F")
            gps = retrieval_to_atm_gridpos(grids, result.grids, dim)
            values = regrid_field(values, dim, *gps)

            nd = None
            if q.unit.requires_number_density:
                p = result.p_grid.reshape(-1, 1, 1)
                nd = self.constants.number_density(p, result.t_field)

            q.set_field(result, q.unit.from_x(values, q.get_field(result), nd))
        return result
