"""
oemsat.retrieval.quantities
===========================

Retrieval quantities and the units in which they are retrieved.

A retrieval quantity names one block of the state vector: either the
temperature field or the VMR field of an absorption species. Each
quantity carries a :class:`Unit` object that defines how values in the
state vector relate to the physical field:

- :class:`VMR`: State vector values are plugged into the field as they
  are. This is the only unit available for temperature.

- :class:`Relative`: State vector values are multiplicative factors
  applied to the existing field.

- :class:`NumberDensity`: State vector values are number densities of
  the species, which are converted to VMR using the pressure and the
  temperature of the atmosphere.

A quantity can be retrieved on its own grids. Grids that are not given
default to the grids of the atmosphere.
"""
from abc import ABCMeta, abstractmethod

import numpy as np

from oemsat.errors import InputError

################################################################################
# Retrieval units
################################################################################


class Unit(metaclass = ABCMeta):
    """
    Abstract base class for classes representing units used for the
    retrieval of atmospheric quantities.

    Units convert between values on the grid of the retrieval quantity
    and the state vector (:meth:`to_x`) and from values regridded to the
    atmosphere back to the physical field (:meth:`from_x`).
    """
    #: Whether the conversion requires the total number density.
    requires_number_density = False

    @abstractmethod
    def to_x(self, field, number_density = None):
        """
        Convert a field on the retrieval grid to state vector values.
        """

    @abstractmethod
    def from_x(self, x, field, number_density = None):
        """
        Convert state vector values on the atmosphere grid to the new
        physical field.

        Arguments:

            x(:code:`numpy.ndarray`): State vector values regridded to the
                atmosphere.

            field(:code:`numpy.ndarray`): The current field.

            number_density(:code:`numpy.ndarray`): Total number density on
                the atmosphere grid. Only required by units that set
                :code:`requires_number_density`.
        """

    @property
    @abstractmethod
    def name(self):
        pass

    def __repr__(self):
        return "{}()".format(type(self).__name__)

    def __eq__(self, other):
        return type(self) == type(other)

    def __hash__(self):
        return hash(type(self))


class VMR(Unit):
    """
    Absolute units. Values from the state vector are plugged in as they
    are into the VMR field or, for temperature, the temperature field.
    """
    def to_x(self, field, number_density = None):
        return np.copy(field)

    def from_x(self, x, field, number_density = None):
        return np.copy(x)

    @property
    def name(self):
        return "vmr"


class Relative(Unit):
    """
    In relative units, the amount of a quantity is specified relative to
    its a priori field. The a priori state is a block of ones and
    retrieved values are multiplicative factors applied to the existing
    field.
    """
    def to_x(self, field, number_density = None):
        return np.ones_like(field)

    def from_x(self, x, field, number_density = None):
        return field * x

    @property
    def name(self):
        return "rel"


class NumberDensity(Unit):
    """
    Number density of an absorption species in molecules per m³.
    """
    requires_number_density = True

    def to_x(self, field, number_density = None):
        if number_density is None:
            raise InputError("Conversion to number density requires the total "
                             "number density.")
        return field * number_density

    def from_x(self, x, field, number_density = None):
        if number_density is None:
            raise InputError("Conversion from number density requires the "
                             "total number density.")
        return x / number_density

    @property
    def name(self):
        return "nd"


UNITS = {"vmr" : VMR,
         "rel" : Relative,
         "nd"  : NumberDensity}


def get_unit(unit):
    """
    Get unit object from its name.

    Arguments:

        unit: Either a :class:`Unit` object, which is returned as is, or one
            of the names :code:`"vmr"`, :code:`"rel"` or :code:`"nd"`.

    Raises:

        InputError: If the unit is not known.
    """
    if isinstance(unit, Unit):
        return unit
    try:
        return UNITS[unit]()
    except (KeyError, TypeError):
        raise InputError("Unknown retrieval unit {}. Supported units are {}."
                         .format(unit, list(UNITS.keys())))

################################################################################
# Retrieval quantities
################################################################################


class RetrievalQuantity(metaclass = ABCMeta):
    """
    Abstract base class for quantities that can be retrieved.

    Attributes:

        unit(:class:`Unit`): The unit in which the quantity is retrieved.

        p_grid(:code:`numpy.ndarray`): The retrieval pressure grid. If empty,
            the pressure grid of the atmosphere is used.

        lat_grid(:code:`numpy.ndarray`): The retrieval latitude grid. If
            empty, the latitude grid of the atmosphere is used.

        lon_grid(:code:`numpy.ndarray`): The retrieval longitude grid. If
            empty, the longitude grid of the atmosphere is used.
    """
    def __init__(self,
                 unit = "vmr",
                 p_grid = None,
                 lat_grid = None,
                 lon_grid = None):
        self.unit = unit
        self.p_grid = _as_grid(p_grid)
        self.lat_grid = _as_grid(lat_grid)
        self.lon_grid = _as_grid(lon_grid)

    @property
    def unit(self):
        return self._unit

    @unit.setter
    def unit(self, unit):
        self._unit = get_unit(unit)

    @property
    @abstractmethod
    def name(self):
        """
        Name of the quantity. Used to query a priori data from data
        providers.
        """

    @abstractmethod
    def get_field(self, fields):
        """The physical field of the quantity in :code:`fields`."""

    @abstractmethod
    def set_field(self, fields, values):
        """Overwrite the physical field of the quantity in :code:`fields`."""

    def get_grids(self, fields):
        """
        The retrieval grids of the quantity.

        Arguments:

            fields(:class:`oemsat.atmosphere.AtmosphericFields`): The
                atmosphere on which the quantity is retrieved.

        Returns:

            List :code:`[p_grid, lat_grid, lon_grid]`. Grids not given
            are replaced by the grids of the atmosphere. Grids of dimensions
            the atmosphere doesn't have are empty.
        """
        grids = []
        own = [self.p_grid, self.lat_grid, self.lon_grid]
        for k, (g_rq, g_atm) in enumerate(zip(own, fields.grids)):
            if k >= fields.atmosphere_dim:
                grids.append(np.zeros(0))
            elif g_rq.size > 0:
                grids.append(g_rq)
            else:
                grids.append(g_atm)
        return grids

    def get_shape(self, fields):
        """3D shape of the quantity on its retrieval grids."""
        return tuple(max(g.size, 1) for g in self.get_grids(fields))

    def get_size(self, fields):
        """Number of state vector elements of the quantity."""
        return int(np.prod(self.get_shape(fields)))

    def __repr__(self):
        return "{}({}, unit={})".format(type(self).__name__,
                                        self.name,
                                        self.unit.name)


def _as_grid(grid):
    if grid is None:
        return np.zeros(0)
    return np.asarray(grid, dtype=np.float64).ravel()


class Temperature(RetrievalQuantity):
    """
    The atmospheric temperature in K. Temperature can only be retrieved
    in absolute units.
    """
    def __init__(self, p_grid = None, lat_grid = None, lon_grid = None):
        super().__init__(unit = "vmr",
                         p_grid = p_grid,
                         lat_grid = lat_grid,
                         lon_grid = lon_grid)

    @RetrievalQuantity.unit.setter
    def unit(self, unit):
        unit = get_unit(unit)
        if not isinstance(unit, VMR):
            raise InputError("Temperature can only be retrieved in absolute "
                             "units, not in '{}'.".format(unit.name))
        self._unit = unit

    @property
    def name(self):
        return "temperature"

    def get_field(self, fields):
        return fields.t_field

    def set_field(self, fields, values):
        fields.t_field[:] = values


class AbsSpecies(RetrievalQuantity):
    """
    The VMR field of an absorption species.

    Attributes:

        species(:code:`str`): Name of the species as given in the
            :code:`abs_species` list of the atmosphere.
    """
    def __init__(self,
                 species,
                 unit = "vmr",
                 p_grid = None,
                 lat_grid = None,
                 lon_grid = None):
        self.species = species
        super().__init__(unit = unit,
                         p_grid = p_grid,
                         lat_grid = lat_grid,
                         lon_grid = lon_grid)

    @property
    def name(self):
        return self.species

    def get_field(self, fields):
        return fields.get_vmr(self.species)

    def set_field(self, fields, values):
        fields.vmr_field[fields.species_index(self.species)] = values
