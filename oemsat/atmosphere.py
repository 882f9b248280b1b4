"""
oemsat.atmosphere
=================

This module defines the :class:`AtmosphericFields` class, which holds
the physical fields that retrieval quantities are mapped to and from:
the temperature field and the volume mixing ratio (VMR) fields of the
absorption species together with the grids they are defined on.

The layout of the fields follows ARTS:

- :code:`t_field` has shape :code:`(n_p, n_lat, n_lon)`,
- :code:`vmr_field` has shape :code:`(n_species, n_p, n_lat, n_lon)`,

where :code:`n_lat` and :code:`n_lon` are 1 if the atmosphere doesn't
extend along these dimensions.
"""
import numpy as np
import xarray as xr

from oemsat.errors import InputError


def _as_grid(grid):
    if grid is None:
        return np.zeros(0)
    return np.asarray(grid, dtype=np.float64).ravel()


class AtmosphericFields:
    """
    Temperature and VMR fields on the grids of the atmosphere.

    Attributes:

        p_grid(:code:`numpy.ndarray`): The pressure grid in Pa.

        lat_grid(:code:`numpy.ndarray`): The latitude grid. Empty for
            1D atmospheres.

        lon_grid(:code:`numpy.ndarray`): The longitude grid. Empty for
            1D and 2D atmospheres.

        t_field(:code:`numpy.ndarray`): The 3D temperature field in K.

        vmr_field(:code:`numpy.ndarray`): The 4D VMR field.

        abs_species(:code:`list`): Names of the absorption species in the
            order of the first dimension of :code:`vmr_field`.
    """
    def __init__(self,
                 p_grid,
                 t_field,
                 vmr_field = None,
                 abs_species = (),
                 lat_grid = None,
                 lon_grid = None):
        self.p_grid = _as_grid(p_grid)
        self.lat_grid = _as_grid(lat_grid)
        self.lon_grid = _as_grid(lon_grid)

        if self.p_grid.size == 0:
            raise InputError("The pressure grid of the atmosphere must not be "
                             "empty.")
        if self.lat_grid.size == 0 and self.lon_grid.size > 0:
            raise InputError("A longitude grid requires a latitude grid.")

        self.abs_species = list(abs_species)

        self.t_field = self._reshape(t_field, "temperature")

        n_species = len(self.abs_species)
        if vmr_field is None:
            vmr_field = np.zeros((n_species,) + self.shape)
        vmr_field = np.asarray(vmr_field, dtype=np.float64)
        if vmr_field.size != n_species * np.prod(self.shape):
            raise InputError("Provided VMR field with shape {} is inconsistent "
                             "with {} species and the dimensions {} of the "
                             "atmosphere.".format(vmr_field.shape, n_species,
                                                   self.shape))
        self.vmr_field = vmr_field.reshape((n_species,) + self.shape)

    @property
    def atmosphere_dim(self):
        """The dimensionality of the atmosphere."""
        if self.lon_grid.size > 0:
            return 3
        if self.lat_grid.size > 0:
            return 2
        return 1

    @property
    def shape(self):
        """The 3D shape of the atmospheric fields."""
        return (self.p_grid.size,
                max(self.lat_grid.size, 1),
                max(self.lon_grid.size, 1))

    @property
    def grids(self):
        """The list :code:`[p_grid, lat_grid, lon_grid]`."""
        return [self.p_grid, self.lat_grid, self.lon_grid]

    def _reshape(self, field, name):
        """
        Check that the size of a field matches the atmosphere and extend
        it to three dimensions.
        """
        field = np.asarray(field, dtype=np.float64)
        if field.size != np.prod(self.shape):
            raise InputError("Provided {} field with shape {} is inconsistent "
                             "with the dimensions {} of the atmosphere."
                             .format(name, field.shape, self.shape))
        return field.reshape(self.shape)

    def species_index(self, species):
        """
        Index of an absorption species in the VMR field.

        Raises:

            InputError: If the species is not present.
        """
        try:
            return self.abs_species.index(species)
        except ValueError:
            raise InputError("The absorption species {} is not present in the "
                             "atmosphere. Available species are {}."
                             .format(species, self.abs_species))

    def get_vmr(self, species):
        """The 3D VMR field of a given species."""
        return self.vmr_field[self.species_index(species)]

    def copy(self):
        """Deep copy of the fields."""
        return AtmosphericFields(np.copy(self.p_grid),
                                 np.copy(self.t_field),
                                 vmr_field = np.copy(self.vmr_field),
                                 abs_species = list(self.abs_species),
                                 lat_grid = np.copy(self.lat_grid),
                                 lon_grid = np.copy(self.lon_grid))

    @classmethod
    def from_data_provider(cls, data_provider, abs_species, *args, **kwargs):
        """
        Get atmospheric fields from a data provider.

        The data provider must provide :code:`get_p_grid`,
        :code:`get_temperature` and a :code:`get_<species>` method for
        each absorption species. Latitude and longitude grids are taken
        from :code:`get_lat_grid` and :code:`get_lon_grid` if provided.

        Arguments:

            data_provider: The data provider to get the fields from.

            abs_species: Names of the absorption species.

            *args, **kwargs: Forwarded to the get methods of the data
                provider.
        """
        grids = {}
        for name in ["lat_grid", "lon_grid"]:
            try:
                f = getattr(data_provider, "get_" + name)
            except AttributeError:
                grids[name] = None
                continue
            grids[name] = f(*args, **kwargs)

        try:
            p_grid = data_provider.get_p_grid(*args, **kwargs)
            t_field = data_provider.get_temperature(*args, **kwargs)
        except AttributeError:
            raise InputError("The data provider must provide get methods for "
                             "the pressure grid and the temperature.")

        vmrs = []
        for species in abs_species:
            try:
                f = getattr(data_provider, "get_" + species)
            except AttributeError:
                raise InputError("The data provider must provide a get method "
                                 "for the VMR of species {}.".format(species))
            vmrs.append(np.asarray(f(*args, **kwargs), dtype=np.float64))

        fields = cls(p_grid, t_field, abs_species = abs_species, **grids)
        for i, vmr in enumerate(vmrs):
            fields.vmr_field[i] = fields._reshape(vmr, abs_species[i])
        return fields

    def to_xarray(self):
        """
        Convert the fields to an :code:`xarray.Dataset`.

        Returns:

            Dataset with the temperature field as variable :code:`t` and
            one variable for the VMR of each species.
        """
        dims = ("p", "lat", "lon")
        coords = {"p": self.p_grid}
        if self.lat_grid.size > 0:
            coords["lat"] = self.lat_grid
        if self.lon_grid.size > 0:
            coords["lon"] = self.lon_grid
        data = {"t": (dims, self.t_field)}
        for species, vmr in zip(self.abs_species, self.vmr_field):
            data[species] = (dims, vmr)
        return xr.Dataset(data, coords = coords)
