"""
oemsat.retrieval.a_priori
=========================

The :code:`retrieval.a_priori` sub-module provides modular data provider
objects that can be used to build a priori data providers.

Covariance objects compute covariance or precision matrices on a given
grid. They are attached to a retrieval quantity using an
:class:`APriori` provider, which exposes them to the retrieval
calculation through :code:`get_<name>_covariance` or
:code:`get_<name>_precision` methods.

If no grid is given, covariances are defined on the pressure grid that
the owning data provider returns from :code:`get_p_grid`.
"""
import numpy as np
import scipy.sparse

from oemsat.data_provider import DataProviderBase
from oemsat.errors import InputError


def _get_grid(grid, data_provider, *args, **kwargs):
    if grid is not None:
        return np.asarray(grid, dtype=np.float64).ravel()
    try:
        f = data_provider.get_p_grid
    except AttributeError:
        raise InputError("Covariances without explicit grid require a "
                         "get_p_grid method from the data provider.")
    return np.asarray(f(*args, **kwargs), dtype=np.float64).ravel()

################################################################################
# Covariances
################################################################################


class Diagonal:
    """
    Diagonal covariance matrix.
    """
    def __init__(self, diagonal, grid = None):
        """
        Arguments:

            diagonal: Scalar or vector of variances.

            grid: Grid on which the covariance is defined. Only required to
                determine the size of the matrix if :code:`diagonal` is a
                scalar.
        """
        self.diagonal = np.array(diagonal, dtype=np.float64)
        self.grid = grid

    def get_covariance(self, data_provider, *args, **kwargs):
        if self.diagonal.size == 1:
            grid = _get_grid(self.grid, data_provider, *args, **kwargs)
            diagonal = self.diagonal.ravel() * np.ones(grid.size)
        else:
            diagonal = self.diagonal.ravel()
        return scipy.sparse.diags(diagonal, format = "coo")


class SpatialCorrelation:
    """
    Adds spatial correlation to a given covariance matrix.

    Distances are computed between points of the given grid. If no grid is
    given, the distance is computed in log pressure, so the correlation
    length is measured in units of the pressure scale height.
    """
    def __init__(self,
                 covariance,
                 correlation_length,
                 correlation_type = "exp",
                 cutoff = 1e-12,
                 grid = None):
        """
        Arguments:

            covariance: Covariance object providing the original covariance
                matrix to which to apply the spatial correlation.

            correlation_length(:code:`float`): Correlation length in units
                of the grid.

            correlation_type(:code:`str`): Type of the correlation to apply:
                :code:`"exp"` or :code:`"gauss"`.

            cutoff(:code:`float`): Threshold below which to set correlation
                coefficients to zero.

            grid: Coordinates of the grid points.
        """
        if correlation_type not in ["exp", "gauss"]:
            raise InputError("Unknown correlation type {}."
                             .format(correlation_type))
        self.covariance = covariance
        self.correlation_length = correlation_length
        self.correlation_type = correlation_type
        self.cutoff = cutoff
        self.grid = grid

    def get_covariance(self, data_provider, *args, **kwargs):

        if self.grid is None:
            z = np.log(_get_grid(None, data_provider, *args, **kwargs))
        else:
            z = np.asarray(self.grid, dtype=np.float64).ravel()
        dz = np.abs(z.reshape(-1, 1) - z.reshape(1, -1))

        if self.correlation_type == "exp":
            corr = np.exp(- np.abs(dz / self.correlation_length))
        else:
            corr = np.exp(- (dz / self.correlation_length) ** 2)

        corr[corr < self.cutoff] = 0.0

        covmat = self.covariance.get_covariance(data_provider, *args, **kwargs)
        if scipy.sparse.issparse(covmat):
            covmat = covmat.toarray()
        std = np.sqrt(np.diag(covmat))
        return corr * np.outer(std, std)


class Thikhonov:
    """
    Thikhonov regularization using second order finite differences.
    """
    def __init__(self,
                 scaling = 1.0,
                 diagonal = 0.0,
                 grid_scaling = False,
                 grid = None):
        """
        Arguments:

            scaling(:code:`float`): Scalar to scale the precision matrix with.

            diagonal(:code:`float`): Value to add to the diagonal of the
                precision matrix. A positive value makes the matrix
                invertible.

            grid_scaling(:code:`bool`): Whether or not to scale matrix
                coefficients according to the distances between grid
                points.

            grid: Coordinates of the grid points.
        """
        self.scaling = scaling
        self.diagonal = diagonal
        self.grid_scaling = grid_scaling
        self.grid = grid

    def get_covariance(self, data_provider, *args, **kwargs):
        precmat = self.get_precision(data_provider, *args, **kwargs)
        diag = precmat.diagonal()
        return scipy.sparse.diags(1.0 / diag, format = "coo")

    def get_precision(self, data_provider, *args, **kwargs):

        if self.grid is None:
            z = np.log(_get_grid(None, data_provider, *args, **kwargs))
        else:
            z = np.asarray(self.grid, dtype=np.float64).ravel()
        n = z.size
        if n < 3:
            raise InputError("Thikhonov regularization requires at least three "
                             "grid points.")

        du2 = np.ones(n - 2)

        du1 = -4.0 * np.ones(n - 1)
        du1[0] = -2.0
        du1[-1] = -2.0

        dl1 = np.copy(du1)
        dl2 = np.copy(du2)

        d = 6.0 * np.ones(n)
        d[:2] = [1, 5]
        d[-2:] = [5, 1]

        if self.diagonal > 0.0:
            d += self.diagonal

        precmat = scipy.sparse.diags(diagonals = [du2, du1, d, dl1, dl2],
                                     offsets = [2, 1, 0, -1, -2],
                                     format = "coo")
        precmat = precmat * self.scaling

        if self.grid_scaling:
            dz = np.abs(np.diff(z))
            zf = (dz / dz.mean()) ** 2.0
            zf1 = np.zeros(z.shape)
            zf1[1:] += zf
            zf1[:-1] += zf
            zf1[1:-1] *= 0.5
            precmat = scipy.sparse.diags(diagonals = [zf1],
                                         offsets = [0],
                                         format = "coo") @ precmat

        return precmat.tocoo()

################################################################################
# A priori providers
################################################################################


class APriori(DataProviderBase):
    """
    Provides the covariance or precision matrix of a retrieval quantity.

    The a priori mean state itself is derived from the atmospheric fields,
    so this provider only exposes the second-order statistics.
    """
    def __init__(self,
                 name,
                 covariance):
        """
        Arguments:

            name(:code:`str`): Name of the retrieval quantity.

            covariance: Covariance object. If it provides
                :code:`get_covariance`, the provider will have a
                :code:`get_<name>_covariance` method. If it provides
                :code:`get_precision`, the provider will have a
                :code:`get_<name>_precision` method.
        """
        super().__init__()

        if hasattr(covariance, "get_covariance"):
            covariance_name = "get_" + name + "_covariance"
            self.__dict__[covariance_name] = self.get_covariance
        if hasattr(covariance, "get_precision"):
            precision_name = "get_" + name + "_precision"
            self.__dict__[precision_name] = self.get_precision

        self.name = name
        self._covariance = covariance

    def get_covariance(self, *args, **kwargs):
        return self._covariance.get_covariance(self.owner, *args, **kwargs)

    def get_precision(self, *args, **kwargs):
        return self._covariance.get_precision(self.owner, *args, **kwargs)

################################################################################
# Observation error
################################################################################


class SensorNoise(DataProviderBase):
    """
    Observation error due to sensor noise.

    The :code:`SensorNoise` class constructs a diagonal observation error
    covariance matrix from the noise standard deviations of the channel
    groups that make up the measurement vector.

    The noise of particular groups can be amplified by adding a scaling
    factor to the :code:`noise_scaling` attribute of the class.

    Attributes:

        noise(:code:`dict`): Maps names of channel groups to their noise
            standard deviations, in the order of the measurement vector.

        noise_scaling(:code:`dict`): Dictionary mapping group names to
            noise scaling factors.
    """
    def __init__(self, noise):
        super().__init__()
        self.noise = dict(noise)
        self.noise_scaling = {}

    def get_observation_error_covariance(self, *args, **kwargs):
        stds = []
        for name, std in self.noise.items():
            c = self.noise_scaling.get(name, 1.0)
            stds += [c * np.asarray(std, dtype=np.float64).ravel()]
        sig = np.concatenate(stds)
        return scipy.sparse.diags(sig ** 2.0, format = "coo")
