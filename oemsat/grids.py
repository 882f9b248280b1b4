"""
oemsat.grids
============

The :code:`grids` module maps quantities between grids. It provides
the grid-position and interpolation primitives for fields with up to
three spatial dimensions (pressure, latitude and longitude) and, built
on top of these, the two mappings used by the state codec:

1. :func:`atm_to_retrieval_gridpos` maps from the grids of the
   atmosphere to the grids of a retrieval quantity. No extrapolation
   is allowed here.

2. :func:`retrieval_to_atm_gridpos` maps from the grids of a retrieval
   quantity back to the grids of the atmosphere. The retrieval grids
   are extrapolated infinitely (with constant values) so that every
   point of the atmosphere is covered even if the retrieval grid is
   coarser or narrower.

Grid positions
==============

A grid position locates a point relative to an *old* grid by the index
of the grid point below the point and the fractional distance to the
next grid point. Both are defined relative to the order of the old
grid, so for a descending grid :code:`[3, 2]` the point :code:`2.25`
has index 0 and fractional distance 0.75.

Reference
=========
"""
import numpy as np
from scipy.interpolate import RegularGridInterpolator

from oemsat.errors import GridError

# Extrapolation factor used to extrapolate retrieval grids to infinity.
INF_PROXY = 1.0e99


class GridPos:
    """
    Grid positions of a set of points relative to an old grid.

    Attributes:

        idx(:code:`numpy.ndarray`): Index of the old grid point below
            each point.

        fd(:code:`numpy.ndarray`): Fractional distance of each point to
            the next grid point. Values outside of [0, 1] mean that the
            point is extrapolated.
    """
    def __init__(self, idx, fd):
        self.idx = np.asarray(idx, dtype=np.int64)
        self.fd = np.asarray(fd, dtype=np.float64)
        if self.idx.shape != self.fd.shape:
            raise GridError("Grid position indices and fractional distances "
                            "must have the same shape.")

    def __len__(self):
        return self.idx.size

    def __repr__(self):
        return "GridPos(idx={}, fd={})".format(self.idx, self.fd)

    def clip(self):
        """
        Restrict fractional distances to [0, 1].

        With clipped fractional distances, values outside of the old grid
        are set to the value at the closest end point of the grid.

        Returns:

            A new :class:`GridPos` object.
        """
        return GridPos(self.idx.copy(), np.clip(self.fd, 0.0, 1.0))


def _check_grid(grid, name):
    grid = np.asarray(grid, dtype=np.float64).ravel()
    if grid.size < 2:
        raise GridError("The {} must contain at least two points to compute "
                        "grid positions.".format(name))
    d = np.diff(grid)
    if not (np.all(d > 0) or np.all(d < 0)):
        raise GridError("The {} must be strictly monotonic.".format(name))
    return grid


def gridpos(old_grid, new_grid, extpolfac=0.5):
    """
    Compute grid positions of points in :code:`new_grid` relative to
    :code:`old_grid`.

    Arguments:

        old_grid: The strictly monotonic grid (ascending or descending)
            relative to which to compute the positions.

        new_grid: The points to locate.

        extpolfac(:code:`float`): How far points may lie outside of the
            old grid, as a multiple of the width of the first or last
            grid interval.

    Returns:

        :class:`GridPos` object with one entry for each point in
        :code:`new_grid`.

    Raises:

        GridError: If the old grid is invalid or a point lies outside of
            the allowed extrapolation range.
    """
    old_grid = _check_grid(old_grid, "old grid")
    new_grid = np.asarray(new_grid, dtype=np.float64).ravel()
    n = old_grid.size

    descending = old_grid[0] > old_grid[-1]
    grid = old_grid[::-1] if descending else old_grid

    lower = grid[0] - extpolfac * (grid[1] - grid[0])
    upper = grid[-1] + extpolfac * (grid[-1] - grid[-2])
    # Floating point tolerance for points on the grid end points.
    eps = 1e-9 * (grid[-1] - grid[0])
    outside = (new_grid < lower - eps) | (new_grid > upper + eps)
    if np.any(outside):
        raise GridError("Point(s) {} lie outside the allowed range [{}, {}] "
                        "of the old grid.".format(new_grid[outside],
                                                  lower, upper))

    idx = np.searchsorted(grid, new_grid, side="right") - 1
    idx = np.clip(idx, 0, n - 2)
    fd = (new_grid - grid[idx]) / (grid[idx + 1] - grid[idx])

    if descending:
        idx = n - 2 - idx
        fd = 1.0 - fd

    return GridPos(idx, fd)


def p2gridpos(old_pgrid, new_pgrid, extpolfac=0.5):
    """
    Grid positions for pressure grids.

    Same as :func:`gridpos` but the positions are computed in
    :math:`\\log(p)`.
    """
    old_pgrid = np.asarray(old_pgrid, dtype=np.float64)
    new_pgrid = np.asarray(new_pgrid, dtype=np.float64)
    if np.any(old_pgrid <= 0.0) or np.any(new_pgrid <= 0.0):
        raise GridError("Pressure grids must be positive.")
    return gridpos(np.log(old_pgrid), np.log(new_pgrid), extpolfac)


def gridpos_length1(n):
    """
    Grid positions for an old grid with a single point.

    All :code:`n` points map to the single value of the old grid.
    """
    return GridPos(np.zeros(n, dtype=np.int64), np.zeros(n))


################################################################################
# Interpolation
################################################################################

def interpweights(*gps):
    """
    Multilinear interpolation weights.

    Arguments:

        *gps: One :class:`GridPos` object for each dimension.

    Returns:

        Weight tensor of shape :code:`(len(gp_1), ..., len(gp_d), 2 ** d)`.
        Bit :code:`k` of the index along the last axis selects the upper
        neighbour along dimension :code:`k`.
    """
    d = len(gps)
    if d == 0:
        raise GridError("At least one grid position array is required.")
    shape = tuple(len(gp) for gp in gps)
    itw = np.ones(shape + (2,) * d)
    for k, gp in enumerate(gps):
        bshape = [1] * (2 * d)
        bshape[k] = -1
        bshape[d + k] = 2
        itw = itw * np.stack([1.0 - gp.fd, gp.fd], axis = -1).reshape(bshape)
    # Dimension 0 varies fastest along the corner axis.
    itw = np.transpose(itw, list(range(d)) + list(range(2 * d - 1, d - 1, -1)))
    return itw.reshape(shape + (2 ** d,))


def interp(field, *gps):
    """
    Multilinear interpolation of a field at given grid positions.

    The interpolation is performed in index space, i.e. the coordinate of
    each point along dimension :code:`k` is :code:`idx + fd` of the
    corresponding grid positions. Points with fractional distances outside
    of [0, 1] are extrapolated linearly. Dimensions of size 1 are
    constant.

    Arguments:

        field(:code:`numpy.ndarray`): The field with one dimension for
            each grid position array.

        *gps: One :class:`GridPos` object for each dimension of the field.

    Returns:

        The interpolated field with shape
        :code:`(len(gp_1), ..., len(gp_d))`.
    """
    field = np.asarray(field, dtype=np.float64)
    d = len(gps)
    if d == 0:
        raise GridError("At least one grid position array is required.")
    if field.ndim != d:
        raise GridError("Field has {} dimensions but {} grid position arrays "
                        "were given.".format(field.ndim, d))
    shape = tuple(len(gp) for gp in gps)

    axes = [k for k in range(d) if field.shape[k] > 1]
    data = field[tuple(slice(None) if k in axes else 0 for k in range(d))]
    if not axes:
        return np.full(shape, data)

    points = [np.arange(field.shape[k], dtype=np.float64) for k in axes]
    interpolator = RegularGridInterpolator(points, data,
                                           method = "linear",
                                           bounds_error = False,
                                           fill_value = None)
    coords = np.meshgrid(*[gps[k].idx + gps[k].fd for k in axes],
                         indexing = "ij")
    xi = np.stack([c.ravel() for c in coords], axis = -1)
    result = interpolator(xi).reshape(tuple(shape[k] for k in axes))

    bshape = [shape[k] if k in axes else 1 for k in range(d)]
    return np.broadcast_to(result.reshape(bshape), shape).copy()


def regrid_field(field, atmosphere_dim, gp_p, gp_lat=None, gp_lon=None):
    """
    Regrid a 3D atmospheric field.

    Arguments:

        field(:code:`numpy.ndarray`): Field of shape
            :code:`(n_p, n_lat, n_lon)`. Latitude and longitude dimensions
            have size 1 if not used by the atmosphere.

        atmosphere_dim(:code:`int`): The dimensionality of the
            atmosphere.

        gp_p, gp_lat, gp_lon: Grid positions along pressure, latitude and
            longitude. Only the first :code:`atmosphere_dim` are used.

    Returns:

        The regridded field as 3D array.
    """
    field = np.asarray(field)
    if field.ndim != 3:
        raise GridError("Fields to regrid must be 3-dimensional.")
    gps = [gp_p, gp_lat, gp_lon][:atmosphere_dim]
    if any(gp is None for gp in gps):
        raise GridError("Grid positions for all {} dimensions of the "
                        "atmosphere are required.".format(atmosphere_dim))

    data = field[(slice(None),) * atmosphere_dim + (0,) * (3 - atmosphere_dim)]
    result = interp(data, *gps)
    return result.reshape(result.shape + (1,) * (3 - atmosphere_dim))


################################################################################
# Mapping between atmosphere and retrieval grids
################################################################################

def atm_to_retrieval_gridpos(rq_grids, atm_grids, atmosphere_dim):
    """
    Grid positions to regrid atmospheric fields to retrieval grids.

    No extrapolation is allowed: retrieval grid points outside of the
    atmosphere grids are rejected.

    Arguments:

        rq_grids: List :code:`[p_grid, lat_grid, lon_grid]` of the
            retrieval quantity.

        atm_grids: List :code:`[p_grid, lat_grid, lon_grid]` of the
            atmosphere.

        atmosphere_dim(:code:`int`): The dimensionality of the atmosphere.

    Returns:

        List :code:`[gp_p, gp_lat, gp_lon]` with :code:`None` for dimensions
        not used by the atmosphere.
    """
    gps = [None, None, None]
    for k in range(atmosphere_dim):
        atm_grid = np.asarray(atm_grids[k], dtype=np.float64)
        rq_grid = np.asarray(rq_grids[k], dtype=np.float64)
        if atm_grid.size == 1:
            if not np.allclose(rq_grid, atm_grid[0]):
                raise GridError("Retrieval grid points lie outside of the "
                                "single-point atmosphere grid.")
            gps[k] = gridpos_length1(rq_grid.size)
        elif k == 0:
            gps[k] = p2gridpos(atm_grid, rq_grid, 0.0)
        else:
            gps[k] = gridpos(atm_grid, rq_grid, 0.0)
    return gps


def retrieval_to_atm_gridpos(rq_grids, atm_grids, atmosphere_dim):
    """
    Grid positions to map values on retrieval grids back to the
    atmosphere grids.

    The retrieval grids are extrapolated with constant values, so that
    every point of the atmosphere grids is covered.

    Arguments:

        rq_grids: List :code:`[p_grid, lat_grid, lon_grid]` of the
            retrieval quantity.

        atm_grids: List :code:`[p_grid, lat_grid, lon_grid]` of the
            atmosphere.

        atmosphere_dim(:code:`int`): The dimensionality of the atmosphere.

    Returns:

        List :code:`[gp_p, gp_lat, gp_lon]` with :code:`None` for dimensions
        not used by the atmosphere.
    """
    gps = [None, None, None]
    for k in range(atmosphere_dim):
        atm_grid = np.asarray(atm_grids[k], dtype=np.float64)
        rq_grid = np.asarray(rq_grids[k], dtype=np.float64)
        if rq_grid.size == 1:
            gps[k] = gridpos_length1(atm_grid.size)
        elif k == 0:
            gps[k] = p2gridpos(rq_grid, atm_grid, INF_PROXY).clip()
        else:
            gps[k] = gridpos(rq_grid, atm_grid, INF_PROXY).clip()
    return gps
