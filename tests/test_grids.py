import numpy as np
import pytest

from oemsat.errors import GridError
from oemsat.grids import (GridPos, atm_to_retrieval_gridpos, gridpos,
                          gridpos_length1, interp, interpweights, p2gridpos,
                          regrid_field, retrieval_to_atm_gridpos)

################################################################################
# Grid positions
################################################################################

def test_gridpos_ascending():
    gp = gridpos([0.0, 1.0, 2.0], [0.0, 0.5, 1.5, 2.0])
    assert np.all(gp.idx == [0, 0, 1, 1])
    assert np.allclose(gp.fd, [0.0, 0.5, 0.5, 1.0])

def test_gridpos_descending():
    """
    Grid positions are defined relative to the order of the old grid.
    """
    gp = gridpos([3.0, 2.0], [2.25])
    assert gp.idx[0] == 0
    assert np.isclose(gp.fd[0], 0.75)

    gp = gridpos([3.0, 2.0, 1.0], [3.0, 1.5, 1.0])
    assert np.all(gp.idx == [0, 1, 1])
    assert np.allclose(gp.fd, [0.0, 0.5, 1.0])

def test_gridpos_extrapolation():
    gp = gridpos([0.0, 1.0, 2.0], [2.4], extpolfac = 0.5)
    assert gp.idx[0] == 1
    assert np.isclose(gp.fd[0], 1.4)

    with pytest.raises(GridError):
        gridpos([0.0, 1.0, 2.0], [3.0], extpolfac = 0.5)

    with pytest.raises(GridError):
        gridpos([0.0, 1.0, 2.0], [-0.1], extpolfac = 0.0)

def test_gridpos_invalid_grid():
    with pytest.raises(GridError):
        gridpos([0.0, 2.0, 1.0], [0.5])
    with pytest.raises(GridError):
        gridpos([1.0], [1.0])

def test_p2gridpos():
    """
    Pressure grid positions are linear in log pressure.
    """
    p_mid = np.sqrt(1000.0 * 100.0)
    gp = p2gridpos([1000.0, 100.0], [p_mid])
    assert gp.idx[0] == 0
    assert np.isclose(gp.fd[0], 0.5)

    with pytest.raises(GridError):
        p2gridpos([1000.0, 0.0], [500.0])

def test_clip():
    gp = GridPos([0, 1], [-0.5, 1.5]).clip()
    assert np.allclose(gp.fd, [0.0, 1.0])

def test_gridpos_length1():
    gp = gridpos_length1(4)
    assert len(gp) == 4
    assert np.all(gp.idx == 0)
    assert np.all(gp.fd == 0.0)

################################################################################
# Interpolation
################################################################################

def test_interp_1d():
    gp = gridpos([0.0, 1.0, 2.0], [0.5, 1.5])
    y = interp(np.array([0.0, 10.0, 20.0]), gp)
    assert y.shape == (2,)
    assert np.allclose(y, [5.0, 15.0])

def test_interp_extrapolation():
    gp = gridpos([0.0, 1.0, 2.0], [2.4], extpolfac = 0.5)
    y = interp(np.array([0.0, 10.0, 20.0]), gp)
    assert np.allclose(y, [24.0])

def test_interp_2d():
    """
    Bilinear interpolation reproduces linear fields exactly.
    """
    x = np.array([0.0, 1.0, 2.0])
    y = np.array([0.0, 1.0])
    field = x.reshape(-1, 1) + 10.0 * y.reshape(1, -1)

    gp_x = gridpos(x, [0.5, 1.25])
    gp_y = gridpos(y, [0.5])
    result = interp(field, gp_x, gp_y)
    assert result.shape == (2, 1)
    assert np.allclose(result, [[5.5], [6.25]])

def test_interp_constant_dimension():
    field = np.array([[1.0, 2.0, 3.0]])
    result = interp(field, gridpos_length1(2), gridpos([0.0, 1.0, 2.0],
                                                      [0.5, 2.0]))
    assert result.shape == (2, 2)
    assert np.allclose(result, [[1.5, 3.0], [1.5, 3.0]])

def test_interpweights():
    gp_x = gridpos([0.0, 1.0, 2.0], [0.5, 1.25])
    gp_y = gridpos([0.0, 1.0], [0.25])
    itw = interpweights(gp_x, gp_y)
    assert itw.shape == (2, 1, 4)
    assert np.allclose(itw.sum(axis = -1), 1.0)
    assert np.allclose(itw[1, 0], [0.75 * 0.75, 0.25 * 0.75,
                                   0.75 * 0.25, 0.25 * 0.25])

def test_interp_dimension_mismatch():
    gp = gridpos([0.0, 1.0], [0.5])
    with pytest.raises(GridError):
        interp(np.ones((2, 2)), gp)

def test_regrid_field_1d():
    gp = p2gridpos([1000.0, 100.0], [1000.0, np.sqrt(1e5), 100.0])
    field = np.array([1.0, 3.0]).reshape(2, 1, 1)
    result = regrid_field(field, 1, gp)
    assert result.shape == (3, 1, 1)
    assert np.allclose(result.ravel(), [1.0, 2.0, 3.0])

################################################################################
# Mapping policies
################################################################################

def test_atm_to_retrieval_rejects_extrapolation():
    atm_grids = [np.array([1000.0, 100.0]), np.zeros(0), np.zeros(0)]
    rq_grids = [np.array([2000.0]), np.zeros(0), np.zeros(0)]
    with pytest.raises(GridError):
        atm_to_retrieval_gridpos(rq_grids, atm_grids, 1)

def test_retrieval_to_atm_extrapolates_constant():
    """
    Values on a coarser and narrower retrieval grid cover all points of
    the atmosphere with constant extrapolation.
    """
    atm_grids = [np.array([1000.0, 500.0, 200.0, 100.0]),
                 np.zeros(0),
                 np.zeros(0)]
    rq_grids = [np.array([500.0, 200.0]), np.zeros(0), np.zeros(0)]
    gps = retrieval_to_atm_gridpos(rq_grids, atm_grids, 1)
    values = np.array([1.0, 2.0]).reshape(2, 1, 1)
    result = regrid_field(values, 1, *gps)
    assert np.allclose(result.ravel(), [1.0, 1.0, 2.0, 2.0])

def test_retrieval_to_atm_length1():
    atm_grids = [np.array([1000.0, 500.0, 100.0]),
                 np.array([0.0, 10.0]),
                 np.zeros(0)]
    rq_grids = [np.array([500.0]), np.array([0.0, 10.0]), np.zeros(0)]
    gps = retrieval_to_atm_gridpos(rq_grids, atm_grids, 2)
    values = np.array([[1.0, 2.0]]).reshape(1, 2, 1)
    result = regrid_field(values, 2, *gps)
    assert result.shape == (3, 2, 1)
    assert np.allclose(result[:, 0, 0], 1.0)
    assert np.allclose(result[:, 1, 0], 2.0)

def test_retrieval_to_atm_3d():
    atm_grids = [np.array([1000e2, 500e2, 100e2]),
                 np.array([0.0, 10.0]),
                 np.array([0.0, 20.0, 40.0])]
    rq_grids = [np.array([1000e2, 100e2]),
                np.array([0.0, 10.0]),
                np.array([10.0, 30.0])]
    gps = retrieval_to_atm_gridpos(rq_grids, atm_grids, 3)
    values = np.zeros((2, 2, 2))
    values[:, :, 0] = 1.0
    values[:, :, 1] = 3.0
    result = regrid_field(values, 3, *gps)
    assert result.shape == (3, 2, 3)
    for i in range(3):
        for j in range(2):
            assert np.allclose(result[i, j, :], [1.0, 2.0, 3.0])

def test_atm_to_retrieval_3d(atmosphere_3d):
    rq_grids = [np.array([500e2]),
                np.array([10.0]),
                np.array([20.0, 40.0])]
    atm_grids = [atmosphere_3d.p_grid,
                 atmosphere_3d.lat_grid,
                 atmosphere_3d.lon_grid]
    gps = atm_to_retrieval_gridpos(rq_grids, atm_grids, 3)
    result = regrid_field(atmosphere_3d.t_field, 3, *gps)
    assert result.shape == (1, 1, 2)
    assert np.allclose(result.ravel(), atmosphere_3d.t_field[1, 1, 1:])
