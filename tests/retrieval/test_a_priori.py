import numpy as np
import pytest
import scipy.sparse

from oemsat.data_provider import DataProviderBase
from oemsat.errors import InputError
from oemsat.retrieval.a_priori import (APriori, Diagonal, SensorNoise,
                                       SpatialCorrelation, Thikhonov)


class GridProvider(DataProviderBase):
    def get_p_grid(self, *args, **kwargs):
        return np.array([1000e2, 800e2, 500e2, 300e2, 100e2])


def test_diagonal_scalar(scene_provider):
    covmat = Diagonal(2.0).get_covariance(scene_provider)
    assert scipy.sparse.issparse(covmat)
    assert np.allclose(covmat.toarray(), 2.0 * np.eye(3))

def test_diagonal_vector():
    covmat = Diagonal([1.0, 2.0]).get_covariance(None)
    assert np.allclose(covmat.toarray(), np.diag([1.0, 2.0]))

def test_diagonal_requires_grid():
    with pytest.raises(InputError):
        Diagonal(1.0).get_covariance(object())

def test_spatial_correlation():
    grid = np.array([0.0, 1.0, 2.0])
    covariance = SpatialCorrelation(Diagonal(4.0, grid = grid), 1.0,
                                    grid = grid)
    covmat = covariance.get_covariance(None)
    assert covmat.shape == (3, 3)
    assert np.allclose(np.diag(covmat), 4.0)
    assert np.isclose(covmat[0, 1], 4.0 * np.exp(-1.0))
    assert np.isclose(covmat[0, 2], 4.0 * np.exp(-2.0))
    assert np.allclose(covmat, covmat.T)

def test_spatial_correlation_cutoff():
    grid = np.array([0.0, 1.0, 2.0])
    covariance = SpatialCorrelation(Diagonal(1.0, grid = grid), 0.1,
                                    correlation_type = "gauss", grid = grid)
    covmat = covariance.get_covariance(None)
    assert np.all(covmat == np.eye(3))

def test_spatial_correlation_log_pressure(scene_provider):
    covariance = SpatialCorrelation(Diagonal(1.0), 1.0)
    covmat = covariance.get_covariance(scene_provider)
    assert np.isclose(covmat[0, 1], 0.5)

def test_unknown_correlation_type():
    with pytest.raises(InputError):
        SpatialCorrelation(Diagonal(1.0), 1.0, correlation_type = "linear")

def test_thikhonov():
    provider = GridProvider()
    precmat = Thikhonov(scaling = 2.0).get_precision(provider)
    precmat = precmat.toarray()
    assert precmat.shape == (5, 5)
    assert np.allclose(precmat, precmat.T)
    # Second differences of a linear profile vanish.
    assert np.allclose(precmat @ np.arange(5.0), 0.0)

    precmat = Thikhonov(diagonal = 1.0).get_precision(provider).toarray()
    assert np.all(np.linalg.eigvalsh(precmat) > 0.0)

def test_thikhonov_grid_scaling():
    grid = np.array([0.0, 1.0, 3.0, 4.0])
    precmat = Thikhonov(grid_scaling = True, grid = grid).get_precision(None)
    assert precmat.shape == (4, 4)

def test_thikhonov_too_few_points():
    with pytest.raises(InputError):
        Thikhonov(grid = [0.0, 1.0]).get_precision(None)

def test_a_priori_provider(scene_provider):
    covmat = scene_provider.get_temperature_covariance()
    assert np.allclose(covmat.toarray(), np.eye(3))
    with pytest.raises(AttributeError):
        scene_provider.get_temperature_precision

def test_a_priori_precision():
    provider = GridProvider()
    provider.add(APriori("H2O", Thikhonov(diagonal = 1.0)))
    precmat = provider.get_H2O_precision()
    covmat = provider.get_H2O_covariance()
    assert precmat.shape == (5, 5)
    assert np.allclose(covmat.diagonal(), 1.0 / precmat.diagonal())

def test_sensor_noise():
    noise = SensorNoise({"a" : [1.0, 2.0], "b" : [3.0]})
    noise.noise_scaling["a"] = 2.0
    covmat = noise.get_observation_error_covariance()
    assert np.allclose(covmat.toarray(), np.diag([4.0, 16.0, 9.0]))
