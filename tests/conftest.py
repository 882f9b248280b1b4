"""
Shared fixtures for the oemsat tests.
"""
import numpy as np
import pytest

from oemsat.atmosphere import AtmosphericFields
from oemsat.data_provider import DataProviderBase
from oemsat.oem.forward_model import ForwardModel
from oemsat.retrieval.a_priori import APriori, Diagonal


class CountingForwardModel(ForwardModel):
    """
    Wraps a forward model and counts calls to its methods.
    """
    def __init__(self, forward_model):
        self.forward_model = forward_model
        self.evaluate_calls = 0
        self.jacobian_calls = 0

    def evaluate(self, x):
        self.evaluate_calls += 1
        return self.forward_model.evaluate(x)

    def evaluate_with_jacobian(self, x):
        self.jacobian_calls += 1
        return self.forward_model.evaluate_with_jacobian(x)


class SceneProvider(DataProviderBase):
    """
    Data provider for a 1D scene with three pressure levels, a
    temperature profile and a water vapor profile.
    """
    def __init__(self, y = None):
        super().__init__()
        if y is None:
            y = [251.0, 259.0, 272.0]
        self.y = np.array(y)
        self.add(APriori("temperature", Diagonal(1.0)))

    def get_p_grid(self, *args, **kwargs):
        return np.array([1000e2, 500e2, 100e2])

    def get_temperature(self, *args, **kwargs):
        return np.array([250.0, 260.0, 270.0])

    def get_H2O(self, *args, **kwargs):
        return np.array([1e-2, 1e-3, 1e-5])

    def get_observation_error_covariance(self, *args, **kwargs):
        return np.eye(3)


@pytest.fixture
def counting_forward_model():
    return CountingForwardModel


@pytest.fixture
def scene_provider():
    return SceneProvider()


@pytest.fixture
def atmosphere_1d():
    p_grid = np.array([1000e2, 500e2, 100e2])
    t_field = np.array([250.0, 260.0, 270.0])
    vmr_field = np.array([[1e-2, 1e-3, 1e-5],
                          [1e-7, 2e-7, 5e-6]])
    return AtmosphericFields(p_grid,
                             t_field,
                             vmr_field = vmr_field,
                             abs_species = ["H2O", "O3"])


@pytest.fixture
def atmosphere_2d():
    p_grid = np.array([1000e2, 800e2, 500e2, 100e2])
    lat_grid = np.array([0.0, 10.0, 20.0])
    t_field = 250.0 + np.arange(12, dtype=np.float64).reshape(4, 3)
    vmr_field = np.stack([1e-3 * (1.0 + np.arange(12.0).reshape(4, 3)),
                          1e-6 * (1.0 + np.arange(12.0).reshape(4, 3))])
    return AtmosphericFields(p_grid,
                             t_field,
                             vmr_field = vmr_field,
                             abs_species = ["H2O", "O3"],
                             lat_grid = lat_grid)


@pytest.fixture
def atmosphere_3d():
    p_grid = np.array([1000e2, 500e2, 100e2])
    lat_grid = np.array([0.0, 10.0])
    lon_grid = np.array([0.0, 20.0, 40.0])
    t_field = 250.0 + np.arange(18, dtype=np.float64).reshape(3, 2, 3)
    vmr_field = np.stack([1e-3 * (1.0 + np.arange(18.0).reshape(3, 2, 3)),
                          1e-6 * (1.0 + np.arange(18.0).reshape(3, 2, 3))])
    return AtmosphericFields(p_grid,
                             t_field,
                             vmr_field = vmr_field,
                             abs_species = ["H2O", "O3"],
                             lat_grid = lat_grid,
                             lon_grid = lon_grid)
