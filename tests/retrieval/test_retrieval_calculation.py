"""
Tests for retrieval calculations on atmospheric fields.
"""
import matplotlib
matplotlib.use("Agg")

import numpy as np
import pytest

from oemsat.errors import InputError
from oemsat.oem.diagnostics import TerminationCode
from oemsat.retrieval import RetrievalCalculation, RetrievalRun
from oemsat.retrieval.a_priori import APriori, Diagonal
from oemsat.retrieval.quantities import AbsSpecies, Temperature


def simulate_temperature(fields):
    return fields.t_field.ravel()


def temperature_jacobian(fields):
    return np.eye(3)


def test_add_quantities():
    retrieval = RetrievalCalculation(abs_species = ["O3"])
    t = Temperature()
    retrieval.add(t)
    retrieval.add(AbsSpecies("H2O"))
    with pytest.raises(InputError):
        retrieval.add(t)
    with pytest.raises(InputError):
        retrieval.add("H2O")
    assert retrieval.get_abs_species() == ["O3", "H2O"]

def test_run_attributes_declared():
    retrieval = RetrievalCalculation()
    run = RetrievalRun("Retrieval", retrieval, retrieval.settings, [])
    for name in ["codec", "covmat_sx_inv", "covmat_so_inv", "x", "avk"]:
        assert getattr(run, name) is None

def test_run_without_quantities(scene_provider):
    retrieval = RetrievalCalculation()
    with pytest.raises(InputError):
        retrieval.run(simulate_temperature, scene_provider)

@pytest.mark.parametrize("jacobian", [None, temperature_jacobian])
def test_temperature_retrieval(scene_provider, jacobian):
    retrieval = RetrievalCalculation(settings = {"method" : "gn",
                                                 "display_progress" : 0})
    t = Temperature()
    retrieval.add(t)
    run = retrieval.run(simulate_temperature, scene_provider,
                        jacobian = jacobian)

    assert retrieval.results is run
    assert run.oem_errors is None
    assert run.oem_diagnostics[0] == 0.0
    assert run.oem_diagnostics[4] == 1.0
    assert np.allclose(run.xa, [250.0, 260.0, 270.0])
    assert np.allclose(run.get_result(t), [250.5, 259.5, 271.0], atol = 1e-4)
    assert np.allclose(run.get_result(t, interpolate = True).ravel(),
                       [250.5, 259.5, 271.0], atol = 1e-4)
    assert np.allclose(run.get_xa(t).ravel(), [250.0, 260.0, 270.0])
    assert np.allclose(run.get_avk(t), 0.5 * np.eye(3), atol = 1e-4)
    assert np.allclose(run.covmat_so, 0.25 * np.eye(3), atol = 1e-4)
    assert np.allclose(run.covmat_ss, 0.25 * np.eye(3), atol = 1e-4)
    assert np.allclose(run.yf, run.get_result(t), atol = 1e-4)

def test_species_retrieval_relative(scene_provider):
    """
    Retrieve a scaling factor for water vapor from a measurement of
    the total column.
    """
    scene_provider.y = np.array([1.1e-2 + 1.1e-3 + 1.1e-5])
    scene_provider.add(APriori("H2O", Diagonal(1.0, grid = [500e2])))
    scene_provider.observation_error_covariance = 1e-12 * np.eye(1)

    def simulate(fields):
        return [fields.get_vmr("H2O").sum()]

    retrieval = RetrievalCalculation(settings = {"method" : "lm",
                                                 "display_progress" : 0})
    h2o = AbsSpecies("H2O", unit = "rel", p_grid = [500e2])
    retrieval.add(h2o)
    run = retrieval.run(simulate, scene_provider)

    assert run.oem_diagnostics[0] == 0.0
    assert np.allclose(run.get_result(h2o), [1.1], rtol = 1e-3)
    assert np.allclose(run.get_result(h2o, interpolate = True).ravel(),
                       1.1 * np.array([1e-2, 1e-3, 1e-5]), rtol = 1e-3)

def test_failing_simulation(scene_provider):
    def simulate(fields):
        raise RuntimeError("Simulation failed.")

    retrieval = RetrievalCalculation(settings = {"method" : "gn"})
    t = Temperature()
    retrieval.add(t)
    run = retrieval.run(simulate, scene_provider)

    assert run.oem_diagnostics[0] == 9.0
    assert run.oem_errors[0] == "Error in OEM computation."
    assert "Simulation failed." in run.oem_errors[1]
    assert run.get_result(t) is None
    assert run.avk is None
    assert np.allclose(run.get_xa(t, interpolate = False),
                       [250.0, 260.0, 270.0])

def test_missing_covariance(scene_provider):
    retrieval = RetrievalCalculation()
    retrieval.add(AbsSpecies("H2O"))
    with pytest.raises(InputError):
        retrieval.run(simulate_temperature, scene_provider)

def test_plotting(scene_provider):
    import matplotlib.pyplot as plt

    retrieval = RetrievalCalculation(settings = {"method" : "gn"})
    t = Temperature()
    retrieval.add(t)
    run = retrieval.run(simulate_temperature, scene_provider)

    ax = run.plot_result(t)
    assert len(ax.lines) == 2
    assert ax.yaxis_inverted()
    ax = run.plot_jacobian(t)
    assert len(ax.lines) == 3
    plt.close("all")
