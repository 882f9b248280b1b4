"""
Tests for the iterative OEM solvers.
"""
import numpy as np
import pytest

from oemsat.oem.diagnostics import TerminationCode
from oemsat.oem.forward_model import FunctionForwardModel, LinearForwardModel
from oemsat.oem.solvers import (GaussNewton, LevenbergMarquardt, LinearSolver,
                                SolverState)

XA = np.array([250.0, 260.0, 270.0])
Y = np.array([251.0, 259.0, 272.0])
X = np.array([250.5, 259.5, 271.0])


def identity_problem():
    return LinearForwardModel(np.eye(3)), XA, Y, np.eye(3), np.eye(3)

################################################################################
# Linear
################################################################################

def test_linear(counting_forward_model):
    forward_model, xa, y, sx_inv, so_inv = identity_problem()
    forward_model = counting_forward_model(forward_model)
    solver = LinearSolver(forward_model, xa, y, sx_inv, so_inv)
    diagnostics = solver.run()

    assert diagnostics.code == TerminationCode.CONVERGED
    assert diagnostics.iterations == 1
    assert np.allclose(solver.x, X)
    assert np.allclose(solver.yf, X)
    assert forward_model.jacobian_calls == 1
    assert forward_model.evaluate_calls == 0

def test_linear_uses_linear_prediction():
    """
    For a non-linear model, the fit of the linear inversion is the
    linear prediction from the a priori state.
    """
    forward_model = FunctionForwardModel(lambda x: x ** 2,
                                         jacobian = lambda x: np.diag(2.0 * x))
    solver = LinearSolver(forward_model, [1.0], [4.0], np.eye(1), np.eye(1))
    solver.run()
    # H = 4 + 1, g = 2 * 3, dx = 1.2
    assert np.isclose(solver.x[0], 2.2)
    assert np.isclose(solver.yf[0], 1.0 + 2.0 * 1.2)

################################################################################
# Gauss-Newton
################################################################################

def test_gauss_newton_linear_model(counting_forward_model):
    forward_model, xa, y, sx_inv, so_inv = identity_problem()
    forward_model = counting_forward_model(forward_model)
    solver = GaussNewton(forward_model, xa, y, sx_inv, so_inv)
    diagnostics = solver.run()

    assert diagnostics.code == TerminationCode.CONVERGED
    assert diagnostics.iterations == 1
    assert np.allclose(solver.x, X)
    assert forward_model.jacobian_calls == 2
    assert diagnostics.cost_end < diagnostics.cost_start
    assert solver.state == SolverState.TERMINATED

def test_gauss_newton_nonlinear():
    forward_model = FunctionForwardModel(np.exp)
    solver = GaussNewton(forward_model, [0.0], [np.e], 1e-6 * np.eye(1),
                         np.eye(1), stop_dx = 1e-6)
    diagnostics = solver.run()
    assert diagnostics.converged
    assert np.isclose(solver.x[0], 1.0, atol = 1e-3)

def test_gauss_newton_max_iter():
    forward_model = FunctionForwardModel(np.exp,
                                         jacobian = lambda x: np.diag(np.exp(x)))
    solver = GaussNewton(forward_model, [0.0], [np.exp(2.0)],
                         1e-6 * np.eye(1), np.eye(1), max_iter = 1)
    diagnostics = solver.run()
    assert diagnostics.code == TerminationCode.MAX_ITER
    assert diagnostics.iterations == 1

def test_x_norm_invariance():
    forward_model, xa, y, sx_inv, so_inv = identity_problem()
    solver = GaussNewton(forward_model, xa, y, sx_inv, so_inv,
                         x_norm = [100.0, 10.0, 1000.0])
    diagnostics = solver.run()
    assert diagnostics.code == TerminationCode.CONVERGED
    assert diagnostics.iterations == 1
    assert np.allclose(solver.x, X)

def test_singular_normal_equations():
    forward_model = LinearForwardModel([[1.0, 1.0]])
    solver = GaussNewton(forward_model, [1.0, 2.0], [4.0],
                         np.zeros((2, 2)), np.eye(1))
    diagnostics = solver.run()
    assert diagnostics.code == TerminationCode.NUMERIC_FAILURE
    assert len(diagnostics.errors) == 1
    assert np.all(solver.x == [1.0, 2.0])

def test_non_finite_forward_model():
    forward_model = FunctionForwardModel(lambda x: np.log(x - 1.0),
                                         jacobian = lambda x: np.eye(1))
    solver = GaussNewton(forward_model, [0.0], [1.0], np.eye(1), np.eye(1))
    diagnostics = solver.run()
    assert diagnostics.code == TerminationCode.NUMERIC_FAILURE

################################################################################
# Levenberg-Marquardt
################################################################################

@pytest.mark.parametrize("scaled", [True, False])
def test_levenberg_marquardt_linear_model(scaled):
    forward_model, xa, y, sx_inv, so_inv = identity_problem()
    solver = LevenbergMarquardt(forward_model, xa, y, sx_inv, so_inv,
                                scaled = scaled)
    diagnostics = solver.run()

    assert diagnostics.code == TerminationCode.CONVERGED
    assert np.allclose(solver.x, X, atol = 1e-3)
    assert diagnostics.gamma_history[:3] == [1000.0, 200.0, 40.0]
    assert diagnostics.iterations <= 20
    assert solver.name == ("lm" if scaled else "ml")

def test_levenberg_marquardt_rejected_step():
    forward_model = FunctionForwardModel(
        np.arctan,
        jacobian = lambda x: np.diag(1.0 / (1.0 + x ** 2))
    )
    solver = LevenbergMarquardt(forward_model, [2.0], [0.0],
                                1e-4 * np.eye(1), np.eye(1),
                                ga_settings = [0.0, 2.0, 3.0, 100.0, 1.0, 1.0])
    solver.initialize()
    cost = solver.cost

    accepted = solver.step()

    assert not accepted
    assert solver.x[0] == 2.0
    assert solver.cost == cost
    assert solver.iteration == 0
    assert solver.gamma == 1.0
    assert solver.diagnostics.gamma_history == [0.0]

    solver.run()
    assert solver.diagnostics.converged
    assert abs(solver.x[0]) < 0.05

def test_levenberg_marquardt_max_gamma():
    """
    A Jacobian with the wrong sign makes every step increase the cost.
    """
    forward_model = FunctionForwardModel(lambda x: x,
                                         jacobian = lambda x: -np.eye(1))
    solver = LevenbergMarquardt(forward_model, [0.0], [1.0],
                                np.eye(1), np.eye(1),
                                ga_settings = [1.0, 5.0, 2.0, 10.0, 0.5, 1.0])
    diagnostics = solver.run()

    assert diagnostics.code == TerminationCode.MAX_GAMMA
    assert diagnostics.gamma_history == [1.0, 2.0, 4.0, 8.0]
    assert diagnostics.iterations == 0
    assert solver.x[0] == 0.0

def test_levenberg_marquardt_max_iter():
    forward_model, xa, y, sx_inv, so_inv = identity_problem()
    solver = LevenbergMarquardt(forward_model, xa, y, sx_inv, so_inv,
                                max_iter = 2)
    diagnostics = solver.run()
    assert diagnostics.code == TerminationCode.MAX_ITER
    assert diagnostics.iterations == 2
    assert diagnostics.gamma_history == [1000.0, 200.0]

def test_levenberg_marquardt_prior_fits_data(counting_forward_model):
    """
    A measurement that the a priori state already reproduces converges
    without any trial step, even though the start damping is large.
    """
    forward_model = counting_forward_model(LinearForwardModel(np.eye(3)))
    solver = LevenbergMarquardt(forward_model, XA, XA, np.eye(3), np.eye(3))
    diagnostics = solver.run()

    assert diagnostics.code == TerminationCode.CONVERGED
    assert diagnostics.iterations == 0
    assert diagnostics.gamma_history == []
    assert forward_model.jacobian_calls == 1
    assert np.all(solver.x == XA)
