import numpy as np
import pytest
import scipy.sparse

from oemsat.errors import NumericFailure
from oemsat.oem.cost import evaluate_cost


def test_cost_normalization():
    x = np.array([1.0, 2.0])
    xa = np.array([0.0, 0.0])
    y = np.array([1.0, 1.0, 1.0, 1.0])
    yf = np.zeros(4)
    cost, cost_y, cost_x = evaluate_cost(x, xa, y, yf,
                                         np.eye(2), 2.0 * np.eye(4))
    assert np.isclose(cost_y, 2.0)
    assert np.isclose(cost_x, 5.0 / 4.0)
    assert np.isclose(cost, cost_x + cost_y)

def test_cost_sparse():
    x = np.array([1.0, 2.0])
    xa = np.array([0.0, 0.0])
    y = np.array([1.0, 1.0])
    yf = np.zeros(2)
    dense = evaluate_cost(x, xa, y, yf, np.eye(2), np.eye(2))
    sparse = evaluate_cost(x, xa, y, yf,
                           scipy.sparse.identity(2, format = "csr"),
                           scipy.sparse.identity(2, format = "csr"))
    assert np.allclose(dense, sparse)

def test_cost_at_a_priori():
    xa = np.array([1.0, 2.0])
    cost, cost_y, cost_x = evaluate_cost(xa, xa, xa, xa,
                                         np.eye(2), np.eye(2))
    assert cost == 0.0

def test_non_finite_cost():
    x = np.array([1.0])
    with pytest.raises(NumericFailure):
        evaluate_cost(x, x, x, np.array([np.nan]), np.eye(1), np.eye(1))
