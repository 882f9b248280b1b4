"""
oemsat.oem.cost
===============

The OEM cost function. Both terms are normalized by the length of the
measurement vector.
"""
import numpy as np

from oemsat.errors import NumericFailure


def _quadratic_form(matrix, v):
    return float(v @ np.asarray(matrix @ v).ravel())


def evaluate_cost(x, xa, y, yf, covmat_sx_inv, covmat_so_inv):
    """
    Evaluate the OEM cost.

    Arguments:

        x(:code:`numpy.ndarray`): The current state.

        xa(:code:`numpy.ndarray`): The a priori state.

        y(:code:`numpy.ndarray`): The measurement vector.

        yf(:code:`numpy.ndarray`): The simulated measurement for :code:`x`.

        covmat_sx_inv: The inverse of the a priori covariance matrix.

        covmat_so_inv: The inverse of the observation error covariance
            matrix.

    Returns:

        Tuple :code:`(cost, cost_y, cost_x)`.

    Raises:

        NumericFailure: If the cost is not finite.
    """
    m = y.size
    dy = y - yf
    dx = x - xa
    cost_y = _quadratic_form(covmat_so_inv, dy) / m
    cost_x = _quadratic_form(covmat_sx_inv, dx) / m
    cost = cost_y + cost_x
    if not np.isfinite(cost):
        raise NumericFailure("Encountered non-finite cost (cost_y = {}, "
                             "cost_x = {}).".format(cost_y, cost_x))
    return cost, cost_y, cost_x
