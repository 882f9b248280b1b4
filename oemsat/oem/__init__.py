"""
oemsat.oem
==========

The :code:`oem` sub-package implements the optimal estimation method
(OEM) inversion. The entry point is :func:`run_inversion`, which validates
its inputs, applies the start-cost guard, runs one of the iterative
solvers and computes the gain matrix of the result.

Supported methods:

- :code:`"li"`: Linear inversion.
- :code:`"gn"`: Gauss-Newton.
- :code:`"lm"`: Levenberg-Marquardt with damping :math:`\\gamma \\text{diag}(H)`.
- :code:`"ml"`: Levenberg-Marquardt with damping :math:`\\gamma I`.

Example
=======

::

    fm = LinearForwardModel(k)
    x, dxdy, diagnostics = run_inversion("gn", xa, y, sx_inv, so_inv, fm)

Reference
=========
"""
import numpy as np
import scipy.sparse
from loguru import logger

from oemsat.errors import InputError, NumericFailure
from oemsat.oem.cost import evaluate_cost
from oemsat.oem.diagnostics import OEMDiagnostics, TerminationCode
from oemsat.oem.error_analysis import gain_matrix
from oemsat.oem.forward_model import ForwardModel
from oemsat.oem.solvers import GaussNewton, LevenbergMarquardt, LinearSolver

METHODS = ["li", "gn", "lm", "ml"]

DEFAULT_LM_GA_SETTINGS = [1000.0, 5.0, 2.0, 1e6, 1.0, 1.0]


class OEMResult:
    """
    Result of an inversion.

    Unpacks into :code:`(x, dxdy, diagnostics)`.

    Attributes:

        x(:code:`numpy.ndarray`): The retrieved state. :code:`None` if the
            start-cost guard stopped the run.

        xa(:code:`numpy.ndarray`): The a priori state.

        yf(:code:`numpy.ndarray`): The simulated measurement of :code:`x`.

        jacobian(:code:`numpy.ndarray`): The Jacobian at :code:`x`.

        dxdy(:code:`numpy.ndarray`): The gain matrix. Only available for
            runs that terminated with codes 0 to 2.

        diagnostics(:class:`oemsat.oem.diagnostics.OEMDiagnostics`): The
            diagnostics of the run.
    """
    def __init__(self,
                 x,
                 xa,
                 yf,
                 jacobian,
                 dxdy,
                 diagnostics):
        self.x = x
        self.xa = xa
        self.yf = yf
        self.jacobian = jacobian
        self.dxdy = dxdy
        self.diagnostics = diagnostics

    def __iter__(self):
        return iter((self.x, self.dxdy, self.diagnostics))

    def __repr__(self):
        return "OEMResult({})".format(self.diagnostics)


def _dense_matrix(matrix, name):
    if scipy.sparse.issparse(matrix):
        matrix = matrix.toarray()
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise InputError("{} must be a square matrix, got shape {}."
                         .format(name, matrix.shape))
    return matrix


def _validate(method,
              xa,
              y,
              covmat_sx_inv,
              covmat_so_inv,
              forward_model,
              x_norm,
              max_iter,
              stop_dx,
              lm_ga_settings):
    """
    Check inputs of :func:`run_inversion`.

    Returns:

        Tuple :code:`(xa, y, covmat_sx_inv, covmat_so_inv, x_norm,
        lm_ga_settings)` converted to arrays.
    """
    if method not in METHODS:
        raise InputError("Unknown OEM method '{}'. Supported methods are {}."
                         .format(method, METHODS))

    xa = np.array(xa, dtype=np.float64).ravel()
    y = np.array(y, dtype=np.float64).ravel()
    n = xa.size
    m = y.size
    if n == 0:
        raise InputError("The a priori state must not be empty.")
    if m == 0:
        raise InputError("The measurement vector must not be empty.")

    covmat_sx_inv = _dense_matrix(covmat_sx_inv, "The inverse a priori "
                                  "covariance matrix")
    if covmat_sx_inv.shape[0] != n:
        raise InputError("The inverse a priori covariance matrix has shape {} "
                         "but the state vector has length {}."
                         .format(covmat_sx_inv.shape, n))
    covmat_so_inv = _dense_matrix(covmat_so_inv, "The inverse observation "
                                  "error covariance matrix")
    if covmat_so_inv.shape[0] != m:
        raise InputError("The inverse observation error covariance matrix "
                         "has shape {} but the measurement vector has length "
                         "{}.".format(covmat_so_inv.shape, m))

    x_norm = np.asarray(x_norm, dtype=np.float64).ravel()
    if x_norm.size > 0:
        if x_norm.size != n:
            raise InputError("The normalization vector x_norm must be empty "
                             "or have the same length as the state vector.")
        if np.any(x_norm <= 0.0):
            raise InputError("All elements of x_norm must be positive.")

    if not isinstance(max_iter, (int, np.integer)) or max_iter <= 0:
        raise InputError("The maximum number of iterations must be a positive "
                         "integer.")
    if not stop_dx > 0.0:
        raise InputError("The convergence limit stop_dx must be positive.")

    if method in ["lm", "ml"]:
        lm_ga_settings = np.asarray(lm_ga_settings, dtype=np.float64).ravel()
        if lm_ga_settings.size != 6:
            raise InputError("When using \"{}\", lm_ga_settings must be a "
                             "vector of length 6.".format(method))
        if np.any(lm_ga_settings < 0.0):
            raise InputError("The vector lm_ga_settings can not contain any "
                             "negative value.")
        if not lm_ga_settings[1] > 0.0:
            raise InputError("The decrease factor of the damping must be "
                             "positive.")
        if not lm_ga_settings[2] > 1.0:
            raise InputError("The increase factor of the damping must be "
                             "larger than one.")

    if not isinstance(forward_model, ForwardModel):
        raise InputError("The forward model must implement the ForwardModel "
                         "interface.")

    return xa, y, covmat_sx_inv, covmat_so_inv, x_norm, lm_ga_settings


def run_inversion(method,
                  xa,
                  y,
                  covmat_sx_inv,
                  covmat_so_inv,
                  forward_model,
                  max_start_cost = np.inf,
                  x_norm = (),
                  max_iter = 20,
                  stop_dx = 0.1,
                  lm_ga_settings = DEFAULT_LM_GA_SETTINGS,
                  clear_matrices = False,
                  display_progress = False):
    """
    Run an OEM inversion.

    All inputs are validated before the forward model is called.

    Arguments:

        method(:code:`str`): One of :code:`"li"`, :code:`"gn"`,
            :code:`"lm"` or :code:`"ml"`.

        xa(:code:`numpy.ndarray`): The a priori state, also used as start
            state of the iteration.

        y(:code:`numpy.ndarray`): The measurement vector.

        covmat_sx_inv: Inverse of the a priori covariance matrix. Dense or
            :code:`scipy.sparse` matrix.

        covmat_so_inv: Inverse of the observation error covariance
            matrix. Dense or :code:`scipy.sparse` matrix.

        forward_model(:class:`oemsat.oem.forward_model.ForwardModel`): The
            forward model.

        max_start_cost(:code:`float`): If finite and positive, the run is
            stopped before the first iteration if the cost of the a priori
            state exceeds this value.

        x_norm: Normalization vector for the state. Empty to disable
            normalization.

        max_iter(:code:`int`): Maximum number of iterations.

        stop_dx(:code:`float`): Convergence limit.

        lm_ga_settings: Six-element vector
            :code:`[start, decrease, increase, max, threshold, limit]` of
            damping settings for :code:`"lm"` and :code:`"ml"`.

        clear_matrices(:code:`bool`): Don't return Jacobian and gain matrix.

        display_progress(:code:`bool`): Log progress at INFO level instead
            of DEBUG.

    Returns:

        :class:`OEMResult` object.

    Raises:

        InputError: If any of the inputs is invalid.
    """
    xa, y, covmat_sx_inv, covmat_so_inv, x_norm, lm_ga_settings = _validate(
        method, xa, y, covmat_sx_inv, covmat_so_inv, forward_model,
        x_norm, max_iter, stop_dx, lm_ga_settings
    )

    level = "INFO" if display_progress else "DEBUG"

    #
    # Start-cost guard
    #

    if 0.0 < max_start_cost < np.inf:
        diagnostics = OEMDiagnostics()
        try:
            yf = np.asarray(forward_model.evaluate(xa), dtype=np.float64).ravel()
            cost_start, _, _ = evaluate_cost(xa, xa, y, yf,
                                             covmat_sx_inv, covmat_so_inv)
        except NumericFailure as e:
            logger.warning("Evaluation of the start cost failed: {}", e)
            diagnostics.code = TerminationCode.NUMERIC_FAILURE
            diagnostics.errors.append(str(e))
            return OEMResult(None, xa, None, None, None, diagnostics)

        diagnostics.cost_start = cost_start
        if cost_start > max_start_cost:
            logger.log(level, "Start cost {:.4g} exceeds limit {:.4g}. No "
                       "inversion performed.", cost_start, max_start_cost)
            diagnostics.code = TerminationCode.HIGH_START_COST
            return OEMResult(None, xa, yf, None, None, diagnostics)

    #
    # Iteration
    #

    kwargs = {"x_norm" : x_norm,
              "max_iter" : max_iter,
              "stop_dx" : stop_dx,
              "display_progress" : display_progress}
    if method == "li":
        solver = LinearSolver(forward_model, xa, y,
                              covmat_sx_inv, covmat_so_inv, **kwargs)
    elif method == "gn":
        solver = GaussNewton(forward_model, xa, y,
                             covmat_sx_inv, covmat_so_inv, **kwargs)
    else:
        solver = LevenbergMarquardt(forward_model, xa, y,
                                    covmat_sx_inv, covmat_so_inv,
                                    ga_settings = lm_ga_settings,
                                    scaled = method == "lm",
                                    **kwargs)
    diagnostics = solver.run()

    #
    # Gain matrix
    #

    dxdy = None
    jacobian = solver.jacobian
    if diagnostics.code <= TerminationCode.MAX_GAMMA and not clear_matrices:
        try:
            dxdy = gain_matrix(jacobian, covmat_sx_inv, covmat_so_inv)
        except NumericFailure as e:
            logger.warning("Computation of the gain matrix failed: {}", e)
            diagnostics.errors.append(str(e))
            diagnostics.code = TerminationCode.NUMERIC_FAILURE
    if clear_matrices:
        jacobian = None

    return OEMResult(solver.x, xa, solver.yf, jacobian, dxdy, diagnostics)
