"""
oemsat.oem.solvers
==================

Iterative solvers for the OEM inversion.

All solvers minimize the cost function

.. math::

    \\chi^2 = (y - F(x))^T S_y^{-1} (y - F(x)) + (x - x_a)^T S_x^{-1} (x - x_a)

by repeatedly solving the normal equations :math:`H d = g` with

.. math::

    H = \\tilde{K}^T S_y^{-1} \\tilde{K} + \\tilde{S}_x^{-1}, \\quad
    g = \\tilde{K}^T S_y^{-1} (y - F(x)) - \\tilde{S}_x^{-1} (\\tilde{x} - \\tilde{x}_a)

in normalized coordinates :math:`\\tilde{x} = x / x_{norm}`. The
convergence measure of an update :math:`d` is :math:`d^T H d / n`.

Solvers
=======

- :class:`LinearSolver`: A single step from the a priori state.
- :class:`GaussNewton`: Undamped Gauss-Newton iteration.
- :class:`LevenbergMarquardt`: Damped iteration with adaptive damping
  factor :math:`\\gamma`.
"""
from abc import ABCMeta, abstractmethod
from enum import Enum

import numpy as np
import scipy.linalg
from loguru import logger

from oemsat.errors import InputError, NumericFailure
from oemsat.oem.cost import evaluate_cost
from oemsat.oem.diagnostics import OEMDiagnostics, TerminationCode


class SolverState(Enum):
    INIT = 0
    RUNNING = 1
    TERMINATED = 2


def solve(matrix, vector):
    """
    Solve a linear system.

    Raises:

        NumericFailure: If the system is singular or the solution is not
            finite.
    """
    try:
        x = scipy.linalg.solve(matrix, vector)
    except (np.linalg.LinAlgError, ValueError) as e:
        raise NumericFailure("Solving the normal equations failed: {}"
                             .format(e))
    if not np.all(np.isfinite(x)):
        raise NumericFailure("The solution of the normal equations is not "
                             "finite.")
    return x

################################################################################
# Solver base class
################################################################################


class Solver(metaclass = ABCMeta):
    """
    Base class for OEM solvers.

    The solver takes ownership of copies of the a priori state. The
    covariance matrices are expected to be dense arrays of matching
    dimensions.

    Attributes:

        x(:code:`numpy.ndarray`): The current state.

        yf(:code:`numpy.ndarray`): The simulated measurement for :code:`x`.

        jacobian(:code:`numpy.ndarray`): The Jacobian at :code:`x`.

        cost(:code:`float`): The cost of :code:`x`.

        iteration(:code:`int`): Number of iterations performed.

        state(:class:`SolverState`): The state of the solver.

        diagnostics(:class:`oemsat.oem.diagnostics.OEMDiagnostics`): The
            diagnostics of the run.
    """
    #: Short name used in log messages.
    name = None

    def __init__(self,
                 forward_model,
                 xa,
                 y,
                 covmat_sx_inv,
                 covmat_so_inv,
                 x_norm = None,
                 max_iter = 20,
                 stop_dx = 0.1,
                 display_progress = False):
        self.forward_model = forward_model
        self.xa = np.array(xa, dtype=np.float64).ravel()
        self.y = np.array(y, dtype=np.float64).ravel()
        self.covmat_sx_inv = covmat_sx_inv
        self.covmat_so_inv = covmat_so_inv

        n = self.xa.size
        if x_norm is None or np.size(x_norm) == 0:
            x_norm = np.ones(n)
        self.x_norm = np.asarray(x_norm, dtype=np.float64).ravel()
        # Prior precision in normalized coordinates.
        self._sx_inv_n = self.x_norm[:, np.newaxis] * covmat_sx_inv \
                         * self.x_norm[np.newaxis, :]

        self.max_iter = max_iter
        self.stop_dx = stop_dx
        self.display_progress = display_progress

        self.x = np.copy(self.xa)
        self.yf = None
        self.jacobian = None
        self.cost = np.nan
        self.cost_y = np.nan
        self.cost_x = np.nan
        self.iteration = 0
        self.state = SolverState.INIT
        self.diagnostics = OEMDiagnostics()

    def _log(self, message, *args):
        level = "INFO" if self.display_progress else "DEBUG"
        logger.log(level, message, *args)

    def _evaluate(self, x):
        yf, jacobian = self.forward_model.evaluate_with_jacobian(x)
        yf = np.asarray(yf, dtype=np.float64).ravel()
        jacobian = np.asarray(jacobian, dtype=np.float64)
        if yf.size != self.y.size:
            raise InputError("The forward model returned a measurement of "
                             "length {} but the measurement vector has length "
                             "{}.".format(yf.size, self.y.size))
        if jacobian.shape != (self.y.size, self.xa.size):
            raise InputError("The forward model returned a Jacobian of shape "
                             "{} but expected {}."
                             .format(jacobian.shape,
                                     (self.y.size, self.xa.size)))
        if not (np.all(np.isfinite(yf)) and np.all(np.isfinite(jacobian))):
            raise NumericFailure("The forward model returned non-finite "
                                 "values.")
        return yf, jacobian

    def _cost(self, x, yf):
        return evaluate_cost(x, self.xa, self.y, yf,
                             self.covmat_sx_inv, self.covmat_so_inv)

    def normal_equations(self, x, yf, jacobian):
        """
        The normal equations in normalized coordinates.

        Returns:

            Tuple :code:`(H, g)` of the Hessian approximation and the
            gradient term.
        """
        k_n = jacobian * self.x_norm[np.newaxis, :]
        k_t_s = np.asarray((self.covmat_so_inv @ k_n).T)
        h = k_t_s @ k_n + self._sx_inv_n
        g = k_t_s @ (self.y - yf) \
            - self._sx_inv_n @ ((x - self.xa) / self.x_norm)
        return h, g

    def convergence_measure(self, d, h):
        """Convergence measure :math:`d^T H d / n` of a normalized update."""
        return float(d @ h @ d) / d.size

    def _set_state(self, x, yf, jacobian, costs):
        self.x = x
        self.yf = yf
        self.jacobian = jacobian
        self.cost, self.cost_y, self.cost_x = costs

    def initialize(self):
        """
        Evaluate the forward model and the cost at the a priori state.
        """
        if self.state != SolverState.INIT:
            return
        yf, jacobian = self._evaluate(self.x)
        costs = self._cost(self.x, yf)
        self._set_state(self.x, yf, jacobian, costs)
        self.diagnostics.cost_start = self.cost
        self.state = SolverState.RUNNING
        self._log("Starting OEM inversion ({}): n = {}, m = {}, "
                  "start cost = {:.4g}",
                  self.name, self.xa.size, self.y.size, self.cost)

    def _log_iteration(self, gamma = None, measure = None):
        gamma = "-" if gamma is None else "{:.3g}".format(gamma)
        measure = "-" if measure is None else "{:.4g}".format(measure)
        self._log("{:>5} | cost {:.4g} | cost_y {:.4g} | cost_x {:.4g} | "
                  "gamma {} | dx {}",
                  self.iteration, self.cost, self.cost_y, self.cost_x,
                  gamma, measure)

    def terminate(self, code):
        """Terminate the run with the given termination code."""
        self.state = SolverState.TERMINATED
        d = self.diagnostics
        d.code = TerminationCode(code)
        d.cost_end = self.cost
        d.cost_y_end = self.cost_y
        d.iterations = self.iteration
        self._log("OEM inversion terminated: {} after {} iteration(s), "
                  "final cost = {:.4g}", d.code.name, d.iterations, d.cost_end)

    @abstractmethod
    def step(self):
        """
        Perform one step of the iteration.
        """

    def run(self):
        """
        Run the solver until it terminates.

        Numeric failures terminate the run with code
        :code:`NUMERIC_FAILURE`. The state is then the last accepted state.

        Returns:

            The :class:`oemsat.oem.diagnostics.OEMDiagnostics` of the run.
        """
        try:
            self.initialize()
            while self.state == SolverState.RUNNING:
                self.step()
        except NumericFailure as e:
            logger.warning("OEM inversion failed: {}", e)
            self.diagnostics.errors.append(str(e))
            self.terminate(TerminationCode.NUMERIC_FAILURE)
        return self.diagnostics

################################################################################
# Linear
################################################################################


class LinearSolver(Solver):
    """
    Linear OEM.

    Solves the normal equations once, using the Jacobian of the a priori
    state. The simulated measurement of the result is the linear
    prediction from the a priori state, so the forward model is evaluated
    only once.
    """
    name = "li"

    def step(self):
        h, g = self.normal_equations(self.x, self.yf, self.jacobian)
        d = solve(h, g)
        dx = d * self.x_norm
        x = self.x + dx
        yf = self.yf + self.jacobian @ dx
        self._set_state(x, yf, self.jacobian, self._cost(x, yf))
        self.iteration = 1
        self._log_iteration(measure = self.convergence_measure(d, h))
        self.terminate(TerminationCode.CONVERGED)

################################################################################
# Gauss-Newton
################################################################################


class GaussNewton(Solver):
    """
    Gauss-Newton iteration.

    Each step solves for the update at the current state. If the
    convergence measure of the update is below :code:`stop_dx`, the
    current state is the solution. Otherwise the update is applied and
    the forward model re-evaluated.
    """
    name = "gn"

    def step(self):
        h, g = self.normal_equations(self.x, self.yf, self.jacobian)
        d = solve(h, g)
        measure = self.convergence_measure(d, h)

        if measure < self.stop_dx:
            self.terminate(TerminationCode.CONVERGED)
            return
        if self.iteration >= self.max_iter:
            self.terminate(TerminationCode.MAX_ITER)
            return

        x = self.x + d * self.x_norm
        yf, jacobian = self._evaluate(x)
        costs = self._cost(x, yf)
        self._set_state(x, yf, jacobian, costs)
        self.iteration += 1
        self._log_iteration(measure = measure)

################################################################################
# Levenberg-Marquardt
################################################################################


class LevenbergMarquardt(Solver):
    """
    Levenberg-Marquardt iteration.

    The normal equations are damped by :math:`\\gamma \\text{diag}(H)`
    or, with :code:`scaled = False`, by :math:`\\gamma I`.

    A trial step is accepted if it decreases the cost. Then :math:`\\gamma`
    is divided by the decrease factor and set to zero if it falls below
    the threshold. A rejected step leaves the state unchanged and
    multiplies :math:`\\gamma` by the increase factor, or sets it to the
    threshold if it was zero. The run terminates with :code:`MAX_GAMMA`
    when :math:`\\gamma` exceeds its maximum.

    The run converges when a step with convergence measure below
    :code:`stop_dx` was computed with :math:`\\gamma` not above the
    convergence limit. While :math:`\\gamma` is above the limit, the run
    also converges if the undamped Gauss-Newton update of the current
    state is below :code:`stop_dx`, in which case no trial step is made.

    Attributes:

        gamma(:code:`float`): The damping factor for the next trial step.

        ga_settings(:code:`numpy.ndarray`): The six-element vector
            :code:`[start, decrease, increase, max, threshold, limit]`.
    """
    name = "lm"

    def __init__(self,
                 forward_model,
                 xa,
                 y,
                 covmat_sx_inv,
                 covmat_so_inv,
                 ga_settings = (1000.0, 5.0, 2.0, 1e6, 1.0, 1.0),
                 scaled = True,
                 **kwargs):
        super().__init__(forward_model, xa, y, covmat_sx_inv, covmat_so_inv,
                         **kwargs)
        ga_settings = np.asarray(ga_settings, dtype=np.float64).ravel()
        if ga_settings.size != 6:
            raise InputError("The Levenberg-Marquardt settings must have "
                             "exactly six elements.")
        self.ga_settings = ga_settings
        (self.gamma,
         self.ga_decrease,
         self.ga_increase,
         self.ga_max,
         self.ga_threshold,
         self.ga_limit) = ga_settings
        self.scaled = scaled
        if not scaled:
            self.name = "ml"

    def _damping(self, h):
        if self.scaled:
            return np.diag(np.diag(h))
        return np.eye(h.shape[0])

    def _increase_gamma(self):
        if self.gamma == 0.0:
            self.gamma = self.ga_threshold if self.ga_threshold > 0.0 else 1.0
        else:
            self.gamma *= self.ga_increase

    def _decrease_gamma(self):
        self.gamma /= self.ga_decrease
        if self.gamma < self.ga_threshold:
            self.gamma = 0.0

    def _undamped_converged(self, h, g):
        try:
            d = solve(h, g)
        except NumericFailure:
            # Only the damped system has to be regular.
            return False
        return self.convergence_measure(d, h) < self.stop_dx

    def step(self):
        """
        Perform one trial step.

        Returns:

            :code:`True` if the step was accepted, :code:`False` otherwise.
        """
        if self.iteration >= self.max_iter:
            self.terminate(TerminationCode.MAX_ITER)
            return False

        h, g = self.normal_equations(self.x, self.yf, self.jacobian)

        # Damped steps above the limit can't signal convergence, so the
        # undamped update is checked directly.
        if self.gamma > self.ga_limit and self._undamped_converged(h, g):
            self._log("{:>5} | undamped update below convergence limit",
                      self.iteration)
            self.terminate(TerminationCode.CONVERGED)
            return False

        gamma = self.gamma
        self.diagnostics.gamma_history.append(gamma)
        d = solve(h + gamma * self._damping(h), g)
        measure = self.convergence_measure(d, h)
        converged = measure < self.stop_dx and gamma <= self.ga_limit

        x = self.x + d * self.x_norm
        yf, jacobian = self._evaluate(x)
        costs = self._cost(x, yf)

        if costs[0] < self.cost:
            self._set_state(x, yf, jacobian, costs)
            self.iteration += 1
            self._decrease_gamma()
            self._log_iteration(gamma = gamma, measure = measure)
            if converged:
                self.terminate(TerminationCode.CONVERGED)
            return True

        self._log("{:>5} | rejected step with cost {:.4g} | gamma {:.3g}",
                  self.iteration, costs[0], gamma)
        if converged:
            # No decrease is possible from a state within tolerance.
            self.terminate(TerminationCode.CONVERGED)
            return False
        self._increase_gamma()
        if self.gamma > self.ga_max:
            self.terminate(TerminationCode.MAX_GAMMA)
        return False
