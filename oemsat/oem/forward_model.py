"""
oemsat.oem.forward_model
========================

Forward models map a state vector to a simulated measurement. The
inversion only interacts with the forward model through the two methods
of the :class:`ForwardModel` interface. Forward models must be
deterministic and must not keep state between calls.

Jacobians of forward models without an analytic Jacobian are computed
by one-sided perturbation of each element of the state vector.
"""
from abc import ABCMeta, abstractmethod

import numpy as np

from oemsat.errors import InputError


class ForwardModel(metaclass = ABCMeta):
    """
    Abstract interface for forward models.
    """
    @abstractmethod
    def evaluate(self, x):
        """
        Simulate the measurement for state :code:`x`.

        Returns:

            The simulated measurement vector.
        """

    @abstractmethod
    def evaluate_with_jacobian(self, x):
        """
        Simulate the measurement and its Jacobian for state :code:`x`.

        Returns:

            Tuple :code:`(y, jacobian)` of the simulated measurement vector
            of length :code:`m` and the :code:`m x n` Jacobian.
        """


def _as_measurement(y):
    return np.asarray(y, dtype=np.float64).ravel()


class FunctionForwardModel(ForwardModel):
    """
    Forward model defined by Python functions.

    Attributes:

        function: Function mapping the state vector to the measurement.

        jacobian: Function mapping the state vector to the Jacobian. If
            :code:`None`, the Jacobian is computed by perturbation.

        perturbation(:code:`float`): Relative size of the perturbation. The
            perturbation of element :code:`x_i` is
            :code:`perturbation * max(|x_i|, 1)`.
    """
    def __init__(self, function, jacobian = None, perturbation = 1e-6):
        if perturbation <= 0.0:
            raise InputError("The perturbation must be positive.")
        self.function = function
        self.jacobian = jacobian
        self.perturbation = perturbation

    def evaluate(self, x):
        return _as_measurement(self.function(np.array(x, dtype=np.float64)))

    def _perturbation_jacobian(self, x, y):
        n = x.size
        jacobian = np.zeros((y.size, n))
        dx = self.perturbation * np.maximum(np.abs(x), 1.0)
        for i in range(n):
            x_p = np.copy(x)
            x_p[i] += dx[i]
            jacobian[:, i] = (self.evaluate(x_p) - y) / dx[i]
        return jacobian

    def evaluate_with_jacobian(self, x):
        x = np.array(x, dtype=np.float64).ravel()
        y = self.evaluate(x)
        if self.jacobian is None:
            jacobian = self._perturbation_jacobian(x, y)
        else:
            jacobian = np.asarray(self.jacobian(np.copy(x)), dtype=np.float64)
            # Vectors are only accepted where the layout is unambiguous.
            if jacobian.ndim < 2 and min(y.size, x.size) == 1:
                jacobian = jacobian.reshape(y.size, x.size)
            if jacobian.shape != (y.size, x.size):
                raise InputError("The Jacobian function returned an array of "
                                 "shape {} but expected {}."
                                 .format(jacobian.shape, (y.size, x.size)))
        return y, jacobian


class LinearForwardModel(ForwardModel):
    """
    Linear forward model :math:`y = K x + y_0`.

    Attributes:

        k(:code:`numpy.ndarray`): The :code:`m x n` weighting function
            matrix.

        offset(:code:`numpy.ndarray`): Constant offset :math:`y_0`.
    """
    def __init__(self, k, offset = None):
        self.k = np.atleast_2d(np.asarray(k, dtype=np.float64))
        m = self.k.shape[0]
        if offset is None:
            offset = np.zeros(m)
        self.offset = _as_measurement(offset)
        if self.offset.size != m:
            raise InputError("The offset of a linear forward model must have "
                             "the same length as the rows of its matrix.")

    def evaluate(self, x):
        return self.k @ _as_measurement(x) + self.offset

    def evaluate_with_jacobian(self, x):
        return self.evaluate(x), np.copy(self.k)


class FieldForwardModel(FunctionForwardModel):
    """
    Forward model defined on atmospheric fields.

    The state vector is converted to atmospheric fields using a
    :class:`oemsat.retrieval.codec.StateCodec` before it is passed to the
    simulation function.

    Attributes:

        simulate: Function mapping an
            :class:`oemsat.atmosphere.AtmosphericFields` object to the
            simulated measurement.

        codec(:class:`oemsat.retrieval.codec.StateCodec`): The codec
            defining the state vector.

        fields(:class:`oemsat.atmosphere.AtmosphericFields`): The reference
            fields used for all quantities that are not retrieved.
    """
    def __init__(self,
                 simulate,
                 codec,
                 fields,
                 jacobian = None,
                 perturbation = 1e-6):
        self.simulate = simulate
        self.codec = codec
        self.fields = fields

        field_jacobian = None
        if jacobian is not None:
            def field_jacobian(x):
                return jacobian(self.codec.inverse(x, self.fields))

        super().__init__(self._simulate_state,
                         jacobian = field_jacobian,
                         perturbation = perturbation)

    def _simulate_state(self, x):
        return self.simulate(self.codec.inverse(x, self.fields))
