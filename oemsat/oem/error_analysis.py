"""
oemsat.oem.error_analysis
=========================

Linear error analysis of OEM retrievals. All functions take the inverse
covariance matrices that are used by the inversion.
"""
import numpy as np
import scipy.linalg
import scipy.sparse

from oemsat.errors import NumericFailure

__all__ = ["gain_matrix",
           "averaging_kernel",
           "retrieval_error_covariance",
           "observation_error_covariance",
           "smoothing_error_covariance",
           "degrees_of_freedom"]


def _dense(matrix):
    if scipy.sparse.issparse(matrix):
        return matrix.toarray()
    return np.asarray(matrix, dtype=np.float64)


def _inv(matrix):
    try:
        return scipy.linalg.inv(_dense(matrix))
    except (np.linalg.LinAlgError, ValueError) as e:
        raise NumericFailure("Matrix inversion failed: {}".format(e))


def retrieval_error_covariance(k, covmat_sx_inv, covmat_so_inv):
    """
    Total retrieval error covariance :math:`(K^T S_y^{-1} K + S_x^{-1})^{-1}`.
    """
    k = np.asarray(k)
    so_inv = _dense(covmat_so_inv)
    return _inv(k.T @ so_inv @ k + _dense(covmat_sx_inv))


def gain_matrix(k, covmat_sx_inv, covmat_so_inv):
    """
    The gain matrix :math:`G = (K^T S_y^{-1} K + S_x^{-1})^{-1} K^T S_y^{-1}`.

    Arguments:

        k(:code:`numpy.ndarray`): The Jacobian.

        covmat_sx_inv: Inverse of the a priori covariance matrix.

        covmat_so_inv: Inverse of the observation error covariance matrix.

    Returns:

        The :code:`n x m` gain matrix.
    """
    k = np.asarray(k)
    so_inv = _dense(covmat_so_inv)
    k_t_s = k.T @ so_inv
    try:
        g = scipy.linalg.solve(k_t_s @ k + _dense(covmat_sx_inv), k_t_s)
    except (np.linalg.LinAlgError, ValueError) as e:
        raise NumericFailure("Computation of the gain matrix failed: {}"
                             .format(e))
    return g


def averaging_kernel(dxdy, k):
    """The averaging kernel matrix :math:`A = G K`."""
    return np.asarray(dxdy) @ np.asarray(k)


def observation_error_covariance(dxdy, covmat_so_inv):
    """
    Covariance of the retrieval error due to observation errors,
    :math:`G S_y G^T`.
    """
    dxdy = np.asarray(dxdy)
    return dxdy @ _inv(covmat_so_inv) @ dxdy.T


def smoothing_error_covariance(avk, covmat_sx_inv):
    """
    Covariance of the smoothing error, :math:`(A - I) S_x (A - I)^T`.
    """
    avk = np.asarray(avk)
    d = avk - np.eye(avk.shape[0])
    return d @ _inv(covmat_sx_inv) @ d.T


def degrees_of_freedom(avk):
    """Degrees of freedom for signal, the trace of the averaging kernel."""
    return float(np.trace(avk))
