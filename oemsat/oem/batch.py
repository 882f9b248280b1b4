"""
oemsat.oem.batch
================

Runs independent inversion problems on a pool of workers using
:code:`joblib`. Each worker claims one problem at a time. Errors in a
single problem are converted into :class:`ProblemFailure` values and
don't affect the other problems.

Problems are given as dictionaries of keyword arguments to
:func:`oemsat.oem.run_inversion`.
"""
import time

import numpy as np
from joblib import Parallel, delayed
from loguru import logger

from oemsat.errors import InputError
from oemsat.oem import run_inversion


class ProblemFailure:
    """
    Outcome of a problem whose inversion raised an exception.

    Attributes:

        index(:code:`int`): Index of the problem in the batch.

        kind(:code:`str`): :code:`"input"` for invalid inputs,
            :code:`"error"` for all other errors.

        message(:code:`str`): The error message.

        exception_type(:code:`str`): Name of the exception class.
    """
    def __init__(self, index, kind, message, exception_type):
        self.index = index
        self.kind = kind
        self.message = message
        self.exception_type = exception_type

    def __repr__(self):
        return "ProblemFailure({}, {}: {})".format(self.index,
                                                   self.exception_type,
                                                   self.message)


class BatchResults:
    """
    Results of a batch of inversions.

    Attributes:

        results(:code:`list`): For each problem either its
            :class:`oemsat.oem.OEMResult` or a :class:`ProblemFailure`.

        done(:code:`dict`): Maps indices of successful problems to dicts
            with keys :code:`"result"` and :code:`"time"`.

        failed(:code:`dict`): Maps indices of failed problems to dicts with
            keys :code:`"failure"` and :code:`"time"`.
    """
    def __init__(self, n_problems):
        self.results = [None] * n_problems
        self.done = {}
        self.failed = {}

    def add(self, index, result, elapsed):
        self.results[index] = result
        if isinstance(result, ProblemFailure):
            self.failed[index] = {"failure" : result, "time" : elapsed}
        else:
            self.done[index] = {"result" : result, "time" : elapsed}

    @property
    def average_time(self):
        t = np.array([self.done[k]["time"] for k in self.done])
        if len(t) > 0:
            return np.mean(t)
        else:
            return np.nan

    def __len__(self):
        return len(self.results)

    def __getitem__(self, index):
        return self.results[index]

    def __iter__(self):
        return iter(self.results)

    def __repr__(self):
        s = "Batch of OEM inversions: {} problems, {} completed, {} failed"
        s += "\n\t Avg. execution time: {}"
        return s.format(len(self.results),
                        len(self.done),
                        len(self.failed),
                        self.average_time)


def _run_problem(index, problem):
    start = time.time()
    try:
        result = run_inversion(**problem)
    except InputError as e:
        logger.warning("Problem {} has invalid inputs: {}", index, e)
        result = ProblemFailure(index, "input", str(e), type(e).__name__)
    except Exception as e:
        logger.error("Inversion of problem {} failed: {}", index, e)
        result = ProblemFailure(index, "error", str(e), type(e).__name__)
    return index, result, time.time() - start


def run_batch(problems, n_jobs = 1, backend = "threading"):
    """
    Run a batch of independent inversions.

    Arguments:

        problems: Iterable of dictionaries holding the keyword arguments
            for :func:`oemsat.oem.run_inversion` of each problem.

        n_jobs(:code:`int`): Number of workers passed to
            :code:`joblib.Parallel`.

        backend(:code:`str`): The joblib backend.

    Returns:

        :class:`BatchResults` with one entry per problem, in order.
    """
    problems = list(problems)
    results = BatchResults(len(problems))
    runner = Parallel(n_jobs = n_jobs, backend = backend, batch_size = 1)
    outputs = runner(delayed(_run_problem)(i, p)
                     for i, p in enumerate(problems))
    for index, result, elapsed in outputs:
        results.add(index, result, elapsed)
    logger.info("Finished batch of {} inversions: {} completed, {} failed.",
                len(problems), len(results.done), len(results.failed))
    return results
