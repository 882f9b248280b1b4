"""
oemsat.io
=========

The `oemsat.io` module provides routines for storing retrieval results
in NetCDF4 files.

Results of a series of retrievals are stored along a set of compute
dimensions, for example the indices of the retrieved profiles. Each
retrieval run is stored in its own group of the file.
"""
import os
from copy import copy

import numpy as np
from netCDF4 import Dataset


class OutputFile:
    """
    Class to store results from retrieval runs in a NetCDF file.

    The file structure is created lazily when the first results are
    stored.
    """
    def __init__(self,
                 filename,
                 dimensions = None,
                 mode = "a",
                 floating_point_format = "f4",
                 full_retrieval_output = True):
        """
        Create output file to store retrieval results to.

        Arguments:

            filename(str): Path of the output file.
            dimensions(list): List of tuples :code:`(name, size, offset)`
                for each dimension over which retrievals will be performed.
                A negative size creates an unlimited dimension. The offset
                is subtracted from the indices passed to
                :meth:`store_results`.
            mode(str): :code:`"w"` to overwrite an existing file,
                :code:`"a"` to append to it.
            floating_point_format(str): The precision to use to store floating
                point numbers (:code:`f4` or :code:`f8`)
            full_retrieval_output(:code:`bool`): Whether or not to include
                full retrieval output (Jacobians, AVK and covariance matrices).
                When appending to an existing file, matrices are only
                written if the file contains the corresponding variables.
        """
        filename = os.path.expanduser(filename)
        self.filename = filename
        self.mode = mode
        if dimensions is None:
            dimensions = [("index", -1, 0)]
        self.dimensions = dimensions
        self.f_fp = floating_point_format

        self.full_retrieval_output = full_retrieval_output

        if os.path.isfile(self.filename):
            if mode == "w":
                os.remove(self.filename)
                self._initialized = False
            else:
                self._initialized = True
        else:
            self._initialized = False

    @property
    def initialized(self):
        return self._initialized

    def _initialize_dimensions(self):
        """
        Initialize compute dimensions in the output file.
        """
        for n, s, _ in self.dimensions:
            if s < 0:
                self.file_handle.createDimension(n, None)
            else:
                self.file_handle.createDimension(n, s)

    def _initialize_retrieval_output(self, run):
        """
        Initialize output file for results from a retrieval run.

        Arguments:

            run(:class:`oemsat.retrieval.RetrievalRun`): Retrieval run of
                which to store the results.
        """
        root = self.file_handle
        root.createDimension("oem_diagnostics", 5)

        indices = [n for n, _, _ in self.dimensions]
        group = root.createGroup(run.name)

        # Retrieval quantities.
        for rq in run.retrieval_quantities:
            i, j = run.rq_indices[rq]
            d = rq.name + "_grid"
            group.createDimension(d, j - i)
            group.createVariable(rq.name, self.f_fp,
                                 dimensions = tuple(indices + [d]))
            group.createVariable(rq.name + "_xa", self.f_fp,
                                 dimensions = tuple(indices + [d]))

        # OEM diagnostics.
        group.createVariable("diagnostics", self.f_fp,
                             dimensions = tuple(indices + ["oem_diagnostics"]))

        # Observations and fit.
        n = run.xa.size
        m = run.y.size
        group.createDimension("m", m)
        group.createDimension("n", n)
        group.createVariable("y", self.f_fp, dimensions = tuple(indices + ["m"]))
        group.createVariable("yf", self.f_fp, dimensions = tuple(indices + ["m"]))

        if self.full_retrieval_output:
            group.createVariable("G", self.f_fp,
                                 dimensions = tuple(indices + ["n", "m"]))
            group.createVariable("A", self.f_fp,
                                 dimensions = tuple(indices + ["n", "n"]))
            group.createVariable("covmat_so", self.f_fp,
                                 dimensions = tuple(indices + ["n", "n"]))
            group.createVariable("covmat_ss", self.f_fp,
                                 dimensions = tuple(indices + ["n", "n"]))
            group.createVariable("jacobian", self.f_fp,
                                 dimensions = tuple(indices + ["m", "n"]))

    def initialize(self, run):
        """
        Initialize output file.

        This creates all necessary dimensions and variables in the NetCDF4
        output file. This function is run automatically before the first
        entry is stored in the file.
        """
        self.file_handle = Dataset(self.filename, mode = "w")
        try:
            self._initialize_dimensions()
            self._initialize_retrieval_output(run)
        finally:
            self._initialized = True
            self.close()

    def _get_indices(self, args):
        if len(args) != len(self.dimensions):
            raise ValueError("Expected {} indices but got {}."
                             .format(len(self.dimensions), len(args)))
        return tuple(a - o for a, (_, _, o) in zip(args, self.dimensions))

    def _store_retrieval_results(self, run, args):

        g = self.file_handle.groups[run.name]

        #
        # Retrieved quantities
        #

        for rq in run.retrieval_quantities:
            x = run.get_result(rq)
            xa = run.get_result(rq, attribute = "xa")
            if x is None:
                x = xa
            g.variables[rq.name][args + (slice(None),)] = x
            g.variables[rq.name + "_xa"][args + (slice(None),)] = xa

        #
        # OEM diagnostics.
        #

        g.variables["diagnostics"][args + (slice(None),)] = run.oem_diagnostics

        #
        # Observation and fit.
        #

        g["y"][args + (slice(None),)] = run.y
        if run.yf is not None:
            g["yf"][args + (slice(None),)] = run.yf

        #
        # Remaining retrieval output
        #

        if self.full_retrieval_output and run.oem_diagnostics[0] <= 2.0:
            for name, value in [("A", run.avk),
                                ("G", run.dxdy),
                                ("covmat_ss", run.covmat_ss),
                                ("covmat_so", run.covmat_so),
                                ("jacobian", run.jacobian)]:
                if value is None or name not in g.variables:
                    continue
                g[name][args + (slice(None), slice(None))] = np.asarray(value)

    def store_results(self, run, *args):
        """
        Store results of a retrieval run.

        Arguments:

            run(:class:`oemsat.retrieval.RetrievalRun`): The retrieval run.

            *args: Indices along the compute dimensions of the file.
        """
        if not self.initialized:
            self.initialize(run)

        args = self._get_indices(args)
        self.open()
        try:
            self._store_retrieval_results(run, args)
        finally:
            self.close()

    def open(self):
        if self.initialized:
            if hasattr(self, "file_handle"):
                if not self.file_handle.isopen():
                    self.file_handle = Dataset(self.filename, mode = "r+")
            else:
                self.file_handle = Dataset(self.filename, mode = "r+")

    def close(self):
        if hasattr(self, "file_handle"):
            if self.file_handle.isopen():
                self.file_handle.close()

    def __getstate__(self):
        state = copy(self.__dict__)
        state.pop("file_handle", None)
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
