"""
oemsat.settings
===============

Settings of OEM inversions. Settings are plain dictionaries whose keys
are the keyword arguments of :func:`oemsat.oem.run_inversion`. They can
be read from YAML files:

.. code-block:: yaml

    method: gn
    max_iter: 10
    stop_dx: 0.01
"""
import os
from copy import deepcopy

import numpy as np
import yaml

from oemsat.errors import InputError

DEFAULT_SETTINGS = {"method" : "lm",
                    "max_start_cost" : np.inf,
                    "x_norm" : np.zeros(0),
                    "max_iter" : 20,
                    "stop_dx" : 0.1,
                    "lm_ga_settings" : np.array([1000.0, 5.0, 2.0, 1e6, 1.0, 1.0]),
                    "clear_matrices" : 0,
                    "display_progress" : 1}


def default_settings():
    """A fresh copy of the default settings."""
    return deepcopy(DEFAULT_SETTINGS)


def update_settings(settings, updates):
    """
    Update settings with values from a dictionary.

    List values of :code:`x_norm` and :code:`lm_ga_settings` are
    converted to arrays.

    Raises:

        InputError: If :code:`updates` contains an unknown key.
    """
    unknown = [k for k in updates if k not in DEFAULT_SETTINGS]
    if unknown:
        raise InputError("Unknown OEM settings {}. Valid settings are {}."
                         .format(unknown, list(DEFAULT_SETTINGS.keys())))
    for key, value in updates.items():
        if key in ["x_norm", "lm_ga_settings"]:
            value = np.asarray(value, dtype=np.float64)
        elif key == "max_start_cost":
            value = float(value)
        settings[key] = value
    return settings


def read_settings(filename):
    """
    Read OEM settings from a YAML file.

    Values given in the file override the default settings.

    Arguments:

        filename(:code:`str`): Path of the YAML file.

    Returns:

        The settings dictionary.
    """
    filename = os.path.expanduser(filename)
    with open(filename, "r") as f:
        updates = yaml.safe_load(f)
    if updates is None:
        updates = {}
    if not isinstance(updates, dict):
        raise InputError("The settings file {} must contain a mapping."
                         .format(filename))
    return update_settings(default_settings(), updates)
