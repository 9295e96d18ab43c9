#!/usr/bin/env python

import enum
import multiprocessing
from datetime import datetime
import numpy as np

from cellcomm.errors import ConfigurationError

"""
helpers shared by the cellcomm modules
"""


def info(string):
    """
    print information
    """
    today = datetime.today().strftime("%B %d, %Y")
    now = datetime.now().strftime("%H:%M:%S")
    current_time = today + ' ' + now
    print("[{}]: {}".format(current_time, string))


def _as_kind_(value, kind):
    """
    convert a string or enum member to a member of the given enum,
    raise ConfigurationError for unknown values
    """
    if isinstance(value, kind):
        return(value)
    try:
        return(kind(str(value).lower()))
    except ValueError:
        raise ConfigurationError('{} should be one of {}, got {}'.format(
            kind.__name__, [x.value for x in kind], value))


def _hill_(x, kh, n = 1):
    """
    saturating Hill function x^n / (kh^n + x^n)
    """
    xn = np.power(x, n)
    return xn / (np.power(kh, n) + xn)


def _spawn_seeds_(seed, n):
    """
    independent random streams for n parallel units, derived from one seed
    """
    return np.random.SeedSequence(seed).spawn(n)


class _StrEnum_(str, enum.Enum):
    """
    enum whose members compare equal to their string values
    """
    def __str__(self):
        return(self.value)


def _run_pool_(func, args, thread = 1, pool = None):
    """
    apply func to each tuple of arguments in an existing pool (multiprocessing
    or concurrent.futures), in a new process pool of thread workers, or serially
    """
    if pool is not None:
        if hasattr(pool, 'starmap'):
            return(pool.starmap(func, args))
        return(list(pool.map(func, *zip(*args))))
    if thread is not None and thread > 1:
        with multiprocessing.Pool(thread) as p:
            return(p.starmap(func, args))
    return([func(*a) for a in args])
