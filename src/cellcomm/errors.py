#!/usr/bin/env python

"""
error types raised by cellcomm
"""


class CellCommError(Exception):
    """
    base class of all cellcomm errors
    """


class ConfigurationError(CellCommError, ValueError):
    """
    a parameter is out of its valid range, or an analysis was requested
    that the data cannot support (e.g. more patterns than non-zero rows)
    """


class DataError(CellCommError, ValueError):
    """
    the input data violate a precondition, e.g. the expression matrix and
    the cell annotation do not describe the same cells
    """


class NumericalError(CellCommError, RuntimeError):
    """
    an iterative numerical routine did not converge within its budget
    """
