#!/usr/bin/env python

import time
import numpy as np
import pandas as pd
import networkx as nx
from scipy import sparse

from cellcomm.utils import info
from cellcomm.errors import ConfigurationError, DataError

"""
diffuse gene expression over a protein-protein interaction network
to recover signal lost by dropout
"""


def _ppi_adjacency_(ppi, genes):
    """
    weighted adjacency of the PPI restricted to the genes of the expression
    matrix, as a sparse genes x genes matrix in matrix gene order
    """
    loc = {g:i for i, g in enumerate(genes)}
    rows, cols, vals = [], [], []
    if isinstance(ppi, nx.Graph):
        for u, v, d in ppi.edges(data = True):
            u, v = str(u), str(v)
            if u not in loc or v not in loc:
                continue
            w = d.get('weight', 1.0)
            rows.append(loc[u]); cols.append(loc[v]); vals.append(w)
            if not ppi.is_directed():
                rows.append(loc[v]); cols.append(loc[u]); vals.append(w)
    elif isinstance(ppi, pd.DataFrame):
        if ppi.shape[0] != ppi.shape[1]:
            raise DataError('PPI adjacency should be a square gene x gene data frame, got shape {}'.format(ppi.shape))
        idx = pd.Index(ppi.index.astype(str))
        col = pd.Index(ppi.columns.astype(str))
        keep_r = np.array([g in loc for g in idx])
        keep_c = np.array([g in loc for g in col])
        sub = np.nan_to_num(ppi.values[np.ix_(keep_r, keep_c)].astype(float))
        r, c = np.nonzero(sub)
        r_loc = np.array([loc[g] for g in idx[keep_r]], dtype = int)
        c_loc = np.array([loc[g] for g in col[keep_c]], dtype = int)
        rows, cols, vals = r_loc[r].tolist(), c_loc[c].tolist(), sub[r, c].tolist()
    else:
        raise DataError('ppi should be a networkx graph or a square data frame, got %s'%type(ppi))

    rows, cols, vals = np.array(rows, dtype = int), np.array(cols, dtype = int), np.array(vals, dtype = float)
    ## no self loops
    keep = rows != cols
    n = len(genes)
    adj = sparse.csr_matrix((vals[keep], (rows[keep], cols[keep])), shape = (n, n), dtype = float)
    if adj.nnz > 0 and adj.data.min() < 0:
        raise DataError('PPI edge weights should be non-negative')
    adj.eliminate_zeros()
    return(adj)


def project(store, ppi, alpha = 0.5, n_iter = 1):
    """
    smooth expression of each gene with its PPI neighbors

    Y = (1 - alpha) * X + alpha * P * Y, where P is the row-normalized PPI
    adjacency. n_iter = 1 gives the one-step blend of observed expression
    and the neighbor average; more iterations move towards the fixed point
    of the diffusion. Genes without neighbors in the PPI keep observed values.

    Params
    -----
    store
        ExpressionStore
    ppi
        networkx graph (edge attribute 'weight', default 1) or a square
        gene x gene data frame of non-negative weights
    alpha
        float in [0, 1), weight of the neighbor average
    n_iter
        int >= 1, number of diffusion steps

    Return
    -----
    a new ExpressionStore with the smoothed values
    """
    if not (0 <= alpha < 1):
        raise ConfigurationError('alpha should be in [0, 1), got {}'.format(alpha))
    if int(n_iter) != n_iter or n_iter < 1:
        raise ConfigurationError('n_iter should be a positive integer, got {}'.format(n_iter))
    tic = time.time()
    adj = _ppi_adjacency_(ppi, store.genes)
    degree = np.asarray(adj.sum(axis = 1)).ravel()
    connected = degree > 0
    info('Smooth expression over PPI network: {} of {} genes have neighbors'.format(int(connected.sum()), store.n_genes))

    X = store.exp_mat
    if not np.any(connected) or alpha == 0:
        return(store.with_values(X))
    inv = np.zeros_like(degree)
    inv[connected] = 1 / degree[connected]
    P = sparse.diags(inv) @ adj

    Y = X.copy()
    for _ in range(int(n_iter)):
        Y = (1 - alpha) * X + alpha * (P @ Y)
    ## isolated genes keep observed expression
    Y[~connected, :] = X[~connected, :]
    toc = time.time()
    info('Smoothing Done in {:.4f} seconds'.format(toc-tic))
    return(store.with_values(Y))
