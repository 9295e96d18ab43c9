#!/usr/bin/env python

import time
import collections
from functools import partial
import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import linkage, cophenet
from scipy.spatial.distance import squareform
from sklearn.decomposition import NMF

from cellcomm.utils import info, _as_kind_, _StrEnum_, _spawn_seeds_, _run_pool_
from cellcomm.errors import ConfigurationError, NumericalError

"""
communication patterns: non-negative factorization of the group x pathway
signaling matrix, separately for outgoing and incoming signaling
"""


class Direction(_StrEnum_):
    OUTGOING = 'outgoing'
    INCOMING = 'incoming'


_Pattern = collections.namedtuple('PatternAssignment', ['direction', 'W', 'H', 'reconstruction_err'])


class PatternAssignment(_Pattern):
    """
    W: groups x patterns loadings, H: pathways x patterns loadings, both
    non-negative, the signaling matrix is approximated by W.dot(H.T)
    """
    __slots__ = ()

    @property
    def k(self):
        return(self.W.shape[1])

    def dominant_patterns(self):
        """
        the pattern with the largest loading of each group and each pathway,
        None for rows without any loading
        """
        def _top_(df):
            top = df.idxmax(axis = 1).astype(object)
            top[df.max(axis = 1) <= 0] = None
            return(top)
        return(_top_(self.W), _top_(self.H))


def signaling_matrix(pathway_network, direction = 'outgoing'):
    """
    groups x pathways matrix of total signaling, summed over receivers for
    outgoing and over senders for incoming
    """
    direction = _as_kind_(direction, Direction)
    axis = 1 if direction == Direction.OUTGOING else 0
    return(pd.DataFrame(pathway_network.prob.sum(axis = axis),
                        index = pathway_network.groups,
                        columns = pathway_network.pathways))


def _nmf_restart_(seed_seq, restart, M, k, max_iter, tol, max_retries):
    """
    one NMF restart, re-initialized with a new random state when the solver
    does not converge. Return (W, H, error), or None if every attempt failed
    """
    rng = np.random.default_rng(seed_seq)
    for attempt in range(max_retries + 1):
        init = 'nndsvda' if restart == 0 and attempt == 0 else 'random'
        model = NMF(n_components = k,
                    init = init,
                    solver = 'cd',
                    max_iter = max_iter,
                    tol = tol,
                    random_state = int(rng.integers(2**31 - 1)))
        W = model.fit_transform(M)
        ## coordinate descent stopped by max_iter before reaching tol
        if model.n_iter_ >= max_iter:
            continue
        return((W, model.components_, model.reconstruction_err_))
    return(None)


def _check_k_(M, k):
    n_rows = int(np.sum(M.sum(axis = 1) > 0))
    n_cols = int(np.sum(M.sum(axis = 0) > 0))
    if int(k) != k or k < 1:
        raise ConfigurationError('number of patterns k should be a positive integer, got {}'.format(k))
    if k > min(n_rows, n_cols):
        raise ConfigurationError('k = {} patterns exceeds the {} non-zero groups or {} non-zero pathways'.format(k, n_rows, n_cols))


def mine(pathway_network,
         direction = 'outgoing',
         k = 5,
         n_restarts = 5,
         max_iter = 1000,
         tol = 1e-4,
         max_retries = 3,
         seed = 12345,
         thread = 1,
         pool = None):
    """
    factor the signaling matrix M (groups x pathways) as W x H.T with
    non-negative W and H, keeping the best of several restarts

    Params
    -----
    pathway_network
        PathwayNetwork
    direction
        'outgoing' or 'incoming', or a Direction
    k
        int, number of patterns
    n_restarts
        int, independent runs, the first from NNDSVD initialization and the others random
    max_iter, tol
        coordinate descent budget of each run
    max_retries
        int, re-initializations of a run that did not converge
    seed
        int, random seed
    thread, pool
        run restarts in a pool, as in scoring.score

    Return
    -----
    PatternAssignment
    """
    direction = _as_kind_(direction, Direction)
    M = signaling_matrix(pathway_network, direction)
    _check_k_(M.values, k)
    if int(n_restarts) != n_restarts or n_restarts < 1:
        raise ConfigurationError('n_restarts should be a positive integer, got {}'.format(n_restarts))
    tic = time.time()
    info('Identify {} {} patterns from {} groups and {} pathways'.format(k, direction, M.shape[0], M.shape[1]))

    func = partial(_nmf_restart_,
                   M = M.values,
                   k = int(k),
                   max_iter = max_iter,
                   tol = tol,
                   max_retries = max_retries)
    args = list(zip(_spawn_seeds_(seed, n_restarts), range(n_restarts)))
    runs = [x for x in _run_pool_(func, args, thread, pool) if x is not None]
    if len(runs) == 0:
        raise NumericalError('NMF with k = {} did not converge in {} restarts with {} re-initializations each'.format(k, n_restarts, max_retries))
    if len(runs) < n_restarts:
        info('{} of {} NMF restarts did not converge and were dropped'.format(n_restarts - len(runs), n_restarts))
    W, H, err = min(runs, key = lambda x: x[2])

    cols = ['Pattern {}'.format(i + 1) for i in range(int(k))]
    res = PatternAssignment(direction = direction,
                            W = pd.DataFrame(W, index = M.index, columns = cols),
                            H = pd.DataFrame(H.T, index = M.columns, columns = cols),
                            reconstruction_err = float(err))
    toc = time.time()
    info('Pattern Done in {:.4f} seconds'.format(toc-tic))
    return(res)


def _cophenetic_(labels):
    """
    cophenetic correlation of average linkage on 1 - consensus, where
    consensus is the fraction of runs that put two groups in one pattern
    """
    labels = np.asarray(labels)
    consensus = np.mean(labels[:, :, None] == labels[:, None, :], axis = 0)
    dist = squareform(1 - consensus, checks = False)
    if len(dist) == 0 or np.all(dist == dist[0]):
        return(np.nan)
    coph, _ = cophenet(linkage(dist, method = 'average'), dist)
    return(float(coph))


def select_k(pathway_network,
             direction = 'outgoing',
             ks = None,
             n_runs = 10,
             max_iter = 1000,
             tol = 1e-4,
             seed = 12345):
    """
    evaluate pattern numbers by the reconstruction error and the stability
    (cophenetic coefficient) of the group assignment over random runs

    Params
    -----
    ks
        list of pattern numbers, default 2 to the number of non-zero groups or pathways

    Return
    -----
    data frame with columns k, reconstruction_err (best run), cophenetic
    """
    direction = _as_kind_(direction, Direction)
    M = signaling_matrix(pathway_network, direction).values
    if ks is None:
        top = min(int(np.sum(M.sum(axis = 1) > 0)), int(np.sum(M.sum(axis = 0) > 0)))
        ks = list(range(2, top + 1))
    if len(ks) == 0:
        raise ConfigurationError('no valid pattern number to evaluate')
    for k in ks:
        _check_k_(M, k)

    res = []
    for k, seeds in zip(ks, _spawn_seeds_(seed, len(ks))):
        errs, labels = [], []
        for s in seeds.spawn(n_runs):
            run = _nmf_restart_(s, 1, M, int(k), max_iter, tol, 0)
            if run is None:
                continue
            errs.append(run[2])
            labels.append(np.argmax(run[0], axis = 1))
        if len(errs) == 0:
            raise NumericalError('NMF with k = {} did not converge in any of {} runs'.format(k, n_runs))
        res.append({'k': int(k), 'reconstruction_err': float(np.min(errs)),
                    'cophenetic': _cophenetic_(labels)})
        info('k = {}: reconstruction error {:.4f}'.format(k, res[-1]['reconstruction_err']))
    return(pd.DataFrame(res))
