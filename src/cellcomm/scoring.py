#!/usr/bin/env python

import time
import warnings
import collections
from functools import partial
import numpy as np
import pandas as pd
from scipy import stats

from cellcomm.utils import info, _hill_, _spawn_seeds_, _run_pool_
from cellcomm.errors import ConfigurationError, DataError
from cellcomm import screening

"""
communication probability of ligand-receptor interactions between cell groups
by a mass-action model, and its significance by shuffling cell labels
"""

## permutations per parallel unit
PERM_BATCH = 10
## shuffled probabilities closer than this to the observed one are ties
TIE_TOL = 1e-12

_Layout = collections.namedtuple('_Layout', ['lig', 'rec', 'ag', 'ant', 'coa', 'coi'])

_Result = collections.namedtuple('CommunicationResult',
                                 ['entries', 'prob', 'pval', 'groups', 'interactions',
                                  'unscored', 'excluded_groups', 'params'])


class CommunicationResult(_Result):
    """
    scored communication

    entries
        data frame, one row per scored interaction and sender-receiver pair,
        columns interaction_name, pathway_name, ligand, receptor, source, target, prob, pval
    prob, pval
        read-only arrays of interactions x senders x receivers
    groups
        cell groups, the order of the sender and receiver axes
    interactions
        names of the scored interactions, the order of the first axis
    unscored
        names of interactions not scored because their ligand or receptor genes are absent
    excluded_groups
        groups with too few cells, their entries have prob 0 and pval 1
    params
        dict of the parameters used
    """
    __slots__ = ()

    def significant(self, pval_cutoff = 0.05):
        """
        entries with prob > 0 and pval < pval_cutoff
        """
        df = self.entries
        return(df[(df['prob'] > 0) & (df['pval'] < pval_cutoff)].reset_index(drop = True))

    def significant_mask(self, pval_cutoff = 0.05):
        return((self.prob > 0) & (self.pval < pval_cutoff))


def _check_score_params_(n_perm, kh, hill_n, trim, min_cells, thread):
    if int(n_perm) != n_perm or n_perm < 1:
        raise ConfigurationError('n_perm should be a positive integer, got {}'.format(n_perm))
    if not kh > 0:
        raise ConfigurationError('kh should be positive, got {}'.format(kh))
    if not hill_n > 0:
        raise ConfigurationError('hill_n should be positive, got {}'.format(hill_n))
    if not (0 <= trim < 0.5):
        raise ConfigurationError('trim should be in [0, 0.5), got {}'.format(trim))
    if min_cells < 0:
        raise ConfigurationError('min_cells should be non-negative, got {}'.format(min_cells))
    if thread is not None and (int(thread) != thread or thread < 1):
        raise ConfigurationError('thread should be a positive integer, got {}'.format(thread))


def _build_layout_(records, store):
    """
    row indices of ligand, receptor and cofactor genes into the
    extended group-mean matrix [means; zeros; inf].

    ligand and receptor rows are padded with the inf row so they never win
    the minimum over subunits, subunits absent from the matrix point to the
    zero row. cofactor rows are padded with the zero row, which contributes
    a factor of one, and absent cofactor genes are dropped.
    """
    genes = sorted(set().union(*[r.genes() for r in records]))
    genes = [g for g in genes if store.has_gene(g)]
    loc = {g:i for i, g in enumerate(genes)}
    zero_row, inf_row = len(genes), len(genes) + 1

    def _pad_(sets, pad, keep_missing):
        width = max([len(s) for s in sets] + [0])
        res = np.full((len(sets), width), pad, dtype = int)
        for n, s in enumerate(sets):
            if keep_missing:
                idx = [loc.get(g, zero_row) for g in s]
            else:
                idx = [loc[g] for g in s if g in loc]
            res[n, :len(idx)] = idx
        return(res)

    layout = _Layout(lig = _pad_([r.ligand for r in records], inf_row, True),
                     rec = _pad_([r.receptor for r in records], inf_row, True),
                     ag = _pad_([r.agonist for r in records], zero_row, False),
                     ant = _pad_([r.antagonist for r in records], zero_row, False),
                     coa = _pad_([r.co_a_receptor for r in records], zero_row, False),
                     coi = _pad_([r.co_i_receptor for r in records], zero_row, False))
    return(genes, layout)


def _group_means_(X, codes, n_groups, trim):
    """
    trimmed mean of each gene in each group, genes x groups
    """
    res = np.zeros((X.shape[0], n_groups))
    for g in range(n_groups):
        cols = codes == g
        if np.any(cols):
            res[:, g] = stats.trim_mean(X[:, cols], trim, axis = 1)
    return(res)


def _probability_(means, layout, kh, hill_n, pop = None):
    """
    communication probability for all interactions and group pairs,
    interactions x senders x receivers
    """
    n_groups = means.shape[1]
    ext = np.vstack([means, np.zeros((1, n_groups)), np.full((1, n_groups), np.inf)])
    L = ext[layout.lig].min(axis = 1)
    R = ext[layout.rec].min(axis = 1)
    ## co-receptors scale the receptor complex
    R = R * np.prod(1 + ext[layout.coa], axis = 1) / np.prod(1 + ext[layout.coi], axis = 1)
    ## agonist and antagonist act on the receiving side
    khn = np.power(kh, hill_n)
    R = R * np.prod(1 + _hill_(ext[layout.ag], kh, hill_n), axis = 1)
    R = R * np.prod(khn / (khn + np.power(ext[layout.ant], hill_n)), axis = 1)
    P = _hill_(L[:, :, None] * R[:, None, :], kh, hill_n)
    if pop is not None:
        P = P * pop[None, :, :]
    return(P)


def _permutation_batch_(seed_seq, n_perm, X, codes, n_groups, trim, layout, kh, hill_n, pop, prob_obs):
    """
    shuffle cell labels n_perm times, count for each entry how often the
    shuffled probability is greater than the observed one
    """
    rng = np.random.default_rng(seed_seq)
    exceed = np.zeros(prob_obs.shape, dtype = int)
    for _ in range(n_perm):
        perm = rng.permutation(codes)
        P = _probability_(_group_means_(X, perm, n_groups, trim), layout, kh, hill_n, pop)
        exceed += P > prob_obs + TIE_TOL
    return(exceed)


def _entry_frame_(records, groups, prob, pval):
    n, G = len(records), len(groups)
    return(pd.DataFrame({'interaction_name': np.repeat([r.name for r in records], G * G),
                         'pathway_name': np.repeat([r.pathway for r in records], G * G),
                         'ligand': np.repeat(['; '.join(r.ligand) for r in records], G * G),
                         'receptor': np.repeat(['; '.join(r.receptor) for r in records], G * G),
                         'source': np.tile(np.repeat(groups, G), n),
                         'target': np.tile(groups, G * n),
                         'prob': prob.ravel(),
                         'pval': pval.ravel()}))


def score(store,
          catalog,
          flags = None,
          n_perm = 100,
          kh = 0.5,
          hill_n = 1,
          trim = 0.1,
          seed = 12345,
          thread = 1,
          pool = None,
          population_size = False,
          min_cells = 0,
          scale_by_max = True):
    """
    infer communication probability and permutation p value for each
    interaction and each ordered pair of cell groups (sender, receiver)

    Params
    -----
    store
        ExpressionStore, observed or smoothed expression
    catalog
        InteractionCatalog
    flags
        OverexpressionFlags from screening.screen, probability is set to 0 for
        interactions not over-expressed in a group pair. If None, screening runs
        with default parameters on the catalog genes
    n_perm
        int, number of cell label shuffling to build the null distribution
    kh
        float, half-saturation constant of the Hill function
    hill_n
        float, Hill coefficient
    trim
        float in [0, 0.5), fraction of cells cut from each end for the trimmed mean
    seed
        int, random seed, the same seed gives the same p values whatever the thread number
    thread
        int, number of processes for permutations when pool is not given
    pool
        an existing multiprocessing.Pool or concurrent.futures executor
    population_size
        True or False, multiply probability by the relative sizes of sender and receiver groups
    min_cells
        int, groups with no more than min_cells cells are excluded, prob 0 and pval 1
    scale_by_max
        True or False, divide expression by its maximum before scoring

    Return
    -----
    CommunicationResult

    The p value of an entry is the fraction of shuffles whose probability is
    strictly greater than the observed one. Shuffles that give the same
    probability (within TIE_TOL), such as swaps of cells inside a group, are
    not counted. Entries with probability 0 get p value 1.
    """
    _check_score_params_(n_perm, kh, hill_n, trim, min_cells, thread)
    tic = time.time()

    records = list(catalog)
    scored, unscored = [], []
    for r in records:
        if any(store.has_gene(g) for g in r.ligand) and any(store.has_gene(g) for g in r.receptor):
            scored.append(r)
        else:
            unscored.append(r.name)
    if unscored:
        info('{} interactions are unscored as ligand or receptor genes are absent'.format(len(unscored)))
        warnings.warn('unscored interactions: %s'%(unscored[:10]))
    if len(scored) == 0:
        raise DataError('none of the {} interactions can be scored, ligand or receptor genes are absent from the expression matrix'.format(len(records)))

    groups = store.groups
    n_groups = len(groups)
    genes, layout = _build_layout_(scored, store)
    X = store.exp_mat[store.gene_index(genes), :]
    if scale_by_max:
        top = store.exp_mat.max()
        if top > 0:
            X = X / top

    if flags is None:
        flags = screening.screen(store, genes = genes)
    gate = screening.flag_interactions(flags, scored, groups = groups)

    sizes = store.group_sizes().values
    pop = None
    if population_size:
        frac = sizes / sizes.sum()
        pop = np.outer(frac, frac)

    info('Score {} interactions between {} groups'.format(len(scored), n_groups))
    prob_cont = _probability_(_group_means_(X, store.codes, n_groups, trim), layout, kh, hill_n, pop)
    prob = prob_cont * gate

    info('Permute cell labels {} times'.format(n_perm))
    n_batch = int(np.ceil(n_perm / PERM_BATCH))
    batch_sizes = [PERM_BATCH] * (n_batch - 1) + [int(n_perm) - PERM_BATCH * (n_batch - 1)]
    func = partial(_permutation_batch_,
                   X = X,
                   codes = store.codes,
                   n_groups = n_groups,
                   trim = trim,
                   layout = layout,
                   kh = kh,
                   hill_n = hill_n,
                   pop = pop,
                   prob_obs = prob_cont)
    exceed = np.sum(_run_pool_(func, list(zip(_spawn_seeds_(seed, n_batch), batch_sizes)), thread, pool), axis = 0)
    pval = exceed / n_perm
    pval[prob == 0] = 1

    excluded = [g for g, s in zip(groups, sizes) if s <= min_cells]
    if excluded:
        info('{} groups have no more than {} cells and are excluded: {}'.format(len(excluded), min_cells, excluded))
        warnings.warn('groups with too few cells: %s'%(excluded))
        drop = np.isin(groups, excluded)
        prob[:, drop, :] = 0
        prob[:, :, drop] = 0
        pval[:, drop, :] = 1
        pval[:, :, drop] = 1

    prob.flags.writeable = False
    pval.flags.writeable = False
    res = CommunicationResult(entries = _entry_frame_(scored, groups, prob, pval),
                              prob = prob,
                              pval = pval,
                              groups = list(groups),
                              interactions = [r.name for r in scored],
                              unscored = unscored,
                              excluded_groups = excluded,
                              params = {'n_perm': int(n_perm), 'kh': kh, 'hill_n': hill_n,
                                        'trim': trim, 'seed': seed,
                                        'population_size': population_size,
                                        'min_cells': min_cells, 'scale_by_max': scale_by_max})
    toc = time.time()
    info('Scoring Done in {:.4f} seconds'.format(toc-tic))
    return(res)
