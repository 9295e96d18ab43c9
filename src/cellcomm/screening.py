#!/usr/bin/env python

import time
import collections
import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.multitest import multipletests

from cellcomm.utils import info, _as_kind_, _StrEnum_
from cellcomm.errors import ConfigurationError, DataError

"""
identify genes over-expressed in each cell group and
ligand-receptor interactions over-expressed for each sender-receiver pair
"""

class PvalMethod(_StrEnum_):
    PVAL = 'pval'
    FDR = 'fdr'


_Flags = collections.namedtuple('OverexpressionFlags', ['flags', 'pvals', 'fdr', 'logfc', 'pct'])


class OverexpressionFlags(_Flags):
    """
    per gene and per group: flags (bool), pvals, fdr, logfc and pct (fraction
    of cells with expression > 0), each a genes x groups data frame
    """
    __slots__ = ()

    @property
    def groups(self):
        return(self.flags.columns.tolist())

    def markers(self):
        """
        long table of over-expressed genes sorted by p value
        """
        res = []
        for g in self.groups:
            genes = self.flags.index[self.flags[g].values]
            res.append(pd.DataFrame({'gene': genes,
                                     'group': g,
                                     'pval': self.pvals.loc[genes, g].values,
                                     'fdr': self.fdr.loc[genes, g].values,
                                     'logfc': self.logfc.loc[genes, g].values,
                                     'pct': self.pct.loc[genes, g].values}))
        res = pd.concat(res, ignore_index = True)
        return(res.sort_values('pval', kind = 'stable').reset_index(drop = True))


def _check_screen_params_(p_threshold, fc_threshold, thresh_pct):
    if not (0 < p_threshold <= 1):
        raise ConfigurationError('p_threshold should be in (0, 1], got {}'.format(p_threshold))
    if fc_threshold is None or np.isnan(fc_threshold):
        raise ConfigurationError('fc_threshold should be a number, got {}'.format(fc_threshold))
    if not (0 <= thresh_pct <= 1):
        raise ConfigurationError('thresh_pct should be in [0, 1], got {}'.format(thresh_pct))


def screen(store,
           p_threshold = 0.05,
           fc_threshold = 0,
           thresh_pct = 0,
           pval_method = 'pval',
           genes = None,
           min_cells = 10,
           pseudocount = 1e-10):
    """
    test each gene in each cell group against all other cells

    Params
    -----
    store
        ExpressionStore
    p_threshold
        float, a gene is over-expressed in a group only when p value (or FDR, see pval_method) is less than p_threshold
    fc_threshold
        float, a gene is over-expressed in a group only when log fold change is greater than fc_threshold
    thresh_pct
        float from 0 to 1, a gene is over-expressed only when the fraction of expressing cells in the group is greater than thresh_pct
    pval_method
        'pval' to threshold the raw p value of one-sided Wilcoxon rank-sum test, 'fdr' for Benjamini-Hochberg adjusted p value
    genes
        a list of genes to test, such as all genes in the interaction catalog, default all genes
    min_cells
        int, only used when there is a single group: a gene is flagged if it is detected in at least min_cells cells
    pseudocount
        float, added to both means before taking log fold change

    Return
    -----
    OverexpressionFlags
    """
    tic = time.time()
    _check_screen_params_(p_threshold, fc_threshold, thresh_pct)
    pval_method = _as_kind_(pval_method, PvalMethod)

    if genes is None:
        gene_names = store.genes
        loc = np.arange(store.n_genes)
    else:
        gene_names = pd.Index([g for g in dict.fromkeys(genes) if store.has_gene(g)])
        loc = store.gene_index(gene_names)
    if len(gene_names) == 0:
        raise DataError('none of the genes to screen is in the expression matrix')

    X = store.exp_mat[loc, :]
    groups = store.groups
    pvals = np.ones((len(gene_names), len(groups)))
    logfc = np.full((len(gene_names), len(groups)), np.nan)
    pct = np.zeros((len(gene_names), len(groups)))

    info('Identify over-expressed genes in {} groups for {} genes'.format(len(groups), len(gene_names)))
    if len(groups) == 1:
        info('only one cell group, flag genes detected in at least {} cells'.format(min_cells))
        pct[:, 0] = np.mean(X > 0, axis = 1)
        detected = np.sum(X > 0, axis = 1) >= max(min_cells, 1)
        flags = detected & (pct[:, 0] > thresh_pct)
        fdr = pvals.copy()
        flags = flags.reshape(-1, 1)
    else:
        ## constant genes have no rank information
        varied = X.max(axis = 1) > X.min(axis = 1)
        for i, g in enumerate(groups):
            cols = store.codes == i
            x_in, x_out = X[:, cols], X[:, ~cols]
            pct[:, i] = np.mean(x_in > 0, axis = 1)
            mean_in, mean_out = x_in.mean(axis = 1), x_out.mean(axis = 1)
            logfc[:, i] = np.log((mean_in + pseudocount) / (mean_out + pseudocount))
            if np.any(varied):
                with np.errstate(divide = 'ignore', invalid = 'ignore'):
                    _, p = stats.mannwhitneyu(x_in[varied].T, x_out[varied].T,
                                              alternative = 'greater',
                                              method = 'asymptotic',
                                              axis = 0)
                pvals[varied, i] = np.nan_to_num(p, nan = 1.0)
        fdr = multipletests(pvals.ravel(), method = 'fdr_bh')[1].reshape(pvals.shape)
        use_p = pvals if pval_method == PvalMethod.PVAL else fdr
        flags = (use_p < p_threshold) & (logfc > fc_threshold) & (pct > thresh_pct)

    index = pd.Index(gene_names, name = 'gene')
    res = OverexpressionFlags(flags = pd.DataFrame(flags, index = index, columns = groups),
                              pvals = pd.DataFrame(pvals, index = index, columns = groups),
                              fdr = pd.DataFrame(fdr, index = index, columns = groups),
                              logfc = pd.DataFrame(logfc, index = index, columns = groups),
                              pct = pd.DataFrame(pct, index = index, columns = groups))
    toc = time.time()
    info('{} over-expressed gene-group pairs identified in {:.4f} seconds'.format(int(flags.sum()), toc-tic))
    return(res)


def flag_interactions(flags, records, groups = None):
    """
    an interaction is over-expressed for sender i and receiver j if any
    ligand subunit is over-expressed in i or any receptor subunit is
    over-expressed in j

    Params
    -----
    flags
        OverexpressionFlags
    records
        iterable of InteractionRecord, e.g. an InteractionCatalog
    groups
        group order of the returned array, default the order in flags

    Return
    -----
    boolean numpy array, interactions x senders x receivers
    """
    fl = flags.flags
    if groups is not None:
        missing = [g for g in groups if g not in fl.columns]
        if missing:
            raise DataError('groups {} are not in the over-expression flags'.format(missing))
        fl = fl[list(groups)]
    records = list(records)
    res = np.zeros((len(records), fl.shape[1], fl.shape[1]), dtype = bool)
    for n, r in enumerate(records):
        lig = [g for g in r.ligand if g in fl.index]
        rec = [g for g in r.receptor if g in fl.index]
        lig_flag = fl.loc[lig].values.any(axis = 0) if lig else np.zeros(fl.shape[1], dtype = bool)
        rec_flag = fl.loc[rec].values.any(axis = 0) if rec else np.zeros(fl.shape[1], dtype = bool)
        res[n] = lig_flag[:, None] | rec_flag[None, :]
    return(res)
