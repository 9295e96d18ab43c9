#!/usr/bin/env python

import time
from functools import partial
import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.multitest import multipletests

from cellcomm.utils import info, _run_pool_
from cellcomm.errors import ConfigurationError, DataError
import cellcomm.aggregation as AG

"""
compare cell-cell communication between two conditions
"""


def _common_groups_(groups1, groups2):
    common = [g for g in groups1 if g in groups2]
    if len(common) == 0:
        raise DataError('no common cell group identified between conditions')
    dropped = sorted(set(groups1).symmetric_difference(groups2))
    if dropped:
        info('cell groups {} are not in both conditions and are left out'.format(dropped))
    return(common)


def compare_interactions(agg1, agg2, cond1 = 'cond1', cond2 = 'cond2'):
    """
    total number and total strength of significant communications in each condition

    Params
    -----
    agg1, agg2
        AggregatedNetwork of condition 1 and condition 2
    cond1, cond2
        condition names

    Return
    -----
    data frame, conditions x [count, weight]
    """
    res = pd.DataFrame({'count': [int(agg1.count.values.sum()), int(agg2.count.values.sum())],
                        'weight': [float(agg1.weight.values.sum()), float(agg2.weight.values.sum())]},
                       index = [cond1, cond2])
    res.index.name = 'condition'
    return(res)


def diff_network(agg1, agg2):
    """
    change of the network from condition 1 to condition 2 (cond2 - cond1)
    on the cell groups present in both conditions

    Return
    -----
    AggregatedNetwork of differences, positive values increased in condition 2
    """
    groups = _common_groups_(agg1.groups, agg2.groups)
    count = agg2.count.loc[groups, groups] - agg1.count.loc[groups, groups]
    weight = agg2.weight.loc[groups, groups] - agg1.weight.loc[groups, groups]
    return(AG.AggregatedNetwork(count = count, weight = weight))


def _pathway_values_(pn, name, groups):
    """
    flattened sender-receiver probabilities of a pathway on the given groups,
    zeros if the pathway has no significant communication
    """
    if name not in pn.pathways:
        return(np.zeros(len(groups) ** 2))
    return(pn.pathway(name).loc[groups, groups].values.ravel())


def _testing_(x1, x2, method = 'wilcoxon'):
    """
    paired test of two vectors of group pair strengths, p = 1 when nothing changed
    """
    d = x2 - x1
    if np.all(d == 0):
        return(0.0, 1.0)
    if method == 'wilcoxon':
        stat, pval = stats.wilcoxon(x1, x2)
    elif method == 'ttest':
        if np.all(d == d[0]):
            ## constant non-zero change
            return(np.inf * np.sign(d[0]), 0.0)
        stat, pval = stats.ttest_rel(x2, x1)
    return(float(stat), float(pval))


def rank_pathways(pn1, pn2,
                  cond1 = 'cond1',
                  cond2 = 'cond2',
                  method = 'wilcoxon',
                  thread = 1):
    """
    information flow of each pathway in two conditions, and a paired test
    over sender-receiver pairs for the change between conditions

    Params
    -----
    pn1, pn2
        PathwayNetwork of condition 1 and condition 2
    cond1, cond2
        condition names used in column names
    method
        'wilcoxon' for signed-rank test, 'ttest' for paired t test
    thread
        int, number of processes for testing

    Return
    -----
    data frame sorted by relative flow change, one row per pathway with
    flow_<cond>, rel_flow_<cond> (flow over total flow of the condition),
    stat, pval and BH adjusted fdr
    """
    if method not in ['wilcoxon', 'ttest']:
        raise ConfigurationError("method should be 'wilcoxon' or 'ttest', got {}".format(method))
    tic = time.time()
    groups = _common_groups_(pn1.groups, pn2.groups)
    pathways = list(dict.fromkeys(list(pn1.pathways) + list(pn2.pathways)))
    if len(pathways) == 0:
        raise DataError('no pathway has significant communication in either condition')
    info('Compare {} pathways between {} and {}'.format(len(pathways), cond1, cond2))

    func_input = [(_pathway_values_(pn1, p, groups), _pathway_values_(pn2, p, groups)) for p in pathways]
    results = _run_pool_(partial(_testing_, method = method), func_input, thread)

    res = pd.DataFrame({'pathway_name': pathways,
                        'flow_'+cond1: [x1.sum() for x1, _ in func_input],
                        'flow_'+cond2: [x2.sum() for _, x2 in func_input],
                        'stat': [x[0] for x in results],
                        'pval': [x[1] for x in results]})
    for c in [cond1, cond2]:
        total = res['flow_'+c].sum()
        res['rel_flow_'+c] = res['flow_'+c] / total if total > 0 else 0.0
    res['fdr'] = multipletests(res['pval'].values, method = 'fdr_bh')[1]
    v1, v2 = res['flow_'+cond1], res['flow_'+cond2]
    res['rel_change'] = (v2 - v1) / (v1 + v2)
    res = res.sort_values('rel_change', kind = 'stable').reset_index(drop = True)
    toc = time.time()
    info('Comparison Done in {:.4f} seconds'.format(toc-tic))
    return(res)
