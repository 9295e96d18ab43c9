#!/usr/bin/env python

import os
import time
import collections
import configparser
import tracemalloc

from cellcomm.utils import info
from cellcomm.errors import ConfigurationError
import cellcomm.screening as SC
import cellcomm.smoothing as SM
import cellcomm.scoring as CS
import cellcomm.aggregation as AG
import cellcomm.roles as RL
import cellcomm.patterns as PT
import cellcomm.similarity as SI
import cellcomm.crosstalk_diff as CD

"""
run the communication inference end to end with parameters from a config file
"""

DEFAULT_CONF = os.path.join(os.path.dirname(os.path.realpath(__file__)), 'cellcomm.conf')
SECTIONS = ['screen', 'smooth', 'score', 'aggregate', 'pattern', 'similarity']


def _read_config(conf_path):
    """
    read config file
    """
    cf = configparser.ConfigParser()
    if not cf.read(conf_path):
        raise ConfigurationError('cannot read config file {}'.format(conf_path))
    config = {s: dict(cf.items(s)) for s in cf.sections()}
    # remove the annotation:
    for firstLevel in config.keys():
        for secondLevel in config[firstLevel]:
            if '#' in config[firstLevel][secondLevel]:
                config[firstLevel][secondLevel] = config[firstLevel][secondLevel].split('#')[0].rstrip()
    return(config)


def _convert_(value):
    """
    config string to None, bool, int, float or str
    """
    v = value.strip()
    if v.lower() in ['none', '']:
        return(None)
    if v.lower() in ['true', 'false']:
        return(v.lower() == 'true')
    for f in [int, float]:
        try:
            return(f(v))
        except ValueError:
            pass
    return(v)


def load_config(conf_path = None):
    """
    parameters of each step from an INI config file, the packaged
    cellcomm.conf by default

    Return
    -----
    dict, section name to a dict of parameters
    """
    conf_path = DEFAULT_CONF if conf_path is None else conf_path
    config = _read_config(conf_path)
    unknown = [s for s in config if s not in SECTIONS]
    if unknown:
        raise ConfigurationError('unknown sections {} in {}, should be in {}'.format(unknown, conf_path, SECTIONS))
    res = {s: {k: _convert_(v) for k, v in config.get(s, {}).items()} for s in SECTIONS}
    return(res)


def _params_(config, section, overrides):
    params = dict(config[section])
    params.update(overrides or {})
    return(params)


_Comm = collections.namedtuple('CommResult',
                               ['flags', 'smoothed', 'communication', 'pathway_network',
                                'aggregated', 'roles', 'params'])


class CommResult(_Comm):
    """
    results of infer_commu: over-expression flags, smoothed expression (None
    without PPI), CommunicationResult, PathwayNetwork, AggregatedNetwork,
    role scores and the parameters of each step
    """
    __slots__ = ()

    def significant(self):
        return(self.communication.significant(self.params['aggregate'].get('pval_cutoff', 0.05)))


def infer_commu(store,
                catalog,
                ppi = None,
                conf_path = None,
                pool = None,
                screen_kws = None,
                smooth_kws = None,
                score_kws = None,
                aggregate_kws = None):
    """
    execute the inference of cell-cell communication

    Params
    -----
    store
        ExpressionStore
    catalog
        InteractionCatalog
    ppi
        networkx graph or gene x gene data frame, expression is smoothed over it when given
    conf_path
        path of a config file, default the packaged cellcomm.conf
    pool
        an existing worker pool for permutations
    screen_kws, smooth_kws, score_kws, aggregate_kws
        dict of parameters of each step, these override the config file

    Return
    -----
    CommResult
    """
    tic = time.time()
    tracemalloc.start()
    config = load_config(conf_path)
    params = {'screen': _params_(config, 'screen', screen_kws),
              'smooth': _params_(config, 'smooth', smooth_kws),
              'score': _params_(config, 'score', score_kws),
              'aggregate': _params_(config, 'aggregate', aggregate_kws)}
    try:
        smoothed = None
        use = store
        if ppi is not None:
            smoothed = SM.project(store, ppi, **params['smooth'])
            use = smoothed

        genes = sorted(g for g in catalog.genes() if use.has_gene(g))
        flags = SC.screen(use, genes = genes, **params['screen'])
        comm = CS.score(use, catalog, flags = flags, pool = pool, **params['score'])
        pn, agg = AG.aggregate(comm, catalog = catalog, **params['aggregate'])
        roles = RL.analyze(agg)
        current, peak = tracemalloc.get_traced_memory()
    finally:
        tracemalloc.stop()

    toc = time.time()
    info('Prediction Done in {:.4f} seconds'.format(toc-tic))
    info('Memory Usage in Peak {:.2f} GB'.format(peak / 1024 / 1024 / 1024))
    return(CommResult(flags = flags, smoothed = smoothed, communication = comm,
                      pathway_network = pn, aggregated = agg, roles = roles,
                      params = params))


def identify_patterns(res, direction = 'outgoing', conf_path = None, pool = None, **kwargs):
    """
    communication patterns of a CommResult with [pattern] parameters of the
    config file, keyword arguments override them
    """
    params = _params_(load_config(conf_path), 'pattern', kwargs)
    return(PT.mine(res.pathway_network, direction = direction, pool = pool, **params))


def pathway_similarity(res, kind = 'functional', conf_path = None, **kwargs):
    """
    similarity matrix and embedding of the pathways of a CommResult with
    [similarity] parameters of the config file, keyword arguments override them

    Return
    -----
    (similarity data frame, EmbeddingAssignment)
    """
    params = _params_(load_config(conf_path), 'similarity', kwargs)
    sim = SI.similarity(res.pathway_network, kind = kind, thresh = params.pop('thresh', 0))
    return(sim, SI.embed(sim, **params))


def compare_conditions(res1, res2, cond1 = 'cond1', cond2 = 'cond2', method = 'wilcoxon', thread = 1):
    """
    differential communication between two CommResult of the same cell groups
    under two conditions

    Return
    -----
    dict with 'interactions' (total count and weight per condition), 'diff'
    (AggregatedNetwork of cond2 minus cond1) and 'pathways' (information flow
    ranking with paired tests)
    """
    tracemalloc.start()
    tic = time.time()
    try:
        diff_res = collections.OrderedDict()
        diff_res['interactions'] = CD.compare_interactions(res1.aggregated, res2.aggregated, cond1 = cond1, cond2 = cond2)
        diff_res['diff'] = CD.diff_network(res1.aggregated, res2.aggregated)
        diff_res['pathways'] = CD.rank_pathways(res1.pathway_network, res2.pathway_network,
                                                cond1 = cond1, cond2 = cond2, method = method, thread = thread)
        current, peak = tracemalloc.get_traced_memory()
    finally:
        tracemalloc.stop()
    toc = time.time()
    info('Diff Comm Analysis Done in {:.4f} seconds'.format(toc-tic))
    info('Memory Usage in Peak {:.2f} GB'.format(peak / 1024 / 1024 / 1024))
    return(diff_res)
