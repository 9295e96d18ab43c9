#!/usr/bin/env python

import collections
import numpy as np
import pandas as pd
import networkx as nx

from cellcomm.utils import _as_kind_, _StrEnum_
from cellcomm.errors import NumericalError
import cellcomm.aggregation as AG

"""
signaling roles of cell groups from network centrality:
dominant senders, receivers, mediators and influencers
"""


class RoleMetric(_StrEnum_):
    OUTGOING = 'outgoing'
    INCOMING = 'incoming'
    MEDIATOR = 'mediator'
    INFLUENCER = 'influencer'


def _as_adjacency_(network):
    if isinstance(network, AG.AggregatedNetwork):
        network = network.weight
    if not isinstance(network, pd.DataFrame):
        raise TypeError('network should be an AggregatedNetwork or a data frame of weights, got %s'%type(network))
    return(network.index.tolist(), network.values.astype(float))


def _mediator_(W, groups):
    """
    betweenness on the directed graph, an edge of weight w has length 1/w
    """
    g = nx.DiGraph()
    g.add_nodes_from(range(len(groups)))
    for i, j in zip(*np.nonzero(W)):
        if i != j:
            g.add_edge(i, j, distance = 1 / W[i, j])
    bc = nx.betweenness_centrality(g, weight = 'distance', normalized = False)
    return(np.array([bc[i] for i in range(len(groups))]))


def _influencer_(W, groups):
    """
    eigenvector centrality on the symmetrized graph
    """
    S = W + W.T
    res = np.zeros(len(groups))
    if not np.any(S > 0):
        return(res)
    g = nx.from_numpy_array(S)
    try:
        ec = nx.eigenvector_centrality(g, weight = 'weight', max_iter = 1000)
    except nx.PowerIterationFailedConvergence as e:
        raise NumericalError('eigenvector centrality did not converge: {}'.format(e))
    res = np.array([ec[i] for i in range(len(groups))])
    ## groups without any link have no influence
    res[S.sum(axis = 1) == 0] = 0
    return(res)


def analyze(network, metrics = None):
    """
    centrality scores of each cell group in a weighted directed network

    Params
    -----
    network
        AggregatedNetwork (its weight matrix is used) or a senders x receivers data frame
    metrics
        list of RoleMetric or their names, default all four

    Return
    -----
    data frame, groups x metrics
    """
    groups, W = _as_adjacency_(network)
    if metrics is None:
        metrics = list(RoleMetric)
    metrics = [_as_kind_(m, RoleMetric) for m in metrics]
    res = collections.OrderedDict()
    for m in metrics:
        if m == RoleMetric.OUTGOING:
            res[m.value] = W.sum(axis = 1)
        elif m == RoleMetric.INCOMING:
            res[m.value] = W.sum(axis = 0)
        elif m == RoleMetric.MEDIATOR:
            res[m.value] = _mediator_(W, groups)
        elif m == RoleMetric.INFLUENCER:
            res[m.value] = _influencer_(W, groups)
    res = pd.DataFrame(res, index = groups)
    res.index.name = 'group'
    return(res)


def analyze_pathways(pathway_network, metrics = None):
    """
    role scores computed on the network of each pathway

    Return
    -----
    dict, pathway name to groups x metrics data frame
    """
    res = collections.OrderedDict()
    for name in pathway_network.pathways:
        res[name] = analyze(pathway_network.pathway(name), metrics = metrics)
    return(res)
