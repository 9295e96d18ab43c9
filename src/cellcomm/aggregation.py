#!/usr/bin/env python

import collections
import numpy as np
import pandas as pd

from cellcomm.utils import info
from cellcomm.errors import ConfigurationError

"""
roll significant interaction-level communication up to pathways
and to the whole cell group network
"""

_Pathway = collections.namedtuple('PathwayNetwork', ['prob', 'pathways', 'groups'])
_Aggregated = collections.namedtuple('AggregatedNetwork', ['count', 'weight'])


class PathwayNetwork(_Pathway):
    """
    prob: read-only array senders x receivers x pathways, the summed probability
    of the significant interactions of each pathway. Only pathways with
    any communication are kept, ordered by decreasing total probability.
    """
    __slots__ = ()

    def pathway(self, name):
        if name not in self.pathways:
            raise KeyError('pathway {} has no significant communication'.format(name))
        p = self.pathways.index(name)
        return(pd.DataFrame(self.prob[:, :, p], index = self.groups, columns = self.groups))

    def flow(self):
        """
        information flow, total probability per pathway
        """
        return(pd.Series(self.prob.sum(axis = (0, 1)), index = self.pathways, name = 'flow'))

    def to_frame(self):
        G, P = len(self.groups), len(self.pathways)
        df = pd.DataFrame({'pathway_name': np.tile(self.pathways, G * G),
                           'source': np.repeat(self.groups, G * P),
                           'target': np.tile(np.repeat(self.groups, P), G),
                           'prob': self.prob.ravel()})
        return(df[df['prob'] > 0].reset_index(drop = True))


class AggregatedNetwork(_Aggregated):
    """
    count and weight: senders x receivers data frames of the number of
    significant interactions and their summed probability
    """
    __slots__ = ()

    @property
    def groups(self):
        return(self.count.index.tolist())

    def to_frame(self):
        count = self.count.stack().rename('count')
        weight = self.weight.stack().rename('weight')
        df = pd.concat([count, weight], axis = 1)
        df.index.names = ['source', 'target']
        return(df.reset_index())


def _group_mask_(groups, sources, targets, exclude_self):
    """
    senders x receivers boolean mask of the group pairs to keep
    """
    G = len(groups)
    mask = np.ones((G, G), dtype = bool)
    for name, sel, axis in [('sources', sources, 0), ('targets', targets, 1)]:
        if sel is None:
            continue
        sel = [sel] if isinstance(sel, str) else list(sel)
        unknown = [g for g in sel if g not in groups]
        if unknown:
            raise ConfigurationError('{} {} are not cell groups, should be in {}'.format(name, unknown, groups))
        keep = np.isin(groups, sel)
        if axis == 0:
            mask[~keep, :] = False
        else:
            mask[:, ~keep] = False
    if exclude_self:
        np.fill_diagonal(mask, False)
    return(mask)


def aggregate(result,
              catalog = None,
              pval_cutoff = 0.05,
              exclude_self = False,
              sources = None,
              targets = None):
    """
    pathway-level and whole network summary of the significant communication

    Params
    -----
    result
        CommunicationResult from scoring.score
    catalog
        InteractionCatalog to take pathway membership from, default the pathway
        names recorded in the result
    pval_cutoff
        float, an entry is significant when prob > 0 and pval < pval_cutoff
    exclude_self
        True or False, drop autocrine pairs where sender and receiver are the same group
    sources, targets
        list of groups to restrict senders and receivers, default all

    Return
    -----
    (PathwayNetwork, AggregatedNetwork)
    """
    if not (0 < pval_cutoff <= 1):
        raise ConfigurationError('pval_cutoff should be in (0, 1], got {}'.format(pval_cutoff))
    groups = list(result.groups)
    mask = _group_mask_(groups, sources, targets, exclude_self)
    sig = result.significant_mask(pval_cutoff) & mask[None, :, :]
    w = np.where(sig, result.prob, 0)

    count = pd.DataFrame(sig.sum(axis = 0), index = groups, columns = groups)
    weight = pd.DataFrame(w.sum(axis = 0), index = groups, columns = groups)
    count.index.name, weight.index.name = 'source', 'source'

    if catalog is not None:
        pathway_of = catalog.pathway_of()
        path = np.array([pathway_of[n] for n in result.interactions], dtype = object)
    else:
        path = result.entries.drop_duplicates('interaction_name').set_index('interaction_name')['pathway_name'].reindex(result.interactions).values
    pathways = list(dict.fromkeys(path.tolist()))
    prob_p = np.zeros((len(groups), len(groups), len(pathways)))
    for p, name in enumerate(pathways):
        prob_p[:, :, p] = w[path == name].sum(axis = 0)
    total = prob_p.sum(axis = (0, 1))
    order = [p for p in np.argsort(-total, kind = 'stable') if total[p] > 0]
    prob_p = prob_p[:, :, order]
    prob_p.flags.writeable = False
    pn = PathwayNetwork(prob = prob_p,
                        pathways = [pathways[p] for p in order],
                        groups = groups)
    info('{} significant communications in {} pathways'.format(int(sig.sum()), len(pn.pathways)))
    return(pn, AggregatedNetwork(count = count, weight = weight))


def subset_communication(result,
                         pval_cutoff = 0.05,
                         pathways = None,
                         interactions = None,
                         sources = None,
                         targets = None):
    """
    significant entries of a CommunicationResult, optionally restricted
    to given pathways, interactions, senders and receivers
    """
    df = result.significant(pval_cutoff)
    for col, sel in [('pathway_name', pathways), ('interaction_name', interactions),
                     ('source', sources), ('target', targets)]:
        if sel is None:
            continue
        sel = [sel] if isinstance(sel, str) else list(sel)
        df = df[df[col].isin(sel)]
    return(df.sort_values('prob', ascending = False, kind = 'stable').reset_index(drop = True))
