#!/usr/bin/env python

import collections
import numpy as np
import pandas as pd
import networkx as nx
import scanpy as sc
from scipy import stats
from scipy.sparse import csgraph
from scipy.spatial.distance import jensenshannon
from sklearn.manifold import SpectralEmbedding
from sklearn.cluster import KMeans

from cellcomm.utils import info, _as_kind_, _StrEnum_
from cellcomm.errors import ConfigurationError

"""
similarity between signaling pathways, by shared senders and receivers
(functional) or by network topology (structural), and a 2-D embedding
with clusters of pathways
"""


class SimilarityKind(_StrEnum_):
    FUNCTIONAL = 'functional'
    STRUCTURAL = 'structural'


class EmbeddingMethod(_StrEnum_):
    SPECTRAL = 'spectral'
    UMAP = 'umap'


_Embedding = collections.namedtuple('EmbeddingAssignment', ['coords', 'clusters', 'method'])


class EmbeddingAssignment(_Embedding):
    """
    coords: pathways x dimensions data frame, clusters: series of cluster
    labels indexed by pathway
    """
    __slots__ = ()

    def members(self):
        return({c: self.clusters.index[self.clusters == c].tolist() for c in sorted(self.clusters.unique())})


def _functional_(B):
    """
    Jaccard index between binarized networks, B is pathways x group pairs
    """
    B = B.astype(float)
    inter = B @ B.T
    size = B.sum(axis = 1)
    union = size[:, None] + size[None, :] - inter
    with np.errstate(divide = 'ignore', invalid = 'ignore'):
        S = np.where(union > 0, inter / union, 0)
    return(S)


def _node_distance_distribution_(A):
    """
    for each node the distribution of shortest path lengths to the other
    nodes, bins 1 .. G-1 and a last bin for unreachable nodes, the mean
    distribution over nodes, the network node dispersion and the diameter
    """
    G = A.shape[0]
    dist = csgraph.shortest_path(A.astype(float), directed = True, unweighted = True)
    P = np.zeros((G, G))
    for u in range(G):
        d = np.delete(dist[u], u)
        reach = np.isfinite(d)
        P[u, :G-1] = np.bincount(d[reach].astype(int) - 1, minlength = G - 1)[:G-1]
        P[u, G-1] = np.sum(~reach)
    P = P / (G - 1)
    mu = P.mean(axis = 0)
    finite = dist[np.isfinite(dist) & (dist > 0)]
    diam = finite.max() if len(finite) > 0 else 0
    if diam == 0:
        return(mu, 0.0)
    nnd = (stats.entropy(mu) - np.mean([stats.entropy(p) for p in P])) / np.log(diam + 1)
    return(mu, float(np.clip(nnd, 0, 1)))


def _structural_(nets):
    """
    1 - D, where D = 0.5 * JS(mu1, mu2) + 0.5 * |sqrt(NND1) - sqrt(NND2)|,
    JS the Jensen-Shannon distance of the mean node distance distributions
    """
    dd = [_node_distance_distribution_(A) for A in nets]
    n = len(nets)
    S = np.ones((n, n))
    for a in range(n):
        for b in range(a + 1, n):
            mu1, nnd1 = dd[a]
            mu2, nnd2 = dd[b]
            D = 0.5 * jensenshannon(mu1, mu2, base = 2) + 0.5 * abs(np.sqrt(nnd1) - np.sqrt(nnd2))
            S[a, b] = S[b, a] = 1 - D
    return(S)


def similarity(pathway_network, kind = 'functional', thresh = 0):
    """
    pathway x pathway similarity of the communication networks

    Params
    -----
    pathway_network
        PathwayNetwork
    kind
        'functional' for Jaccard index of the sender-receiver pairs, or
        'structural' for the topology of the networks regardless of groups
    thresh
        float, a group pair is linked when its probability is greater than thresh

    Return
    -----
    symmetric data frame with 1 on the diagonal
    """
    kind = _as_kind_(kind, SimilarityKind)
    prob = pathway_network.prob
    G, _, P = prob.shape
    info('Compute {} similarity of {} pathways'.format(kind, P))
    binary = prob > thresh
    if kind == SimilarityKind.FUNCTIONAL:
        S = _functional_(binary.reshape(G * G, P).T)
    elif G < 2:
        S = np.ones((P, P))
    else:
        S = _structural_([binary[:, :, p] for p in range(P)])
    S = np.nan_to_num(S, nan = 0.0)
    S = (S + S.T) / 2
    np.fill_diagonal(S, 1)
    return(pd.DataFrame(S, index = pathway_network.pathways, columns = pathway_network.pathways))


def _cluster_(sim, coords, n_clusters, seed):
    if n_clusters is not None:
        km = KMeans(n_clusters = int(n_clusters), n_init = 10, random_state = seed)
        return(km.fit_predict(coords))
    W = np.clip(sim, 0, None)
    np.fill_diagonal(W, 0)
    g = nx.from_numpy_array(W)
    comms = nx.community.louvain_communities(g, weight = 'weight', seed = seed)
    comms = sorted(comms, key = lambda c: (-len(c), min(c)))
    labels = np.zeros(sim.shape[0], dtype = int)
    for c, members in enumerate(comms):
        labels[list(members)] = c
    return(labels)


def embed(sim,
          method = 'spectral',
          n_components = 2,
          n_clusters = None,
          n_neighbors = 15,
          seed = 12345):
    """
    embed pathways into low dimension from their similarity, then cluster

    Params
    -----
    sim
        similarity data frame from similarity()
    method
        'spectral' for Laplacian eigenmaps of the similarity graph, 'umap' for
        UMAP on the similarity profiles through scanpy
    n_components
        int, embedding dimension
    n_clusters
        int, number of k-means clusters on the coordinates, None to choose the
        number by Louvain modularity maximization on the similarity graph
    n_neighbors
        int, neighbors for umap
    seed
        int, random seed

    Return
    -----
    EmbeddingAssignment
    """
    method = _as_kind_(method, EmbeddingMethod)
    n = sim.shape[0]
    if sim.shape[0] != sim.shape[1]:
        raise ConfigurationError('similarity matrix should be square, got shape {}'.format(sim.shape))
    if n < 3:
        raise ConfigurationError('at least 3 pathways are needed to embed, got {}'.format(n))
    if int(n_components) != n_components or not (1 <= n_components < n):
        raise ConfigurationError('n_components should be in [1, {}), got {}'.format(n, n_components))
    if n_clusters is not None and (int(n_clusters) != n_clusters or not (1 <= n_clusters <= n)):
        raise ConfigurationError('n_clusters should be in [1, {}], got {}'.format(n, n_clusters))

    S = np.nan_to_num(np.asarray(sim.values, dtype = float), nan = 0.0)
    S = np.clip((S + S.T) / 2, 0, None)
    info('Embed {} pathways by {}'.format(n, method))
    if method == EmbeddingMethod.SPECTRAL:
        ## dense eigendecomposition for small graphs
        solver = 'lobpcg' if n < 5 * (n_components + 1) + 1 else 'arpack'
        se = SpectralEmbedding(n_components = int(n_components),
                               affinity = 'precomputed',
                               eigen_solver = solver,
                               random_state = seed)
        coords = se.fit_transform(S)
    else:
        adata = sc.AnnData(X = S)
        sc.pp.neighbors(adata, n_neighbors = min(n_neighbors, n - 1), use_rep = 'X', random_state = seed)
        sc.tl.umap(adata, n_components = int(n_components), random_state = seed)
        coords = adata.obsm['X_umap']

    labels = _cluster_(S, coords, n_clusters, seed)
    cols = ['dim{}'.format(i + 1) for i in range(int(n_components))]
    res = EmbeddingAssignment(coords = pd.DataFrame(coords, index = sim.index, columns = cols),
                              clusters = pd.Series(labels, index = sim.index, name = 'cluster'),
                              method = method)
    info('{} pathway clusters'.format(len(np.unique(labels))))
    return(res)
