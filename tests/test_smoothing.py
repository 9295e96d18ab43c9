"""
Tests for network smoothing of expression over a PPI graph.
"""

import numpy as np
import pandas as pd
import networkx as nx
import pytest

from cellcomm.smoothing import project
from cellcomm.errors import ConfigurationError, DataError


@pytest.fixture
def ppi_graph():
    g = nx.Graph()
    g.add_edge("X", "Y", weight=1.0)
    g.add_edge("X", "NOT_MEASURED", weight=5.0)
    return g


class TestProject:
    """Tests for the one-step and iterated diffusion."""

    def test_one_step_blend(self, two_group_store, ppi_graph):
        smoothed = project(two_group_store, ppi_graph, alpha=0.5)
        X = two_group_store.exp_mat
        np.testing.assert_allclose(smoothed.exp_mat[0], 0.5 * X[0] + 0.5 * X[1])
        np.testing.assert_allclose(smoothed.exp_mat[1], 0.5 * X[1] + 0.5 * X[0])

    def test_isolated_genes_unchanged(self, two_group_store, ppi_graph):
        smoothed = project(two_group_store, ppi_graph, alpha=0.5)
        np.testing.assert_array_equal(smoothed.exp_mat[2:], two_group_store.exp_mat[2:])

    def test_input_not_modified(self, two_group_store, ppi_graph):
        before = two_group_store.exp_mat.copy()
        project(two_group_store, ppi_graph, alpha=0.9)
        np.testing.assert_array_equal(two_group_store.exp_mat, before)

    def test_frame_and_graph_agree(self, two_group_store, ppi_graph):
        adj = pd.DataFrame(0.0, index=["X", "Y", "Q"], columns=["X", "Y", "Q"])
        adj.loc["X", "Y"] = adj.loc["Y", "X"] = 1.0
        adj.loc["X", "X"] = 3.0
        a = project(two_group_store, ppi_graph, alpha=0.3).exp_mat
        b = project(two_group_store, adj, alpha=0.3).exp_mat
        np.testing.assert_allclose(a, b)

    def test_alpha_zero_is_identity(self, two_group_store, ppi_graph):
        smoothed = project(two_group_store, ppi_graph, alpha=0)
        np.testing.assert_array_equal(smoothed.exp_mat, two_group_store.exp_mat)

    def test_iterations_reach_fixed_point(self, two_group_store):
        g = nx.path_graph(["X", "Y", "Z"])
        alpha = 0.6
        Y = project(two_group_store, g, alpha=alpha, n_iter=200).exp_mat
        X = two_group_store.exp_mat
        ## row-normalized adjacency of the path X - Y - Z
        P = np.zeros((5, 5))
        P[0, 1] = 1
        P[1, 0] = P[1, 2] = 0.5
        P[2, 1] = 1
        np.testing.assert_allclose(Y[:3], ((1 - alpha) * X + alpha * P @ Y)[:3], atol=1e-10)

    @pytest.mark.parametrize("alpha", [-0.1, 1, 1.5])
    def test_invalid_alpha(self, two_group_store, ppi_graph, alpha):
        with pytest.raises(ConfigurationError):
            project(two_group_store, ppi_graph, alpha=alpha)

    def test_invalid_n_iter(self, two_group_store, ppi_graph):
        with pytest.raises(ConfigurationError):
            project(two_group_store, ppi_graph, n_iter=0)

    def test_bad_ppi(self, two_group_store):
        with pytest.raises(DataError):
            project(two_group_store, [("X", "Y")])
        with pytest.raises(DataError):
            project(two_group_store, pd.DataFrame(np.ones((2, 3))))
        g = nx.Graph()
        g.add_edge("X", "Y", weight=-1)
        with pytest.raises(DataError):
            project(two_group_store, g)
