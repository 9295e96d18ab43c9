"""
Tests for pathway and whole network aggregation.
"""

import numpy as np
import pytest

from cellcomm.screening import screen
from cellcomm.scoring import score
from cellcomm.aggregation import aggregate, subset_communication, PathwayNetwork, AggregatedNetwork
from cellcomm.errors import ConfigurationError


@pytest.fixture
def result(two_group_store, xy_catalog, all_flags):
    return score(two_group_store, xy_catalog, flags=all_flags(two_group_store), n_perm=50, seed=7)


class TestAggregate:
    """Consistency between interaction, pathway and network summaries."""

    def test_count_matches_significant_entries(self, result):
        pn, agg = aggregate(result, pval_cutoff=0.05)
        sig = result.significant(0.05)
        for s in result.groups:
            for t in result.groups:
                n = int(((sig["source"] == s) & (sig["target"] == t)).sum())
                assert agg.count.loc[s, t] == n

    def test_weight_equals_pathway_sum(self, result):
        pn, agg = aggregate(result)
        np.testing.assert_allclose(pn.prob.sum(axis=2), agg.weight.values)

    def test_pathways_sorted_and_nonzero(self, result):
        pn, _ = aggregate(result, pval_cutoff=1)
        flow = pn.flow()
        assert flow.is_monotonic_decreasing
        assert np.all(flow > 0)
        assert "NOPE" not in pn.pathways

    def test_catalog_pathways(self, result, xy_catalog):
        pn1, agg1 = aggregate(result, pval_cutoff=1)
        pn2, agg2 = aggregate(result, catalog=xy_catalog, pval_cutoff=1)
        assert pn1.pathways == pn2.pathways
        np.testing.assert_array_equal(pn1.prob, pn2.prob)

    def test_exclude_self(self, result):
        _, agg = aggregate(result, pval_cutoff=1, exclude_self=True)
        assert np.all(np.diag(agg.count.values) == 0)
        assert np.all(np.diag(agg.weight.values) == 0)

    def test_sources_targets(self, result):
        pn, agg = aggregate(result, pval_cutoff=1, sources=["A"], targets="B")
        assert agg.count.loc["B"].sum() == 0
        assert agg.count["A"].sum() == 0
        assert agg.count.loc["A", "B"] > 0
        assert np.all(pn.prob[1] == 0)
        with pytest.raises(ConfigurationError):
            aggregate(result, sources=["C"])

    def test_invalid_cutoff(self, result):
        with pytest.raises(ConfigurationError):
            aggregate(result, pval_cutoff=0)

    def test_frames(self, result):
        pn, agg = aggregate(result, pval_cutoff=1)
        df = pn.to_frame()
        assert set(df.columns) == {"pathway_name", "source", "target", "prob"}
        assert np.all(df["prob"] > 0)
        xy = pn.pathway("XY")
        assert df[(df["pathway_name"] == "XY") & (df["source"] == "A") & (df["target"] == "B")]["prob"].iloc[0] == xy.loc["A", "B"]
        assert agg.to_frame().shape[0] == 4
        with pytest.raises(KeyError):
            pn.pathway("NOPE")

    def test_single_group(self, single_group_store, xy_catalog):
        flags = screen(single_group_store, min_cells=1)
        res = score(single_group_store, xy_catalog, flags=flags, n_perm=20)
        _, agg = aggregate(res)
        assert agg.count.shape == (1, 1)
        assert agg.count.loc["A", "A"] > 0
        _, agg = aggregate(res, exclude_self=True)
        assert agg.count.values.sum() == 0


class TestSubset:
    """Tests for the tidy significant-entry filter."""

    def test_filters(self, result):
        df = subset_communication(result, pval_cutoff=1, pathways="XY", sources=["A"])
        assert set(df["pathway_name"]) == {"XY"}
        assert set(df["source"]) == {"A"}
        assert df["prob"].is_monotonic_decreasing

    def test_interactions(self, result):
        df = subset_communication(result, pval_cutoff=1, interactions=["Z_W"], targets=["A"])
        assert set(df["interaction_name"]) <= {"Z_W"}
        assert set(df["target"]) <= {"A"}
