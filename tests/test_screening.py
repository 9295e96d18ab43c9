"""
Tests for over-expression screening of genes and interactions.
"""

import numpy as np
import pytest

from cellcomm.screening import screen, flag_interactions, PvalMethod
from cellcomm.errors import ConfigurationError, DataError


class TestScreen:
    """Tests for the per gene, per group rank-sum screening."""

    def test_ligand_and_receptor_flagged(self, two_group_store):
        flags = screen(two_group_store, p_threshold=0.1)
        assert flags.flags.loc["X", "A"]
        assert not flags.flags.loc["X", "B"]
        assert flags.flags.loc["Y", "B"]
        assert not flags.flags.loc["Y", "A"]

    def test_gene_silent_in_group_not_flagged(self, two_group_store):
        flags = screen(two_group_store, p_threshold=0.1)
        assert flags.pvals.loc["AG", "A"] <= 1
        assert not flags.flags.loc["AG", "A"]

    def test_fold_change_sign(self, two_group_store):
        flags = screen(two_group_store)
        assert flags.logfc.loc["X", "A"] > 0
        assert flags.logfc.loc["X", "B"] < 0

    def test_fc_threshold(self, two_group_store):
        flags = screen(two_group_store, p_threshold=0.1, fc_threshold=100)
        assert not flags.flags.values.any()

    def test_thresh_pct(self, two_group_store):
        flags = screen(two_group_store, p_threshold=0.1)
        assert flags.pct.loc["AG", "A"] == 0
        assert flags.pct.loc["AG", "B"] == 1

    def test_fdr_not_smaller_than_pval(self, two_group_store):
        flags = screen(two_group_store, pval_method="fdr")
        assert np.all(flags.fdr.values >= flags.pvals.values - 1e-12)

    def test_gene_subset(self, two_group_store):
        flags = screen(two_group_store, genes=["Y", "X", "NOPE"])
        assert flags.flags.index.tolist() == ["Y", "X"]
        with pytest.raises(DataError):
            screen(two_group_store, genes=["NOPE"])

    def test_single_group(self, single_group_store):
        flags = screen(single_group_store, min_cells=4)
        assert flags.groups == ["A"]
        assert flags.flags.loc["X", "A"]
        ## detected in three cells only
        assert not flags.flags.loc["AG", "A"]

    def test_markers(self, two_group_store):
        markers = screen(two_group_store, p_threshold=0.1).markers()
        assert set(zip(markers["gene"], markers["group"])) >= {("X", "A"), ("Y", "B")}
        assert markers["pval"].is_monotonic_increasing

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"p_threshold": 0},
            {"p_threshold": 1.5},
            {"fc_threshold": None},
            {"thresh_pct": 2},
            {"pval_method": "bonferroni"},
        ],
    )
    def test_invalid_parameters(self, two_group_store, kwargs):
        with pytest.raises(ConfigurationError):
            screen(two_group_store, **kwargs)

    def test_pval_method_enum(self, two_group_store):
        flags = screen(two_group_store, pval_method=PvalMethod.FDR)
        assert flags.flags.shape == (5, 2)


class TestFlagInteractions:
    """Tests for the sender-ligand / receiver-receptor interaction gate."""

    def test_asymmetric_gate(self, two_group_store, xy_catalog):
        flags = screen(two_group_store, p_threshold=0.1)
        gate = flag_interactions(flags, xy_catalog)
        xy = gate[0]
        ## ligand over-expressed in A, receptor in B
        assert xy[0, 1]
        assert xy[0, 0]
        assert xy[1, 1]
        assert not xy[1, 0]

    def test_absent_genes_never_flagged(self, two_group_store, xy_catalog):
        flags = screen(two_group_store, p_threshold=0.1)
        gate = flag_interactions(flags, xy_catalog)
        assert not gate[2].any()

    def test_group_order(self, two_group_store, xy_catalog):
        flags = screen(two_group_store, p_threshold=0.1)
        gate = flag_interactions(flags, xy_catalog, groups=["B", "A"])
        assert gate[0][1, 0]
        assert not gate[0][0, 1]
        with pytest.raises(DataError):
            flag_interactions(flags, xy_catalog, groups=["C"])
