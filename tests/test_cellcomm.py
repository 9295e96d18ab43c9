"""
Tests for configuration loading and the end-to-end pipeline.
"""

import numpy as np
import networkx as nx
import pytest

import cellcomm
from cellcomm.cellcomm import load_config, infer_commu, identify_patterns, pathway_similarity, compare_conditions, CommResult
from cellcomm.data import InteractionRecord, InteractionCatalog
from cellcomm.errors import ConfigurationError


@pytest.fixture
def conf_file(tmp_path):
    path = tmp_path / "test.conf"
    path.write_text(
        "[screen]\n"
        "p_threshold = 0.1 # looser for three cells\n"
        "[score]\n"
        "n_perm = 20\n"
        "seed = 3\n"
        "population_size = True\n"
        "[aggregate]\n"
        "pval_cutoff = 0.1\n"
    )
    return str(path)


@pytest.fixture
def pipeline_catalog():
    return InteractionCatalog(
        [
            InteractionRecord("X_Y", ligand="X", receptor="Y", pathway="XY"),
            InteractionRecord("X_YZ", ligand="X", receptor="Y;Z", pathway="XY"),
            InteractionRecord("Z_W", ligand="Z", receptor="W", pathway="ZW"),
            InteractionRecord("N1_N2", ligand="N1", receptor="N2", pathway="N"),
        ]
    )


class TestLoadConfig:
    """Reading and converting the INI parameters."""

    def test_packaged_defaults(self):
        config = load_config()
        assert config["score"]["n_perm"] == 100
        assert config["score"]["kh"] == 0.5
        assert config["score"]["population_size"] is False
        assert config["screen"]["pval_method"] == "pval"
        assert config["similarity"]["n_clusters"] is None
        assert config["pattern"]["tol"] == pytest.approx(1e-4)

    def test_custom_file(self, conf_file):
        config = load_config(conf_file)
        assert config["screen"]["p_threshold"] == 0.1
        assert config["score"]["population_size"] is True
        assert config["smooth"] == {}

    def test_unknown_section(self, tmp_path):
        path = tmp_path / "bad.conf"
        path.write_text("[plotting]\ncolor = red\n")
        with pytest.raises(ConfigurationError):
            load_config(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(str(tmp_path / "nope.conf"))


class TestInferCommu:
    """The full pipeline on the two group data."""

    def test_end_to_end(self, two_group_store, pipeline_catalog, conf_file):
        res = infer_commu(two_group_store, pipeline_catalog, conf_path=conf_file)
        assert isinstance(res, CommResult)
        assert res.smoothed is None
        assert res.communication.unscored == ["N1_N2"]
        assert res.aggregated.count.loc["A", "B"] >= 1
        assert res.roles.loc["A", "outgoing"] > 0
        assert "XY" in res.pathway_network.pathways
        assert res.params["score"]["n_perm"] == 20
        assert np.all(res.significant()["pval"] < 0.1)

    def test_keyword_overrides(self, two_group_store, pipeline_catalog, conf_file):
        res = infer_commu(two_group_store, pipeline_catalog, conf_path=conf_file,
                          score_kws={"n_perm": 10, "population_size": False},
                          aggregate_kws={"exclude_self": True})
        assert res.communication.params["n_perm"] == 10
        assert res.communication.params["population_size"] is False
        assert np.all(np.diag(res.aggregated.count.values) == 0)

    def test_with_ppi(self, two_group_store, pipeline_catalog, conf_file):
        g = nx.Graph()
        g.add_edge("Y", "Z")
        res = infer_commu(two_group_store, pipeline_catalog, ppi=g, conf_path=conf_file,
                          smooth_kws={"alpha": 0.2})
        assert res.smoothed is not None
        assert not np.array_equal(res.smoothed.exp_mat, two_group_store.exp_mat)

    def test_invalid_override(self, two_group_store, pipeline_catalog):
        with pytest.raises(ConfigurationError):
            infer_commu(two_group_store, pipeline_catalog, score_kws={"kh": -1})

    def test_package_exports(self):
        assert cellcomm.infer_commu is infer_commu
        assert cellcomm.compare_conditions is compare_conditions
        assert cellcomm.__version__


class TestDownstream:
    """Pattern and similarity helpers on a pipeline result."""

    @pytest.fixture
    def many_pathways(self):
        from cellcomm.aggregation import PathwayNetwork

        rng = np.random.default_rng(4)
        prob = rng.random((4, 4, 5)) * (rng.random((4, 4, 5)) > 0.4)
        pn = PathwayNetwork(prob=prob, pathways=["P{}".format(i) for i in range(5)], groups=["A", "B", "C", "D"])
        return CommResult(flags=None, smoothed=None, communication=None, pathway_network=pn,
                          aggregated=None, roles=None, params={})

    def test_identify_patterns(self, many_pathways):
        res = identify_patterns(many_pathways, k=2, n_restarts=2)
        assert res.W.shape == (4, 2)

    def test_pathway_similarity(self, many_pathways):
        sim, emb = pathway_similarity(many_pathways, kind="functional", n_clusters=2)
        assert sim.shape == (5, 5)
        assert emb.clusters.nunique() <= 2


class TestCompareConditions:
    """Two condition comparison of pipeline results."""

    def test_same_condition_no_change(self, two_group_store, pipeline_catalog, conf_file):
        res = infer_commu(two_group_store, pipeline_catalog, conf_path=conf_file)
        diff = compare_conditions(res, res, cond1="ctrl", cond2="treat")
        assert list(diff) == ["interactions", "diff", "pathways"]
        assert diff["interactions"].loc["ctrl", "count"] == diff["interactions"].loc["treat", "count"]
        assert np.all(diff["diff"].count.values == 0)
        pathways = diff["pathways"].set_index("pathway_name")
        assert "XY" in pathways.index
        assert pathways.loc["XY", "pval"] == 1
        assert pathways.loc["XY", "rel_change"] == 0
