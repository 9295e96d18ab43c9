"""
Shared fixtures: small synthetic expression data and interaction catalogs.
"""

import numpy as np
import pandas as pd
import pytest

from cellcomm.data import ExpressionStore, InteractionRecord, InteractionCatalog
from cellcomm.screening import OverexpressionFlags


CELLS = ["a1", "a2", "a3", "b1", "b2", "b3"]


@pytest.fixture
def two_group_frame():
    """Ligand X high in group A, receptor Y high in group B."""
    return pd.DataFrame(
        {
            "a1": [5.0, 0.1, 1.0, 0.0, 0.3],
            "a2": [6.0, 0.2, 2.0, 0.0, 0.2],
            "a3": [7.0, 0.0, 1.0, 0.0, 0.1],
            "b1": [0.0, 5.0, 2.0, 3.0, 0.2],
            "b2": [0.1, 6.0, 1.0, 3.0, 0.1],
            "b3": [0.2, 7.0, 2.0, 3.0, 0.3],
        },
        index=["X", "Y", "Z", "AG", "W"],
    )


@pytest.fixture
def two_group_ann():
    return pd.DataFrame({"cell_type": ["A", "A", "A", "B", "B", "B"]}, index=CELLS)


@pytest.fixture
def two_group_store(two_group_frame, two_group_ann):
    return ExpressionStore(exp_mat=two_group_frame, cell_ann=two_group_ann)


@pytest.fixture
def xy_catalog():
    """X->Y, an interaction on absent genes and a second pathway."""
    return InteractionCatalog(
        [
            InteractionRecord("X_Y", ligand="X", receptor="Y", pathway="XY"),
            InteractionRecord("Z_W", ligand="Z", receptor="W", pathway="ZW"),
            InteractionRecord("NOPE1_NOPE2", ligand="NOPE1", receptor="NOPE2", pathway="NOPE"),
        ]
    )


@pytest.fixture
def single_group_store(two_group_frame):
    ann = pd.Series(["A"] * 6, index=CELLS)
    return ExpressionStore(exp_mat=two_group_frame, cell_ann=ann)


def _all_flags(store):
    shape = (store.n_genes, len(store.groups))
    frame = lambda v: pd.DataFrame(v, index=store.genes, columns=store.groups)
    return OverexpressionFlags(
        flags=frame(np.ones(shape, dtype=bool)),
        pvals=frame(np.zeros(shape)),
        fdr=frame(np.zeros(shape)),
        logfc=frame(np.ones(shape)),
        pct=frame(np.ones(shape)),
    )


@pytest.fixture
def all_flags():
    """Build over-expression flags with every gene flagged in every group."""
    return _all_flags

