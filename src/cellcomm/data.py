#!/usr/bin/env python

import re
import collections
import warnings
import numpy as np
import pandas as pd
from scipy import sparse

from cellcomm.utils import info
from cellcomm.errors import ConfigurationError, DataError

"""
input containers: expression matrix with cell group labels, and the
ligand-receptor interaction catalog
"""


def _check_exp_mat_(exp_mat):
    """
    check if the expression matrix are all numerical
    """
    numeric = exp_mat.apply(lambda col: pd.api.types.is_numeric_dtype(col))
    if not np.all(numeric):
        warnings.warn("%s column is not numerical, will be removed as only int or float accepted in expression matrix"%(exp_mat.columns[~numeric].tolist()))
        exp_mat = exp_mat.loc[:, numeric]
    return(exp_mat)



def _check_non_negative_(mat):
    """
    normalized expression is non-negative, scaled or centered data is rejected
    """
    n_neg = int(np.sum(mat < 0))
    if n_neg > 0:
        raise DataError('{} negative values in expression matrix, please provide normalized (not scaled) expression'.format(n_neg))


class ExpressionStore:
    """
    Normalized single cell expression and the cell group assignment.

    Params
    -------
    exp_mat
        python pandas data frame, normalized non-negative expression matrix, rows are genes, columns are cells.
        'exp_mat' is a exclusive parameter to 'adata'
    adata
        scanpy adata object, the expression will be extracted from adata.X (cells x genes), 'adata' is an exclusive parameter to 'exp_mat'
    cell_ann
        data frame with cells in row names, or a series mapping cell to group label.
        If not given and adata is used, adata.obs will be used
    group_col
        the column name in 'cell_ann' for grouping cells
    group_order
        a list to fix the order of cell groups, by default groups are sorted

    The store is read-only once constructed: derived expression (e.g. network
    smoothing) is returned as a new store through with_values().
    """
    def __init__(self,
                 exp_mat=None,
                 adata=None,
                 cell_ann=None,
                 group_col='cell_type',
                 group_order=None):
        if exp_mat is None and adata is None:
            raise DataError('please provide expression matrix either from exp_mat or adata (scanpy object)')
        if exp_mat is not None and adata is not None:
            raise ConfigurationError('exp_mat and adata are exclusive, please provide only one of them')

        if adata is not None:
            mat = adata.X
            mat = mat.T.toarray() if sparse.issparse(mat) else np.asarray(mat).T
            genes = pd.Index(adata.var_names.astype(str))
            cells = pd.Index(adata.obs_names.astype(str))
            if cell_ann is None:
                cell_ann = adata.obs
        else:
            if sparse.issparse(exp_mat):
                raise DataError('sparse exp_mat needs gene and cell names, please provide a data frame or adata')
            exp_mat = _check_exp_mat_(pd.DataFrame(exp_mat))
            mat = exp_mat.values
            genes = pd.Index(exp_mat.index.astype(str))
            cells = pd.Index(exp_mat.columns.astype(str))

        ngene, ncell = mat.shape
        if ngene == 0 or ncell == 0:
            raise DataError('expression matrix is empty: {} genes and {} cells'.format(ngene, ncell))
        if genes.has_duplicates:
            raise DataError('duplicated gene names in expression matrix: %s'%(genes[genes.duplicated()].unique().tolist()[:10]))
        if cells.has_duplicates:
            raise DataError('duplicated cell names in expression matrix')

        labels = self._get_labels_(cell_ann, group_col, cells)
        if group_order is None:
            groups = sorted(labels.unique().tolist(), key = str)
        else:
            groups = [str(g) for g in group_order]
            if len(groups) == 0:
                raise ConfigurationError('group_order is empty')
            unknown = set(labels.unique().tolist()) - set(groups)
            if unknown:
                raise DataError('cell groups {} are not in group_order'.format(sorted(unknown, key = str)))
            empty = [g for g in groups if not np.any(labels.values == g)]
            if empty:
                raise DataError('cell groups {} in group_order have no cells'.format(empty))
        if len(groups) == 0:
            raise ConfigurationError('no cell group found')

        mat = np.array(mat, dtype = float)
        _check_non_negative_(mat)
        mat.flags.writeable = False
        self.exp_mat = mat
        self.genes = genes
        self.cells = cells
        self.groups = groups
        self.labels = labels.values
        codes = pd.Categorical(labels.values, categories = groups).codes.astype(int)
        codes.flags.writeable = False
        self.codes = codes
        self._gene_loc = {g:i for i, g in enumerate(genes)}
        info('We get expression data with {n1} genes and {n2} cells in {n3} groups.'.format(n1 = ngene, n2 = ncell, n3 = len(groups)))

    @staticmethod
    def _get_labels_(cell_ann, group_col, cells):
        """
        align group labels to the cells of the expression matrix
        """
        if cell_ann is None:
            raise DataError('Please provide cell_ann to group cells')
        if isinstance(cell_ann, pd.DataFrame):
            if group_col not in cell_ann.columns.tolist():
                raise KeyError('group_col: %s is not in cell_ann columns, it should be one of %s'%(group_col, cell_ann.columns.tolist()))
            labels = cell_ann[group_col].copy()
        else:
            labels = pd.Series(cell_ann).copy()
        labels.index = labels.index.astype(str)
        if labels.index.has_duplicates:
            raise DataError('duplicated cell names in cell_ann')
        missing = cells.difference(labels.index)
        extra = labels.index.difference(cells)
        if len(missing) > 0 or len(extra) > 0:
            raise DataError('cells in expression matrix and cell_ann do not match: {} cells without group, {} annotated cells without expression'.format(len(missing), len(extra)))
        labels = labels.reindex(cells)
        if labels.isna().any():
            raise DataError('{} cells have no group label'.format(int(labels.isna().sum())))
        return(labels.astype(str))

    @property
    def n_genes(self):
        return(len(self.genes))

    @property
    def n_cells(self):
        return(len(self.cells))

    def group_sizes(self):
        """
        number of cells in each group, in group order
        """
        return(pd.Series(np.bincount(self.codes, minlength = len(self.groups)), index = self.groups))

    def gene_index(self, genes):
        """
        row positions of the given genes, -1 for genes not in the matrix
        """
        return(np.array([self._gene_loc.get(g, -1) for g in genes], dtype = int))

    def has_gene(self, gene):
        return(gene in self._gene_loc)

    def to_frame(self):
        return(pd.DataFrame(self.exp_mat, index = self.genes, columns = self.cells))

    def with_values(self, exp_mat):
        """
        a new store with the same genes, cells and groups but other expression values
        """
        exp_mat = np.asarray(exp_mat, dtype = float)
        if exp_mat.shape != self.exp_mat.shape:
            raise DataError('new expression values have shape {}, expected {}'.format(exp_mat.shape, self.exp_mat.shape))
        _check_non_negative_(exp_mat)
        new = object.__new__(ExpressionStore)
        new.__dict__.update(self.__dict__)
        exp_mat = exp_mat.copy()
        exp_mat.flags.writeable = False
        new.exp_mat = exp_mat
        return(new)


def _as_genes_(x):
    """
    gene set from a list or a string like 'TGFBR1;TGFBR2' or 'TGFBR1, TGFBR2'
    """
    if x is None:
        return(())
    if isinstance(x, float) and np.isnan(x):
        return(())
    if isinstance(x, str):
        x = re.split(r'\s*[;,]\s*', x.strip())
    return(tuple(str(g).strip() for g in x if str(g).strip() != ''))


_Record = collections.namedtuple('InteractionRecord',
                                 ['name', 'ligand', 'receptor', 'pathway',
                                  'agonist', 'antagonist', 'co_a_receptor', 'co_i_receptor',
                                  'annotation'])


class InteractionRecord(_Record):
    """
    One ligand-receptor interaction.

    ligand and receptor are tuples of subunit genes; agonist, antagonist,
    co_a_receptor (co-stimulatory receptor) and co_i_receptor (co-inhibitory
    receptor) are tuples of cofactor genes, possibly empty.
    """
    __slots__ = ()

    def __new__(cls, name, ligand, receptor, pathway,
                agonist=(), antagonist=(), co_a_receptor=(), co_i_receptor=(),
                annotation=None):
        return super().__new__(cls, str(name), _as_genes_(ligand), _as_genes_(receptor),
                               pathway, _as_genes_(agonist), _as_genes_(antagonist),
                               _as_genes_(co_a_receptor), _as_genes_(co_i_receptor),
                               annotation)

    def genes(self):
        return(set(self.ligand + self.receptor + self.agonist + self.antagonist +
                   self.co_a_receptor + self.co_i_receptor))


class InteractionCatalog:
    """
    ligand-receptor-cofactor records, each belongs to one pathway
    """
    columns = {'interaction_name': 'name', 'ligand': 'ligand', 'receptor': 'receptor',
               'pathway_name': 'pathway', 'agonist': 'agonist', 'antagonist': 'antagonist',
               'co_A_receptor': 'co_a_receptor', 'co_I_receptor': 'co_i_receptor',
               'annotation': 'annotation'}

    def __init__(self, records):
        records = list(records)
        if len(records) == 0:
            raise DataError('interaction catalog is empty')
        for r in records:
            if not isinstance(r, InteractionRecord):
                raise DataError('catalog entries should be InteractionRecord, got %s'%type(r))
            if len(r.ligand) == 0 or len(r.receptor) == 0:
                raise DataError('interaction {} has no ligand or no receptor gene'.format(r.name))
            if r.pathway is None or (isinstance(r.pathway, float) and np.isnan(r.pathway)) or str(r.pathway) == '':
                raise DataError('interaction {} has no pathway'.format(r.name))
        names = [r.name for r in records]
        dup = [n for n, c in collections.Counter(names).items() if c > 1]
        if dup:
            raise DataError('duplicated interaction names in catalog: {}'.format(dup[:10]))
        self.records = tuple(records)
        self._by_name = {r.name: r for r in self.records}

    @classmethod
    def from_frame(cls, df):
        """
        build the catalog from a data frame with columns interaction_name, ligand,
        receptor, pathway_name and optionally agonist, antagonist, co_A_receptor,
        co_I_receptor, annotation
        """
        required = ['interaction_name', 'ligand', 'receptor', 'pathway_name']
        missing = [x for x in required if x not in df.columns.tolist()]
        if missing:
            raise DataError('interaction table misses columns {}'.format(missing))
        records = []
        for _, line in df.iterrows():
            kwargs = {v: line[k] for k, v in cls.columns.items() if k in df.columns}
            if 'annotation' in kwargs and pd.isna(kwargs['annotation']):
                kwargs['annotation'] = None
            records.append(InteractionRecord(**kwargs))
        return cls(records)

    def to_frame(self):
        rows = []
        for r in self.records:
            rows.append({'interaction_name': r.name,
                         'ligand': '; '.join(r.ligand),
                         'receptor': '; '.join(r.receptor),
                         'pathway_name': r.pathway,
                         'agonist': '; '.join(r.agonist),
                         'antagonist': '; '.join(r.antagonist),
                         'co_A_receptor': '; '.join(r.co_a_receptor),
                         'co_I_receptor': '; '.join(r.co_i_receptor),
                         'annotation': r.annotation})
        return(pd.DataFrame(rows))

    def __len__(self):
        return(len(self.records))

    def __iter__(self):
        return(iter(self.records))

    def __getitem__(self, name):
        return(self._by_name[name])

    @property
    def names(self):
        return([r.name for r in self.records])

    def pathways(self):
        """
        pathway names in order of first appearance
        """
        return(list(dict.fromkeys(r.pathway for r in self.records)))

    def pathway_of(self):
        return({r.name: r.pathway for r in self.records})

    def genes(self):
        genes = set()
        for r in self.records:
            genes |= r.genes()
        return(genes)
