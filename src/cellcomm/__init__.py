__version__ = '0.1.0'

from cellcomm.errors import CellCommError, ConfigurationError, DataError, NumericalError
from cellcomm.data import ExpressionStore, InteractionRecord, InteractionCatalog
from cellcomm.cellcomm import infer_commu, load_config, identify_patterns, pathway_similarity, compare_conditions
