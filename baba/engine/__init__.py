"""Performance rating engine: baselines, track bias and indices."""

from baba.engine.baseline import BaselineTable, build_baseline_table
from baba.engine.bias import BiasTable, build_bias_table
from baba.engine.index import index_corpus, index_race
from baba.engine.params import RatingParams

__all__ = [
    "BaselineTable",
    "BiasTable",
    "RatingParams",
    "build_baseline_table",
    "build_bias_table",
    "index_corpus",
    "index_race",
]
