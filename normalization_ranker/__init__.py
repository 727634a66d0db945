"""normalization-ranker: enumerate, score and rank normalization pipelines.

This package provides tools for:
- Enumerating the combinatorial space of normalization pipelines
  (imputation, scaling, control-based variance removal, batch and
  biological adjustment)
- Executing every configuration against a count matrix
- Scoring normalized matrices with data-driven quality metrics
- Ranking configurations by a composite score

Example usage:
    >>> from normalization_ranker.core.catalog import StepCatalog
    >>> from normalization_ranker.core.evaluation import EvaluationEngine
    >>> from normalization_ranker.core.inputs import EvaluationInputs
    >>>
    >>> inputs = EvaluationInputs(counts, negative_controls=controls, batch=batch, bio=bio)
    >>> result = EvaluationEngine(inputs, StepCatalog.default(max_k=2)).run()
    >>> result.top(5).to_frame()
"""

__version__ = "0.1.0"
