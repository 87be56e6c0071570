"""QA validation package for the incentive engine.

Checks loaded source data for conditions the engine tolerates but that
should be fixed upstream: non-monotonic goal tiers, duplicate goal rows,
activity under unknown base codes, and missing sources.
"""

from .validator import (
    DataQualityValidator,
    Issue,
    QAResult,
    validate_sources,
)

__all__ = [
    "DataQualityValidator",
    "Issue",
    "QAResult",
    "validate_sources",
]
