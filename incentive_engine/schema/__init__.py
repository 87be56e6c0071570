"""Schema package: typed models and configuration for the incentive engine.

- models.py: Input records, goal definitions, and result dataclasses
- field_maps.py: Versioned column-mapping table per data source
- loader.py: YAML serialization of the mapping table
- design_system.py: Value formatting for CLI output
"""

from .design_system import (
    format_currency,
    format_integer,
    format_percentage,
    format_reward,
    format_tier,
)
from .field_maps import (
    FIELD_MAP_VERSION,
    FieldMap,
    build_default_field_maps,
    goal_source,
)
from .loader import load_field_maps, save_field_maps
from .models import (
    PILLAR_ORDER,
    PILLAR_UNITS,
    Base,
    BaseIncentiveReport,
    ComplianceRecord,
    ComplianceStatus,
    GateStatus,
    GoalDefinition,
    GuaranteedBalance,
    LossEvent,
    OperationalRecord,
    Pillar,
    PillarResult,
    ProtagonismScore,
    ResultStatus,
    ThresholdUnit,
)

__all__ = [
    # Models
    "PILLAR_ORDER",
    "PILLAR_UNITS",
    "Base",
    "BaseIncentiveReport",
    "ComplianceRecord",
    "ComplianceStatus",
    "GateStatus",
    "GoalDefinition",
    "GuaranteedBalance",
    "LossEvent",
    "OperationalRecord",
    "Pillar",
    "PillarResult",
    "ProtagonismScore",
    "ResultStatus",
    "ThresholdUnit",
    # Field maps
    "FIELD_MAP_VERSION",
    "FieldMap",
    "build_default_field_maps",
    "goal_source",
    # Loader
    "load_field_maps",
    "save_field_maps",
    # Formatting
    "format_currency",
    "format_integer",
    "format_percentage",
    "format_reward",
    "format_tier",
]
