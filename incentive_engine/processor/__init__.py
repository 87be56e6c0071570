"""Data processor package for the incentive engine.

``sources`` (the cached file-backed collaborator) is not re-exported here
because it depends on the engine package; import it directly.
"""

from .aggregation import (
    ActivityComparison,
    BaseActivity,
    DeliveryStatus,
    Trend,
    UnattributedVolume,
    average_scores,
    compare_periods,
    count_compliant_drivers,
    count_losses,
    delivery_status,
    fleet_totals,
    pending_leaders,
    summarize_activity,
    unattributed_volume,
)
from .ingestion import (
    SOURCE_TYPES,
    FieldMappingError,
    apply_field_map,
    clean_columns,
    detect_encoding,
    ingest,
    parse_compliance_status,
    parse_flag,
    parse_number,
    read_csv_auto,
    read_table,
)
from .keys import normalize_base, normalize_name, normalize_period
from .periods import ReportWindow, parse_local_date, previous_period, round_half_up
