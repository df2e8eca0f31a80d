"""
WasteWatch AI - Constants and Policy Values
Fixed policy numbers used throughout the pipeline.
"""

from datetime import timedelta
from typing import Dict, FrozenSet, Tuple

# =============================================================================
# INTAKE POLICY
# =============================================================================

# Oracle confidence must be strictly above this to accept a report
INTAKE_CONFIDENCE_THRESHOLD: float = 0.6

# Points awarded to the citizen when a report is accepted
INTAKE_REWARD_POINTS: int = 2

# Low-confidence reports are re-analysed at most this many times in total
MAX_INTAKE_ATTEMPTS: int = 3

# =============================================================================
# CLEANUP POLICY
# =============================================================================

# Points awarded to each of citizen and sweeper on verified cleanup
CLEANUP_REWARD_POINTS: int = 2

NOT_CLEAN_LEVEL: str = "not clean"

# =============================================================================
# CLASSIFICATION AND SEVERITY
# =============================================================================

VALID_CLASSIFICATIONS: FrozenSet[str] = frozenset({"dry", "wet", "mixed", "none"})

VALID_SEVERITIES: FrozenSet[str] = frozenset({"red", "yellow", "green", "none"})

# Lower number = more urgent
SEVERITY_PRIORITY: Dict[str, int] = {
    "red": 1,
    "yellow": 2,
}
DEFAULT_PRIORITY: int = 3

# Substrings of the oracle's free-text wasteType hinting at composition
WET_WASTE_HINTS: Tuple[str, ...] = (
    "organic",
    "food",
    "kitchen",
    "garden",
    "compost",
)
DRY_WASTE_HINTS: Tuple[str, ...] = (
    "plastic",
    "paper",
    "cardboard",
    "metal",
    "glass",
    "textile",
)

# =============================================================================
# GEOSPATIAL
# =============================================================================

# Reports within 100 meters of a group seed are batched together
GROUPING_DISTANCE_KM: float = 0.1

MIN_GROUP_SIZE: int = 2

# A GPS fix older/newer than this relative to upload is suspicious
MAX_GPS_TIME_SKEW_SECONDS: int = 2 * 60

# GPS accuracy radius (meters) above which a location is suspicious
MAX_GPS_ACCURACY_METERS: float = 100.0

# =============================================================================
# ORACLE
# =============================================================================

ORACLE_TIMEOUT_SECONDS: float = 30.0

RETRYABLE_STATUS_CODES: FrozenSet[int] = frozenset({429, 500, 502, 503, 504})

# =============================================================================
# CORRELATION
# =============================================================================

# Upload timestamp embedded in file names vs. report createdAt
CORRELATION_WINDOW_SECONDS: int = 60

# Recent reports scanned when exact URI matching fails
CORRELATION_SCAN_LIMIT: int = 50

# Candidates considered for the most-recent-report last resort
LATEST_FALLBACK_LIMIT: int = 10

# Custom object metadata key carrying the owning report id
REPORT_ID_METADATA_KEY: str = "reportId"

# =============================================================================
# REWARD MILESTONES
# =============================================================================

MILESTONE_INTAKE_CITIZEN: str = "intake_citizen"
MILESTONE_CLEANUP_CITIZEN: str = "cleanup_citizen"
MILESTONE_CLEANUP_SWEEPER: str = "cleanup_sweeper"

REWARD_PENDING: str = "pending"
REWARD_AWARDED: str = "awarded"
REWARD_FAILED: str = "failed"

# Age after which a pending reward marker counts as abandoned
REWARD_SETTLE_AFTER: timedelta = timedelta(minutes=30)
