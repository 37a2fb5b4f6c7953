"""
Aggregated usage views.

All of these are derived on read from the stored log entries; none of them
is persisted.
"""

from dataclasses import asdict, dataclass
from typing import Any, Optional

# 5 hours in milliseconds, matching the rolling rate-limit windows
BILLING_BLOCK_MS = 5 * 60 * 60 * 1000


@dataclass
class TokenTotals:
    """Summed token counters and cost shared by every aggregation view."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0
    request_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DailyUsage(TokenTotals):
    date: str = ""  # YYYY-MM-DD, local time
    session_count: int = 0


@dataclass
class MonthlyUsage(TokenTotals):
    month: str = ""  # YYYY-MM, local time
    session_count: int = 0
    day_count: int = 0


@dataclass
class SessionUsage(TokenTotals):
    session_id: str = ""
    project_path: str = ""
    start_time: str = ""  # ISO timestamp
    end_time: str = ""  # ISO timestamp
    model: Optional[str] = None
    git_branch: Optional[str] = None


@dataclass
class BillingBlockUsage(TokenTotals):
    block_start: str = ""  # ISO timestamp, multiple of BILLING_BLOCK_MS
    block_end: str = ""  # ISO timestamp


@dataclass
class ProjectSummary:
    project_path: str
    session_count: int
    total_tokens: int
    cost_usd: float
    last_activity: str  # ISO timestamp

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
