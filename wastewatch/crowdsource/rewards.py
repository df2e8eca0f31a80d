"""
Reward ledger for citizens and sweepers
Atomic point increments on user accounts
"""

import logging
from typing import Optional

from wastewatch.core.constants import REWARD_AWARDED, REWARD_FAILED
from wastewatch.core.errors import LedgerUpdateError
from wastewatch.crowdsource.report_handler import ReportHandler, to_iso, utc_now
from wastewatch.database.document_store import DocumentStore

logger = logging.getLogger(__name__)

# Account counters bumped alongside points
COUNTER_TOTAL_REPORTS = "totalReports"
COUNTER_TOTAL_CLEANED = "totalCleaned"


class RewardLedger:
    """
    Awards points to accounts.

    Callers only award after winning the guarded report write that claimed
    the milestone, so every award runs at most once per milestone.
    """

    def __init__(
        self,
        store: DocumentStore,
        reports: ReportHandler,
        users_collection: str = "users"
    ):
        """
        Initialize reward ledger.

        Args:
            store: Document store holding accounts
            reports: Report repository, for milestone markers
            users_collection: Account collection name
        """
        self.store = store
        self.reports = reports
        self.users_collection = users_collection

    def award(self, account_id: str, points: int, counter: Optional[str] = None) -> None:
        """
        Atomically add points (and optionally bump a counter) on an account.

        The account record is created with merge semantics if absent.

        Raises:
            LedgerUpdateError: If the increment could not be written
        """
        if not account_id:
            raise LedgerUpdateError("Cannot award points without an account id")

        deltas = {"points": points}
        if counter:
            deltas[counter] = 1

        try:
            self.store.increment(
                self.users_collection,
                account_id,
                deltas,
                fields={"lastPointsUpdate": to_iso(utc_now())},
            )
        except Exception as e:
            raise LedgerUpdateError(
                f"Failed to award {points} points to {account_id}: {e}",
                details={"account_id": account_id, "points": points, "counter": counter},
                original_exception=e,
            )

        logger.info(f"Awarded {points} points to {account_id}")

    def award_milestone(
        self,
        report_id: str,
        milestone: str,
        account_id: Optional[str],
        points: int,
        counter: Optional[str] = None
    ) -> bool:
        """
        Pay out a claimed milestone and record the outcome on the report.

        Failures are logged for manual reconciliation and leave the marker
        ``failed``; they are never retried automatically.

        Returns:
            True if the points were awarded
        """
        try:
            self.award(account_id, points, counter=counter)
        except LedgerUpdateError as e:
            logger.error(
                f"Reward {milestone} for report {report_id} failed, needs manual reconciliation: {e}"
            )
            self.reports.set_reward_state(report_id, milestone, REWARD_FAILED)
            return False

        self.reports.set_reward_state(report_id, milestone, REWARD_AWARDED)
        return True

    def get_points(self, account_id: str) -> int:
        """Current point balance of an account (0 if unknown)."""
        account = self.store.get(self.users_collection, account_id) or {}
        return int(account.get("points") or 0)
