"""
Monthly usage reporting.

Combines the stored monthly usage reports with the number of days a dose
was logged in each month.
"""

import logging
from collections import defaultdict

import pandas as pd

from infusion_ledger.domain.therapy import ProductCategory
from infusion_ledger.services.ledger import TherapyLedger
from infusion_ledger.utils.timezone_utils import month_key

logger = logging.getLogger(__name__)

COUNTER_COLUMNS = [category.value for category in ProductCategory]
SUMMARY_COLUMNS = ["month", "year", "usage_days", *COUNTER_COLUMNS]


class ReportService:
    """
    Service for building usage summaries from a ledger.

    Reads only; nothing here changes the ledger.
    """

    def __init__(self, ledger: TherapyLedger) -> None:
        """
        Initialize report service.

        Args:
            ledger: Ledger to report on.
        """
        self.ledger = ledger

    def usage_days_by_month(self) -> dict[str, int]:
        """
        Count logged days per month.

        Returns:
            Mapping of month key (YYYY-MM) to number of days with a dose.
        """
        days: dict[str, int] = defaultdict(int)
        for event in self.ledger.get_events():
            days[month_key(event.day)] += 1
        return dict(days)

    def monthly_summary(self) -> pd.DataFrame:
        """
        Build one row per month, newest first.

        A month appears if it has a usage report or a logged event. Because
        deleting an event keeps its usage counts, a month can show counts
        with fewer (or zero) usage days.

        Returns:
            DataFrame with columns month, year, usage_days, primary,
            secondary, accessory.
        """
        reports = pd.DataFrame(
            [r.model_dump() for r in self.ledger.get_usage_reports()],
            columns=["month", *COUNTER_COLUMNS],
        )

        days = self.usage_days_by_month()
        usage_days = pd.DataFrame(
            {
                "month": pd.Series(list(days.keys()), dtype="object"),
                "usage_days": pd.Series(list(days.values()), dtype="int64"),
            }
        )
        reports["month"] = reports["month"].astype("object")

        if reports.empty and usage_days.empty:
            return pd.DataFrame(columns=SUMMARY_COLUMNS)

        summary = reports.merge(usage_days, on="month", how="outer")

        count_columns = ["usage_days", *COUNTER_COLUMNS]
        summary[count_columns] = summary[count_columns].fillna(0).astype(int)
        summary["year"] = summary["month"].astype(str).str.slice(0, 4).astype(int)

        summary = summary.sort_values("month", ascending=False).reset_index(drop=True)

        logger.debug(f"Built monthly summary with {len(summary)} rows")
        return summary[SUMMARY_COLUMNS]
