"""
Overview Service
Derived giving statistics; nothing here is persisted
"""

from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import case, func

from clinic_giving.extensions import db
from clinic_giving.models import DonationSupporter
from clinic_giving.utils.validators import utcnow

WINDOW_DAYS = 30


def trailing_window(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    The WINDOW_DAYS UTC calendar days ending today, as [start, end).

    "Active", "new" and the daily series all use this window, so the series
    always sums to the new-supporter total.
    """
    today = (now or utcnow()).date()
    start = datetime.combine(today - timedelta(days=WINDOW_DAYS - 1), time.min)
    end = datetime.combine(today + timedelta(days=1), time.min)
    return start, end


class OverviewService:
    """Aggregates over the supporter ledger"""

    @staticmethod
    def compute_totals(now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Ledger-wide totals via SQL aggregates

        Returns:
            Dict with total_amount, total_gifts, total_supporters,
            public_supporters, active_supporters, new_supporters
        """
        start, end = trailing_window(now)

        def in_window(column):
            return case(((column >= start) & (column < end), 1), else_=0)

        row = db.session.query(
            func.coalesce(func.sum(DonationSupporter.total_amount), 0),
            func.coalesce(func.sum(DonationSupporter.donation_count), 0),
            func.count(DonationSupporter.id),
            func.coalesce(func.sum(case((DonationSupporter.public_acknowledgement.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(in_window(DonationSupporter.last_contribution_at)), 0),
            func.coalesce(func.sum(in_window(DonationSupporter.created_at)), 0),
        ).one()

        total_amount, total_gifts, total_supporters, public_supporters, active, new = row

        return {
            'total_amount': int(total_amount),
            'total_gifts': int(total_gifts),
            'total_supporters': int(total_supporters),
            'public_supporters': int(public_supporters),
            'active_supporters': int(active),
            'new_supporters': int(new)
        }

    @staticmethod
    def build_recent_series(now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        New supporters per UTC day over the trailing window, oldest first.

        Always WINDOW_DAYS points; days without new supporters count zero.
        """
        start, end = trailing_window(now)

        created = db.session.query(DonationSupporter.created_at).filter(
            DonationSupporter.created_at >= start,
            DonationSupporter.created_at < end
        ).all()

        counts: Dict[str, int] = {}
        for (created_at,) in created:
            key = created_at.date().isoformat()
            counts[key] = counts.get(key, 0) + 1

        series = []
        for offset in range(WINDOW_DAYS):
            day = (start + timedelta(days=offset)).date().isoformat()
            series.append({'date': day, 'new_supporters': counts.get(day, 0)})

        return series

    @staticmethod
    def compute_overview(now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Totals plus the daily new-supporter series

        Returns:
            {'totals': {...}, 'recent_new_supporters': [...]}
        """
        now = now or utcnow()
        return {
            'totals': OverviewService.compute_totals(now),
            'recent_new_supporters': OverviewService.build_recent_series(now)
        }
