"""
Unit Tests for Overview Service
"""

from datetime import datetime, timedelta

from clinic_giving.models import DonationSupporter
from clinic_giving.services.overview_service import WINDOW_DAYS, OverviewService, trailing_window

NOW = datetime(2026, 3, 15, 9, 30)


def _supporter(session, name, created_days_ago, contributed_days_ago=None, amount=100, count=1, public=False):
    created_at = NOW - timedelta(days=created_days_ago)
    contributed_at = NOW - timedelta(days=contributed_days_ago if contributed_days_ago is not None
                                     else created_days_ago)
    supporter = DonationSupporter(
        first_name=name.title(),
        normalized_name=name,
        total_amount=amount,
        donation_count=count,
        last_channel='M-Pesa',
        last_contribution_at=contributed_at,
        public_acknowledgement=public,
        created_at=created_at,
        updated_at=contributed_at
    )
    session.add(supporter)
    session.commit()
    return supporter


def test_window_is_thirty_calendar_days():
    start, end = trailing_window(NOW)

    assert start == datetime(2026, 2, 14)
    assert end == datetime(2026, 3, 16)
    assert (end - start).days == WINDOW_DAYS


def test_empty_ledger(session):
    overview = OverviewService.compute_overview(NOW)

    assert overview['totals'] == {
        'total_amount': 0,
        'total_gifts': 0,
        'total_supporters': 0,
        'public_supporters': 0,
        'active_supporters': 0,
        'new_supporters': 0
    }
    series = overview['recent_new_supporters']
    assert len(series) == 30
    assert series[0] == {'date': '2026-02-14', 'new_supporters': 0}
    assert series[-1] == {'date': '2026-03-15', 'new_supporters': 0}


def test_totals(session):
    _supporter(session, 'amina', created_days_ago=0, amount=2700, count=2, public=True)
    _supporter(session, 'baraka', created_days_ago=90, contributed_days_ago=3, amount=500)
    _supporter(session, 'chebet', created_days_ago=120, amount=1000, public=True)

    totals = OverviewService.compute_totals(NOW)

    assert totals['total_amount'] == 4200
    assert totals['total_gifts'] == 4
    assert totals['total_supporters'] == 3
    assert totals['public_supporters'] == 2
    assert totals['active_supporters'] == 2
    assert totals['new_supporters'] == 1


def test_series_sums_to_new_supporters(session):
    _supporter(session, 'amina', created_days_ago=0)
    _supporter(session, 'baraka', created_days_ago=0)
    _supporter(session, 'chebet', created_days_ago=10)
    _supporter(session, 'daudi', created_days_ago=29)
    _supporter(session, 'esther', created_days_ago=30)

    overview = OverviewService.compute_overview(NOW)
    series = overview['recent_new_supporters']

    assert sum(point['new_supporters'] for point in series) == overview['totals']['new_supporters'] == 4
    assert series[-1]['new_supporters'] == 2
    assert series[-11]['new_supporters'] == 1
    assert series[0] == {'date': '2026-02-14', 'new_supporters': 1}


def test_window_edges_use_start_of_day(session):
    # 29 days back at 00:00 is inside, 30 days back at 23:59 is outside
    first_day = datetime(2026, 2, 14)
    for name, created_at in (('inside', first_day), ('outside', first_day - timedelta(minutes=1))):
        session.add(DonationSupporter(
            first_name=name.title(),
            normalized_name=name,
            total_amount=100,
            donation_count=1,
            last_channel='PayPal',
            last_contribution_at=created_at,
            created_at=created_at,
            updated_at=created_at
        ))
    session.commit()

    totals = OverviewService.compute_totals(NOW)

    assert totals['new_supporters'] == 1
    assert totals['active_supporters'] == 1
