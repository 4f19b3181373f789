"""
Supporter Service
The supporter ledger: one row per donor name, accumulating totals
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from clinic_giving.errors import InvalidName, InvalidRequest, SupporterNotFound
from clinic_giving.extensions import db
from clinic_giving.models import DonationSupporter
from clinic_giving.services.overview_service import OverviewService
from clinic_giving.utils.logger import get_logger
from clinic_giving.utils.validators import (
    display_name,
    normalize_name,
    round_amount,
    utcnow,
    validate_channel,
)
from clinic_giving.websockets.events import emit_supporter_update

logger = get_logger(__name__)

# Dialects with INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    'postgresql': postgresql.insert,
    'sqlite': sqlite.insert,
}


def _name_keys(first_name: Optional[str]):
    display = display_name(first_name)
    if not display:
        raise InvalidName()
    key = normalize_name(display)
    if not key:
        raise InvalidName()
    return display, key


class SupporterService:
    """Service for recording contributions against the supporter ledger"""

    @staticmethod
    def record_contribution(
            first_name: str,
            amount,
            channel: str,
            share_consent: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Add a contribution to the supporter keyed by the donor's normalised name

        Args:
            first_name: Donor name as entered
            amount: Contribution in KES, rounded half-up
            channel: One of M-Pesa, PayPal, Cash/Other
            share_consent: pending, granted or declined

        Returns:
            {'supporter', 'totals', 'recent_new_supporters'}

        Raises:
            InvalidName: when nothing usable is left of the name
            InvalidRequest: for an unknown channel or a non-positive amount
        """
        display, key = _name_keys(first_name)

        is_valid, error = validate_channel(channel)
        if not is_valid:
            raise InvalidRequest(error)

        contribution = round_amount(amount)
        if contribution is None or contribution <= 0:
            raise InvalidRequest('Contribution amount must be a positive number.')

        now = utcnow()
        try:
            SupporterService._upsert(display, key, contribution, channel, share_consent, now)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        supporter = DonationSupporter.query.filter_by(normalized_name=key).one()
        logger.info(f'Recorded {contribution} KES via {channel} for supporter {supporter.id}')

        result = SupporterService._with_overview(supporter)
        emit_supporter_update(result)
        return result

    @staticmethod
    def set_acknowledgement(
            share_consent: str,
            supporter_id=None,
            first_name: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Change whether a supporter is publicly acknowledged. Totals are untouched.

        Args:
            share_consent: granted or declined
            supporter_id: Supporter UUID (takes precedence over first_name)
            first_name: Donor name, resolved through the normalised key

        Raises:
            InvalidRequest: bad consent value, or neither id nor name given
            InvalidName: name has no usable characters
            SupporterNotFound: no matching supporter
        """
        if share_consent not in ('granted', 'declined'):
            raise InvalidRequest("share_consent must be 'granted' or 'declined'")

        if supporter_id:
            if not isinstance(supporter_id, uuid.UUID):
                try:
                    supporter_id = uuid.UUID(str(supporter_id))
                except ValueError:
                    raise InvalidRequest('supporter_id must be a UUID')
            supporter = db.session.get(DonationSupporter, supporter_id)
        elif first_name:
            _, key = _name_keys(first_name)
            supporter = DonationSupporter.query.filter_by(normalized_name=key).first()
        else:
            raise InvalidRequest()

        if supporter is None:
            raise SupporterNotFound()

        supporter.public_acknowledgement = share_consent == 'granted'
        db.session.commit()

        result = SupporterService._with_overview(supporter)
        emit_supporter_update(result)
        return result

    @staticmethod
    def get_donation_snapshots() -> Dict[str, Any]:
        """
        Every supporter, acknowledged and most recent first, plus the overview

        Returns:
            {'supporters', 'totals', 'recent_new_supporters'}
        """
        supporters = DonationSupporter.query.order_by(
            DonationSupporter.public_acknowledgement.desc(),
            DonationSupporter.last_contribution_at.desc(),
            DonationSupporter.donation_count.desc()
        ).all()

        overview = OverviewService.compute_overview()
        return {
            'supporters': [supporter.to_snapshot() for supporter in supporters],
            'totals': overview['totals'],
            'recent_new_supporters': overview['recent_new_supporters']
        }

    @staticmethod
    def _with_overview(supporter: DonationSupporter) -> Dict[str, Any]:
        overview = OverviewService.compute_overview()
        return {
            'supporter': supporter.to_snapshot(),
            'totals': overview['totals'],
            'recent_new_supporters': overview['recent_new_supporters']
        }

    @staticmethod
    def _upsert(display: str, key: str, amount: int, channel: str,
                share_consent: Optional[str], now: datetime) -> None:
        """
        Create the supporter or add to its totals in one statement.

        Concurrent contributions for the same name never lose an increment:
        the increment happens inside the database.
        """
        table = DonationSupporter.__table__
        updates = {
            'first_name': display,
            'total_amount': table.c.total_amount + amount,
            'donation_count': table.c.donation_count + 1,
            'last_channel': channel,
            'last_contribution_at': now,
            'updated_at': now,
        }
        # pending (or no answer) leaves an existing choice alone
        if share_consent in ('granted', 'declined'):
            updates['public_acknowledgement'] = share_consent == 'granted'

        dialect = db.session.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            SupporterService._locked_upsert(display, key, amount, channel, share_consent, now, updates)
            return

        stmt = insert(table).values(
            id=uuid.uuid4(),
            first_name=display,
            normalized_name=key,
            total_amount=amount,
            donation_count=1,
            last_channel=channel,
            last_contribution_at=now,
            public_acknowledgement=share_consent == 'granted',
            created_at=now,
            updated_at=now,
        ).on_conflict_do_update(
            index_elements=[table.c.normalized_name],
            set_=updates,
        )
        db.session.execute(stmt)

    @staticmethod
    def _locked_upsert(display, key, amount, channel, share_consent, now, updates) -> None:
        """Read-modify-write under a row lock, for dialects without ON CONFLICT."""
        table = DonationSupporter.__table__

        supporter = DonationSupporter.query.filter_by(normalized_name=key).with_for_update().first()
        if supporter is None:
            try:
                with db.session.begin_nested():
                    db.session.add(DonationSupporter(
                        first_name=display,
                        normalized_name=key,
                        total_amount=amount,
                        donation_count=1,
                        last_channel=channel,
                        last_contribution_at=now,
                        public_acknowledgement=share_consent == 'granted',
                        created_at=now,
                        updated_at=now,
                    ))
                return
            except IntegrityError:
                # Another writer created the row first; fall through to the update
                pass

        db.session.execute(
            table.update().where(table.c.normalized_name == key).values(**updates)
        )
