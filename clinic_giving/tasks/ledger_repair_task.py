from clinic_giving.extensions import celery_app
from clinic_giving.services.donation_service import DonationService
from clinic_giving.utils.logger import get_logger

logger = get_logger(__name__)


@celery_app.task(name='repair_unrecorded_contributions_task')
def repair_unrecorded_contributions(limit: int = 100) -> int:
    """
    Re-record successful donations whose supporter ledger step failed

    Runs on the beat schedule (LEDGER_REPAIR_INTERVAL). Each transaction is
    repaired independently; one failure does not stop the sweep.

    Returns:
        Number of transactions linked to a supporter
    """
    repaired = 0

    for transaction in DonationService.find_unrecorded_contributions(limit=limit):
        try:
            DonationService.repair_ledger(transaction.id)
            repaired += 1
        except Exception as e:
            logger.error(f'Ledger repair failed for transaction {transaction.id}: {str(e)}')

    if repaired:
        logger.info(f'Ledger repair linked {repaired} donation(s) to supporters')

    return repaired
