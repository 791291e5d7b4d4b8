"""Attribution ledger: rewards referrers and records commissions.

Attribution is two writes:

1. Insert the commission record. The unique index on ``referred_id`` makes
   this the idempotency gate; a duplicate attempt is a no-op.
2. In one transaction: claim the record by setting ``rewarded_at`` where it
   is still empty, increment the referrer's accumulator and append the
   referred ID to its referral list.

If step 2 fails the record stays behind with ``rewarded_at`` empty;
``reconcile`` applies the reward for exactly those records.
"""

from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from bazaar.accounts.models import HOLDER_MODELS, EntityType
from bazaar.errors import NotFoundError, SelfReferralError
from bazaar.logging_config import get_logger
from bazaar.referral.models import CommissionStatus, ReferralCommission, RewardUnit
from bazaar.settings import settings
from bazaar.storage.db import Database, db
from bazaar.storage.models import utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class RewardPolicy:
    """What a referrer earns and which accumulator it lands in."""
    amount: float
    field: str
    unit: RewardUnit


def reward_policy_for(referrer_type: EntityType) -> RewardPolicy:
    """Flat currency reward for salespeople, flat points for everyone else."""
    if referrer_type == EntityType.SALESPERSON:
        return RewardPolicy(
            amount=settings.salesperson_referral_reward,
            field="referral_balance",
            unit=RewardUnit.CURRENCY,
        )
    return RewardPolicy(
        amount=settings.referral_points_reward,
        field="points",
        unit=RewardUnit.POINTS,
    )


class AttributionLedger:
    """Applies referral rewards at most once per referred entity."""

    def __init__(self, database: Database | None = None):
        """Initialize ledger.

        Args:
            database: Database to use (defaults to the global instance)
        """
        self.db = database or db
        self.logger = get_logger(__name__)

    def attribute(
        self,
        referrer_id: str,
        referrer_type: EntityType,
        referred_id: str,
        referred_type: EntityType | None = None,
        referral_code: str | None = None,
        policy: RewardPolicy | None = None,
    ) -> ReferralCommission | None:
        """Credit a referrer for a referred entity.

        Args:
            referrer_id: ID of the entity whose code was used
            referrer_type: Entity type of the referrer
            referred_id: ID of the newly referred entity
            referred_type: Entity type of the referred entity
            referral_code: Code that was used
            policy: Reward override (defaults by referrer type)

        Returns:
            The new commission record, or None if the referred entity was
            already attributed

        Raises:
            SelfReferralError: If referrer and referred are the same entity
            NotFoundError: If the referrer no longer exists
            TransientStorageError: If the reward write failed; the record is
                kept for reconciliation
        """
        if referrer_id == referred_id:
            raise SelfReferralError(referred_id)

        policy = policy or reward_policy_for(referrer_type)

        record = self._insert_record(
            referrer_id=referrer_id,
            referrer_type=referrer_type,
            referred_id=referred_id,
            referred_type=referred_type,
            referral_code=referral_code,
            policy=policy,
        )
        if record is None:
            return None

        try:
            self._apply_reward(record.id, policy)
        except Exception as e:
            self.logger.error(
                "referral_reward_pending_reconciliation",
                commission_id=record.id,
                referrer_id=referrer_id,
                referred_id=referred_id,
                error=str(e),
            )
            raise

        self.logger.info(
            "referral_attributed",
            commission_id=record.id,
            referrer_id=referrer_id,
            referrer_type=referrer_type.value,
            referred_id=referred_id,
            amount=policy.amount,
            unit=policy.unit.value,
        )
        return record

    def _insert_record(
        self,
        referrer_id: str,
        referrer_type: EntityType,
        referred_id: str,
        referred_type: EntityType | None,
        referral_code: str | None,
        policy: RewardPolicy,
    ) -> ReferralCommission | None:
        try:
            with self.db.session() as session:
                existing = session.scalar(
                    select(ReferralCommission.id).where(ReferralCommission.referred_id == referred_id)
                )
                if existing is not None:
                    self.logger.info("referral_already_attributed", referred_id=referred_id)
                    return None

                record = ReferralCommission(
                    referrer_id=referrer_id,
                    referrer_type=referrer_type,
                    referred_id=referred_id,
                    referred_type=referred_type,
                    amount=policy.amount,
                    reward_unit=policy.unit,
                    referral_code=referral_code,
                    status=CommissionStatus.EARNED,
                )
                session.add(record)
                session.flush()
        except IntegrityError:
            # Lost the race against a concurrent attribution of the same entity
            self.logger.info("referral_already_attributed", referred_id=referred_id, concurrent=True)
            return None

        return record

    def _apply_reward(self, record_id: str, policy: RewardPolicy) -> bool:
        """Claim a commission record and credit its referrer.

        The claim, the increment and the list append commit together, so a
        record is either rewarded exactly once or left unclaimed.

        Returns:
            False if the record was already rewarded
        """
        with self.db.session() as session:
            # Claim first: this write takes the lock that serialises every
            # reward on SQLite, and marks the record for reconcile elsewhere
            claimed = session.execute(
                update(ReferralCommission)
                .where(
                    ReferralCommission.id == record_id,
                    ReferralCommission.rewarded_at.is_(None),
                )
                .values(rewarded_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                return False

            record = session.get(ReferralCommission, record_id)
            model = HOLDER_MODELS[record.referrer_type]
            accumulator = getattr(model, policy.field)

            holder = session.scalar(
                select(model).where(model.id == record.referrer_id).with_for_update()
            )
            if holder is None:
                raise NotFoundError(f"Referrer {record.referrer_id} not found")

            # Atomic increment at the storage layer, never read-modify-write
            session.execute(
                update(model)
                .where(model.id == record.referrer_id)
                .values({policy.field: accumulator + policy.amount, "updated_at": utcnow()})
                .execution_options(synchronize_session=False)
            )
            # Safe under the holder lock
            referrals = list(holder.referrals or [])
            if record.referred_id not in referrals:
                holder.referrals = [*referrals, record.referred_id]

        return True

    def reconcile(self) -> int:
        """Apply rewards for commission records that were never rewarded.

        Returns:
            Number of records whose reward was applied
        """
        with self.db.session() as session:
            records = list(
                session.scalars(
                    select(ReferralCommission)
                    .where(ReferralCommission.rewarded_at.is_(None))
                    .order_by(ReferralCommission.created_at)
                )
            )

        repaired = 0
        for record in records:
            policy = RewardPolicy(
                amount=record.amount,
                field=reward_policy_for(record.referrer_type).field,
                unit=record.reward_unit,
            )
            try:
                applied = self._apply_reward(record.id, policy)
            except NotFoundError:
                self.logger.warning(
                    "commission_referrer_missing",
                    commission_id=record.id,
                    referrer_id=record.referrer_id,
                )
                continue

            if applied:
                repaired += 1
                self.logger.info(
                    "commission_reconciled",
                    commission_id=record.id,
                    referrer_id=record.referrer_id,
                    referred_id=record.referred_id,
                )

        self.logger.info("reconcile_completed", checked=len(records), repaired=repaired)
        return repaired

    def get_commission_for(self, referred_id: str) -> ReferralCommission | None:
        """Commission record for a referred entity, if any."""
        with self.db.session() as session:
            return session.scalar(
                select(ReferralCommission).where(ReferralCommission.referred_id == referred_id)
            )

    def list_commissions(
        self,
        referrer_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ReferralCommission]:
        """Commission records earned by a referrer, newest first."""
        with self.db.session() as session:
            return list(
                session.scalars(
                    select(ReferralCommission)
                    .where(ReferralCommission.referrer_id == referrer_id)
                    .order_by(ReferralCommission.created_at.desc())
                    .limit(limit)
                    .offset(offset)
                )
            )

    def summary(self, referrer_id: str) -> dict[str, Any]:
        """Count and total amount of commissions for a referrer."""
        with self.db.session() as session:
            count, total = session.execute(
                select(
                    func.count(ReferralCommission.id),
                    func.coalesce(func.sum(ReferralCommission.amount), 0.0),
                ).where(ReferralCommission.referrer_id == referrer_id)
            ).one()
        return {"count": count, "total_amount": float(total)}
