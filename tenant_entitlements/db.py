"""
SQLAlchemy-backed subscription storage.

Tables:
- subscriptions: one row per tenant (tenant_id unique); rows are never
  deleted, canceled subscriptions stay as history
- tenants: maps a tenant to its organization (used for seat counts)
- patients, users, appointments, transactions: counted for plan limits

Usage:
    storage = SqlSubscriptionStorage(db_session)
    gate = EntitlementGate(storage)

All SQLAlchemy failures are rolled back and re-raised as
SubscriptionStorageError.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base

from .errors import SubscriptionStorageError
from .models import PATCHABLE_FIELDS, Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive values (SQLite drops tzinfo on round-trip)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SubscriptionRecord(Base):
    """Persisted subscription for a tenant."""

    __tablename__ = "subscriptions"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Internal UUID primary key"
    )

    tenant_id = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Owning tenant; exactly one subscription per tenant"
    )

    plan = Column(
        String(50),
        nullable=False,
        default="free",
        comment="Plan tier: free, basic, professional, enterprise"
    )

    status = Column(
        String(50),
        nullable=False,
        default=SubscriptionStatus.TRIALING.value,
        index=True,
        comment="active, trialing, past_due, canceled, incomplete"
    )

    start_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    end_date = Column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
        comment="NULL means no expiration scheduled"
    )
    canceled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def to_domain(self) -> Subscription:
        return Subscription(
            id=self.id,
            tenant_id=self.tenant_id,
            plan=self.plan,
            status=self.status,
            start_date=_as_utc(self.start_date),
            end_date=_as_utc(self.end_date),
            canceled_at=_as_utc(self.canceled_at),
        )


class TenantRecord(Base):
    __tablename__ = "tenants"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    organization_id = Column(String(255), nullable=True, index=True)
    name = Column(String(255), nullable=True)


class PatientRecord(Base):
    __tablename__ = "patients"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(255), nullable=False, index=True)


class UserRecord(Base):
    __tablename__ = "users"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    organization_id = Column(String(255), nullable=False, index=True)
    email = Column(String(255), nullable=True)


class AppointmentRecord(Base):
    __tablename__ = "appointments"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(255), nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False)


class TransactionRecord(Base):
    __tablename__ = "transactions"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class SqlSubscriptionStorage:
    """
    SubscriptionStorage implementation over a SQLAlchemy session.

    Reads bypass the session identity map so every call sees the stored row.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_subscription(self, tenant_id: str) -> Optional[Subscription]:
        try:
            record = (
                self.db.query(SubscriptionRecord)
                .populate_existing()
                .filter(SubscriptionRecord.tenant_id == tenant_id)
                .first()
            )
        except SQLAlchemyError as e:
            raise self._failed(tenant_id, "get_subscription", e) from e
        return record.to_domain() if record else None

    def update_subscription(self, tenant_id: str, patch: Mapping[str, Any]) -> Subscription:
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot patch subscription fields: {', '.join(sorted(unknown))}")

        try:
            record = (
                self.db.query(SubscriptionRecord)
                .filter(SubscriptionRecord.tenant_id == tenant_id)
                .first()
            )
            if record is None:
                raise SubscriptionStorageError(tenant_id, "update_subscription")
            for name, value in patch.items():
                if hasattr(value, "value"):
                    value = value.value
                setattr(record, name, value)
            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError as e:
            raise self._failed(tenant_id, "update_subscription", e) from e
        return record.to_domain()

    def create_subscription(self, subscription: Subscription) -> Subscription:
        record = SubscriptionRecord(
            id=subscription.id,
            tenant_id=subscription.tenant_id,
            plan=subscription.plan.value,
            status=subscription.status.value,
            start_date=subscription.start_date,
            end_date=subscription.end_date,
            canceled_at=subscription.canceled_at,
        )
        try:
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError as e:
            raise self._failed(subscription.tenant_id, "create_subscription", e) from e
        return record.to_domain()

    def list_expired_subscriptions(self, now: datetime) -> List[Subscription]:
        try:
            records = (
                self.db.query(SubscriptionRecord)
                .filter(
                    SubscriptionRecord.end_date.isnot(None),
                    SubscriptionRecord.end_date < _as_utc(now),
                )
                .order_by(SubscriptionRecord.tenant_id)
                .all()
            )
        except SQLAlchemyError as e:
            raise self._failed(None, "list_expired_subscriptions", e) from e
        return [r.to_domain() for r in records]

    def count_patients(self, tenant_id: str) -> int:
        return self._count(
            tenant_id,
            "count_patients",
            self.db.query(func.count(PatientRecord.id)).filter(PatientRecord.tenant_id == tenant_id),
        )

    def get_organization_id(self, tenant_id: str) -> Optional[str]:
        try:
            tenant = self.db.query(TenantRecord).filter(TenantRecord.id == tenant_id).first()
        except SQLAlchemyError as e:
            raise self._failed(tenant_id, "get_organization_id", e) from e
        return tenant.organization_id if tenant else None

    def count_users(self, organization_id: str) -> int:
        return self._count(
            None,
            "count_users",
            self.db.query(func.count(UserRecord.id)).filter(UserRecord.organization_id == organization_id),
        )

    def count_appointments(self, tenant_id: str, start: datetime, end: datetime) -> int:
        return self._count(
            tenant_id,
            "count_appointments",
            self.db.query(func.count(AppointmentRecord.id)).filter(
                AppointmentRecord.tenant_id == tenant_id,
                AppointmentRecord.start_time >= _as_utc(start),
                AppointmentRecord.start_time < _as_utc(end),
            ),
        )

    def count_transactions(self, tenant_id: str, start: datetime, end: datetime) -> int:
        return self._count(
            tenant_id,
            "count_transactions",
            self.db.query(func.count(TransactionRecord.id)).filter(
                TransactionRecord.tenant_id == tenant_id,
                TransactionRecord.created_at >= _as_utc(start),
                TransactionRecord.created_at < _as_utc(end),
            ),
        )

    def _count(self, tenant_id: Optional[str], operation: str, query) -> int:
        try:
            return int(query.scalar() or 0)
        except SQLAlchemyError as e:
            raise self._failed(tenant_id, operation, e) from e

    def _failed(self, tenant_id: Optional[str], operation: str, error: Exception) -> SubscriptionStorageError:
        self.db.rollback()
        logger.error(
            "Subscription storage operation failed",
            extra={"tenant_id": tenant_id, "operation": operation, "error": str(error)},
        )
        return SubscriptionStorageError(tenant_id, operation, cause=error)
