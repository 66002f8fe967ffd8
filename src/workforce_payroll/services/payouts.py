"""Pay runs, payouts and bank transfer export for approved payroll."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.clock import Clock, SystemClock
from workforce_payroll.config import DEFAULT_PAYOUT_MESSAGE, Settings
from workforce_payroll.errors import (
    ConflictError,
    NotFoundError,
    NotificationError,
    StoreError,
    ValidationError,
)
from workforce_payroll.line_items import round2
from workforce_payroll.models import (
    Payout,
    PayoutMethod,
    PayoutStatus,
    PayrollRecord,
    PayrollRun,
    PayrollRunStatus,
    User,
    UserRole,
)
from workforce_payroll.services.notifications import NotificationSender
from workforce_payroll.services.state_machine import PayrollStatus

logger = logging.getLogger(__name__)

BANK_EXPORT_HEADER = ("AccountNumber", "IFSC", "Amount", "Remarks")
MISSING_BANK_DETAILS_MESSAGE = "Salary payment issue detected. Please update bank details."


@dataclass(frozen=True)
class BankDetails:
    account_number: str
    ifsc: str


@dataclass(frozen=True)
class PayoutEntry:
    record: PayrollRecord
    bank: BankDetails


@dataclass
class BankExport:
    """Result of an export: the CSV and what went into it."""

    csv: str
    total_amount: Decimal = Decimal("0.00")
    exported_ids: list[UUID] = field(default_factory=list)
    skipped_employee_ids: list[UUID] = field(default_factory=list)


@dataclass
class PayrollRunResult:
    """A committed pay run with its payouts and transfer file."""

    run: PayrollRun
    payouts: list[Payout]
    csv: str
    skipped_employee_ids: list[UUID] = field(default_factory=list)


class PayoutService:
    """Pays approved payroll records out to employees' bank accounts.

    A pay run turns approved, unlocked records into payouts and locks the
    records in a single commit. Payouts then settle one at a time as the
    transfers succeed or fail.
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier: NotificationSender,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.notifier = notifier
        self.clock = clock or SystemClock()
        self.payout_message = (
            settings.payout_message_template if settings is not None else DEFAULT_PAYOUT_MESSAGE
        )

    @staticmethod
    def generate_bank_export(entries: Iterable[PayoutEntry]) -> str:
        """Render ``AccountNumber,IFSC,Amount,Remarks`` CSV, one row per entry."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(BANK_EXPORT_HEADER)
        for entry in entries:
            writer.writerow(
                [
                    entry.bank.account_number,
                    entry.bank.ifsc,
                    f"{round2(entry.record.net_pay):.2f}",
                    f"Payroll {entry.record.period_start.isoformat()}",
                ]
            )
        return buffer.getvalue().rstrip("\n")

    async def export_approved(
        self, organization_id: UUID, period_start: date, period_end: date
    ) -> BankExport:
        """Export approved records whose period lies inside the window.

        Employees without bank details are left out and told to update them.
        """
        entries, skipped = await self._approved_entries(organization_id, period_start, period_end)
        await self._remind_missing_bank_details(organization_id, skipped)

        total = round2(sum((entry.record.net_pay for entry in entries), Decimal("0")))
        logger.info(
            "Bank export for organization %s (%s - %s): %d row(s), total %s",
            organization_id,
            period_start,
            period_end,
            len(entries),
            total,
        )
        return BankExport(
            csv=self.generate_bank_export(entries),
            total_amount=total,
            exported_ids=[entry.record.payroll_record_id for entry in entries],
            skipped_employee_ids=skipped,
        )

    async def run_payroll(
        self,
        organization_id: UUID,
        period_start: date,
        period_end: date,
        admin_id: UUID,
        method: PayoutMethod | str = PayoutMethod.MANUAL,
    ) -> PayrollRunResult:
        """Pay every approved, unlocked record in the window.

        Creates the run, one payout per record and locks the records, all in
        one commit. Manual runs are paid on creation; auto runs stay pending
        until each payout settles. Admins and paid employees are notified
        after the commit.

        Raises:
            ValidationError: Bad window or method, an actor who cannot manage
                payroll, or nothing left to pay
            ConflictError: A concurrent run locked some of the records first
            StoreError: The run could not be written; nothing was persisted
        """
        try:
            method = PayoutMethod(method)
        except ValueError as e:
            raise ValidationError("method", f"unknown payout method {method!r}") from e
        await self._require_payroll_manager(organization_id, admin_id)

        entries, skipped = await self._approved_entries(
            organization_id, period_start, period_end, unlocked_only=True
        )
        if not entries:
            await self._remind_missing_bank_details(organization_id, skipped)
            raise ValidationError(
                "period", f"no approved unpaid payroll in {period_start} - {period_end}"
            )

        now = self.clock.now()
        manual = method == PayoutMethod.MANUAL
        total = round2(sum((entry.record.net_pay for entry in entries), Decimal("0")))
        run = PayrollRun(
            payroll_run_id=uuid4(),
            organization_id=organization_id,
            period_start=period_start,
            period_end=period_end,
            total_amount=total,
            method=method.value,
            status=(PayrollRunStatus.PAID if manual else PayrollRunStatus.PENDING).value,
            created_by=admin_id,
            created_at=now,
        )
        payouts = [
            Payout(
                payout_id=uuid4(),
                organization_id=organization_id,
                payroll_run_id=run.payroll_run_id,
                payroll_record_id=entry.record.payroll_record_id,
                employee_id=entry.record.employee_id,
                amount=round2(entry.record.net_pay),
                method=method.value,
                status=(PayoutStatus.SUCCESS if manual else PayoutStatus.PENDING).value,
                processed_at=now if manual else None,
                created_at=now,
            )
            for entry in entries
        ]
        record_ids = [entry.record.payroll_record_id for entry in entries]

        try:
            self.session.add(run)
            await self.session.flush()

            # Only unlocked records move, so a concurrent run cannot pay them twice
            result = await self.session.execute(
                update(PayrollRecord)
                .where(
                    PayrollRecord.payroll_record_id.in_(record_ids),
                    PayrollRecord.payroll_status == PayrollStatus.APPROVED.value,
                    PayrollRecord.locked.is_(False),
                )
                .values(locked=True, payroll_run_id=run.payroll_run_id)
            )
            if result.rowcount != len(record_ids):
                await self.session.rollback()
                raise ConflictError(
                    f"{len(record_ids) - result.rowcount} payroll record(s) were locked "
                    "by a concurrent pay run"
                )

            self.session.add_all(payouts)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreError(f"pay run for organization {organization_id}", e) from e

        logger.info(
            "Pay run %s (%s) for organization %s: %d payout(s), total %s",
            run.payroll_run_id,
            method.value,
            organization_id,
            len(payouts),
            total,
        )

        await self._remind_missing_bank_details(organization_id, skipped)
        await self._announce_run(organization_id, period_start, payouts, total)

        return PayrollRunResult(
            run=run,
            payouts=payouts,
            csv=self.generate_bank_export(entries),
            skipped_employee_ids=skipped,
        )

    async def mark_payout_success(
        self, organization_id: UUID, payout_id: UUID, account_suffix: str | None = None
    ) -> Payout:
        """Settle a pending payout as paid and tell the employee.

        The run flips to paid once none of its payouts is left unpaid.
        """
        payout = await self._settle(
            organization_id,
            payout_id,
            PayoutStatus.SUCCESS,
            {"processed_at": self.clock.now(), "failure_reason": None},
        )

        if account_suffix is None:
            account_suffix = await self._account_suffix(payout.employee_id)
        message = f"Your salary of {payout.amount:.2f} has been disbursed"
        if account_suffix:
            message += f" to account ending {account_suffix}"
        await self._notify(payout.employee_id, organization_id, message + ".")
        return payout

    async def mark_payout_failed(
        self, organization_id: UUID, payout_id: UUID, reason: str
    ) -> Payout:
        """Settle a pending payout as failed with a mandatory reason."""
        if reason is None or not reason.strip():
            raise ValidationError("reason", "a failed payout requires a reason")

        payout = await self._settle(
            organization_id,
            payout_id,
            PayoutStatus.FAILED,
            {"processed_at": self.clock.now(), "failure_reason": reason.strip()},
        )
        logger.warning("Payout %s failed: %s", payout_id, reason.strip())
        return payout

    async def get_payout(self, organization_id: UUID, payout_id: UUID) -> Payout:
        try:
            result = await self.session.execute(
                select(Payout).where(
                    Payout.payout_id == payout_id,
                    Payout.organization_id == organization_id,
                )
            )
        except SQLAlchemyError as e:
            raise StoreError(f"payout lookup {payout_id}", e) from e
        payout = result.scalar_one_or_none()
        if payout is None:
            raise NotFoundError(f"Payout {payout_id} not found for organization {organization_id}")
        return payout

    async def _settle(
        self,
        organization_id: UUID,
        payout_id: UUID,
        to_status: PayoutStatus,
        values: dict[str, Any],
    ) -> Payout:
        payout = await self.get_payout(organization_id, payout_id)
        if payout.status != PayoutStatus.PENDING.value:
            raise ConflictError(f"Payout {payout_id} is already {payout.status}")

        try:
            result = await self.session.execute(
                update(Payout)
                .where(
                    Payout.payout_id == payout_id,
                    Payout.organization_id == organization_id,
                    Payout.status == PayoutStatus.PENDING.value,
                )
                .values(status=to_status.value, **values)
            )
            if result.rowcount == 0:
                await self.session.rollback()
                raise ConflictError(f"Payout {payout_id} was settled concurrently")

            if to_status == PayoutStatus.SUCCESS:
                unpaid = select(Payout.payout_id).where(
                    Payout.payroll_run_id == payout.payroll_run_id,
                    Payout.status != PayoutStatus.SUCCESS.value,
                )
                await self.session.execute(
                    update(PayrollRun)
                    .where(
                        PayrollRun.payroll_run_id == payout.payroll_run_id,
                        PayrollRun.status == PayrollRunStatus.PENDING.value,
                        ~unpaid.exists(),
                    )
                    .values(status=PayrollRunStatus.PAID.value)
                )
            await self.session.commit()
            await self.session.refresh(payout)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreError(f"payout status update {payout_id}", e) from e

        logger.info("Payout %s marked %s", payout_id, to_status.value)
        return payout

    async def _approved_entries(
        self,
        organization_id: UUID,
        period_start: date,
        period_end: date,
        unlocked_only: bool = False,
    ) -> tuple[list[PayoutEntry], list[UUID]]:
        """Approved records in the window with their bank details.

        Returns the payable entries and the employees skipped for missing
        bank details.
        """
        if period_start > period_end:
            raise ValidationError("period", f"start {period_start} is after end {period_end}")

        query = (
            select(PayrollRecord, User)
            .join(User, User.user_id == PayrollRecord.employee_id)
            .where(
                PayrollRecord.organization_id == organization_id,
                PayrollRecord.payroll_status == PayrollStatus.APPROVED.value,
                PayrollRecord.period_start >= period_start,
                PayrollRecord.period_end <= period_end,
            )
            .order_by(User.display_name, PayrollRecord.period_start)
        )
        if unlocked_only:
            query = query.where(PayrollRecord.locked.is_(False))

        try:
            result = await self.session.execute(query)
            rows = result.all()
        except SQLAlchemyError as e:
            raise StoreError(f"approved payroll lookup for organization {organization_id}", e) from e

        entries: list[PayoutEntry] = []
        skipped: list[UUID] = []
        for record, user in rows:
            if not user.has_bank_details:
                if user.user_id not in skipped:
                    skipped.append(user.user_id)
                continue
            entries.append(
                PayoutEntry(
                    record=record,
                    bank=BankDetails(
                        account_number=user.bank_account_number,
                        ifsc=user.bank_ifsc,
                    ),
                )
            )
        return entries, skipped

    async def _require_payroll_manager(self, organization_id: UUID, user_id: UUID) -> User:
        try:
            user = await self.session.get(User, user_id)
        except SQLAlchemyError as e:
            raise StoreError(f"user lookup {user_id}", e) from e
        if user is None or user.organization_id != organization_id or not user.can_manage_payroll:
            raise ValidationError("admin_id", f"user {user_id} cannot run payroll")
        return user

    async def _account_suffix(self, employee_id: UUID) -> str | None:
        try:
            user = await self.session.get(User, employee_id)
        except SQLAlchemyError as e:
            raise StoreError(f"user lookup {employee_id}", e) from e
        if user is None or not user.bank_account_number:
            return None
        return user.bank_account_number[-4:]

    async def _announce_run(
        self,
        organization_id: UUID,
        period_start: date,
        payouts: list[Payout],
        total: Decimal,
    ) -> None:
        paid: dict[UUID, Decimal] = {}
        for payout in payouts:
            paid[payout.employee_id] = paid.get(payout.employee_id, Decimal("0")) + payout.amount

        try:
            result = await self.session.execute(
                select(User.user_id).where(
                    User.organization_id == organization_id,
                    User.role == UserRole.ADMIN.value,
                )
            )
            admin_ids = list(result.scalars().all())
        except SQLAlchemyError:
            # The run is already committed; only the admin summary is lost
            logger.exception("Admin lookup for organization %s failed", organization_id)
            admin_ids = []

        summary = f"Payroll run complete. {len(paid)} employees paid total {total:.2f}."
        for admin_id in admin_ids:
            await self._notify(admin_id, organization_id, summary)

        month = period_start.strftime("%B %Y")
        for employee_id, amount in paid.items():
            await self._notify(
                employee_id,
                organization_id,
                self.payout_message.format(month=month, amount=f"{round2(amount):.2f}"),
            )

    async def _remind_missing_bank_details(
        self, organization_id: UUID, employee_ids: list[UUID]
    ) -> None:
        for employee_id in employee_ids:
            logger.warning("Employee %s has no bank details; payout skipped", employee_id)
            await self._notify(employee_id, organization_id, MISSING_BANK_DETAILS_MESSAGE)

    async def _notify(self, user_id: UUID, organization_id: UUID, message: str) -> None:
        try:
            await self.notifier.notify(user_id, organization_id, message)
        except NotificationError:
            logger.exception("Notification to user %s failed", user_id)
