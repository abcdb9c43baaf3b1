"""Rental service for business rules."""

from __future__ import annotations

import math
import sqlite3
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Iterable, Optional

from dateutil import parser

from video_rental.config import (
    CUSTOMER_PAGE_SIZE,
    RECENT_RENTALS_LIMIT,
    STAFF_PAGE_SIZE,
)
from video_rental.domain.models import (
    OPEN_STATUSES,
    PROCESSING_STATUSES,
    Actor,
    CustomerRentalStats,
    NewRental,
    Pagination,
    Rental,
    RentalAuditEntry,
    RentalStatus,
    StaffDashboardStats,
)
from video_rental.domain.pricing import (
    compute_amount,
    compute_expected_return_date,
    compute_late_fee,
    days_overdue,
    is_overdue,
)
from video_rental.logging_config import get_logger
from video_rental.repositories.base import (
    CatalogRepository,
    OpenRentalConflictError,
    RentalRepository,
    StorageError,
)
from video_rental.repositories.catalog_repo import SqliteCatalogRepository
from video_rental.repositories.mappers import (
    audit_entry_to_record,
    rental_to_record,
    to_iso,
)
from video_rental.repositories.rental_repo import SqliteRentalRepository
from video_rental.services.errors import (
    InvalidDateError,
    InvalidStateError,
    InvalidTransitionError,
    NotAvailableError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from video_rental.services.inventory_service import InventoryAvailabilityChecker
from video_rental.services.lifecycle import RentalLifecycle, coerce_status
from video_rental.services.results import OperationResult
from video_rental.settings import EngineSettings

END_OF_DAY = time(23, 59, 59)
RENTED_OUT_MESSAGE = "This copy is currently rented out"
STALE_MESSAGE = "Rental was modified by another operation; please retry"


def _now() -> datetime:
    return datetime.now()


def _require_id(value: object, label: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {label}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label}") from None
    if number <= 0 or (isinstance(value, float) and number != value):
        raise ValidationError(f"Invalid {label}")
    return number


def _require_page(page: object, limit: object) -> tuple[int, int]:
    return _require_id(page, "page"), _require_id(limit, "page size")


class RentalService:
    """Create, pay, check out, return, cancel and extend rentals.

    Public operations never raise for business-rule violations: they return
    an ``OperationResult``. Storage failures turn into a generic failure
    result flagged ``infrastructure_failure`` so callers can retry.
    """

    def __init__(
        self,
        rental_repo: RentalRepository,
        catalog: CatalogRepository,
        *,
        settings: Optional[EngineSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._rental_repo = rental_repo
        self._catalog = catalog
        self._availability = InventoryAvailabilityChecker(catalog, rental_repo)
        self._lifecycle = RentalLifecycle()
        self._settings = settings or EngineSettings()
        self._clock = clock or _now
        self._logger = get_logger(self.__class__.__name__)

    @classmethod
    def from_connection(
        cls,
        connection: sqlite3.Connection,
        *,
        settings: Optional[EngineSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "RentalService":
        return cls(
            SqliteRentalRepository(connection),
            SqliteCatalogRepository(connection),
            settings=settings,
            clock=clock,
        )

    # -- write operations -------------------------------------------------

    def create(
        self,
        customer_id: int,
        inventory_id: int,
        staff_id: Optional[int] = None,
        *,
        checkout_now: bool = False,
    ) -> OperationResult:
        """Create a pending rental, or a rented one for in-person checkout."""
        return self._execute(
            "create", self._create, customer_id, inventory_id, staff_id, checkout_now
        )

    def pay(self, rental_id: int, customer_id: int, amount: float) -> OperationResult:
        return self._execute("pay", self._pay, rental_id, customer_id, amount)

    def checkout(self, rental_id: int, staff_id: int) -> OperationResult:
        return self._execute("checkout", self._checkout, rental_id, staff_id)

    def return_rental(self, rental_id: int, staff_id: int) -> OperationResult:
        return self._execute("return", self._return_rental, rental_id, staff_id)

    def cancel(self, rental_id: int, customer_id: int) -> OperationResult:
        return self._execute("cancel", self._cancel, rental_id, customer_id)

    def extend(self, rental_id: int, customer_id: int) -> OperationResult:
        return self._execute("extend", self._extend, rental_id, customer_id)

    def update_due_date(
        self,
        rental_id: int,
        new_due_date: date | datetime | str,
        staff_id: int,
        reason: Optional[str] = None,
    ) -> OperationResult:
        return self._execute(
            "update_due_date",
            self._update_due_date,
            rental_id,
            new_due_date,
            staff_id,
            reason,
        )

    def update_status(
        self, rental_id: int, new_status: str | RentalStatus, staff_id: int
    ) -> OperationResult:
        return self._execute(
            "update_status", self._update_status, rental_id, new_status, staff_id
        )

    def return_open_rentals_for_customer(
        self, customer_id: int, staff_id: int
    ) -> OperationResult:
        """Return every open rental of a customer, each under the return guard.

        Rentals are independent: one failing does not undo the others, and
        the result lists which rentals were returned and which were not.
        """
        try:
            customer_id = _require_id(customer_id, "customer id")
            rentals = self._rental_repo.find_open_by_customer(customer_id)
        except ValidationError as exc:
            return OperationResult.failed(exc)
        except StorageError:
            self._logger.error(
                "Bulk return failed for customer_id=%s: storage unavailable",
                customer_id,
            )
            return OperationResult.infrastructure_error()

        returned: list[int] = []
        failed: list[dict[str, Any]] = []
        for rental in rentals:
            result = self.return_rental(rental.id, staff_id)
            if result.success:
                returned.append(rental.id)
            else:
                failed.append(
                    {
                        "rental_id": rental.id,
                        "error": result.error_code,
                        "message": result.message,
                    }
                )
        self._logger.info(
            "Bulk return customer_id=%s returned=%s failed=%s",
            customer_id,
            len(returned),
            len(failed),
        )
        return OperationResult(
            success=not failed,
            message=f"Returned {len(returned)} of {len(rentals)} open rental(s)",
            data={"returned": returned, "failed": failed},
        )

    # -- read operations --------------------------------------------------

    def get_customer_rentals(
        self,
        customer_id: int,
        page: int = 1,
        limit: int = CUSTOMER_PAGE_SIZE,
    ) -> OperationResult:
        return self._execute(
            "get_customer_rentals", self._customer_rentals, customer_id, page, limit
        )

    def get_rental_details(self, rental_id: int) -> OperationResult:
        return self._execute("get_rental_details", self._rental_details, rental_id)

    def get_all_rentals(
        self,
        page: int = 1,
        limit: int = STAFF_PAGE_SIZE,
        status: Optional[str | RentalStatus] = None,
    ) -> OperationResult:
        return self._execute("get_all_rentals", self._all_rentals, page, limit, status)

    def get_overdue_rentals(self) -> OperationResult:
        return self._execute("get_overdue_rentals", self._overdue_rentals)

    def get_pending_rentals(self) -> OperationResult:
        return self._execute("get_pending_rentals", self._pending_rentals)

    def get_recent_rentals(self, limit: int = RECENT_RENTALS_LIMIT) -> OperationResult:
        return self._execute("get_recent_rentals", self._recent_rentals, limit)

    def get_rental_audit(self, rental_id: int) -> OperationResult:
        return self._execute("get_rental_audit", self._rental_audit, rental_id)

    def get_staff_stats(self) -> OperationResult:
        """Dashboard counters; zeroed and flagged ``degraded`` if storage fails."""
        try:
            stats = self._staff_stats()
        except StorageError:
            self._logger.error("Could not compute staff stats; returning zeroes")
            return OperationResult.ok(
                None, stats=StaffDashboardStats().to_dict(), degraded=True
            )
        return OperationResult.ok(None, stats=stats.to_dict(), degraded=False)

    # -- internals --------------------------------------------------------

    def _execute(
        self, operation: str, func: Callable[..., OperationResult], *args: Any
    ) -> OperationResult:
        try:
            return func(*args)
        except ServiceError as exc:
            self._logger.info("%s rejected: %s", operation, exc)
            return OperationResult.failed(exc)
        except StorageError:
            self._logger.error("%s failed: storage unavailable", operation)
            return OperationResult.infrastructure_error()

    def _now(self) -> datetime:
        return self._clock().replace(microsecond=0)

    def _load(self, rental_id: object) -> Rental:
        rental_id = _require_id(rental_id, "rental id")
        rental = self._rental_repo.find_by_id(rental_id)
        if rental is None:
            raise NotFoundError(f"Rental {rental_id} not found")
        return rental

    def _raise_stale(self, rental_id: int) -> None:
        if self._rental_repo.find_by_id(rental_id) is None:
            raise NotFoundError(f"Rental {rental_id} not found")
        raise InvalidStateError(STALE_MESSAGE)

    def _default_due_date(self, rental: Rental, now: datetime) -> Optional[datetime]:
        if rental.rental_duration is None:
            return None
        return now + timedelta(days=rental.rental_duration)

    def _apply_status(
        self,
        rental: Rental,
        target: RentalStatus,
        staff_id: Optional[int] = None,
        *,
        return_date: Optional[datetime] = None,
        due_date: Optional[datetime] = None,
        audit: Optional[RentalAuditEntry] = None,
    ) -> None:
        try:
            affected = self._rental_repo.update_status(
                rental.id,
                target,
                staff_id,
                expected_status=rental.status,
                return_date=return_date,
                due_date=due_date,
                audit=audit,
            )
        except OpenRentalConflictError as exc:
            raise NotAvailableError(RENTED_OUT_MESSAGE) from exc
        if not affected:
            self._raise_stale(rental.id)

    def _audit_entry(
        self,
        rental_id: int,
        action: str,
        actor_id: Optional[int],
        *,
        reason: Optional[str] = None,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
    ) -> RentalAuditEntry:
        return RentalAuditEntry(
            id=None,
            rental_id=rental_id,
            action=action,
            actor_id=actor_id,
            reason=reason,
            old_value=old_value,
            new_value=new_value,
            created_at=to_iso(self._now()),
        )

    def _summarize(self, rental: Rental, now: datetime) -> dict[str, Any]:
        record = rental_to_record(rental)
        record.update(
            {
                "expected_return_date": to_iso(compute_expected_return_date(rental)),
                "is_overdue": is_overdue(rental, now),
                "days_overdue": days_overdue(rental, now),
                "late_fee": compute_late_fee(
                    rental, now, self._settings.late_fee_per_day
                ),
            }
        )
        return record

    def _rental_list(self, rentals: Iterable[Rental]) -> OperationResult:
        now = self._now()
        summaries = [self._summarize(rental, now) for rental in rentals]
        return OperationResult.ok(None, rentals=summaries, count=len(summaries))

    def _parse_due_date(self, value: date | datetime | str | None) -> tuple[datetime, bool]:
        """Return the due date and whether it was given as a plain date."""
        if value is None or (isinstance(value, str) and not value.strip()):
            raise InvalidDateError("A due date is required")
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, date):
            return datetime.combine(value, END_OF_DAY), True
        else:
            text = str(value).strip()
            try:
                return datetime.combine(date.fromisoformat(text), END_OF_DAY), True
            except ValueError:
                pass
            try:
                parsed = parser.isoparse(text)
            except (ValueError, OverflowError):
                raise InvalidDateError("Invalid date format") from None
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone().replace(tzinfo=None)
        return parsed.replace(microsecond=0), False

    def _create(
        self,
        customer_id: object,
        inventory_id: object,
        staff_id: Optional[object],
        checkout_now: bool,
    ) -> OperationResult:
        customer_id = _require_id(customer_id, "customer id")
        inventory_id = _require_id(inventory_id, "inventory id")
        if staff_id is not None:
            staff_id = _require_id(staff_id, "staff id")
        if checkout_now and staff_id is None:
            raise ValidationError("A staff member must hand out an in-person rental")

        availability = self._availability.check_availability(inventory_id)
        if not availability.available:
            raise NotAvailableError(RENTED_OUT_MESSAGE)
        item = availability.item

        now = self._now()
        status = RentalStatus.PENDING
        due_date = None
        if checkout_now:
            status = self._lifecycle.assert_transition(
                RentalStatus.PENDING, RentalStatus.RENTED
            )
            due_date = now + timedelta(days=item.rental_duration)
        amount = compute_amount(item.rental_rate)
        try:
            rental_id = self._rental_repo.create(
                NewRental(
                    inventory_id=inventory_id,
                    customer_id=customer_id,
                    staff_id=staff_id,
                    rental_date=now,
                    amount=amount,
                    status=status,
                    due_date=due_date,
                )
            )
        except OpenRentalConflictError as exc:
            raise NotAvailableError(RENTED_OUT_MESSAGE) from exc

        self._logger.info(
            "Created rental id=%s inventory_id=%s customer_id=%s status=%s",
            rental_id,
            inventory_id,
            customer_id,
            status.value,
        )
        if checkout_now:
            message = f'"{item.title}" checked out successfully.'
        else:
            message = "Rental created successfully. Please proceed to payment."
        return OperationResult.ok(
            message,
            rental_id=rental_id,
            film_title=item.title,
            amount=amount,
            status=status.value,
            due_date=to_iso(due_date),
        )

    def _pay(self, rental_id: object, customer_id: object, amount: object) -> OperationResult:
        rental = self._load(rental_id)
        actor = Actor.customer(_require_id(customer_id, "customer id"))
        self._lifecycle.assert_payable(actor, rental, amount)
        self._lifecycle.assert_transition(rental.status, RentalStatus.PAID)

        due_date = rental.due_date or self._default_due_date(rental, self._now())
        self._apply_status(rental, RentalStatus.PAID, due_date=due_date)
        self._logger.info("Rental id=%s paid by customer_id=%s", rental.id, actor.id)
        return OperationResult.ok(
            f'Payment of {rental.amount:.2f} for "{rental.film_title}" succeeded',
            rental_id=rental.id,
            status=RentalStatus.PAID.value,
            amount=rental.amount,
            due_date=to_iso(due_date),
        )

    def _checkout(self, rental_id: object, staff_id: object) -> OperationResult:
        rental = self._load(rental_id)
        actor = Actor.staff(_require_id(staff_id, "staff id"))
        self._lifecycle.assert_not_returned(rental)
        self._lifecycle.assert_transition(rental.status, RentalStatus.RENTED)

        due_date = rental.due_date or self._default_due_date(rental, self._now())
        self._apply_status(rental, RentalStatus.RENTED, actor.id, due_date=due_date)
        self._logger.info("Rental id=%s checked out by staff_id=%s", rental.id, actor.id)
        return OperationResult.ok(
            f'"{rental.film_title}" checked out successfully.',
            rental_id=rental.id,
            status=RentalStatus.RENTED.value,
            staff_id=actor.id,
            due_date=to_iso(due_date),
        )

    def _return_rental(self, rental_id: object, staff_id: object) -> OperationResult:
        rental = self._load(rental_id)
        actor = Actor.staff(_require_id(staff_id, "staff id"))
        self._lifecycle.assert_returnable(rental)

        now = self._now()
        late_days = days_overdue(rental, now)
        late_fee = compute_late_fee(rental, now, self._settings.late_fee_per_day)
        self._apply_status(rental, RentalStatus.RETURNED, actor.id, return_date=now)
        self._logger.info(
            "Rental id=%s returned to staff_id=%s days_overdue=%s",
            rental.id,
            actor.id,
            late_days,
        )
        message = f'"{rental.film_title}" was returned successfully'
        if late_fee:
            message = f"{message}. Late fee: {late_fee:.2f}"
        return OperationResult.ok(
            message,
            rental_id=rental.id,
            status=RentalStatus.RETURNED.value,
            return_date=to_iso(now),
            days_overdue=late_days,
            late_fee=late_fee,
        )

    def _cancel(self, rental_id: object, customer_id: object) -> OperationResult:
        rental = self._load(rental_id)
        actor = Actor.customer(_require_id(customer_id, "customer id"))
        self._lifecycle.assert_cancellable(actor, rental)
        self._lifecycle.assert_transition(rental.status, RentalStatus.CANCELLED)

        deleted = (
            self._settings.cancellation.delete_cancelled_pending
            and rental.status == RentalStatus.PENDING
        )
        audit = self._audit_entry(
            rental.id,
            "cancel",
            actor.id,
            old_value=rental.status.value,
            new_value="deleted" if deleted else RentalStatus.CANCELLED.value,
        )
        if deleted:
            affected = self._rental_repo.delete(
                rental.id, expected_status=RentalStatus.PENDING, audit=audit
            )
            if not affected:
                self._raise_stale(rental.id)
        else:
            self._apply_status(rental, RentalStatus.CANCELLED, audit=audit)
        self._logger.info(
            "Rental id=%s cancelled by customer_id=%s deleted=%s",
            rental.id,
            actor.id,
            deleted,
        )
        return OperationResult.ok(
            f'Rental for "{rental.film_title}" has been cancelled. '
            "The film is available again.",
            rental_id=rental.id,
            status=RentalStatus.CANCELLED.value,
            deleted=deleted,
        )

    def _extend(self, rental_id: object, customer_id: object) -> OperationResult:
        rental = self._load(rental_id)
        actor = Actor.customer(_require_id(customer_id, "customer id"))
        self._lifecycle.assert_extendable(actor, rental)
        policy = self._settings.extension
        if not policy.allows(rental.extension_count):
            raise InvalidStateError("Maximum number of extensions reached")

        current_due = compute_expected_return_date(rental) or self._now()
        new_due = policy.next_due_date(current_due)
        extension_count = rental.extension_count + 1
        affected = self._rental_repo.update_due_date(
            rental.id,
            new_due,
            extension_count=extension_count,
            expected_extension_count=rental.extension_count,
            audit=self._audit_entry(
                rental.id,
                "extend",
                actor.id,
                old_value=to_iso(current_due),
                new_value=to_iso(new_due),
            ),
        )
        if not affected:
            self._raise_stale(rental.id)
        return OperationResult.ok(
            f'Rental of "{rental.film_title}" extended until {new_due:%Y-%m-%d}',
            rental_id=rental.id,
            due_date=to_iso(new_due),
            extension_count=extension_count,
            extensions_remaining=policy.max_extensions - extension_count,
        )

    def _update_due_date(
        self,
        rental_id: object,
        new_due_date: date | datetime | str,
        staff_id: object,
        reason: Optional[str],
    ) -> OperationResult:
        due_date, date_only = self._parse_due_date(new_due_date)
        rental = self._load(rental_id)
        actor = Actor.staff(_require_id(staff_id, "staff id"))
        self._lifecycle.assert_due_date_editable(actor, rental)

        now = self._now()
        in_past = due_date.date() < now.date() if date_only else due_date < now
        if in_past:
            raise InvalidDateError("Due date cannot be in the past")

        audit = self._audit_entry(
            rental.id,
            "due_date",
            actor.id,
            reason=reason,
            old_value=to_iso(rental.due_date),
            new_value=to_iso(due_date),
        )
        affected = self._rental_repo.update_due_date(
            rental.id, due_date, actor.id, audit=audit
        )
        if not affected:
            self._raise_stale(rental.id)
        self._logger.info(
            "Rental id=%s due date moved to %s by staff_id=%s",
            rental.id,
            to_iso(due_date),
            actor.id,
        )
        return OperationResult.ok(
            "Due date updated successfully",
            rental_id=rental.id,
            due_date=to_iso(due_date),
        )

    def _update_status(
        self, rental_id: object, new_status: str | RentalStatus, staff_id: object
    ) -> OperationResult:
        rental = self._load(rental_id)
        actor = Actor.staff(_require_id(staff_id, "staff id"))
        target = coerce_status(new_status)
        if target is None:
            raise InvalidTransitionError(rental.status, new_status)
        self._lifecycle.assert_transition(rental.status, target)

        now = self._now()
        return_date = now if target == RentalStatus.RETURNED else None
        due_date = None
        if target in OPEN_STATUSES:
            due_date = rental.due_date or self._default_due_date(rental, now)
        audit = self._audit_entry(
            rental.id,
            "status",
            actor.id,
            old_value=rental.status.value,
            new_value=target.value,
        )
        self._apply_status(
            rental,
            target,
            actor.id,
            return_date=return_date,
            due_date=due_date,
            audit=audit,
        )
        self._logger.info(
            "Rental id=%s status %s -> %s by staff_id=%s",
            rental.id,
            rental.status.value,
            target.value,
            actor.id,
        )
        return OperationResult.ok(
            f"Rental status updated to {target.value}",
            rental_id=rental.id,
            status=target.value,
        )

    def _customer_stats(self, customer_id: int) -> CustomerRentalStats:
        try:
            return self._rental_repo.get_customer_stats(customer_id)
        except StorageError:
            self._logger.error(
                "Could not compute rental stats customer_id=%s; returning zeroes",
                customer_id,
            )
            return CustomerRentalStats.zero()

    def _customer_rentals(
        self, customer_id: object, page: object, limit: object
    ) -> OperationResult:
        customer_id = _require_id(customer_id, "customer id")
        page, limit = _require_page(page, limit)
        rentals = self._rental_repo.find_by_customer_id(
            customer_id, limit, (page - 1) * limit
        )
        total = self._rental_repo.count_by_customer_id(customer_id)
        stats = self._customer_stats(customer_id)

        now = self._now()
        summaries = [self._summarize(rental, now) for rental in rentals]
        active = [
            summary
            for rental, summary in zip(rentals, summaries)
            if rental.return_date is None
            and (rental.status in PROCESSING_STATUSES or rental.status in OPEN_STATUSES)
        ]
        pagination = Pagination(
            current_page=page,
            total_pages=math.ceil(total / limit),
            total_items=total,
        )
        return OperationResult.ok(
            None,
            rentals=summaries,
            stats=stats.to_dict(),
            active_rentals=active,
            pagination=pagination.to_dict(),
        )

    def _rental_details(self, rental_id: object) -> OperationResult:
        rental = self._load(rental_id)
        return OperationResult.ok(None, rental=self._summarize(rental, self._now()))

    def _all_rentals(
        self, page: object, limit: object, status: Optional[str | RentalStatus]
    ) -> OperationResult:
        page, limit = _require_page(page, limit)
        status_filter = None
        if status is not None:
            status_filter = coerce_status(status)
            if status_filter is None:
                raise ValidationError(f"Unknown rental status {status!r}")
        rentals = self._rental_repo.list_all(limit, (page - 1) * limit, status_filter)
        total = self._rental_repo.count_all(status_filter)
        now = self._now()
        pagination = Pagination(
            current_page=page,
            total_pages=math.ceil(total / limit),
            total_items=total,
        )
        return OperationResult.ok(
            None,
            rentals=[self._summarize(rental, now) for rental in rentals],
            pagination=pagination.to_dict(),
        )

    def _overdue(self, now: datetime) -> list[Rental]:
        rentals = [
            rental
            for rental in self._rental_repo.list_open_rentals()
            if is_overdue(rental, now)
        ]
        rentals.sort(key=lambda rental: days_overdue(rental, now), reverse=True)
        return rentals

    def _overdue_rentals(self) -> OperationResult:
        return self._rental_list(self._overdue(self._now()))

    def _pending_rentals(self) -> OperationResult:
        return self._rental_list(self._rental_repo.list_by_status(PROCESSING_STATUSES))

    def _recent_rentals(self, limit: object) -> OperationResult:
        limit = _require_id(limit, "limit")
        return self._rental_list(self._rental_repo.list_recent(limit))

    def _rental_audit(self, rental_id: object) -> OperationResult:
        rental_id = _require_id(rental_id, "rental id")
        entries = self._rental_repo.list_audit_entries(rental_id)
        return OperationResult.ok(
            None, entries=[audit_entry_to_record(entry) for entry in entries]
        )

    def _staff_stats(self) -> StaffDashboardStats:
        now = self._now()
        start_of_day = datetime.combine(now.date(), time.min)
        return StaffDashboardStats(
            total_rentals=self._rental_repo.count_all(),
            active_rentals=len(self._rental_repo.list_open_rentals()),
            overdue_count=len(self._overdue(now)),
            today_rentals=self._rental_repo.count_created_since(start_of_day),
        )

