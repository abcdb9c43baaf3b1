"""Rental service write operations."""

import unittest
from datetime import date, datetime, timedelta

from tests.support import (
    CUSTOMER_ID,
    OTHER_CUSTOMER_ID,
    STAFF_ID,
    START,
    BrokenRentalRepository,
    Engine,
)
from video_rental.config import GENERIC_FAILURE_MESSAGE
from video_rental.domain.models import RentalStatus
from video_rental.services.policies import CancellationPolicy, ExtensionPolicy
from video_rental.services.rental_service import RentalService
from video_rental.settings import EngineSettings


class ServiceTestCase(unittest.TestCase):
    settings = None

    def setUp(self):
        self.engine = Engine(settings=self.settings)
        self.service = self.engine.service
        self.copy_id = self.engine.add_copy()

    def tearDown(self):
        self.engine.close()

    def assertFailure(self, result, code, status_code=None):
        self.assertFalse(result.success, result.message)
        self.assertEqual(result.error_code, code, result.message)
        if status_code is not None:
            self.assertEqual(result.status_code, status_code)


class TestHappyPath(ServiceTestCase):
    def test_full_lifecycle(self):
        created = self.service.create(CUSTOMER_ID, self.copy_id)
        self.assertTrue(created.success)
        self.assertEqual(
            created.message, "Rental created successfully. Please proceed to payment."
        )
        self.assertEqual(created.data["status"], "pending")
        self.assertEqual(created.data["amount"], 2.99)
        self.assertEqual(created.data["film_title"], "Academy Dinosaur")
        rental_id = created.data["rental_id"]

        paid = self.service.pay(rental_id, CUSTOMER_ID, 2.99)
        self.assertTrue(paid.success, paid.message)
        self.assertEqual(self.engine.rental(rental_id).status, RentalStatus.PAID)
        self.assertEqual(
            self.engine.rental(rental_id).due_date, START + timedelta(days=3)
        )

        checked_out = self.service.checkout(rental_id, STAFF_ID)
        self.assertTrue(checked_out.success, checked_out.message)
        rental = self.engine.rental(rental_id)
        self.assertEqual(rental.status, RentalStatus.RENTED)
        self.assertEqual(rental.staff_id, STAFF_ID)

        self.engine.clock.advance(days=5)
        returned = self.service.return_rental(rental_id, STAFF_ID)
        self.assertTrue(returned.success, returned.message)
        self.assertEqual(returned.data["days_overdue"], 2)
        self.assertEqual(returned.data["late_fee"], 2.00)
        self.assertIn("Late fee: 2.00", returned.message)
        rental = self.engine.rental(rental_id)
        self.assertEqual(rental.status, RentalStatus.RETURNED)
        self.assertEqual(rental.return_date, START + timedelta(days=5))

    def test_on_time_return_has_no_fee(self):
        rental_id = self.engine.create_rented(self.copy_id)
        self.engine.clock.advance(days=2)
        returned = self.service.return_rental(rental_id, STAFF_ID)
        self.assertEqual(returned.data["late_fee"], 0)
        self.assertNotIn("Late fee", returned.message)

    def test_in_person_checkout(self):
        result = self.service.create(
            CUSTOMER_ID, self.copy_id, STAFF_ID, checkout_now=True
        )
        self.assertTrue(result.success, result.message)
        rental = self.engine.rental(result.data["rental_id"])
        self.assertEqual(rental.status, RentalStatus.RENTED)
        self.assertEqual(rental.due_date, START + timedelta(days=3))

    def test_in_person_checkout_needs_staff(self):
        result = self.service.create(CUSTOMER_ID, self.copy_id, checkout_now=True)
        self.assertFailure(result, "validation_error", 400)


class TestCreate(ServiceTestCase):
    def test_unknown_copy(self):
        result = self.service.create(CUSTOMER_ID, 999)
        self.assertFailure(result, "not_found", 404)
        self.assertEqual(result.message, "Film inventory 999 not found")

    def test_rented_copy_is_not_available(self):
        self.engine.create_rented(self.copy_id)
        result = self.service.create(OTHER_CUSTOMER_ID, self.copy_id)
        self.assertFailure(result, "not_available", 409)
        self.assertEqual(result.message, "This copy is currently rented out")

    def test_pending_rental_does_not_block_others(self):
        self.engine.create_pending(self.copy_id)
        self.assertTrue(self.service.create(OTHER_CUSTOMER_ID, self.copy_id).success)

    def test_invalid_ids(self):
        self.assertFailure(self.service.create("abc", self.copy_id), "validation_error")
        self.assertFailure(self.service.create(CUSTOMER_ID, 0), "validation_error")
        self.assertFailure(self.service.create(True, self.copy_id), "validation_error")


class TestPay(ServiceTestCase):
    def setUp(self):
        super().setUp()
        self.rental_id = self.engine.create_pending(self.copy_id)

    def test_amount_must_match(self):
        for amount in (2.98, 3.00, 2.999, "2.99x", None):
            with self.subTest(amount=amount):
                result = self.service.pay(self.rental_id, CUSTOMER_ID, amount)
                self.assertFailure(result, "payment_mismatch", 400)
        self.assertEqual(self.engine.rental(self.rental_id).status, RentalStatus.PENDING)

    def test_only_the_owner_pays(self):
        result = self.service.pay(self.rental_id, OTHER_CUSTOMER_ID, 2.99)
        self.assertFailure(result, "unauthorized", 403)
        self.assertEqual(result.message, "This rental does not belong to your account")

    def test_double_payment(self):
        self.assertTrue(self.service.pay(self.rental_id, CUSTOMER_ID, 2.99).success)
        result = self.service.pay(self.rental_id, CUSTOMER_ID, 2.99)
        self.assertFailure(result, "invalid_state")

    def test_missing_rental(self):
        self.assertFailure(self.service.pay(999, CUSTOMER_ID, 2.99), "not_found", 404)

    def test_rate_change_is_not_retroactive(self):
        film_id = self.engine.rental(self.rental_id).film_id
        self.engine.catalog.update_rental_rate(film_id, 0.99)
        self.assertFailure(
            self.service.pay(self.rental_id, CUSTOMER_ID, 0.99), "payment_mismatch"
        )
        self.assertTrue(self.service.pay(self.rental_id, CUSTOMER_ID, 2.99).success)

    def test_second_payment_for_same_copy_is_refused(self):
        other_id = self.engine.create_pending(self.copy_id, OTHER_CUSTOMER_ID)
        self.assertTrue(self.service.pay(self.rental_id, CUSTOMER_ID, 2.99).success)
        result = self.service.pay(other_id, OTHER_CUSTOMER_ID, 2.99)
        self.assertFailure(result, "not_available", 409)
        self.assertEqual(self.engine.rental(other_id).status, RentalStatus.PENDING)


class TestReturn(ServiceTestCase):
    def test_double_return(self):
        rental_id = self.engine.create_rented(self.copy_id)
        self.assertTrue(self.service.return_rental(rental_id, STAFF_ID).success)
        result = self.service.return_rental(rental_id, STAFF_ID)
        self.assertFailure(result, "already_returned", 400)

    def test_paid_rental_must_be_checked_out_first(self):
        rental_id = self.engine.create_pending(self.copy_id)
        self.service.pay(rental_id, CUSTOMER_ID, 2.99)
        self.assertFailure(
            self.service.return_rental(rental_id, STAFF_ID), "invalid_transition"
        )

    def test_returned_copy_is_available_again(self):
        rental_id = self.engine.create_rented(self.copy_id)
        self.service.return_rental(rental_id, STAFF_ID)
        self.engine.create_rented(self.copy_id, OTHER_CUSTOMER_ID)


class TestCancel(ServiceTestCase):
    def test_pending_rental_is_kept_as_cancelled(self):
        rental_id = self.engine.create_pending(self.copy_id)
        result = self.service.cancel(rental_id, CUSTOMER_ID)
        self.assertTrue(result.success, result.message)
        self.assertFalse(result.data["deleted"])
        self.assertEqual(self.engine.rental(rental_id).status, RentalStatus.CANCELLED)

    def test_paid_rental_cannot_be_cancelled(self):
        rental_id = self.engine.create_pending(self.copy_id)
        self.service.pay(rental_id, CUSTOMER_ID, 2.99)
        result = self.service.cancel(rental_id, CUSTOMER_ID)
        self.assertFailure(result, "invalid_state")
        self.assertEqual(result.message, "Cannot cancel rental in current status")

    def test_reserved_rental_can_be_cancelled(self):
        rental_id = self.engine.create_pending(self.copy_id)
        self.engine.force_status(rental_id, RentalStatus.RESERVED)
        self.assertTrue(self.service.cancel(rental_id, CUSTOMER_ID).success)

    def test_only_the_owner_cancels(self):
        rental_id = self.engine.create_pending(self.copy_id)
        self.assertFailure(
            self.service.cancel(rental_id, OTHER_CUSTOMER_ID), "unauthorized"
        )

    def test_cancelled_rental_is_final(self):
        rental_id = self.engine.create_pending(self.copy_id)
        self.service.cancel(rental_id, CUSTOMER_ID)
        self.assertFailure(self.service.pay(rental_id, CUSTOMER_ID, 2.99), "invalid_state")
        self.assertFailure(
            self.service.update_status(rental_id, "rented", STAFF_ID),
            "invalid_transition",
        )
        self.assertFailure(self.service.cancel(rental_id, CUSTOMER_ID), "invalid_state")

    def test_cancel_is_audited(self):
        rental_id = self.engine.create_pending(self.copy_id)
        self.service.cancel(rental_id, CUSTOMER_ID)
        entries = self.service.get_rental_audit(rental_id).data["entries"]
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0]["action"], "cancel")
        self.assertEqual(entries[0]["new_value"], "cancelled")


class TestCancelWithDeletion(ServiceTestCase):
    settings = EngineSettings(
        cancellation=CancellationPolicy(delete_cancelled_pending=True)
    )

    def test_pending_rental_is_removed(self):
        rental_id = self.engine.create_pending(self.copy_id)
        result = self.service.cancel(rental_id, CUSTOMER_ID)
        self.assertTrue(result.success)
        self.assertTrue(result.data["deleted"])
        self.assertIsNone(self.engine.rentals.find_by_id(rental_id))

    def test_reserved_rental_is_kept(self):
        rental_id = self.engine.create_pending(self.copy_id)
        self.engine.force_status(rental_id, RentalStatus.RESERVED)
        result = self.service.cancel(rental_id, CUSTOMER_ID)
        self.assertFalse(result.data["deleted"])
        self.assertEqual(self.engine.rental(rental_id).status, RentalStatus.CANCELLED)


class TestExtend(ServiceTestCase):
    def test_extends_until_the_limit(self):
        rental_id = self.engine.create_rented(self.copy_id)
        first = self.service.extend(rental_id, CUSTOMER_ID)
        self.assertTrue(first.success, first.message)
        self.assertEqual(
            self.engine.rental(rental_id).due_date, START + timedelta(days=10)
        )
        self.assertEqual(first.data["extensions_remaining"], 1)
        second = self.service.extend(rental_id, CUSTOMER_ID)
        self.assertTrue(second.success, second.message)
        self.assertEqual(
            self.engine.rental(rental_id).due_date, START + timedelta(days=17)
        )
        third = self.service.extend(rental_id, CUSTOMER_ID)
        self.assertFailure(third, "invalid_state")
        self.assertEqual(third.message, "Maximum number of extensions reached")
        self.assertEqual(self.engine.rental(rental_id).extension_count, 2)

        actions = [
            entry["action"]
            for entry in self.service.get_rental_audit(rental_id).data["entries"]
        ]
        self.assertEqual(actions, ["extend", "extend"])

    def test_extension_postpones_late_fee(self):
        rental_id = self.engine.create_rented(self.copy_id)
        self.service.extend(rental_id, CUSTOMER_ID)
        self.engine.clock.advance(days=9)
        self.assertEqual(
            self.service.return_rental(rental_id, STAFF_ID).data["late_fee"], 0
        )

    def test_pending_rental_cannot_be_extended(self):
        rental_id = self.engine.create_pending(self.copy_id)
        self.assertFailure(self.service.extend(rental_id, CUSTOMER_ID), "invalid_state")

    def test_returned_rental_cannot_be_extended(self):
        rental_id = self.engine.create_rented(self.copy_id)
        self.service.return_rental(rental_id, STAFF_ID)
        self.assertFailure(
            self.service.extend(rental_id, CUSTOMER_ID), "already_returned"
        )

    def test_only_the_owner_extends(self):
        rental_id = self.engine.create_rented(self.copy_id)
        self.assertFailure(
            self.service.extend(rental_id, OTHER_CUSTOMER_ID), "unauthorized"
        )


class TestExtendWithCustomPolicy(ServiceTestCase):
    settings = EngineSettings(
        extension=ExtensionPolicy(max_extensions=0, increment_days=3)
    )

    def test_extensions_disabled(self):
        rental_id = self.engine.create_rented(self.copy_id)
        self.assertFailure(self.service.extend(rental_id, CUSTOMER_ID), "invalid_state")


class TestUpdateDueDate(ServiceTestCase):
    def setUp(self):
        super().setUp()
        self.rental_id = self.engine.create_rented(self.copy_id)

    def test_date_only_means_end_of_day(self):
        result = self.service.update_due_date(
            self.rental_id, "2024-03-20", STAFF_ID, reason="customer on holiday"
        )
        self.assertTrue(result.success, result.message)
        self.assertEqual(
            self.engine.rental(self.rental_id).due_date, datetime(2024, 3, 20, 23, 59, 59)
        )
        entry = self.service.get_rental_audit(self.rental_id).data["entries"][-1]
        self.assertEqual(entry["action"], "due_date")
        self.assertEqual(entry["reason"], "customer on holiday")
        self.assertEqual(entry["new_value"], "2024-03-20T23:59:59")

    def test_today_is_accepted(self):
        result = self.service.update_due_date(self.rental_id, date(2024, 3, 1), STAFF_ID)
        self.assertTrue(result.success, result.message)

    def test_past_dates_are_rejected(self):
        for value in ("2024-02-28", START - timedelta(hours=1)):
            with self.subTest(value=value):
                result = self.service.update_due_date(self.rental_id, value, STAFF_ID)
                self.assertFailure(result, "invalid_date")
                self.assertEqual(result.message, "Due date cannot be in the past")

    def test_bad_format(self):
        for value in ("next tuesday", "", None):
            with self.subTest(value=value):
                self.assertFailure(
                    self.service.update_due_date(self.rental_id, value, STAFF_ID),
                    "invalid_date",
                )

    def test_returned_rental(self):
        self.service.return_rental(self.rental_id, STAFF_ID)
        self.assertFailure(
            self.service.update_due_date(self.rental_id, "2024-03-20", STAFF_ID),
            "already_returned",
        )

    def test_timestamp_input(self):
        result = self.service.update_due_date(
            self.rental_id, "2024-03-05T18:30:00", STAFF_ID
        )
        self.assertTrue(result.success, result.message)
        self.assertEqual(
            self.engine.rental(self.rental_id).due_date, datetime(2024, 3, 5, 18, 30)
        )


class TestUpdateStatus(ServiceTestCase):
    def test_unknown_status(self):
        rental_id = self.engine.create_pending(self.copy_id)
        result = self.service.update_status(rental_id, "lost", STAFF_ID)
        self.assertFailure(result, "invalid_transition")
        self.assertEqual(result.message, "Cannot change status from pending to lost")

    def test_walks_the_processing_path(self):
        rental_id = self.engine.create_pending(self.copy_id)
        self.engine.force_status(rental_id, RentalStatus.RESERVED)
        self.assertTrue(
            self.service.update_status(rental_id, "in_behandeling", STAFF_ID).success
        )
        self.assertTrue(self.service.update_status(rental_id, "rented", STAFF_ID).success)
        rental = self.engine.rental(rental_id)
        self.assertEqual(rental.status, RentalStatus.RENTED)
        self.assertEqual(rental.due_date, START + timedelta(days=3))

        self.engine.clock.advance(days=1)
        self.assertTrue(
            self.service.update_status(rental_id, RentalStatus.RETURNED, STAFF_ID).success
        )
        rental = self.engine.rental(rental_id)
        self.assertEqual(rental.return_date, START + timedelta(days=1))

        actions = [
            (entry["old_value"], entry["new_value"])
            for entry in self.service.get_rental_audit(rental_id).data["entries"]
        ]
        self.assertEqual(
            actions,
            [
                ("reserved", "in_behandeling"),
                ("in_behandeling", "rented"),
                ("rented", "returned"),
            ],
        )

    def test_returned_is_final(self):
        rental_id = self.engine.create_rented(self.copy_id)
        self.service.return_rental(rental_id, STAFF_ID)
        for target in RentalStatus:
            with self.subTest(target=target.value):
                self.assertFailure(
                    self.service.update_status(rental_id, target, STAFF_ID),
                    "invalid_transition",
                )

    def test_open_status_respects_exclusivity(self):
        first = self.engine.create_pending(self.copy_id)
        other = self.engine.create_pending(self.copy_id, OTHER_CUSTOMER_ID)
        self.assertTrue(self.service.update_status(first, "rented", STAFF_ID).success)

        result = self.service.update_status(other, "rented", STAFF_ID)
        self.assertFailure(result, "not_available")
        self.assertEqual(self.engine.rental(other).status, RentalStatus.PENDING)
        self.assertEqual(self.engine.rental(first).status, RentalStatus.RENTED)


class TestBulkReturn(ServiceTestCase):
    def test_returns_every_open_rental(self):
        second_copy = self.engine.add_copy("Ace Goldfinger", 4.99, 3)
        first = self.engine.create_rented(self.copy_id)
        second = self.engine.create_rented(second_copy)
        pending = self.engine.create_pending(self.engine.add_copy("Agent Truman"))

        result = self.service.return_open_rentals_for_customer(CUSTOMER_ID, STAFF_ID)
        self.assertTrue(result.success, result.message)
        self.assertEqual(sorted(result.data["returned"]), sorted([first, second]))
        self.assertEqual(self.engine.rental(pending).status, RentalStatus.PENDING)

    def test_reports_rentals_that_could_not_be_returned(self):
        rented = self.engine.create_rented(self.copy_id)
        paid = self.engine.create_pending(self.engine.add_copy("Agent Truman"))
        self.service.pay(paid, CUSTOMER_ID, 2.99)

        result = self.service.return_open_rentals_for_customer(CUSTOMER_ID, STAFF_ID)
        self.assertFalse(result.success)
        self.assertEqual(result.data["returned"], [rented])
        self.assertEqual(result.data["failed"][0]["rental_id"], paid)
        self.assertEqual(result.data["failed"][0]["error"], "invalid_transition")


class TestStorageFailures(unittest.TestCase):
    def setUp(self):
        self.engine = Engine()
        self.copy_id = self.engine.add_copy()
        self.rental_id = self.engine.create_pending(self.engine.add_copy("Agent Truman"))

    def tearDown(self):
        self.engine.close()

    def _service(self, *failing):
        repo = BrokenRentalRepository(self.engine.connection, set(failing))
        return RentalService(repo, self.engine.catalog, clock=self.engine.clock)

    def test_failed_lookup_is_an_infrastructure_error(self):
        result = self._service("find_by_id").pay(self.rental_id, CUSTOMER_ID, 2.99)
        self.assertFalse(result.success)
        self.assertTrue(result.infrastructure_failure)
        self.assertEqual(result.status_code, 500)
        self.assertEqual(result.message, GENERIC_FAILURE_MESSAGE)
        self.assertEqual(result.to_dict()["error"], "infrastructure_error")

    def test_failed_insert(self):
        result = self._service("create").create(CUSTOMER_ID, self.copy_id)
        self.assertTrue(result.infrastructure_failure)
        self.assertEqual(self.engine.rentals.count_all(), 1)

    def test_failed_status_write_leaves_rental_untouched(self):
        result = self._service("update_status").pay(self.rental_id, CUSTOMER_ID, 2.99)
        self.assertTrue(result.infrastructure_failure)
        self.assertEqual(self.engine.rental(self.rental_id).status, RentalStatus.PENDING)

    def test_bulk_return_lookup_failure(self):
        result = self._service("find_open_by_customer").return_open_rentals_for_customer(
            CUSTOMER_ID, STAFF_ID
        )
        self.assertTrue(result.infrastructure_failure)


class TestAuditFailure(ServiceTestCase):
    def setUp(self):
        super().setUp()
        self.pending_id = self.engine.create_pending(self.copy_id)
        self.rented_id = self.engine.create_rented(self.engine.add_copy("Agent Truman"))
        self.engine.connection.execute("DROP TABLE rental_audit")

    def test_cancel_is_rolled_back(self):
        result = self.service.cancel(self.pending_id, CUSTOMER_ID)
        self.assertTrue(result.infrastructure_failure)
        self.assertEqual(self.engine.rental(self.pending_id).status, RentalStatus.PENDING)

    def test_extend_is_rolled_back(self):
        result = self.service.extend(self.rented_id, CUSTOMER_ID)
        self.assertTrue(result.infrastructure_failure)
        rental = self.engine.rental(self.rented_id)
        self.assertEqual(rental.extension_count, 0)
        self.assertEqual(rental.due_date, START + timedelta(days=3))

    def test_due_date_change_is_rolled_back(self):
        result = self.service.update_due_date(self.rented_id, "2024-03-20", STAFF_ID)
        self.assertTrue(result.infrastructure_failure)
        self.assertEqual(
            self.engine.rental(self.rented_id).due_date, START + timedelta(days=3)
        )

    def test_status_change_is_rolled_back(self):
        result = self.service.update_status(self.rented_id, "returned", STAFF_ID)
        self.assertTrue(result.infrastructure_failure)
        rental = self.engine.rental(self.rented_id)
        self.assertEqual(rental.status, RentalStatus.RENTED)
        self.assertIsNone(rental.return_date)


class TestAuditFailureWithDeletion(ServiceTestCase):
    settings = EngineSettings(
        cancellation=CancellationPolicy(delete_cancelled_pending=True)
    )

    def test_pending_rental_is_not_removed(self):
        rental_id = self.engine.create_pending(self.copy_id)
        self.engine.connection.execute("DROP TABLE rental_audit")
        result = self.service.cancel(rental_id, CUSTOMER_ID)
        self.assertTrue(result.infrastructure_failure)
        self.assertEqual(self.engine.rental(rental_id).status, RentalStatus.PENDING)


if __name__ == "__main__":
    unittest.main()
