import unittest
from datetime import date, timedelta
from decimal import Decimal

from slabtrade.core.constants import BatchStatus, UserRole
from slabtrade.core.errors import (
    AuthorizationDenied,
    BatchCodeExists,
    InsufficientStock,
    ValidationError,
)
from slabtrade.schemas.batch import BatchCreate, BatchUpdate
from slabtrade.services.batch_service import (
    adjust_availability,
    archive_batch,
    create_batch,
    get_batch,
    list_batches,
    normalize_batch_code,
    restore_batch,
    update_batch,
)
from slabtrade.services.reservation_service import cancel_reservation, create_reservation
from support import INDUSTRY_A, INDUSTRY_B, DatabaseTestCase


def _payload(**overrides):
    values = {
        "product_id": "product-1",
        "batch_code": "mar-000123",
        "height": Decimal("300"),
        "width": Decimal("200"),
        "thickness": Decimal("2"),
        "total_slabs": 10,
        "unit_price": Decimal("500"),
        "entry_date": date.today() - timedelta(days=3),
    }
    values.update(overrides)
    return BatchCreate(**values)


class BatchCodeTest(unittest.TestCase):
    def test_normalizes_case_and_whitespace(self):
        self.assertEqual(normalize_batch_code("  grn-000001 "), "GRN-000001")

    def test_rejects_malformed_codes(self):
        for code in ("GR-000001", "GRNX-000001", "GRN-00001", "GRN000001", "", None):
            with self.assertRaises(ValidationError):
                normalize_batch_code(code)


class CreateBatchTest(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.admin = self.make_user(UserRole.ADMIN_INDUSTRIA, INDUSTRY_A)

    def test_everything_starts_available(self):
        batch = create_batch(self.db, self.admin, _payload())
        self.assertEqual(batch.batch_code, "MAR-000123")
        self.assertEqual(batch.industry_id, INDUSTRY_A)
        self.assertEqual(batch.status, BatchStatus.AVAILABLE.value)
        self.assertEqual(Decimal(batch.total_area), Decimal("60"))
        self.assertCounters(batch, 10, 0, 0)

    def test_duplicate_code_in_same_industry(self):
        create_batch(self.db, self.admin, _payload())
        with self.assertRaises(BatchCodeExists):
            create_batch(self.db, self.admin, _payload(batch_code="MAR-000123"))

        other_admin = self.make_user(UserRole.ADMIN_INDUSTRIA, INDUSTRY_B)
        other = create_batch(self.db, other_admin, _payload())
        self.assertEqual(other.industry_id, INDUSTRY_B)

    def test_rejects_bad_values(self):
        bad = (
            {"height": Decimal("0")},
            {"width": Decimal("1000.5")},
            {"thickness": Decimal("101")},
            {"total_slabs": 0},
            {"unit_price": Decimal("0")},
            {"entry_date": date.today() + timedelta(days=2)},
        )
        for overrides in bad:
            with self.subTest(**{key: str(value) for key, value in overrides.items()}):
                with self.assertRaises(ValidationError):
                    create_batch(self.db, self.admin, _payload(**overrides))
        self.assertEqual(list_batches(self.db, self.admin)[1], 0)

    def test_only_admins_create(self):
        seller = self.make_user(UserRole.VENDEDOR_INTERNO, INDUSTRY_A)
        broker = self.make_user(UserRole.BROKER)
        for actor in (seller, broker):
            with self.assertRaises(AuthorizationDenied):
                create_batch(self.db, actor, _payload())


class UpdateBatchTest(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.admin = self.make_user(UserRole.ADMIN_INDUSTRIA, INDUSTRY_A)
        self.batch = self.make_batch(self.admin, total_slabs=10)

    def test_descriptive_fields(self):
        batch = update_batch(
            self.db,
            self.admin,
            self.batch.id,
            BatchUpdate(unit_price=Decimal("650"), origin_quarry="Cachoeiro", height=Decimal("150")),
        )
        self.assertEqual(Decimal(batch.unit_price), Decimal("650"))
        self.assertEqual(batch.origin_quarry, "Cachoeiro")
        self.assertEqual(Decimal(batch.total_area), Decimal("30"))
        self.assertCounters(batch, 10, 0, 0)

    def test_growing_total_adds_available_slabs(self):
        create_reservation(self.db, self.admin, self.batch.id, 4)
        batch = update_batch(self.db, self.admin, self.batch.id, BatchUpdate(total_slabs=15))
        self.assertEqual(batch.total_slabs, 15)
        self.assertCounters(batch, 11, 4, 0)

    def test_total_cannot_drop_below_committed(self):
        create_reservation(self.db, self.admin, self.batch.id, 4)
        adjust_availability(self.db, self.admin, self.batch.id, 2, BatchStatus.INACTIVE)
        with self.assertRaises(ValidationError):
            update_batch(self.db, self.admin, self.batch.id, BatchUpdate(total_slabs=5))

        batch = update_batch(self.db, self.admin, self.batch.id, BatchUpdate(total_slabs=6))
        self.assertCounters(batch, 0, 4, 0, inactive=2)
        self.assertEqual(batch.status, BatchStatus.RESERVED.value)

    def test_renaming_to_a_taken_code(self):
        other = self.make_batch(self.admin)
        with self.assertRaises(BatchCodeExists):
            update_batch(self.db, self.admin, self.batch.id, BatchUpdate(batch_code=other.batch_code))

    def test_sellers_cannot_edit(self):
        seller = self.make_user(UserRole.VENDEDOR_INTERNO, INDUSTRY_A)
        with self.assertRaises(AuthorizationDenied):
            update_batch(self.db, seller, self.batch.id, BatchUpdate(unit_price=Decimal("1")))


class AvailabilityTest(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.admin = self.make_user(UserRole.ADMIN_INDUSTRIA, INDUSTRY_A)
        self.batch = self.make_batch(self.admin, total_slabs=10)

    def test_deactivate_and_reactivate(self):
        batch = adjust_availability(self.db, self.admin, self.batch.id, 3, BatchStatus.INACTIVE)
        self.assertCounters(batch, 7, 0, 0, inactive=3)

        batch = adjust_availability(self.db, self.admin, self.batch.id, 3, "AVAILABLE")
        self.assertCounters(batch, 10, 0, 0)

    def test_cannot_deactivate_reserved_slabs(self):
        create_reservation(self.db, self.admin, self.batch.id, 8)
        with self.assertRaises(InsufficientStock):
            adjust_availability(self.db, self.admin, self.batch.id, 3, BatchStatus.INACTIVE)
        self.assertCounters(self.batch, 2, 8, 0)

    def test_whole_batch_inactive(self):
        batch = adjust_availability(self.db, self.admin, self.batch.id, 10, BatchStatus.INACTIVE)
        self.assertEqual(batch.status, BatchStatus.INACTIVE.value)

    def test_other_targets_are_refused(self):
        for target in (BatchStatus.SOLD, "BROKEN"):
            with self.assertRaises(ValidationError):
                adjust_availability(self.db, self.admin, self.batch.id, 1, target)


class ArchiveTest(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.admin = self.make_user(UserRole.ADMIN_INDUSTRIA, INDUSTRY_A)
        self.batch = self.make_batch(self.admin, total_slabs=10)

    def test_archive_is_refused_while_slabs_are_reserved(self):
        reservation = create_reservation(self.db, self.admin, self.batch.id, 1)
        with self.assertRaises(ValidationError):
            archive_batch(self.db, self.admin, self.batch.id)

        cancel_reservation(self.db, self.admin, reservation.id)
        batch = archive_batch(self.db, self.admin, self.batch.id)
        self.assertFalse(batch.is_active)

    def test_archived_batches_leave_the_listing(self):
        self.make_batch(self.admin)
        archive_batch(self.db, self.admin, self.batch.id)

        items, total = list_batches(self.db, self.admin)
        self.assertEqual(total, 1)
        self.assertNotIn(self.batch.id, [item.id for item in items])
        self.assertEqual(list_batches(self.db, self.admin, include_archived=True)[1], 2)

        restore_batch(self.db, self.admin, self.batch.id)
        self.assertEqual(list_batches(self.db, self.admin)[1], 2)

    def test_listing_filters(self):
        adjust_availability(self.db, self.admin, self.batch.id, 10, BatchStatus.INACTIVE)
        self.make_batch(self.admin)

        items, total = list_batches(self.db, self.admin, status="inactive")
        self.assertEqual((total, [item.id for item in items]), (1, [self.batch.id]))
        self.assertEqual(list_batches(self.db, self.admin, code=self.batch.batch_code.lower())[1], 1)
        with self.assertRaises(ValidationError):
            list_batches(self.db, self.admin, status="lost")

        broker = self.make_user(UserRole.BROKER)
        with self.assertRaises(AuthorizationDenied):
            list_batches(self.db, broker)

    def test_get_batch_visibility(self):
        self.assertEqual(get_batch(self.db, self.admin, self.batch.id).id, self.batch.id)
        outsider = self.make_user(UserRole.ADMIN_INDUSTRIA, INDUSTRY_B)
        with self.assertRaises(AuthorizationDenied):
            get_batch(self.db, outsider, self.batch.id)


if __name__ == "__main__":
    unittest.main()
