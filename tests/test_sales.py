import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from slabtrade.core.constants import BatchStatus, ReservationStatus, UserRole
from slabtrade.core.errors import (
    AlreadyConverted,
    AuthorizationDenied,
    PriceBelowIndustryValue,
    QuantityExceedsReservation,
    ReservationNotApproved,
    ValidationError,
)
from slabtrade.core.events import EventType
from slabtrade.services.reservation_service import (
    approve_reservation,
    create_reservation,
    get_reservation,
)
from slabtrade.services.sale_service import (
    compute_commission,
    confirm_sale,
    get_sale,
    list_sales,
    summarize_sales,
)
from slabtrade.services.sharing_service import share_batch
from support import INDUSTRY_A, DatabaseTestCase

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class ComputeCommissionTest(unittest.TestCase):
    class _Batch:
        unit_price = Decimal("500")
        price_unit = "M2"

    def test_owner_side_sale_has_no_commission(self):
        split = compute_commission(self._Batch(), Decimal("12"), Decimal("5000"), broker=False)
        self.assertEqual(split.broker_commission, Decimal("0.00"))
        self.assertEqual(split.net_industry_value, Decimal("5000.00"))

    def test_broker_keeps_the_markup(self):
        split = compute_commission(self._Batch(), Decimal("12"), Decimal("7000"), broker=True)
        self.assertEqual(split.net_industry_value, Decimal("6000.00"))
        self.assertEqual(split.broker_commission, Decimal("1000.00"))
        self.assertEqual(split.sale_price, split.net_industry_value + split.broker_commission)

    def test_broker_below_list_value(self):
        with self.assertRaises(PriceBelowIndustryValue):
            compute_commission(self._Batch(), Decimal("12"), Decimal("5999.99"), broker=True)

    def test_list_price_in_ft2_is_converted(self):
        batch = self._Batch()
        batch.unit_price = Decimal("50")
        batch.price_unit = "FT2"
        split = compute_commission(batch, Decimal("10"), Decimal("6000"), broker=True)
        self.assertEqual(split.net_industry_value, Decimal("5381.96"))
        self.assertEqual(split.broker_commission, Decimal("618.04"))


class ConfirmSaleTest(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.admin = self.make_user(UserRole.ADMIN_INDUSTRIA, INDUSTRY_A)
        self.seller = self.make_user(UserRole.VENDEDOR_INTERNO, INDUSTRY_A)
        self.broker = self.make_user(UserRole.BROKER)
        # 300 x 200 cm: 6 m2 per slab at 500/m2
        self.batch = self.make_batch(self.admin, total_slabs=20, unit_price="500")

    def _approved(self, actor, quantity):
        reservation = create_reservation(self.db, actor, self.batch.id, quantity, now=NOW)
        return approve_reservation(self.db, self.admin, reservation.id, now=NOW)

    def test_full_conversion_sells_out_the_batch(self):
        reservation = self._approved(self.seller, 20)
        sale = confirm_sale(self.db, self.seller, reservation.id, 20, Decimal("60000"), now=NOW)

        self.assertEqual(sale.quantity_slabs_sold, 20)
        self.assertEqual(Decimal(sale.total_area_sold), Decimal("120"))
        self.assertEqual(Decimal(sale.broker_commission), Decimal("0"))
        self.assertEqual(Decimal(sale.net_industry_value), Decimal("60000"))
        batch = self.assertCounters(self.batch, 0, 0, 20)
        self.assertEqual(batch.status, BatchStatus.SOLD.value)
        self.assertEqual(
            get_reservation(self.db, self.seller, reservation.id).status,
            ReservationStatus.CONVERTED.value,
        )

    def test_second_confirmation_is_refused(self):
        reservation = self._approved(self.seller, 5)
        confirm_sale(self.db, self.seller, reservation.id, 5, Decimal("15000"), now=NOW)
        with self.assertRaises(AlreadyConverted):
            confirm_sale(self.db, self.seller, reservation.id, 5, Decimal("15000"), now=NOW)
        self.assertCounters(self.batch, 15, 0, 5)
        self.assertEqual(len(list_sales(self.db, self.admin)), 1)

    def test_partial_sale_returns_the_rest(self):
        reservation = self._approved(self.seller, 5)
        sale = confirm_sale(self.db, self.seller, reservation.id, 3, Decimal("9000"), now=NOW)
        self.assertEqual(sale.quantity_slabs_sold, 3)
        self.assertEqual(Decimal(sale.price_per_unit), Decimal("500"))
        self.assertCounters(self.batch, 17, 0, 3)

    def test_reservation_must_be_approved(self):
        reservation = create_reservation(self.db, self.seller, self.batch.id, 2, now=NOW)
        with self.assertRaises(ReservationNotApproved):
            confirm_sale(self.db, self.seller, reservation.id, 2, Decimal("6000"), now=NOW)
        self.assertCounters(self.batch, 18, 2, 0)

    def test_quantity_cannot_exceed_reservation(self):
        reservation = self._approved(self.seller, 2)
        with self.assertRaises(QuantityExceedsReservation):
            confirm_sale(self.db, self.seller, reservation.id, 3, Decimal("9000"), now=NOW)
        for bad in (0, -1):
            with self.assertRaises(ValidationError):
                confirm_sale(self.db, self.seller, reservation.id, bad, Decimal("9000"), now=NOW)
        self.assertCounters(self.batch, 18, 2, 0)

    def test_price_must_be_positive(self):
        reservation = self._approved(self.seller, 2)
        with self.assertRaises(ValidationError):
            confirm_sale(self.db, self.seller, reservation.id, 2, Decimal("0"), now=NOW)

    def test_broker_sale_splits_commission(self):
        share_batch(self.db, self.admin, self.batch.id, self.broker.user_id, negotiated_price=Decimal("550"))
        reservation = self._approved(self.broker, 2)
        sale = confirm_sale(self.db, self.broker, reservation.id, 2, Decimal("7000"), now=NOW)

        self.assertEqual(Decimal(sale.net_industry_value), Decimal("6000"))
        self.assertEqual(Decimal(sale.broker_commission), Decimal("1000"))
        self.assertEqual(sale.sold_by_user_id, self.broker.user_id)

        event = self.events[-1]
        self.assertEqual(event.event_type, EventType.SALE_CONFIRMED)
        self.assertEqual(event.broker_commission, Decimal("1000.00"))

    def test_admin_confirming_for_broker_still_pays_commission(self):
        share_batch(self.db, self.admin, self.batch.id, self.broker.user_id)
        reservation = self._approved(self.broker, 1)
        sale = confirm_sale(self.db, self.admin, reservation.id, 1, Decimal("3500"), now=NOW)
        self.assertEqual(Decimal(sale.broker_commission), Decimal("500"))

    def test_broker_below_list_value_changes_nothing(self):
        share_batch(self.db, self.admin, self.batch.id, self.broker.user_id)
        reservation = self._approved(self.broker, 2)
        with self.assertRaises(PriceBelowIndustryValue):
            confirm_sale(self.db, self.broker, reservation.id, 2, Decimal("5000"), now=NOW)
        self.assertCounters(self.batch, 18, 2, 0)
        self.assertEqual(
            get_reservation(self.db, self.broker, reservation.id).status,
            ReservationStatus.APPROVED.value,
        )

    def test_someone_else_cannot_confirm(self):
        reservation = self._approved(self.seller, 2)
        other_seller = self.make_user(UserRole.VENDEDOR_INTERNO, INDUSTRY_A)
        with self.assertRaises(AuthorizationDenied):
            confirm_sale(self.db, other_seller, reservation.id, 2, Decimal("6000"), now=NOW)

    def test_sale_visibility(self):
        reservation = self._approved(self.seller, 1)
        sale = confirm_sale(self.db, self.seller, reservation.id, 1, Decimal("3000"), now=NOW)
        self.assertEqual(get_sale(self.db, self.admin, sale.id).id, sale.id)
        with self.assertRaises(AuthorizationDenied):
            get_sale(self.db, self.broker, sale.id)

    def test_summary(self):
        first = self._approved(self.seller, 2)
        confirm_sale(self.db, self.seller, first.id, 2, Decimal("6000"), now=NOW)
        share_batch(self.db, self.admin, self.batch.id, self.broker.user_id)
        second = self._approved(self.broker, 1)
        confirm_sale(self.db, self.broker, second.id, 1, Decimal("4000"), now=NOW + timedelta(days=1))

        summary = summarize_sales(self.db, self.admin)
        self.assertEqual(summary.count, 2)
        self.assertEqual(summary.total_sales, Decimal("10000.00"))
        self.assertEqual(summary.total_commissions, Decimal("1000.00"))
        self.assertEqual(summary.average_ticket, Decimal("5000.00"))

        broker_only = summarize_sales(self.db, self.admin, seller_id=self.broker.user_id)
        self.assertEqual(broker_only.count, 1)
        self.assertEqual(summarize_sales(self.db, self.broker).total_commissions, Decimal("1000.00"))

        window = summarize_sales(self.db, self.admin, end=NOW + timedelta(hours=1))
        self.assertEqual(window.count, 1)

    def test_empty_summary(self):
        summary = summarize_sales(self.db, self.admin)
        self.assertEqual((summary.count, summary.total_sales, summary.average_ticket), (0, Decimal("0.00"), Decimal("0.00")))


if __name__ == "__main__":
    unittest.main()
