import unittest
from decimal import Decimal

from slabtrade.core.constants import PriceUnit, UserRole
from slabtrade.core.errors import (
    AuthorizationDenied,
    GrantConflict,
    GrantNotFound,
    UserNotFound,
    ValidationError,
)
from slabtrade.services.authorization import Capability, capabilities_for
from slabtrade.services.batch_service import archive_batch
from slabtrade.services.ledger import reserve
from slabtrade.services.sharing_service import (
    list_broker_inventory,
    list_grants_for_batch,
    revoke_batch_share,
    revoke_catalog,
    share_batch,
    share_catalog,
    update_negotiated_price,
)
from support import INDUSTRY_A, INDUSTRY_B, DatabaseTestCase


class ShareBatchTest(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.admin = self.make_user(UserRole.ADMIN_INDUSTRIA, INDUSTRY_A)
        self.broker = self.make_user(UserRole.BROKER)
        self.batch = self.make_batch(self.admin)

    def test_share_makes_broker_a_grantee(self):
        self.assertEqual(capabilities_for(self.db, self.broker, self.batch), set())
        grant = share_batch(
            self.db,
            self.admin,
            self.batch.id,
            self.broker.user_id,
            negotiated_price=Decimal("480"),
        )
        self.assertTrue(grant.is_active)
        self.assertEqual(grant.industry_owner_id, INDUSTRY_A)
        self.assertEqual(grant.negotiated_price_unit, PriceUnit.M2.value)
        self.assertEqual(capabilities_for(self.db, self.broker, self.batch), {Capability.GRANTEE})

    def test_duplicate_share_conflicts(self):
        share_batch(self.db, self.admin, self.batch.id, self.broker.user_id)
        with self.assertRaises(GrantConflict):
            share_batch(self.db, self.admin, self.batch.id, self.broker.user_id)

    def test_revoked_share_is_reactivated(self):
        grant = share_batch(self.db, self.admin, self.batch.id, self.broker.user_id)
        revoke_batch_share(self.db, self.admin, grant.id)
        self.assertEqual(capabilities_for(self.db, self.broker, self.batch), set())

        again = share_batch(self.db, self.admin, self.batch.id, self.broker.user_id, negotiated_price="520")
        self.assertEqual(again.id, grant.id)
        self.assertEqual(Decimal(again.negotiated_price), Decimal("520"))
        self.assertEqual(len(list_grants_for_batch(self.db, self.admin, self.batch.id)), 1)

    def test_only_the_owner_shares(self):
        foreign_admin = self.make_user(UserRole.ADMIN_INDUSTRIA, INDUSTRY_B)
        with self.assertRaises(AuthorizationDenied):
            share_batch(self.db, foreign_admin, self.batch.id, self.broker.user_id)
        with self.assertRaises(AuthorizationDenied):
            share_batch(self.db, self.broker, self.batch.id, self.broker.user_id)

    def test_grantee_must_be_an_active_seller(self):
        other_admin = self.make_user(UserRole.ADMIN_INDUSTRIA, INDUSTRY_B)
        with self.assertRaises(ValidationError):
            share_batch(self.db, self.admin, self.batch.id, other_admin.user_id)

        inactive = self.make_user(UserRole.BROKER, active=False)
        with self.assertRaises(ValidationError):
            share_batch(self.db, self.admin, self.batch.id, inactive.user_id)

        with self.assertRaises(UserNotFound):
            share_batch(self.db, self.admin, self.batch.id, "missing-user")

    def test_negotiated_price_must_be_positive(self):
        with self.assertRaises(ValidationError):
            share_batch(self.db, self.admin, self.batch.id, self.broker.user_id, negotiated_price="-5")

    def test_update_negotiated_price(self):
        grant = share_batch(self.db, self.admin, self.batch.id, self.broker.user_id)
        updated = update_negotiated_price(self.db, self.admin, grant.id, Decimal("42.50"), "ft2")
        self.assertEqual(Decimal(updated.negotiated_price), Decimal("42.50"))
        self.assertEqual(updated.negotiated_price_unit, PriceUnit.FT2.value)

        cleared = update_negotiated_price(self.db, self.admin, grant.id, None)
        self.assertIsNone(cleared.negotiated_price)

        revoke_batch_share(self.db, self.admin, grant.id)
        with self.assertRaises(GrantNotFound):
            update_negotiated_price(self.db, self.admin, grant.id, Decimal("40"))

    def test_internal_sellers_receive_new_batches(self):
        seller = self.make_user(UserRole.VENDEDOR_INTERNO, INDUSTRY_A)
        self.make_user(UserRole.VENDEDOR_INTERNO, INDUSTRY_A, active=False)
        self.make_user(UserRole.VENDEDOR_INTERNO, INDUSTRY_B)

        batch = self.make_batch(self.admin)
        grants = list_grants_for_batch(self.db, self.admin, batch.id)
        self.assertEqual([grant.shared_with_user_id for grant in grants], [seller.user_id])
        self.assertIsNone(grants[0].negotiated_price)


class BrokerInventoryTest(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.admin = self.make_user(UserRole.ADMIN_INDUSTRIA, INDUSTRY_A)
        self.broker = self.make_user(UserRole.BROKER)
        self.first = self.make_batch(self.admin, unit_price="500")
        self.second = self.make_batch(self.admin, unit_price="600")

    def test_direct_grants_carry_negotiated_price(self):
        share_batch(self.db, self.admin, self.first.id, self.broker.user_id, negotiated_price="450")
        items = list_broker_inventory(self.db, self.broker.user_id)
        self.assertEqual([item.batch.id for item in items], [self.first.id])
        self.assertEqual(items[0].price.price, Decimal("450"))
        self.assertTrue(items[0].price.negotiated)
        self.assertFalse(items[0].via_catalog)

    def test_catalog_grant_covers_the_whole_industry(self):
        share_batch(self.db, self.admin, self.first.id, self.broker.user_id, negotiated_price="450")
        share_catalog(self.db, self.admin, self.broker.user_id, can_show_prices=False)

        items = {item.batch.id: item for item in list_broker_inventory(self.db, self.broker.user_id)}
        self.assertEqual(set(items), {self.first.id, self.second.id})
        self.assertFalse(items[self.first.id].via_catalog)
        self.assertEqual(items[self.first.id].price.price, Decimal("450"))
        self.assertTrue(items[self.second.id].via_catalog)
        self.assertFalse(items[self.second.id].show_price)
        self.assertEqual(items[self.second.id].price.price, Decimal("600"))

    def test_sold_out_and_archived_batches_are_hidden(self):
        share_batch(self.db, self.admin, self.first.id, self.broker.user_id)
        share_batch(self.db, self.admin, self.second.id, self.broker.user_id)
        reserve(self.db, self.first.id, 20)
        self.db.commit()
        archive_batch(self.db, self.admin, self.second.id)

        self.assertEqual(list_broker_inventory(self.db, self.broker.user_id), [])

    def test_catalog_sharing_rules(self):
        share_catalog(self.db, self.admin, self.broker.user_id)
        with self.assertRaises(GrantConflict):
            share_catalog(self.db, self.admin, self.broker.user_id)

        seller = self.make_user(UserRole.VENDEDOR_INTERNO, INDUSTRY_A)
        with self.assertRaises(ValidationError):
            share_catalog(self.db, self.admin, seller.user_id)
        with self.assertRaises(AuthorizationDenied):
            share_catalog(self.db, seller, self.broker.user_id)

        revoke_catalog(self.db, self.admin, self.broker.user_id)
        self.assertEqual(list_broker_inventory(self.db, self.broker.user_id), [])
        with self.assertRaises(GrantNotFound):
            revoke_catalog(self.db, self.admin, self.broker.user_id)

        permission = share_catalog(self.db, self.admin, self.broker.user_id, can_show_prices=True)
        self.assertTrue(permission.is_active)
        self.assertTrue(permission.can_show_prices)


if __name__ == "__main__":
    unittest.main()
