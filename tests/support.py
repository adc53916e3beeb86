import itertools
import os
import tempfile
import unittest
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.orm import sessionmaker

from slabtrade.core.constants import PriceUnit, UserRole
from slabtrade.core.events import get_publisher
from slabtrade.database import build_engine, init_db
from slabtrade.models.batch import Batch
from slabtrade.models.user import User
from slabtrade.schemas.batch import BatchCreate
from slabtrade.services.authorization import Actor
from slabtrade.services.batch_service import create_batch

INDUSTRY_A = "industry-a"
INDUSTRY_B = "industry-b"

_codes = itertools.count(1)
_emails = itertools.count(1)


class DatabaseTestCase(unittest.TestCase):
    """Fresh SQLite file per test, plus a recorder for published events."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        path = os.path.join(self._tmp.name, "slabtrade-test.db")
        self.engine = build_engine("sqlite:///{}".format(path))
        init_db(self.engine)
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
        self.db = self.SessionLocal()

        self.events = []
        get_publisher().clear()
        get_publisher().subscribe("*", self.events.append)

    def tearDown(self):
        get_publisher().clear()
        self.db.close()
        self.engine.dispose()
        self._tmp.cleanup()

    def make_user(self, role: UserRole, industry_id=None, *, active=True) -> Actor:
        user = User(
            industry_id=industry_id,
            name="{} {}".format(role.value.title(), next(_emails)),
            email="user{}@example.com".format(next(_emails)),
            role=role.value,
            is_active=active,
        )
        self.db.add(user)
        self.db.commit()
        return Actor.from_user(user)

    def make_batch(
        self,
        admin: Actor,
        *,
        total_slabs=20,
        unit_price="500",
        price_unit=PriceUnit.M2,
        height="300",
        width="200",
    ) -> Batch:
        payload = BatchCreate(
            product_id="product-1",
            batch_code="GRN-{:06d}".format(next(_codes)),
            height=Decimal(height),
            width=Decimal(width),
            thickness=Decimal("2"),
            total_slabs=total_slabs,
            unit_price=Decimal(unit_price),
            price_unit=price_unit,
            entry_date=date.today() - timedelta(days=1),
        )
        return create_batch(self.db, admin, payload)

    def reload(self, batch: Batch) -> Batch:
        return self.db.get(Batch, batch.id, populate_existing=True)

    def assertCounters(self, batch, available, reserved, sold, inactive=0):
        batch = self.reload(batch)
        self.assertEqual(
            (batch.available_slabs, batch.reserved_slabs, batch.sold_slabs, batch.inactive_slabs),
            (available, reserved, sold, inactive),
        )
        self.assertEqual(
            batch.total_slabs,
            batch.available_slabs + batch.reserved_slabs + batch.sold_slabs + batch.inactive_slabs,
        )
        return batch
