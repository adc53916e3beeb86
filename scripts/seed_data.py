import argparse
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import delete, select

from slabtrade.core.constants import PriceUnit, UserRole
from slabtrade.core.logging import setup_logging
from slabtrade.database import SessionLocal, init_db
from slabtrade.models import Batch, Reservation, Sale, SharedCatalogPermission, SharedInventoryBatch, User
from slabtrade.schemas.batch import BatchCreate
from slabtrade.services.authorization import Actor
from slabtrade.services.batch_service import create_batch
from slabtrade.services.sharing_service import share_batch

INDUSTRY_ID = "11111111-1111-1111-1111-111111111111"


def parse_args():
    parser = argparse.ArgumentParser(description="Seed a sample industry with users and batches.")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Clear existing data before seeding.",
    )
    return parser.parse_args()


def main():
    setup_logging()
    args = parse_args()
    init_db()

    db = SessionLocal()
    try:
        if args.reset:
            for model in (Sale, Reservation, SharedInventoryBatch, SharedCatalogPermission, Batch, User):
                db.execute(delete(model))
            db.commit()

        has_user = db.execute(select(User.id).limit(1)).first()
        if has_user:
            print("Seed skipped: users already exist.")
            return

        admin = User(
            industry_id=INDUSTRY_ID,
            name="Marmoraria Admin",
            email="admin@marmoraria.example",
            role=UserRole.ADMIN_INDUSTRIA.value,
        )
        seller = User(
            industry_id=INDUSTRY_ID,
            name="Internal Seller",
            email="seller@marmoraria.example",
            role=UserRole.VENDEDOR_INTERNO.value,
        )
        broker = User(
            name="Independent Broker",
            email="broker@example.com",
            role=UserRole.BROKER.value,
        )
        db.add_all([admin, seller, broker])
        db.commit()

        actor = Actor.from_user(admin)
        granite = create_batch(
            db,
            actor,
            BatchCreate(
                product_id="granite-black",
                batch_code="GRN-000001",
                height=Decimal("300"),
                width=Decimal("180"),
                thickness=Decimal("2"),
                total_slabs=20,
                unit_price=Decimal("500"),
                price_unit=PriceUnit.M2,
                origin_quarry="Cachoeiro",
                entry_date=date.today() - timedelta(days=10),
            ),
        )
        create_batch(
            db,
            actor,
            BatchCreate(
                product_id="marble-white",
                batch_code="MRB-000042",
                height=Decimal("280"),
                width=Decimal("160"),
                thickness=Decimal("3"),
                total_slabs=12,
                unit_price=Decimal("72.50"),
                price_unit=PriceUnit.FT2,
                entry_date=date.today() - timedelta(days=3),
            ),
        )
        share_batch(db, actor, granite.id, broker.id, negotiated_price=Decimal("450"))

        print("Seed data created.")
        for user in (admin, seller, broker):
            print(f"{user.role:<17} {user.id}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
