import argparse
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import delete, select

from stocksense.core.logging import setup_logging
from stocksense.database import Base, SessionLocal, engine, ensure_reference_data
from stocksense.models import Category, Movement, Product, StockEntry, Unit, import_all_models


def parse_args():
    parser = argparse.ArgumentParser(description="Seed sample inventory data.")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Clear existing data before seeding.",
    )
    parser.add_argument(
        "--company-id",
        type=int,
        default=1,
        help="Tenant the demo products belong to.",
    )
    return parser.parse_args()


def main():
    setup_logging()
    args = parse_args()

    import_all_models()
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        if args.reset:
            db.execute(delete(Movement))
            db.execute(delete(StockEntry))
            db.execute(delete(Product))
            db.execute(delete(Category))
            db.execute(delete(Unit))
            db.commit()

        ensure_reference_data(db)

        has_product = db.execute(select(Product.id).limit(1)).first()
        if has_product:
            print("Seed skipped: products already exist.")
            return

        pieces = Unit(name="pieza", allows_decimals=False)
        kilos = Unit(name="kg", allows_decimals=True)
        drinks = Category(name="Bebidas", company_id=None)
        groceries = Category(name="Abarrotes", company_id=args.company_id)
        db.add_all([pieces, kilos, drinks, groceries])
        db.flush()

        products = [
            Product(
                company_id=args.company_id,
                name="Agua natural 1L",
                brand="Ciel",
                stock=Decimal("12"),
                min_stock=Decimal("5"),
                max_stock=Decimal("40"),
                sensor_type="camera",
                unit=pieces,
                category=drinks,
            ),
            Product(
                company_id=args.company_id,
                name="Leche entera",
                brand="Lala",
                stock=Decimal("2"),
                min_stock=Decimal("4"),
                max_stock=Decimal("20"),
                sensor_type="rfid",
                unit=pieces,
                category=drinks,
            ),
            Product(
                company_id=args.company_id,
                name="Frijol negro",
                brand="Verde Valle",
                stock=Decimal("8.50"),
                min_stock=Decimal("3"),
                sensor_type="weight",
                unit=kilos,
                category=groceries,
            ),
            Product(
                company_id=args.company_id,
                name="Arroz",
                brand="SOS",
                stock=Decimal("10"),
                min_stock=Decimal("5"),
                max_stock=Decimal("20"),
                sensor_type="manual",
                unit=pieces,
                category=groceries,
            ),
        ]
        db.add_all(products)
        db.flush()

        milk = products[1]
        db.add_all(
            [
                StockEntry(
                    product_id=milk.id,
                    rfid_tag="E2000017221101441890A1",
                    expiration_date=date.today() + timedelta(days=3),
                ),
                StockEntry(
                    product_id=milk.id,
                    rfid_tag="E2000017221101441890A2",
                    expiration_date=date.today() + timedelta(days=12),
                ),
            ]
        )
        db.commit()
        print(
            "Seed data created. Camera product id={}, weight product id={}".format(
                products[0].id,
                products[2].id,
            )
        )
    finally:
        db.close()


if __name__ == "__main__":
    main()
