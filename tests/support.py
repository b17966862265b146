from decimal import Decimal

from sqlalchemy.orm import sessionmaker

from stocksense.config import Settings
from stocksense.core.entry_mode import EntryModeState
from stocksense.core.locks import ProductLocks
from stocksense.database import Base, create_database_engine, ensure_reference_data
from stocksense.models import Category, Product, StockEntry, Unit, import_all_models
from stocksense.services.broadcast_service import InventoryBroadcaster
from stocksense.services.movement_service import MovementRecorder

COMPANY_ID = 7
OTHER_COMPANY_ID = 8


def make_settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "sqlite://",
        "DISPLAY_TIMEZONE": "UTC",
        "SENSOR_LISTENER_ENABLED": False,
        "SENSOR_COMPANY_ID": COMPANY_ID,
        "STOCK_LOCK_TIMEOUT_SECONDS": 5.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_database(url: str = "sqlite://", settings: Settings = None):
    settings = settings or make_settings(DATABASE_URL=url)
    import_all_models()
    engine = create_database_engine(url, settings=settings)
    Base.metadata.create_all(bind=engine)
    session_factory = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    db = session_factory()
    try:
        ensure_reference_data(db)
    finally:
        db.close()
    return engine, session_factory


def make_recorder(settings: Settings = None):
    settings = settings or make_settings()
    broadcaster = InventoryBroadcaster(queue_size=50)
    recorder = MovementRecorder(
        ProductLocks(timeout=settings.STOCK_LOCK_TIMEOUT_SECONDS),
        broadcaster,
        settings=settings,
    )
    return recorder, broadcaster


def add_product(
    db,
    *,
    name="Agua 1L",
    stock="0",
    min_stock="0",
    max_stock=None,
    sensor_type="manual",
    allows_decimals=False,
    company_id=COMPANY_ID,
    is_active=True,
):
    unit = Unit(name="unit-{}-{}".format(name, allows_decimals), allows_decimals=allows_decimals)
    category = Category(name="Bebidas", company_id=company_id)
    product = Product(
        company_id=company_id,
        name=name,
        stock=Decimal(stock),
        min_stock=Decimal(min_stock),
        max_stock=Decimal(max_stock) if max_stock is not None else None,
        sensor_type=sensor_type,
        is_active=is_active,
        unit=unit,
        category=category,
    )
    db.add(product)
    db.commit()
    return product


def add_entry(db, product, tag, expiration_date=None):
    entry = StockEntry(product_id=product.id, rfid_tag=tag, expiration_date=expiration_date)
    db.add(entry)
    db.commit()
    return entry


def new_entry_mode(enabled=True):
    return EntryModeState(enabled)
