import unittest
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy import func, select

from stocksense.core.constants import EVENT_PRODUCT_UPDATED, EVENT_RFID_TAG_DETECTED
from stocksense.core.exceptions import BadRequestError, EntryModeDisabled, ProductNotFound, RfidTagConflict
from stocksense.models import Movement, Product, StockEntry
from stocksense.services.rfid_service import RfidReconciler
from tests.support import (
    COMPANY_ID,
    OTHER_COMPANY_ID,
    add_entry,
    add_product,
    make_database,
    make_recorder,
    new_entry_mode,
)


class RfidReconcilerTest(unittest.TestCase):
    def setUp(self):
        self.engine, self.Session = make_database()
        self.db = self.Session()
        self.recorder, self.broadcaster = make_recorder()
        self.feed = self.broadcaster.subscribe(name="test")
        self.entry_mode = new_entry_mode(True)
        self.reconciler = RfidReconciler(self.recorder, self.entry_mode, company_id=COMPANY_ID)

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def _open_entries(self, product):
        return self.db.execute(
            select(func.count(StockEntry.id)).where(
                StockEntry.product_id == product.id,
                StockEntry.deleted_at.is_(None),
            )
        ).scalar()

    def test_register_then_scan_consumes_entry(self):
        product = add_product(self.db, name="Leche", stock="0", sensor_type="rfid")

        result = self.reconciler.register_entries(
            self.db,
            COMPANY_ID,
            product.id,
            [{"rfid_tag": "A1", "expiration_date": "2030-01-01"}],
        )
        self.assertEqual(result["registered"], 1)
        self.assertEqual(result["duplicates"], 0)
        self.assertEqual(self.db.get(Product, product.id).stock, Decimal("1"))
        self.feed.drain()

        entry = self.reconciler.on_tag_scanned(self.db, "A1")
        self.assertIsNotNone(entry)
        self.assertIsNotNone(entry.deleted_at)
        self.assertEqual(self.db.get(Product, product.id).stock, Decimal("0"))
        self.assertEqual(self._open_entries(product), 0)

        exit_movement = self.db.execute(
            select(Movement).where(Movement.type_id == 2)
        ).unique().scalars().one()
        self.assertEqual(exit_movement.quantity, Decimal("1"))
        self.assertEqual(exit_movement.comment, "Salida RFID")

        events = [message["event"] for message in self.feed.drain()]
        self.assertEqual(events, [EVENT_PRODUCT_UPDATED])

        self.assertIsNone(self.reconciler.on_tag_scanned(self.db, "A1"))
        messages = self.feed.drain()
        self.assertEqual(messages, [{"event": EVENT_RFID_TAG_DETECTED, "data": {"rfid_tag": "A1"}}])
        self.assertEqual(self.db.get(Product, product.id).stock, Decimal("0"))

    def test_scan_broadcasts_next_soonest_expiration(self):
        product = add_product(self.db, name="Yogur", stock="2", sensor_type="rfid")
        soon = date.today() + timedelta(days=2)
        later = date.today() + timedelta(days=9)
        add_entry(self.db, product, "T-SOON", soon)
        add_entry(self.db, product, "T-LATER", later)

        self.reconciler.on_tag_scanned(self.db, " T-SOON ")

        card = self.feed.drain()[0]["data"]["cardData"]
        self.assertEqual(card["stock_actual"], 1.0)
        self.assertEqual(card["expiration_date"], later.isoformat())

    def test_scan_of_last_entry_omits_expiration(self):
        product = add_product(self.db, name="Queso", stock="1", sensor_type="rfid")
        add_entry(self.db, product, "ONLY", date.today())
        self.reconciler.on_tag_scanned(self.db, "ONLY")
        card = self.feed.drain()[0]["data"]["cardData"]
        self.assertNotIn("expiration_date", card)

    def test_empty_tag_is_ignored(self):
        with self.assertLogs("stocksense.services.rfid_service", level="WARNING"):
            self.assertIsNone(self.reconciler.on_tag_scanned(self.db, "   "))
        self.assertEqual(self.feed.drain(), [])

    def test_scan_is_scoped_to_sensor_tenant(self):
        product = add_product(
            self.db,
            name="Ajeno",
            stock="1",
            sensor_type="rfid",
            company_id=OTHER_COMPANY_ID,
        )
        add_entry(self.db, product, "FOREIGN")
        self.assertIsNone(self.reconciler.on_tag_scanned(self.db, "FOREIGN"))
        self.assertEqual(self._open_entries(product), 1)

    def test_register_counts_duplicates_and_skips_malformed(self):
        product = add_product(self.db, name="Crema", stock="1", sensor_type="rfid")
        add_entry(self.db, product, "EXISTING")

        result = self.reconciler.register_entries(
            self.db,
            COMPANY_ID,
            product.id,
            [
                {"rfid_tag": "EXISTING"},
                {"rfid_tag": "NEW-1"},
                {"rfid_tag": "NEW-1"},
                {"rfid_tag": 123},
                {"expiration_date": "2030-01-01"},
                "garbage",
                {"rfid_tag": "NEW-2", "expiration_date": "not-a-date"},
                {"rfid_tag": "NEW-3"},
            ],
        )

        self.assertEqual(result["registered"], 2)
        self.assertEqual(result["duplicates"], 2)
        self.assertEqual(self.db.get(Product, product.id).stock, Decimal("3"))
        movements = self.db.execute(select(Movement)).unique().scalars().all()
        self.assertEqual(len(movements), 1)
        self.assertEqual(movements[0].quantity, Decimal("2"))
        self.assertEqual(movements[0].comment, "Registro RFID")
        self.assertEqual(self._open_entries(product), 3)

    def test_register_with_only_duplicates_writes_no_movement(self):
        product = add_product(self.db, name="Mantequilla", stock="1", sensor_type="rfid")
        add_entry(self.db, product, "DUP")
        result = self.reconciler.register_entries(self.db, COMPANY_ID, product.id, [{"rfid_tag": "DUP"}])
        self.assertEqual((result["registered"], result["duplicates"]), (0, 1))
        self.assertEqual(self.db.execute(select(func.count(Movement.id))).scalar(), 0)
        self.assertEqual(self.feed.drain(), [])

    def test_tag_registered_concurrently_is_a_retryable_conflict(self):
        other = add_product(self.db, name="Kefir", stock="1", sensor_type="rfid")
        add_entry(self.db, other, "RACED")
        product = add_product(self.db, name="Nata", stock="0", sensor_type="rfid")

        with patch.object(RfidReconciler, "_is_open", return_value=False):
            with self.assertLogs("stocksense.services.rfid_service", level="WARNING"):
                with self.assertRaises(RfidTagConflict) as ctx:
                    self.reconciler.register_entries(
                        self.db,
                        COMPANY_ID,
                        product.id,
                        [{"rfid_tag": "FRESH"}, {"rfid_tag": "RACED"}],
                    )

        self.assertEqual(ctx.exception.status_code, 409)
        self.assertTrue(ctx.exception.retryable)
        self.assertEqual(self.db.get(Product, product.id).stock, Decimal("0"))
        self.assertEqual(self._open_entries(product), 0)
        self.assertEqual(self.db.execute(select(func.count(Movement.id))).scalar(), 0)

        result = self.reconciler.register_entries(
            self.db,
            COMPANY_ID,
            product.id,
            [{"rfid_tag": "FRESH"}, {"rfid_tag": "RACED"}],
        )
        self.assertEqual((result["registered"], result["duplicates"]), (1, 1))

    def test_register_requires_entry_mode(self):
        product = add_product(self.db, name="Huevo", sensor_type="rfid")
        self.entry_mode.set(False)
        with self.assertRaises(EntryModeDisabled):
            self.reconciler.register_entries(self.db, COMPANY_ID, product.id, [{"rfid_tag": "X"}])

    def test_register_requires_rfid_product(self):
        product = add_product(self.db, name="Arroz", sensor_type="manual")
        with self.assertRaises(BadRequestError):
            self.reconciler.register_entries(self.db, COMPANY_ID, product.id, [{"rfid_tag": "X"}])

    def test_register_requires_product_in_tenant(self):
        product = add_product(self.db, name="Otro", sensor_type="rfid", company_id=OTHER_COMPANY_ID)
        with self.assertRaises(ProductNotFound):
            self.reconciler.register_entries(self.db, COMPANY_ID, product.id, [{"rfid_tag": "X"}])

    def test_register_rejects_missing_list(self):
        product = add_product(self.db, name="Pan", sensor_type="rfid")
        with self.assertRaises(BadRequestError):
            self.reconciler.register_entries(self.db, COMPANY_ID, product.id, None)


if __name__ == "__main__":
    unittest.main()
