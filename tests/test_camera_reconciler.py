import unittest
from decimal import Decimal

from sqlalchemy import func, select

from stocksense.core.exceptions import BadRequestError, ProductNotFound
from stocksense.models import Movement, Product
from stocksense.services.camera_service import CameraReconciler
from tests.support import COMPANY_ID, OTHER_COMPANY_ID, add_product, make_database, make_recorder


class CameraReconcilerTest(unittest.TestCase):
    def setUp(self):
        self.engine, self.Session = make_database()
        self.db = self.Session()
        self.recorder, self.broadcaster = make_recorder()

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def _reconciler(self, product, company_id=COMPANY_ID):
        return CameraReconciler(self.recorder, product.id, company_id=company_id)

    def _movements(self):
        return self.db.execute(select(Movement).order_by(Movement.id)).unique().scalars().all()

    def test_identical_counts_record_nothing(self):
        product = add_product(self.db, name="Botella", stock="5", sensor_type="camera")
        reconciler = self._reconciler(product)
        for _ in range(3):
            self.assertIsNone(reconciler.on_bottle_count(self.db, 5))
        self.assertEqual(self._movements(), [])

    def test_drop_in_count_records_one_exit(self):
        product = add_product(self.db, name="Botella", stock="5", sensor_type="camera")
        reconciler = self._reconciler(product)

        movement = reconciler.on_bottle_count(self.db, 3)
        reconciler.on_bottle_count(self.db, 3)

        movements = self._movements()
        self.assertEqual(len(movements), 1)
        self.assertEqual(movement.type_id, 2)
        self.assertEqual(movement.quantity, Decimal("2"))
        self.assertEqual(movement.comment, "Conteo de cámara")
        self.assertEqual(self.db.get(Product, product.id).stock, Decimal("3"))

    def test_rise_in_count_records_entry(self):
        product = add_product(self.db, name="Botella", stock="1", sensor_type="camera")
        movement = self._reconciler(product).on_bottle_count(self.db, 4)
        self.assertEqual(movement.type_id, 1)
        self.assertEqual(movement.quantity, Decimal("3"))
        self.assertEqual(movement.final_quantity, Decimal("4"))

    def test_invalid_counts_are_rejected(self):
        product = add_product(self.db, name="Botella", stock="1", sensor_type="camera")
        reconciler = self._reconciler(product)
        for bad in (-1, 2.5, "3", True, None):
            with self.assertRaises(BadRequestError):
                reconciler.on_bottle_count(self.db, bad)
        self.assertEqual(self.db.execute(select(func.count(Movement.id))).scalar(), 0)

    def test_product_outside_sensor_tenant(self):
        product = add_product(
            self.db,
            name="Ajena",
            stock="1",
            sensor_type="camera",
            company_id=OTHER_COMPANY_ID,
        )
        with self.assertRaises(ProductNotFound):
            self._reconciler(product).on_bottle_count(self.db, 2)


if __name__ == "__main__":
    unittest.main()
