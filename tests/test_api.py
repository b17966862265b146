import os
import shutil
import tempfile
import time
import unittest
from decimal import Decimal
from unittest.mock import patch

import jwt
from fastapi.testclient import TestClient

from stocksense.config import get_settings
from stocksense.main import create_app
from stocksense.models import Category, Product, Unit
from tests.support import COMPANY_ID, add_product, make_database, make_settings

SECRET = "test-secret"
API_KEY = "device-key"


def bearer(claims=None):
    payload = {"sub": "operator", "companyId": COMPANY_ID}
    if claims is not None:
        payload = claims
    return {"Authorization": "Bearer " + jwt.encode(payload, SECRET, algorithm="HS256")}


class InventoryApiTest(unittest.TestCase):
    def setUp(self):
        self.env = patch.dict(os.environ, {"JWT_SECRET": SECRET, "API_KEYS": API_KEY})
        self.env.start()
        get_settings.cache_clear()

        self.tmpdir = tempfile.mkdtemp()
        url = "sqlite:///" + os.path.join(self.tmpdir, "api.db")
        self.engine, self.Session = make_database(url)

        db = self.Session()
        try:
            self.manual = add_product(db, name="Arroz", stock="10", min_stock="5", max_stock="20")
            self.camera = add_product(db, name="Botella", stock="5", sensor_type="camera")
            self.tagged = add_product(db, name="Leche", stock="0", sensor_type="rfid")
        finally:
            db.close()

        settings = make_settings(
            DATABASE_URL=url,
            JWT_SECRET=SECRET,
            API_KEYS=API_KEY,
            SENSOR_LISTENER_ENABLED=True,
            CAMERA_PRODUCT_ID=self.camera.id,
        )
        self.app = create_app(settings=settings, bind=self.engine, session_factory=self.Session)
        self.client = TestClient(self.app)
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)
        self.engine.dispose()
        shutil.rmtree(self.tmpdir, ignore_errors=True)
        self.env.stop()
        get_settings.cache_clear()

    def _stock(self, product_id):
        db = self.Session()
        try:
            return Decimal(db.get(Product, product_id).stock)
        finally:
            db.close()

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")
        self.assertTrue(response.json()["sensor_listener"])

    def test_operator_endpoints_need_a_tenant_token(self):
        self.assertEqual(self.client.get("/inventory/home").status_code, 401)
        self.assertEqual(self.client.get("/inventory/home", headers={"X-API-Key": API_KEY}).status_code, 401)
        response = self.client.get("/inventory/home", headers=bearer({"sub": "operator"}))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Missing company_id in token")
        self.assertEqual(self.client.get("/inventory/home", headers=bearer()).status_code, 200)

    def test_manual_movement_and_history(self):
        response = self.client.post(
            "/inventory/products/{}/movements".format(self.manual.id),
            json={"type": 2, "quantity": 3, "note": "venta"},
            headers=bearer(),
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json(), {"message": "Movement recorded", "new_stock": 7.0})

        history = self.client.get(
            "/inventory/products/{}/movements".format(self.manual.id),
            headers=bearer(),
        ).json()
        self.assertEqual(len(history["movements"]), 1)
        item = history["movements"][0]
        self.assertEqual((item["stock_before"], item["quantity"], item["stock_after"]), (10.0, -3.0, 7.0))
        self.assertEqual(item["comment"], "venta")

    def test_movement_errors_map_to_status_codes(self):
        url = "/inventory/products/{}/movements"
        camera = self.client.post(url.format(self.camera.id), json={"type": 1, "quantity": 1}, headers=bearer())
        self.assertEqual(camera.status_code, 400)
        underflow = self.client.post(url.format(self.manual.id), json={"type": 2, "quantity": 50}, headers=bearer())
        self.assertEqual(underflow.status_code, 409)
        missing = self.client.post(url.format(99999), json={"type": 2, "quantity": 1}, headers=bearer())
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(self._stock(self.manual.id), Decimal("10"))

    def test_rfid_entry_mode_flow(self):
        url = "/inventory/products/{}/rfid-entry".format(self.tagged.id)
        body = {"entries": [{"rfid_tag": "A1"}, {"rfid_tag": "A2", "expiration_date": "2030-02-01"}]}

        self.assertEqual(self.client.post(url, json=body, headers=bearer()).status_code, 400)

        self.assertEqual(
            self.client.patch("/inventory/rfid-mode", json={}, headers=bearer()).status_code,
            400,
        )
        self.client.patch("/inventory/rfid-mode", json={"entry_mode": True}, headers=bearer())
        self.assertEqual(
            self.client.get("/inventory/rfid-mode", headers=bearer()).json(),
            {"entry_mode": True},
        )

        response = self.client.post(url, json=body, headers=bearer())
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["registered"], 2)
        self.assertEqual(self._stock(self.tagged.id), Decimal("2"))

    def test_product_crud(self):
        db = self.Session()
        try:
            unit = Unit(name="litro", allows_decimals=True)
            category = Category(name="Lacteos", company_id=COMPANY_ID)
            db.add_all([unit, category])
            db.commit()
            unit_id, category_id = unit.id, category.id
        finally:
            db.close()

        created = self.client.post(
            "/inventory/products",
            json={
                "name": "Yogur",
                "category": category_id,
                "unit_type": unit_id,
                "stock_min": 1,
                "sensor_type": "manual",
            },
            headers=bearer(),
        )
        self.assertEqual(created.status_code, 201, created.text)
        product_id = created.json()["product_id"]

        detail = self.client.get("/inventory/products/" + product_id, headers=bearer()).json()
        self.assertEqual(detail["name"], "Yogur")
        self.assertEqual(detail["status"], "out_of_stock")
        self.assertTrue(detail["allows_decimals"])

        patched = self.client.patch(
            "/inventory/products/" + product_id,
            json={"description": "natural"},
            headers=bearer(),
        )
        self.assertEqual(patched.json()["product"]["description"], "natural")

        search = self.client.get("/inventory/products/search", params={"name": "yog"}, headers=bearer())
        self.assertEqual([r["id"] for r in search.json()["results"]], [product_id])

        self.assertEqual(self.client.delete("/inventory/products/" + product_id, headers=bearer()).status_code, 200)
        self.assertEqual(self.client.get("/inventory/products/" + product_id, headers=bearer()).status_code, 404)

    def test_sensor_ingestion_over_http(self):
        self.assertEqual(self.client.post("/sensors/camera", json={"botellas": 2}).status_code, 401)

        response = self.client.post("/sensors/camera", json={"botellas": 2}, headers={"X-API-Key": API_KEY})
        self.assertEqual(response.status_code, 202)
        self.app.state.services.sensor_listener.wait_idle()
        self.assertEqual(self._stock(self.camera.id), Decimal("2"))

        unknown = self.client.post("/sensors/leds", json={}, headers={"X-API-Key": API_KEY})
        self.assertEqual(unknown.status_code, 404)

    def test_feed_receives_product_updates(self):
        broadcaster = self.app.state.services.broadcaster
        with self.client.websocket_connect("/ws/inventory") as websocket:
            for _ in range(200):
                if broadcaster.subscriber_count:
                    break
                time.sleep(0.01)
            self.client.post(
                "/inventory/products/{}/movements".format(self.manual.id),
                json={"type": 1, "quantity": 2},
                headers=bearer(),
            )
            message = websocket.receive_json()

        self.assertEqual(message["event"], "product-updated")
        self.assertEqual(message["data"]["cardData"]["stock_actual"], 12.0)
        self.assertEqual(message["data"]["movementData"]["quantity"], 2.0)


if __name__ == "__main__":
    unittest.main()
