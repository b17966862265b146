from decimal import Decimal


MOVEMENT_ENTRY = 1
MOVEMENT_EXIT = 2
MOVEMENT_ADJUST_UP = 3
MOVEMENT_ADJUST_DOWN = 4

MOVEMENT_TYPE_NAMES = {
    MOVEMENT_ENTRY: "Alta",
    MOVEMENT_EXIT: "Baja",
    MOVEMENT_ADJUST_UP: "Ajuste positivo",
    MOVEMENT_ADJUST_DOWN: "Ajuste negativo",
}
INCREASE_TYPES = frozenset({MOVEMENT_ENTRY, MOVEMENT_ADJUST_UP})
DECREASE_TYPES = frozenset({MOVEMENT_EXIT, MOVEMENT_ADJUST_DOWN})

SENSOR_MANUAL = "manual"
SENSOR_RFID = "rfid"
SENSOR_WEIGHT = "weight"
SENSOR_CAMERA = "camera"
SENSOR_TYPES = (SENSOR_MANUAL, SENSOR_RFID, SENSOR_WEIGHT, SENSOR_CAMERA)

PRODUCT_STATUSES = ("all", "expiring", "out_of_stock", "low_stock", "near_minimum", "overstock")

QUANTITY_PLACES = Decimal("0.01")
NEAR_MINIMUM_MARGIN = Decimal("1")

EVENT_PRODUCT_UPDATED = "product-updated"
EVENT_RFID_TAG_DETECTED = "rfid-tag-detected"

CHANNEL_RFID = "rfid"
CHANNEL_CAMERA = "camera"
CHANNEL_WEIGHT = "weight"

REASON_RFID_EXIT = "Salida RFID"
REASON_RFID_REGISTER = "Registro RFID"
REASON_CAMERA = "Conteo de cámara"
REASON_WEIGHT = "Sensor de peso {channel}"
