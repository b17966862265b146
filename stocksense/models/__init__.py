import importlib

from stocksense.models.category import Category
from stocksense.models.movement import Movement
from stocksense.models.movement_type import MovementType
from stocksense.models.product import Product
from stocksense.models.stock_entry import StockEntry
from stocksense.models.unit import Unit


def import_all_models() -> None:
    for module_name in (
        "stocksense.models.category",
        "stocksense.models.movement",
        "stocksense.models.movement_type",
        "stocksense.models.product",
        "stocksense.models.stock_entry",
        "stocksense.models.unit",
    ):
        importlib.import_module(module_name)


__all__ = [
    "Category",
    "Movement",
    "MovementType",
    "Product",
    "StockEntry",
    "Unit",
    "import_all_models",
]
