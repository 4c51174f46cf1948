from decimal import Decimal

import pytest

from rostkalkyl.app.geometry import RoomGeometry, validate_dimensions
from rostkalkyl.app.models import Surface, Unit
from rostkalkyl.app.pricing import (
    ENV_BATCH_MARKUP,
    ENV_LABOR_RATE,
    MappedLineItem,
    PricingConfig,
    resolve_line_item,
    round_money,
)
from rostkalkyl.store import CatalogTask


def _task(**overrides) -> CatalogTask:
    values = dict(
        id="MÅL-TAK-TÄCKMÅL-M2",
        name_sv="Täckmåla tak",
        unit=Unit.AREA,
        labor_hours_per_unit=0.10,
        material_cost_per_unit=18,
        surface_type=Surface.CEILING,
        labor_rate=500,
        markup_pct=10,
    )
    values.update(overrides)
    return CatalogTask(**values)


@pytest.fixture
def room() -> RoomGeometry:
    return RoomGeometry(width=4, length=5, height=2.5, doors=1, windows=1)


def test_wall_area_deducts_doors_only(room):
    assert room.walls_gross == pytest.approx(45.0)
    assert room.walls_net == pytest.approx(2 * (4 + 5) * 2.5 - 1.89)
    assert room.quantity_for(Surface.WALL, Unit.AREA) == pytest.approx(43.11)


def test_quantities_per_unit(room):
    assert room.quantity_for("tak", "m2") == pytest.approx(20.0)
    assert room.quantity_for(Surface.TRIM, Unit.LENGTH) == pytest.approx(18.0)
    assert room.quantity_for(Surface.DOOR, Unit.LENGTH) == pytest.approx(5.1)
    assert room.quantity_for(Surface.WINDOW, Unit.LENGTH) == pytest.approx(4.8)
    assert room.quantity_for(Surface.DOOR, Unit.COUNT) == 1.0
    assert room.quantity_for(None, Unit.COUNT) == 1.0
    assert room.quantity_for(None, Unit.AREA) == 0.0
    with pytest.raises(ValueError):
        room.quantity_for(Surface.WALL, "liter")


def test_door_area_never_makes_walls_negative():
    tiny = RoomGeometry(width=0.5, length=0.5, height=1, doors=3)
    assert tiny.walls_net == 0.0


def test_invalid_geometry_is_rejected():
    assert validate_dimensions(0, 5, 2.5) == ["width must be positive"]
    assert "height exceeds 10 m" in validate_dimensions(4, 5, 12)
    with pytest.raises(ValueError):
        RoomGeometry(width=4, length=-1, height=2.5)


def test_geometry_dict_roundtrip(room):
    assert RoomGeometry.from_dict(room.to_dict()) == room
    assert RoomGeometry.from_dict(None) is None


def test_reference_line_item(room):
    item = resolve_line_item(_task(), room, layers=2)
    assert item.unit_price == 74.80
    assert item.quantity == 40.0
    assert item.subtotal == 2992.00
    assert item.raw_subtotal == Decimal("2992.000")
    assert item.layers == 2
    assert item.surface == "ceiling"


def test_default_layers_and_config_fallbacks(room):
    task = _task(labor_rate=None, markup_pct=None, default_layers=2)
    config = PricingConfig(labor_rate=400, task_markup_pct=0)
    item = resolve_line_item(task, room, config=config)
    assert item.layers == 2
    # 0.10 h * 400 + 18 = 58 per m²
    assert item.unit_price == 58.0
    assert item.subtotal == pytest.approx(2320.0)
    assert item.labor_cost == Decimal("0.1") * Decimal("400") * Decimal("40.0")


def test_quantity_modifier_and_surface_fallback(room):
    task = _task(id="MÅL-DÖRR", name_sv="Måla dörrar", unit=Unit.COUNT, surface_type=None)
    item = resolve_line_item(task, room, layers=1, surface=Surface.DOOR, quantity_modifier=2.0)
    assert item.quantity == 2.0
    assert item.surface == "door"


def test_zero_quantity_line(room):
    item = resolve_line_item(_task(surface_type=None), room, layers=1)
    assert item.quantity == 0.0
    assert item.subtotal == 0.0


def test_layers_below_one_rejected(room):
    with pytest.raises(ValueError):
        resolve_line_item(_task(), room, layers=0)


def test_round_money_half_up():
    assert round_money(2.675) == 2.68
    assert round_money(Decimal("0.005")) == 0.01


def test_line_item_dict_roundtrip(room):
    item = resolve_line_item(_task(), room, layers=2)
    restored = MappedLineItem.from_dict(item.to_dict(include_raw=True))
    assert restored == item
    assert item.to_dict()["unit_label"] == "m²"


def test_pricing_config_from_env():
    config = PricingConfig.from_env({ENV_LABOR_RATE: "450,5", ENV_BATCH_MARKUP: "20"})
    assert config.labor_rate == 450.5
    assert config.batch_markup_pct == 20.0
    assert config.task_markup_pct == 10.0
    with pytest.raises(ValueError):
        PricingConfig.from_env({ENV_LABOR_RATE: "många"})


def test_pricing_config_reads_process_env(monkeypatch):
    monkeypatch.setenv(ENV_LABOR_RATE, "600")
    assert PricingConfig.from_env().labor_rate == 600.0
