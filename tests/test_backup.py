"""Tests for whole-dataset export and import."""

from decimal import Decimal

import pytest

from commission_service.backup import export_snapshot, import_snapshot
from commission_service.errors import ValidationError
from commission_service.ledger import CommissionLedger
from commission_service.models import PAID
from commission_service.storage.local import LocalStore


@pytest.fixture
def populated(ledger, make_order):
    first = make_order(entry_date="2024-03-05", service_value=100, payment_method="PIX")
    make_order(entry_date="2024-03-06", service_value=40, brand="Apple")
    ledger.close_period(first.period_id)
    third = make_order(entry_date="2024-03-20", service_value=250)
    ledger.update_order(third.id, customer_name="João", user="ana@shop.com")
    ledger.update_settings(company_name="Oficina Central")
    return ledger


class TestExport:
    def test_shape(self, populated):
        data = export_snapshot(populated.store)

        assert data["version"] == "1.0"
        assert [b["name"] for b in data["brands"]] == ["Apple", "Samsung"]
        assert len(data["periods"]) == 2
        assert len(data["orders"]) == 3
        assert data["settings"] == {"fixed_commission_percentage": "10.00", "company_name": "Oficina Central"}

        newest = data["orders"][0]
        assert newest["customer_name"] == "João"
        assert newest["brand"] == "Samsung"
        assert [h["action"] for h in newest["history"]] == ["CREATED", "UPDATED"]
        assert newest["history"][1]["user"] == "ana@shop.com"

    def test_money_is_exported_as_text(self, populated):
        data = export_snapshot(populated.store)
        closed = [p for p in data["periods"] if p["paid"]][0]
        assert closed["total_service_value"] == "140.00"
        assert closed["total_commission"] == "14.00"


class TestImport:
    def test_sql_export_restores_into_local_store(self, sql_store, local_store, clock):
        source = CommissionLedger(sql_store, clock=clock)
        source.update_settings(fixed_commission_percentage=12.5)
        order = source.create_order(5001, "2024-03-10", "Maria Silva", "Samsung", 200)
        source.change_status(order.id, PAID)
        source.create_order(5002, "2024-04-18", "Carlos", "LG", 80, payment_method="Card")
        exported = export_snapshot(sql_store)

        import_snapshot(local_store, exported)

        assert export_snapshot(local_store) == exported
        restored = CommissionLedger(local_store, clock=clock)
        assert restored.get_settings().fixed_commission_percentage == Decimal("12.50")
        copy = restored.get_order(order.id)
        assert copy.status == PAID
        assert copy.commission_value == Decimal("25.00")
        assert [e.action for e in restored.audit_trail(copy)] == ["CREATED", "STATUS_CHANGE"]

    def test_import_replaces_existing_data(self, ledger, make_order, tmp_path, clock):
        make_order(os_number=9000)
        other_store = LocalStore(tmp_path / "other.json")
        kept = CommissionLedger(other_store, clock=clock).create_order(1, "2024-01-02", "Ana", "Motorola", 10)
        kept_id = kept.id

        import_snapshot(ledger.store, export_snapshot(other_store))

        assert [o.id for o in ledger.get_orders()] == [kept_id]
        assert [b.name for b in ledger.list_brands()] == ["Motorola"]
        assert len(ledger.list_periods()) == 1

    def test_imported_ledger_keeps_working(self, populated, tmp_path, clock):
        restored_store = LocalStore(tmp_path / "restored.json")
        import_snapshot(restored_store, export_snapshot(populated.store))
        restored = CommissionLedger(restored_store, clock=clock)

        added = restored.create_order(7000, "2024-03-21", "Bruna", "apple", 50)

        period = restored.get_period(added.period_id)
        assert period.total_orders == 2
        assert period.total_service_value == Decimal("300.00")
        assert restored.brand_name(added) == "Apple"

    def test_settings_as_list_of_rows(self, store, clock):
        import_snapshot(store, {
            "brands": [],
            "periods": [],
            "orders": [],
            "settings": [{"fixed_commission_percentage": "7.5", "company_name": "Legacy"}],
        })
        settings = CommissionLedger(store, clock=clock).get_settings()
        assert settings.fixed_commission_percentage == Decimal("7.5")
        assert settings.company_name == "Legacy"

    @pytest.mark.parametrize("payload", [
        "not a snapshot",
        {"orders": [{"id": "x"}]},
        {"brands": [{"name": "no id"}]},
    ])
    def test_malformed_snapshot_rejected(self, populated, payload):
        before = export_snapshot(populated.store)
        with pytest.raises(ValidationError):
            import_snapshot(populated.store, payload)
        assert export_snapshot(populated.store) == before

    def test_dangling_references_rejected(self, populated):
        before = export_snapshot(populated.store)
        broken = export_snapshot(populated.store)
        broken["brands"] = [b for b in broken["brands"] if b["name"] != "Apple"]

        with pytest.raises(ValidationError):
            import_snapshot(populated.store, broken)

        assert export_snapshot(populated.store) == before


class TestImportConsistency:
    @pytest.fixture
    def exported(self, ledger, make_order):
        make_order(entry_date="2024-03-10", service_value=100)
        return export_snapshot(ledger.store)

    def test_totals_are_rebuilt_from_orders(self, ledger, exported):
        exported["periods"][0]["total_orders"] = 7
        exported["periods"][0]["total_service_value"] = "999.00"
        exported["periods"][0]["total_commission"] = "1.00"

        import_snapshot(ledger.store, exported)

        period = ledger.list_periods()[0]
        assert (period.total_orders, period.total_service_value, period.total_commission) == (
            1, Decimal("100.00"), Decimal("10.00")
        )

    def test_pending_order_in_paid_period_rejected(self, ledger, exported):
        before = export_snapshot(ledger.store)
        exported["periods"][0]["paid"] = True

        with pytest.raises(ValidationError):
            import_snapshot(ledger.store, exported)

        assert export_snapshot(ledger.store) == before

    def test_order_outside_its_period_rejected(self, ledger, exported):
        before = export_snapshot(ledger.store)
        exported["orders"][0]["entry_date"] = "2024-03-20"

        with pytest.raises(ValidationError):
            import_snapshot(ledger.store, exported)

        assert export_snapshot(ledger.store) == before

    def test_repeated_period_range_rejected(self, ledger, exported):
        twin = dict(exported["periods"][0], id="another-id")
        exported["periods"].append(twin)

        with pytest.raises(ValidationError):
            import_snapshot(ledger.store, exported)

    def test_closed_period_round_trips(self, ledger, exported):
        ledger.close_period(ledger.list_periods()[0].id)
        snapshot = export_snapshot(ledger.store)

        import_snapshot(ledger.store, snapshot)

        period = ledger.list_periods()[0]
        assert period.paid is True
        assert [o.status for o in ledger.get_orders(period_id=period.id)] == [PAID]
