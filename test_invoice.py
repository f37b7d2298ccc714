"""
Tests for invoice aggregation.

Run with: pytest test_invoice.py -v
"""

import math

import pytest
from clinic_billing.agreement import resolve_agreement
from clinic_billing.calculator import (
    LabFeeCalculator,
    PracticeFeeCalculator,
    SurgeryFeeAllocator,
    build_supply_item,
)
from clinic_billing.catalog import LabStudyEntry, PracticeEntry, SurgeryEntry
from clinic_billing.invoice import InvoiceAggregator
from clinic_billing.models import (
    AssistantSelection,
    BillingWarning,
    ItemCategory,
    Patient,
)


@pytest.fixture
def agreement():
    return resolve_agreement({
        "valores_generales": {"Gasto_Rx": 1000, "Galeno_Rx_Practica": 500},
        "honorarios_medicos": {"5": {"Cirujano": 10000, "Ayudante_1": 4000, "Ayudante_2": 3000}},
    })


@pytest.fixture
def xray(agreement):
    entry = PracticeEntry(
        code="340101",
        description="RADIOGRAFIA DE TORAX",
        chapter="34",
        chapter_name="RADIOLOGIA",
        key="34|340101#1",
    )
    item, _ = PracticeFeeCalculator().build_item(entry, agreement)
    return item


@pytest.fixture
def lab(agreement):
    entry = LabStudyEntry(code="475", description="HEMOGRAMA COMPLETO", unit_value=2.5, key="lab|475#1")
    item, _ = LabFeeCalculator().build_item(entry, agreement)
    return item


@pytest.fixture
def surgery_items(agreement):
    entry = SurgeryEntry(
        code="R0501",
        description="PLASTICA DE LIGAMENTO CRUZADO",
        region="RODILLA",
        complexity=5,
        key="R0501-RODILLA-5-0",
    )
    items, _ = SurgeryFeeAllocator().allocate(entry, agreement, AssistantSelection.TWO)
    return items


@pytest.fixture
def medication():
    return build_supply_item(ItemCategory.MEDICATION, "DICLO75", "Diclofenac 75mg", 100)


@pytest.fixture
def invoice(xray, lab, surgery_items, medication):
    invoice = InvoiceAggregator(Patient(full_name="Juan Pérez", dni="30111222"))
    invoice.add(xray)
    invoice.add(lab)
    invoice.add_all(surgery_items)
    invoice.add(medication)
    return invoice


def independent_total(invoice):
    return math.fsum(item.total for item in invoice)


class TestSections:
    """Test adding and reading items."""

    def test_items_land_in_their_section(self, invoice):
        assert len(invoice) == 6
        assert len(invoice.items(ItemCategory.PRACTICE)) == 1
        assert len(invoice.items(ItemCategory.SURGERY)) == 3
        assert len(invoice.items(ItemCategory.LAB)) == 1
        assert len(invoice.items(ItemCategory.MEDICATION)) == 1
        assert invoice.items(ItemCategory.DISPOSABLE) == []

    def test_get(self, invoice, lab):
        assert invoice.get(lab.id) == lab

    def test_rejects_non_positive_quantity(self, lab):
        broken = lab.model_copy(update={"quantity": 0})

        with pytest.raises(ValueError):
            InvoiceAggregator().add(broken)

    def test_section_subtotals(self, invoice):
        assert invoice.section_subtotal(ItemCategory.PRACTICE) == 1500
        assert invoice.section_subtotal(ItemCategory.SURGERY) == 16000
        assert invoice.section_subtotal(ItemCategory.LAB) == pytest.approx(3060.275)
        assert invoice.section_subtotal(ItemCategory.MEDICATION) == 100
        assert invoice.section_subtotal(ItemCategory.DISPOSABLE) == 0


class TestSetQuantity:
    """Test quantity edits."""

    def test_rescales_split_item(self, invoice, xray):
        updated, warnings = invoice.set_quantity(xray.id, 3)

        assert warnings == []
        assert updated.quantity == 3
        assert updated.honorarium == 1500
        assert updated.facility_cost == 3000
        assert updated.total == 4500
        assert invoice.get(xray.id) == updated

    def test_lab_scaling(self, invoice, lab):
        updated, _ = invoice.set_quantity(lab.id, 3)

        assert updated.total == pytest.approx(9180.825)
        assert updated.unit_price == pytest.approx(3060.275)

    def test_idempotent(self, invoice, lab):
        first, _ = invoice.set_quantity(lab.id, 4)
        second, _ = invoice.set_quantity(lab.id, 4)

        assert first.total == second.total
        assert first.quantity == second.quantity

    def test_unit_price_invariant(self, invoice, lab, xray):
        """The implied unit price never drifts across edits."""
        for quantity in (3, 7, 2, 11, 1, 5):
            invoice.set_quantity(lab.id, quantity)
            invoice.set_quantity(xray.id, quantity)

        assert invoice.get(lab.id).unit_price == pytest.approx(3060.275)
        assert invoice.get(xray.id).unit_price == pytest.approx(1500)
        assert invoice.get(xray.id).total == pytest.approx(
            invoice.get(xray.id).honorarium + invoice.get(xray.id).facility_cost
        )

    @pytest.mark.parametrize("quantity", [0, -2, "abc", None, 1.5])
    def test_invalid_whole_quantity(self, invoice, lab, quantity):
        updated, warnings = invoice.set_quantity(lab.id, quantity)

        assert warnings == [BillingWarning.INVALID_QUANTITY]
        assert updated.quantity >= 1
        assert updated.quantity == int(updated.quantity)

    @pytest.mark.parametrize("quantity, expected", [(2.5, 3), (0.5, 1), ("3,5", 4), (2.4999, 2)])
    def test_whole_quantity_rounds_half_up(self, invoice, lab, quantity, expected):
        updated, warnings = invoice.set_quantity(lab.id, quantity)

        assert updated.quantity == expected
        assert warnings == [BillingWarning.INVALID_QUANTITY]

    def test_fractional_supply_quantity(self, invoice, medication):
        updated, warnings = invoice.set_quantity(medication.id, "0,5")

        assert warnings == []
        assert updated.quantity == 0.5
        assert updated.total == pytest.approx(50)

    def test_supply_minimum(self, invoice, medication):
        updated, warnings = invoice.set_quantity(medication.id, 0)

        assert warnings == [BillingWarning.INVALID_QUANTITY]
        assert updated.quantity == 0.01

    def test_unknown_item(self, invoice):
        with pytest.raises(KeyError):
            invoice.set_quantity("missing", 2)


class TestMutations:
    """Test provider edits and removal."""

    def test_update_provider_name(self, invoice, xray):
        before = invoice.grand_totals()

        updated = invoice.update_provider_name(xray.id, "Dra. López")

        assert updated.provider_name == "Dra. López"
        assert updated.total == xray.total
        assert invoice.grand_totals() == before

    def test_remove(self, invoice, lab):
        removed = invoice.remove(lab.id)

        assert removed.id == lab.id
        assert len(invoice) == 5
        with pytest.raises(KeyError):
            invoice.get(lab.id)

    def test_remove_unknown(self, invoice):
        with pytest.raises(KeyError):
            invoice.remove("missing")
        with pytest.raises(KeyError):
            invoice.update_provider_name("missing", "x")

    def test_remove_group(self, invoice, surgery_items):
        removed = invoice.remove_group(surgery_items[0].group_id)

        assert len(removed) == 3
        assert invoice.items(ItemCategory.SURGERY) == []
        assert len(invoice) == 3

    def test_reset(self, invoice):
        invoice.reset()

        assert len(invoice) == 0
        assert invoice.patient.full_name == ""
        assert invoice.grand_totals().total == 0


class TestGrandTotals:
    """Test invoice-wide totals."""

    def test_attribution(self, invoice):
        """Lab totals count as honorarium, supplies as facility cost."""
        totals = invoice.grand_totals()

        assert totals.honorarium == pytest.approx(500 + 16000 + 3060.275)
        assert totals.facility_cost == pytest.approx(1000 + 100)
        assert totals.total == pytest.approx(totals.honorarium + totals.facility_cost)

    def test_reconciles_after_operations(self, invoice, xray, lab, medication, surgery_items):
        assert invoice.grand_totals().total == independent_total(invoice)

        invoice.set_quantity(xray.id, 4)
        assert invoice.grand_totals().total == independent_total(invoice)

        invoice.set_quantity(medication.id, 2.75)
        invoice.remove(surgery_items[1].id)
        assert invoice.grand_totals().total == independent_total(invoice)

        invoice.add(build_supply_item(ItemCategory.DISPOSABLE, "GASA", "Gasa", "350", 4))
        invoice.remove(lab.id)
        assert invoice.grand_totals().total == independent_total(invoice)

    def test_exact_with_many_decimal_amounts(self, invoice, lab):
        for n in range(1, 60):
            invoice.add(build_supply_item(ItemCategory.MEDICATION, f"M{n}", "Ampolla", 0.1 * n, n / 7))
            invoice.add(build_supply_item(ItemCategory.DISPOSABLE, f"D{n}", "Gasa", "1.234,56", 0.3))
        invoice.set_quantity(lab.id, 7)

        totals = invoice.grand_totals()

        assert totals.total == independent_total(invoice)
        assert totals.total == math.fsum(reversed([item.total for item in invoice]))
        assert totals.total == pytest.approx(totals.honorarium + totals.facility_cost)

    def test_empty_invoice(self):
        totals = InvoiceAggregator().grand_totals()

        assert (totals.honorarium, totals.facility_cost, totals.total) == (0, 0, 0)


class TestPersistence:
    """Test the persisted invoice shape."""

    def test_to_persisted(self, invoice):
        record = invoice.to_persisted().to_record()

        assert set(record) == {
            "paciente", "practicas", "cirugias", "laboratorios",
            "medicamentos", "descartables", "totales",
        }
        assert record["paciente"]["nombreCompleto"] == "Juan Pérez"
        assert record["paciente"]["dni"] == "30111222"

        practice = record["practicas"][0]
        assert practice["codigo"] == "340101"
        assert practice["categoria"] == "practica"
        assert practice["cantidad"] == 1
        assert practice["honorarioMedico"] == 500
        assert practice["gastoSanatorial"] == 1000
        assert practice["total"] == 1500

        assert [c["rol"] for c in record["cirugias"]] == ["Cirujano", "Ayudante 2", "Ayudante 2"]
        assert record["laboratorios"][0]["honorarioMedico"] is None
        assert record["totales"]["total"] == pytest.approx(independent_total(invoice))
        assert record["totales"]["honorarios"] + record["totales"]["gastos"] == pytest.approx(
            record["totales"]["total"]
        )
