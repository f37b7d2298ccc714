"""
Tests for the practice, surgery and lab fee calculators.

Run with: pytest test_calculator.py -v
"""

import pytest
from clinic_billing.agreement import resolve_agreement
from clinic_billing.calculator import (
    LabFeeCalculator,
    PracticeFeeCalculator,
    SurgeryFeeAllocator,
    allows_two_assistants,
    build_supply_item,
)
from clinic_billing.catalog import LabStudyEntry, PracticeEntry, SurgeryEntry
from clinic_billing.models import (
    AssistantSelection,
    BillingWarning,
    ItemCategory,
    ProviderKind,
)


@pytest.fixture
def agreement():
    """Agreement with X-ray values and two surgical tiers."""
    return resolve_agreement({
        "nombre": "Test",
        "valores_generales": {"Gasto_Rx": 1000, "Galeno_Rx_Practica": 500},
        "honorarios_medicos": {
            "3": {"Cirujano": 8000, "Ayudante_1": 2000, "Ayudante_2": 1500},
            "5": {"Cirujano": 10000, "Ayudante_1": 4000, "Ayudante_2": 3000},
        },
    })


def practice(code, description, **rates):
    return PracticeEntry(
        code=code,
        description=description,
        chapter="34",
        chapter_name="RADIOLOGIA",
        key=f"34|{code}#1",
        **rates,
    )


def surgery(complexity, code="R0501"):
    return SurgeryEntry(
        code=code,
        description="PLASTICA DE LIGAMENTO CRUZADO",
        region="RODILLA",
        complexity=complexity,
        key=f"{code}-RODILLA-{complexity}-0",
    )


class TestPracticeFeeCalculator:
    """Test practice pricing."""

    @pytest.fixture
    def calculator(self):
        return PracticeFeeCalculator()

    def test_xray_split(self, calculator, agreement):
        """X-ray: honorarium from the RX galeno, facility cost from the RX expense."""
        fee, details = calculator.calculate_fee(practice("340101", "RADIOGRAFIA DE TORAX"), agreement)

        assert fee.facility_cost == 1000
        assert fee.honorarium == 500
        assert fee.total == 1500
        assert details["is_xray"] is True
        assert details["warnings"] == []

    def test_non_xray_is_not_priced(self, calculator, agreement):
        fee, details = calculator.calculate_fee(practice("340401", "ECOGRAFIA ABDOMINAL"), agreement)

        assert fee.total == 0
        assert details["warnings"] == []

    def test_no_agreement(self, calculator):
        fee, details = calculator.calculate_fee(practice("340101", "RADIOGRAFIA DE TORAX"), None)

        assert fee.total == 0
        assert details["warnings"] == [BillingWarning.NO_AGREEMENT_SELECTED]

    def test_zero_xray_values(self, calculator):
        zero = resolve_agreement({"valores_generales": {"Gasto_Rx": 0, "Galeno_Rx_Practica": "0"}})

        fee, details = calculator.calculate_fee(practice("340101", "RADIOGRAFIA DE TORAX"), zero)

        assert fee.total == 0
        assert BillingWarning.ZERO_FEE_TIER in details["warnings"]

    def test_delegated_rates(self, calculator, agreement):
        """Practices carrying their own rates ignore the agreement."""
        entry = practice("420301", "CURACION PLANA", honorarium_rate=0.0, facility_rate=8820.0)

        fee, _ = calculator.calculate_fee(entry, agreement)
        assert fee.honorarium == 0
        assert fee.facility_cost == 8820

        fee, details = calculator.calculate_fee(entry, None)
        assert fee.total == 8820
        assert details["warnings"] == []

    def test_xray_wins_over_delegated_rates(self, calculator, agreement):
        entry = practice("340101", "RADIOGRAFIA DE TORAX", honorarium_rate=1.0, facility_rate=2.0)

        fee, details = calculator.calculate_fee(entry, agreement)

        assert (fee.honorarium, fee.facility_cost) == (500, 1000)
        assert details["warnings"] == []

    def test_zero_delegated_rates(self, calculator, agreement):
        entry = practice("420301", "CURACION PLANA", honorarium_rate=0.0, facility_rate=0.0)

        _, details = calculator.calculate_fee(entry, agreement)

        assert details["warnings"] == [BillingWarning.ZERO_FEE_TIER]

    def test_group_id_is_shared_when_given(self, calculator, agreement):
        first, _ = calculator.build_item(practice("340101", "RADIOGRAFIA DE TORAX"), agreement, group_id="prac-1")
        second, _ = calculator.build_item(practice("340102", "Por exposición subsiguiente"), agreement, group_id="prac-1")

        assert first.group_id == second.group_id == "prac-1"
        assert first.id != second.id

    def test_build_item_scales_quantity(self, calculator, agreement):
        item, _ = calculator.build_item(practice("340101", "RADIOGRAFIA DE TORAX"), agreement, quantity=2)

        assert item.category == ItemCategory.PRACTICE
        assert item.quantity == 2
        assert item.honorarium == 1000
        assert item.facility_cost == 2000
        assert item.total == 3000
        assert item.unit_price == 1500
        assert item.source["esRadiografia"] is True
        assert item.source["key"] == "34|340101#1"

    def test_build_item_provider_kind(self, calculator, agreement):
        entry = practice("340101", "RADIOGRAFIA DE TORAX")

        doctor, _ = calculator.build_item(entry, agreement, provider_kind=ProviderKind.DOCTOR, provider_name="Dr. Gómez")
        clinic, _ = calculator.build_item(entry, agreement, provider_kind=ProviderKind.CLINIC)

        assert (doctor.honorarium, doctor.facility_cost, doctor.total) == (500, 0, 500)
        assert doctor.provider_name == "Dr. Gómez"
        assert (clinic.honorarium, clinic.facility_cost, clinic.total) == (0, 1000, 1000)

    def test_build_item_invalid_quantity(self, calculator, agreement):
        item, details = calculator.build_item(practice("340101", "RADIOGRAFIA DE TORAX"), agreement, quantity=0)

        assert item.quantity == 1
        assert BillingWarning.INVALID_QUANTITY in details["warnings"]

    def test_items_have_unique_ids(self, calculator, agreement):
        entry = practice("340101", "RADIOGRAFIA DE TORAX")
        first, _ = calculator.build_item(entry, agreement)
        second, _ = calculator.build_item(entry, agreement)

        assert first.id != second.id
        assert first.group_id != second.group_id

    def test_bed_days(self, calculator, agreement):
        item, details = calculator.build_bed_days(3, agreement)

        assert item.code == "PENSION"
        assert item.quantity == 3
        assert item.honorarium == 0
        assert item.facility_cost == 2838 * 3
        assert item.provider_kind == ProviderKind.CLINIC
        assert details["warnings"] == []

    def test_consultation(self, calculator, agreement):
        item, _ = calculator.build_consultation(agreement)

        assert item.honorarium == 34650
        assert item.facility_cost == 0
        assert item.provider_kind == ProviderKind.DOCTOR

    def test_consultation_without_agreement(self, calculator):
        item, details = calculator.build_consultation(None)

        assert item.total == 0
        assert details["warnings"] == [BillingWarning.NO_AGREEMENT_SELECTED]


class TestSurgicalPracticeExpense:
    """Test expense-only practices billed from the surgery screen."""

    @pytest.fixture
    def calculator(self):
        return PracticeFeeCalculator()

    @staticmethod
    def entry(code, description, chapter, q_gal=0.0, gto=0.0):
        return PracticeEntry(
            code=code,
            description=description,
            chapter=chapter,
            chapter_name="",
            key=f"{chapter}|{code}#1",
            q_gal=q_gal,
            gto=gto,
        )

    def test_surgical_chapter(self, calculator, agreement):
        """Chapters 12 and 13 use the surgical expense per gto unit."""
        expense, details = calculator.calculate_surgical_practice_expense(
            self.entry("120101", "OSTEOSINTESIS DE DIAFISIS DE FEMUR", "12", q_gal=180, gto=45), agreement
        )

        assert expense == 3281 * 45
        assert details["surgical_honorarium"] == 1435.5 * 180
        assert details["warnings"] == []

    def test_xray_uses_half_the_rx_expense(self, calculator, agreement):
        expense, _ = calculator.calculate_surgical_practice_expense(
            self.entry("340101", "RADIOGRAFIA DE TORAX", "34", gto=15), agreement
        )

        assert expense == 1000 * 15 / 2

    def test_other_chapters_use_misc_expense(self, calculator, agreement):
        entry = self.entry("340401", "ECOGRAFIA ABDOMINAL", "34", gto=20)

        expense, details = calculator.calculate_surgical_practice_expense(entry, agreement)
        assert expense == 0
        assert details["warnings"] == [BillingWarning.ZERO_FEE_TIER]

        misc = resolve_agreement({"valores_generales": {"Otros_Gastos": "150,5"}})
        expense, details = calculator.calculate_surgical_practice_expense(entry, misc)
        assert expense == pytest.approx(3010)
        assert details["warnings"] == []

    def test_arthroscopy(self, calculator):
        values = resolve_agreement({"valores_generales": {
            "Artroscopia_Simple_Gastos_Sanatoriales": 452000,
            "Artroscopia_Hombro": 618500,
        }})
        entry = self.entry("120902", "ARTROSCOPIA DE RODILLA U HOMBRO", "12", q_gal=150, gto=40)

        simple, _ = calculator.calculate_surgical_practice_expense(entry, values)
        complex_, _ = calculator.calculate_surgical_practice_expense(entry, values, "compleja")

        assert (simple, complex_) == (452000, 618500)
        with pytest.raises(ValueError):
            calculator.calculate_surgical_practice_expense(entry, values, "doble")

    def test_no_agreement(self, calculator):
        expense, details = calculator.calculate_surgical_practice_expense(
            self.entry("120101", "OSTEOSINTESIS", "12", gto=45), None
        )

        assert expense == 0
        assert details["warnings"] == [BillingWarning.NO_AGREEMENT_SELECTED]

    def test_build_item_is_clinic_expense_only(self, calculator, agreement):
        entry = self.entry("130201", "LAMINECTOMIA DESCOMPRESIVA", "13", q_gal=200, gto=52.5)

        item, _ = calculator.build_surgical_practice_item(entry, agreement, quantity=2)

        assert item.category == ItemCategory.PRACTICE
        assert item.provider_kind == ProviderKind.CLINIC
        assert item.honorarium == 0
        assert item.facility_cost == pytest.approx(3281 * 52.5 * 2)
        assert item.total == item.facility_cost
        assert item.source["esCirugia"] is False


class TestSurgeryFeeAllocator:
    """Test surgeon and assistant allocation."""

    @pytest.fixture
    def allocator(self):
        return SurgeryFeeAllocator()

    def test_two_assistants_tier_five(self, allocator, agreement):
        """Tier 5 with two assistants: surgeon plus two second-assistant items."""
        items, details = allocator.allocate(surgery(5), agreement, AssistantSelection.TWO)

        assert [item.role for item in items] == ["Cirujano", "Ayudante 2", "Ayudante 2"]
        assert [item.honorarium for item in items] == [10000, 3000, 3000]
        assert len({item.group_id for item in items}) == 1
        assert len({item.id for item in items}) == 3
        assert details["group_id"] == items[0].group_id
        assert details["total"] == 16000

    def test_one_assistant(self, allocator, agreement):
        items, _ = allocator.allocate(surgery(5), agreement, AssistantSelection.ONE)

        assert [(item.role, item.total) for item in items] == [("Cirujano", 10000), ("Ayudante 1", 4000)]

    def test_surgeon_only(self, allocator, agreement):
        items, _ = allocator.allocate(surgery(5), agreement)

        assert len(items) == 1
        item = items[0]
        assert item.category == ItemCategory.SURGERY
        assert item.provider_kind == ProviderKind.DOCTOR
        assert item.provider_name == "Cirujano"
        assert item.facility_cost == 0
        assert item.total == item.honorarium == 10000

    def test_low_tier_never_bills_second_assistants(self, allocator, agreement):
        items, details = allocator.allocate(surgery(3), agreement, AssistantSelection.TWO)

        assert [item.role for item in items] == ["Cirujano"]
        assert items[0].total == 8000
        assert details["notes"]

    def test_zero_assistant_fee_is_skipped(self, allocator):
        agreement = resolve_agreement({"honorarios_medicos": {"5": {"Cirujano": 10000, "Ayudante_1": 0}}})

        items, _ = allocator.allocate(surgery(5), agreement, AssistantSelection.ONE)
        assert [item.role for item in items] == ["Cirujano"]

        items, _ = allocator.allocate(surgery(5), agreement, AssistantSelection.TWO)
        assert [item.role for item in items] == ["Cirujano"]

    def test_unconfigured_tier(self, allocator, agreement):
        """A zero surgeon fee allocates nothing."""
        items, details = allocator.allocate(surgery(7), agreement, AssistantSelection.TWO)

        assert items == []
        assert details["warnings"] == [BillingWarning.ZERO_FEE_TIER]
        assert details["total"] == 0

    def test_no_agreement(self, allocator):
        items, details = allocator.allocate(surgery(5), None)

        assert items == []
        assert BillingWarning.NO_AGREEMENT_SELECTED in details["warnings"]
        assert BillingWarning.ZERO_FEE_TIER in details["warnings"]

    def test_allows_two_assistants(self):
        assert allows_two_assistants(5)
        assert allows_two_assistants("7")
        assert not allows_two_assistants(4)


class TestLabFeeCalculator:
    """Test lab study pricing."""

    @pytest.fixture
    def calculator(self):
        return LabFeeCalculator()

    @pytest.fixture
    def hemograma(self):
        return LabStudyEntry(code="475", description="HEMOGRAMA COMPLETO", unit_value=2.5, key="lab|475#1")

    def test_unit_value_formula(self, calculator, hemograma):
        """Total = bioquímica units × agreement lab unit value."""
        total, details = calculator.calculate_fee(hemograma, resolve_agreement({}))

        assert total == pytest.approx(3060.275)
        assert details["lab_unit_value"] == pytest.approx(1224.11)
        assert details["warnings"] == []

    def test_build_item(self, calculator, hemograma):
        item, _ = calculator.build_item(hemograma, resolve_agreement({}), quantity=3)

        assert item.category == ItemCategory.LAB
        assert item.is_split is False
        assert item.honorarium is None
        assert item.total == pytest.approx(9180.825)
        assert item.unit_total == pytest.approx(3060.275)
        assert item.source["unidadBioquimica"] == 2.5

    def test_no_agreement(self, calculator, hemograma):
        total, details = calculator.calculate_fee(hemograma, None)

        assert total == 0
        assert details["warnings"] == [BillingWarning.NO_AGREEMENT_SELECTED]


class TestSupplyItems:
    """Test medication and disposable items."""

    def test_medication_fractional_quantity(self):
        item = build_supply_item(ItemCategory.MEDICATION, "DICLO75", "Diclofenac", "1.250,50", quantity=2.5)

        assert item.quantity == 2.5
        assert item.total == pytest.approx(3126.25)
        assert item.provider_kind == ProviderKind.CLINIC

    def test_minimum_quantity(self):
        item = build_supply_item(ItemCategory.DISPOSABLE, "GASA", "Gasa", 100, quantity=0.001)

        assert item.quantity == 0.01
        assert item.total == pytest.approx(1.0)

    def test_rejects_non_supply_category(self):
        with pytest.raises(ValueError):
            build_supply_item(ItemCategory.PRACTICE, "X", "X", 100)
