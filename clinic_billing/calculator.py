"""
Fee calculation engine.

Implements the billing rules applied against an agreement (convenio):
- Practice fees, with the X-ray honorarium / facility cost split
- Surgical fees by complexity tier, with assistant allocation
- Lab study fees from bioquímica unit values
- Bed-day, consultation and supply items
- Expense-only practices billed from the surgery screen

Every calculation takes the resolved agreement as an explicit argument and
is a pure function of its inputs. Missing pricing data never raises: it
yields zero amounts plus a BillingWarning in the calculation details.
"""

import uuid
from typing import Any, Dict, List, Optional, Tuple

from .agreement import AgreementValues
from .catalog import LabStudyEntry, PracticeEntry, SurgeryEntry
from .linker import is_xray
from .models import (
    AssistantSelection,
    BillingWarning,
    FeeBreakdown,
    ItemCategory,
    LineItem,
    ProviderKind,
    clamp_quantity,
)
from .numeric import parse_number

MIN_TIER_FOR_TWO_ASSISTANTS = 5

SURGEON_ROLE = "Cirujano"
FIRST_ASSISTANT_ROLE = "Ayudante 1"
SECOND_ASSISTANT_ROLE = "Ayudante 2"

BED_DAY_CODE = "PENSION"
CONSULTATION_CODE = "CONSULTA"

SURGICAL_CHAPTERS = ("12", "13")

ARTHROSCOPY_CODE = "120902"
ARTHROSCOPY_EXPENSE_CONCEPTS = {
    "simple": "Artroscopia_Simple_Gastos_Sanatoriales",
    "compleja": "Artroscopia_Hombro",
}


def new_id(prefix: str) -> str:
    """Generate a unique item or group identifier."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def allows_two_assistants(complexity: Any) -> bool:
    """Whether a complexity tier may request two assistants."""
    return int(parse_number(complexity)) >= MIN_TIER_FOR_TWO_ASSISTANTS


def _details(**fields: Any) -> Dict[str, Any]:
    details: Dict[str, Any] = dict(fields)
    details.setdefault("notes", [])
    details.setdefault("warnings", [])
    return details


class PracticeFeeCalculator:
    """
    Calculates fees for national-nomenclator practices.

    Rules:
    - X-ray practices (description mentions "radiograf" or "rx"):
      honorarium = agreement X-ray galeno, facility cost = agreement X-ray expense
    - Other practices carrying their own base rates use them directly
    - Anything else is not priced by the agreement (zero fees)

    total = honorarium + facility cost
    """

    def calculate_fee(
        self,
        entry: PracticeEntry,
        agreement: Optional[AgreementValues],
    ) -> Tuple[FeeBreakdown, dict]:
        """
        Calculate the fee breakdown for one unit of a practice.

        Args:
            entry: Practice catalog entry
            agreement: Resolved agreement, or None if none is selected

        Returns:
            Tuple of (fee_breakdown, calculation_details)
        """
        xray = is_xray(entry)
        details = _details(
            code=entry.code,
            description=entry.description,
            is_xray=xray,
            agreement=agreement.name if agreement else None,
        )

        if xray and agreement is not None:
            fee = FeeBreakdown.split(agreement.xray_honorarium, agreement.xray_facility_cost)
            details["notes"].append(
                f"RX: honorarium {agreement.xray_honorarium} + facility cost {agreement.xray_facility_cost}"
            )

        elif entry.has_delegated_rates and not xray:
            fee = FeeBreakdown.split(entry.honorarium_rate or 0.0, entry.facility_rate or 0.0)
            details["notes"].append("Priced from the practice's own rates")

        elif agreement is None:
            fee = FeeBreakdown()
            details["warnings"].append(BillingWarning.NO_AGREEMENT_SELECTED)
            details["notes"].append("No agreement selected: fees are zero")

        else:
            fee = FeeBreakdown()
            details["notes"].append("Practice not priced by the agreement")

        # A missing agreement is reported as such, not as a zero tier
        expected = (xray and agreement is not None) or (entry.has_delegated_rates and not xray)
        if expected and fee.total == 0:
            details["warnings"].append(BillingWarning.ZERO_FEE_TIER)

        details.update(honorarium=fee.honorarium, facility_cost=fee.facility_cost, total=fee.total)
        return fee, details

    def build_item(
        self,
        entry: PracticeEntry,
        agreement: Optional[AgreementValues],
        quantity: int = 1,
        provider_kind: Optional[ProviderKind] = None,
        provider_name: str = "",
        group_id: Optional[str] = None,
    ) -> Tuple[LineItem, dict]:
        """
        Build a practice line item.

        A doctor-billed practice keeps only the honorarium and a clinic-billed
        one only the facility cost; without a provider kind both are billed.
        Items generated together (an X-ray and its linked subsequent
        exposure) should be given the same group_id; a new one is created
        otherwise.

        Returns:
            Tuple of (line_item, calculation_details)
        """
        fee, details = self.calculate_fee(entry, agreement)
        quantity, valid = clamp_quantity(ItemCategory.PRACTICE, quantity)
        if not valid:
            details["warnings"].append(BillingWarning.INVALID_QUANTITY)

        honorarium, facility_cost = fee.honorarium, fee.facility_cost
        if provider_kind == ProviderKind.DOCTOR:
            facility_cost = 0.0
        elif provider_kind == ProviderKind.CLINIC:
            honorarium = 0.0

        item = LineItem.priced(
            id=new_id("pract"),
            group_id=group_id or new_id("prac"),
            category=ItemCategory.PRACTICE,
            code=entry.code,
            description=entry.description,
            quantity=quantity,
            unit_honorarium=honorarium,
            unit_facility_cost=facility_cost,
            provider_kind=provider_kind,
            provider_name=provider_name,
            source={
                "capitulo": entry.chapter,
                "capituloNombre": entry.chapter_name,
                "key": entry.key,
                "esRadiografia": details["is_xray"],
            },
        )
        return item, details

    def build_bed_days(self, days: int, agreement: Optional[AgreementValues]) -> Tuple[LineItem, dict]:
        """Bed-day (pensión) item: facility cost of the daily rate times the days."""
        rate = agreement.daily_bed_rate if agreement else 0.0
        days, valid = clamp_quantity(ItemCategory.PRACTICE, days)
        details = _details(code=BED_DAY_CODE, daily_bed_rate=rate, days=days, total=rate * days)
        if not valid:
            details["warnings"].append(BillingWarning.INVALID_QUANTITY)
        if agreement is None:
            details["warnings"].append(BillingWarning.NO_AGREEMENT_SELECTED)
        elif rate == 0:
            details["warnings"].append(BillingWarning.ZERO_FEE_TIER)

        item = LineItem.priced(
            id=new_id("pract"),
            group_id=new_id("prac"),
            category=ItemCategory.PRACTICE,
            code=BED_DAY_CODE,
            description="Día de pensión",
            quantity=days,
            unit_honorarium=0.0,
            unit_facility_cost=rate,
            provider_kind=ProviderKind.CLINIC,
        )
        return item, details

    def build_consultation(self, agreement: Optional[AgreementValues]) -> Tuple[LineItem, dict]:
        """Consultation item: the agreement's consultation fee as honorarium."""
        fee = agreement.consultation_fee if agreement else 0.0
        details = _details(code=CONSULTATION_CODE, consultation_fee=fee, total=fee)
        if agreement is None:
            details["warnings"].append(BillingWarning.NO_AGREEMENT_SELECTED)
        elif fee == 0:
            details["warnings"].append(BillingWarning.ZERO_FEE_TIER)

        item = LineItem.priced(
            id=new_id("pract"),
            group_id=new_id("prac"),
            category=ItemCategory.PRACTICE,
            code=CONSULTATION_CODE,
            description="Consulta",
            unit_honorarium=fee,
            unit_facility_cost=0.0,
            provider_kind=ProviderKind.DOCTOR,
        )
        return item, details

    def calculate_surgical_practice_expense(
        self,
        entry: PracticeEntry,
        agreement: Optional[AgreementValues],
        arthroscopy: str = "simple",
    ) -> Tuple[float, dict]:
        """
        Facility cost of a practice billed from the surgery screen.

        Only the clinic's expense is billed there; the surgeons are billed
        through the surgical fee table. The expense is priced from the
        nomenclator's gto units:
        - X-ray practices: agreement X-ray expense × gto / 2
        - Surgical chapters (12 and 13): agreement surgical expense × gto
        - Anything else: agreement miscellaneous expense × gto

        Arthroscopy (120902) has flat expenses per type ("simple" or
        "compleja") stored as raw agreement concepts.

        Returns:
            Tuple of (facility_cost, calculation_details)
        """
        details = _details(
            code=entry.code,
            description=entry.description,
            chapter=entry.chapter,
            gto=entry.gto,
            agreement=agreement.name if agreement else None,
        )

        if agreement is None:
            expense = 0.0
            details["warnings"].append(BillingWarning.NO_AGREEMENT_SELECTED)
        elif entry.code == ARTHROSCOPY_CODE:
            if arthroscopy not in ARTHROSCOPY_EXPENSE_CONCEPTS:
                raise ValueError(f"Unknown arthroscopy type {arthroscopy!r}")
            concept = ARTHROSCOPY_EXPENSE_CONCEPTS[arthroscopy]
            expense = agreement.concept(concept)
            details["notes"].append(f"Arthroscopy ({arthroscopy}): {concept} {expense}")
        elif is_xray(entry):
            expense = agreement.xray_facility_cost * entry.gto / 2
            details["notes"].append(f"RX: ({agreement.xray_facility_cost} × {entry.gto}) / 2")
        elif entry.chapter in SURGICAL_CHAPTERS:
            expense = agreement.surgical_facility_cost * entry.gto
            details["notes"].append(f"Surgical: {agreement.surgical_facility_cost} × {entry.gto}")
        else:
            expense = agreement.misc_costs * entry.gto
            details["notes"].append(f"Other: {agreement.misc_costs} × {entry.gto}")

        if agreement is not None and expense == 0:
            details["warnings"].append(BillingWarning.ZERO_FEE_TIER)

        # Reference only: the surgeon's galeno for the practice, never billed here
        if agreement is not None and entry.chapter in SURGICAL_CHAPTERS:
            details["surgical_honorarium"] = agreement.surgical_honorarium * entry.q_gal

        details["facility_cost"] = expense
        return expense, details

    def build_surgical_practice_item(
        self,
        entry: PracticeEntry,
        agreement: Optional[AgreementValues],
        quantity: int = 1,
        arthroscopy: str = "simple",
    ) -> Tuple[LineItem, dict]:
        """Build a clinic-billed, facility-cost-only practice item for the surgery screen."""
        expense, details = self.calculate_surgical_practice_expense(entry, agreement, arthroscopy)
        quantity, valid = clamp_quantity(ItemCategory.PRACTICE, quantity)
        if not valid:
            details["warnings"].append(BillingWarning.INVALID_QUANTITY)

        source = {
            "capitulo": entry.chapter,
            "capituloNombre": entry.chapter_name,
            "key": entry.key,
            "esCirugia": False,
        }
        if entry.code == ARTHROSCOPY_CODE:
            source["artroscopia"] = arthroscopy

        item = LineItem.priced(
            id=new_id("pract"),
            group_id=new_id("prac"),
            category=ItemCategory.PRACTICE,
            code=entry.code,
            description=entry.description,
            quantity=quantity,
            unit_honorarium=0.0,
            unit_facility_cost=expense,
            provider_kind=ProviderKind.CLINIC,
            source=source,
        )
        return item, details


class SurgeryFeeAllocator:
    """
    Allocates surgeon and assistant fees for a surgical code.

    The agreement's surgical table gives, per complexity tier, the surgeon,
    first-assistant and second-assistant fees. Allocation produces:
    - always one "Cirujano" item at the surgeon fee
    - ONE: an "Ayudante 1" item, if the first-assistant fee is > 0
    - TWO: two "Ayudante 2" items, if the second-assistant fee is > 0 and the
      tier is 5 or higher

    All items of one allocation share a group id. A zero surgeon fee means
    the agreement is incomplete for the tier: nothing is allocated.
    """

    def allocate(
        self,
        entry: SurgeryEntry,
        agreement: Optional[AgreementValues],
        assistants: AssistantSelection = AssistantSelection.NONE,
    ) -> Tuple[List[LineItem], dict]:
        """
        Allocate fees for one surgery.

        Args:
            entry: Surgery catalog entry
            agreement: Resolved agreement, or None if none is selected
            assistants: Requested assistants

        Returns:
            Tuple of (line_items, calculation_details); line_items is empty
            when the surgeon fee resolves to zero
        """
        assistants = AssistantSelection(assistants)
        tier = (agreement.surgical_fees.get(entry.complexity) if agreement else None)
        surgeon_fee = tier.surgeon_fee if tier else 0.0
        first_fee = tier.first_assistant_fee if tier else 0.0
        second_fee = tier.second_assistant_fee if tier else 0.0

        details = _details(
            code=entry.code,
            description=entry.description,
            complexity=entry.complexity,
            assistants=assistants.value,
            surgeon_fee=surgeon_fee,
            first_assistant_fee=first_fee,
            second_assistant_fee=second_fee,
            agreement=agreement.name if agreement else None,
        )

        if agreement is None:
            details["warnings"].append(BillingWarning.NO_AGREEMENT_SELECTED)

        if surgeon_fee == 0:
            details["warnings"].append(BillingWarning.ZERO_FEE_TIER)
            details["notes"].append(f"Agreement has no surgeon fee for tier {entry.complexity}")
            details["total"] = 0.0
            return [], details

        group_id = new_id("cx")
        fees: List[Tuple[str, float]] = [(SURGEON_ROLE, surgeon_fee)]

        if assistants == AssistantSelection.ONE:
            if first_fee > 0:
                fees.append((FIRST_ASSISTANT_ROLE, first_fee))
            else:
                details["notes"].append("First-assistant fee is zero: no assistant billed")

        elif assistants == AssistantSelection.TWO:
            if not allows_two_assistants(entry.complexity):
                details["notes"].append(
                    f"Tier {entry.complexity} does not allow two assistants "
                    f"(minimum {MIN_TIER_FOR_TWO_ASSISTANTS})"
                )
            elif second_fee > 0:
                fees.append((SECOND_ASSISTANT_ROLE, second_fee))
                fees.append((SECOND_ASSISTANT_ROLE, second_fee))
            else:
                details["notes"].append("Second-assistant fee is zero: no assistants billed")

        items = [
            LineItem.priced(
                id=new_id("cx"),
                group_id=group_id,
                category=ItemCategory.SURGERY,
                code=entry.code,
                description=entry.description,
                unit_honorarium=fee,
                unit_facility_cost=0.0,
                provider_kind=ProviderKind.DOCTOR,
                provider_name=role,
                role=role,
                source={"region": entry.region, "complejidad": entry.complexity, "key": entry.key},
            )
            for role, fee in fees
        ]

        details["group_id"] = group_id
        details["total"] = sum(item.total for item in items)
        return items, details


class LabFeeCalculator:
    """
    Calculates lab study fees.

    Formula:
    Total = Unit value multiplier (bioquímica units) × Agreement lab unit value
    """

    def calculate_fee(
        self,
        entry: LabStudyEntry,
        agreement: Optional[AgreementValues],
    ) -> Tuple[float, dict]:
        """
        Calculate the fee for one unit of a lab study.

        Returns:
            Tuple of (total, calculation_details)
        """
        unit_value = agreement.lab_unit_value if agreement else 0.0
        total = entry.unit_value * unit_value

        details = _details(
            code=entry.code,
            description=entry.description,
            unit_value_multiplier=entry.unit_value,
            lab_unit_value=unit_value,
            total=total,
            formula=f"{entry.unit_value} × {unit_value}",
        )
        if agreement is None:
            details["warnings"].append(BillingWarning.NO_AGREEMENT_SELECTED)

        return total, details

    def build_item(
        self,
        entry: LabStudyEntry,
        agreement: Optional[AgreementValues],
        quantity: int = 1,
    ) -> Tuple[LineItem, dict]:
        """Build an undifferentiated lab line item."""
        total, details = self.calculate_fee(entry, agreement)
        quantity, valid = clamp_quantity(ItemCategory.LAB, quantity)
        if not valid:
            details["warnings"].append(BillingWarning.INVALID_QUANTITY)

        item = LineItem.priced(
            id=new_id("lab"),
            group_id=new_id("lab"),
            category=ItemCategory.LAB,
            code=entry.code,
            description=entry.description,
            quantity=quantity,
            unit_total=total,
            source={"unidadBioquimica": entry.unit_value, "key": entry.key},
        )
        return item, details


def build_supply_item(
    category: ItemCategory,
    code: str,
    description: str,
    unit_price: Any,
    quantity: Any = 1,
) -> LineItem:
    """
    Build a medication or disposable line item.

    Quantities may be fractional; anything below 0.01 is raised to it.

    Raises:
        ValueError: If category is not a supply category
    """
    category = ItemCategory(category)
    if not category.allows_fractional_quantity:
        raise ValueError(f"{category.value} is not a supply category")

    amount, _ = clamp_quantity(category, quantity)
    return LineItem.priced(
        id=new_id("med" if category == ItemCategory.MEDICATION else "desc"),
        group_id=new_id("sup"),
        category=category,
        code=code,
        description=description,
        quantity=amount,
        unit_total=parse_number(unit_price),
        provider_kind=ProviderKind.CLINIC,
    )
