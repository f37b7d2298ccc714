"""
Billing session.

Provides the primary interface used by the application: one invoice being
built against the catalogs and the currently selected agreement.
"""

import logging
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from .agreement import AgreementStore, AgreementValues, create_default_agreements
from .calculator import (
    LabFeeCalculator,
    PracticeFeeCalculator,
    SurgeryFeeAllocator,
    build_supply_item,
    new_id,
)
from .catalog import CodeCatalog, PracticeEntry, create_default_catalog
from .invoice import InvoiceAggregator
from .linker import link_subsequent_exposures
from .models import (
    AssistantSelection,
    BillingWarning,
    FeeBreakdown,
    ItemCategory,
    LineItem,
    ProviderKind,
)

logger = logging.getLogger(__name__)

AGREEMENTS_FILE = "convenios.json"


class AddResult(BaseModel):
    """Outcome of adding to the invoice: the items added and any warnings."""

    items: List[LineItem] = Field(default_factory=list)
    warnings: List[BillingWarning] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return bool(self.items)


def _result(items: List[LineItem], details: dict) -> AddResult:
    return AddResult(items=items, warnings=list(details["warnings"]), notes=list(details["notes"]))


class BillingSession:
    """
    One user's billing session.

    The selected agreement is explicit session state and is passed to every
    calculator call. Swapping it changes previews computed afterwards;
    items already on the invoice keep the amounts they were created with.

    Example:
        >>> session = BillingSession()
        >>> session.select_agreement("ART General")
        >>> session.add_lab("475", quantity=2)
        >>> session.invoice.grand_totals().total
    """

    def __init__(
        self,
        catalog: Optional[CodeCatalog] = None,
        agreements: Optional[AgreementStore] = None,
        data_directory: Optional[Path] = None,
    ):
        """
        Initialize the session.

        Args:
            catalog: Optional pre-loaded code catalog
            agreements: Optional pre-loaded agreement store
            data_directory: Optional directory with catalog and agreement
                            JSON files, used for whatever was not provided.
                            Without it, built-in sample data is used.
        """
        if catalog is None and data_directory:
            catalog = CodeCatalog()
            catalog.load_from_directory(data_directory)
        if agreements is None and data_directory:
            agreements = AgreementStore()
            agreements_file = Path(data_directory) / AGREEMENTS_FILE
            if agreements_file.exists():
                agreements.load_from_file(agreements_file)

        self.catalog = catalog if catalog is not None else create_default_catalog()
        self.agreements = agreements if agreements is not None else create_default_agreements()
        self.agreement: Optional[AgreementValues] = None
        self.invoice = InvoiceAggregator()

        self.practice_calculator = PracticeFeeCalculator()
        self.surgery_allocator = SurgeryFeeAllocator()
        self.lab_calculator = LabFeeCalculator()

    def select_agreement(self, name: Optional[str]) -> Optional[AgreementValues]:
        """
        Select the agreement used for subsequent calculations.

        Args:
            name: Agreement name, or None to clear the selection

        Raises:
            KeyError: If the agreement is unknown
        """
        if name is None:
            self.agreement = None
            logger.info("Agreement selection cleared")
            return None
        self.agreement = self.agreements.resolve(name)
        logger.info("Selected agreement %s", self.agreement.name)
        return self.agreement

    # Previews: computed from the current agreement, never stored

    def preview_practice(self, code: str) -> List[FeeBreakdown]:
        """Fee breakdown for a practice and its linked subsequent exposure."""
        return [
            self.practice_calculator.calculate_fee(entry, self.agreement)[0]
            for entry in self.linked_practices(code)
        ]

    def preview_surgery(self, code: str, assistants: AssistantSelection = AssistantSelection.NONE) -> List[LineItem]:
        entry = self.catalog.get_surgery(code)
        if entry is None:
            raise ValueError(f"Surgery code {code} not found in catalog")
        items, _ = self.surgery_allocator.allocate(entry, self.agreement, assistants)
        return items

    def preview_lab(self, code: str) -> float:
        entry = self.catalog.get_lab(code)
        if entry is None:
            raise ValueError(f"Lab code {code} not found in catalog")
        total, _ = self.lab_calculator.calculate_fee(entry, self.agreement)
        return total

    def linked_practices(self, code: str) -> List[PracticeEntry]:
        """
        A practice together with its adjacent subsequent-exposure entry.

        Raises:
            ValueError: If the code is not in the catalog
        """
        entry = self.catalog.get_practice(code)
        if entry is None:
            raise ValueError(f"Practice code {code} not found in catalog")
        return link_subsequent_exposures(entry, self.catalog.practices)

    # Invoice mutations

    def add_practice(
        self,
        code: str,
        quantity: int = 1,
        provider_kind: Optional[ProviderKind] = None,
        provider_name: str = "",
        link_subsequent: bool = True,
    ) -> AddResult:
        """
        Add a practice, along with its linked subsequent exposure.

        The linked entries share one group id. The add is rejected as a
        whole (nothing is added) when any of them resolves to a zero fee
        where the agreement was expected to price it.

        Raises:
            ValueError: If the code is not in the catalog
        """
        entries = self.linked_practices(code) if link_subsequent else [self._practice(code)]
        group_id = new_id("prac")
        result = AddResult()
        for entry in entries:
            item, details = self.practice_calculator.build_item(
                entry, self.agreement, quantity, provider_kind, provider_name, group_id=group_id
            )
            result.items.append(item)
            for warning in details["warnings"]:
                if warning not in result.warnings:
                    result.warnings.append(warning)
            result.notes.extend(details["notes"])

        if BillingWarning.ZERO_FEE_TIER in result.warnings:
            logger.warning(
                "Rejected practice %s: zero fee in agreement %s",
                code, self.agreement.name,
            )
            result.items = []
            return result

        self.invoice.add_all(result.items)
        return result

    def add_surgery(self, code: str, assistants: AssistantSelection = AssistantSelection.NONE) -> AddResult:
        """
        Add a surgery's surgeon and assistant items.

        The add is rejected (nothing is added) when the agreement has no
        surgeon fee for the surgery's complexity tier.

        Raises:
            ValueError: If the code is not in the catalog
        """
        entry = self.catalog.get_surgery(code)
        if entry is None:
            raise ValueError(f"Surgery code {code} not found in catalog")

        items, details = self.surgery_allocator.allocate(entry, self.agreement, assistants)
        if not items:
            logger.warning(
                "Rejected surgery %s: no surgeon fee for tier %s in agreement %s",
                code, entry.complexity, details["agreement"],
            )
        self.invoice.add_all(items)
        return _result(items, details)

    def add_lab(self, code: str, quantity: int = 1) -> AddResult:
        """
        Add a lab study.

        Raises:
            ValueError: If the code is not in the catalog
        """
        entry = self.catalog.get_lab(code)
        if entry is None:
            raise ValueError(f"Lab code {code} not found in catalog")
        item, details = self.lab_calculator.build_item(entry, self.agreement, quantity)
        self.invoice.add(item)
        return _result([item], details)

    def add_bed_days(self, days: int) -> AddResult:
        """Add bed days; rejected when the agreement's daily rate is zero."""
        item, details = self.practice_calculator.build_bed_days(days, self.agreement)
        return self._add_unless_zero_fee(item, details)

    def add_consultation(self) -> AddResult:
        """Add a consultation; rejected when the agreement's fee is zero."""
        item, details = self.practice_calculator.build_consultation(self.agreement)
        return self._add_unless_zero_fee(item, details)

    def add_surgical_practice(self, code: str, quantity: int = 1, arthroscopy: str = "simple") -> AddResult:
        """
        Add a national-nomenclator practice from the surgery screen.

        Only the clinic's facility cost is billed. The add is rejected when
        the practice has no expense under the selected agreement.

        Args:
            code: Practice code
            quantity: Quantity
            arthroscopy: "simple" or "compleja", used only for arthroscopy

        Raises:
            ValueError: If the code is not in the catalog or the arthroscopy
                        type is unknown
        """
        entry = self._practice(code)
        item, details = self.practice_calculator.build_surgical_practice_item(
            entry, self.agreement, quantity, arthroscopy
        )
        return self._add_unless_zero_fee(item, details)

    def add_medication(self, code: str, description: str, unit_price: Any, quantity: Any = 1) -> AddResult:
        item = build_supply_item(ItemCategory.MEDICATION, code, description, unit_price, quantity)
        self.invoice.add(item)
        return AddResult(items=[item])

    def add_disposable(self, code: str, description: str, unit_price: Any, quantity: Any = 1) -> AddResult:
        item = build_supply_item(ItemCategory.DISPOSABLE, code, description, unit_price, quantity)
        self.invoice.add(item)
        return AddResult(items=[item])

    def _add_unless_zero_fee(self, item: LineItem, details: dict) -> AddResult:
        if BillingWarning.ZERO_FEE_TIER in details["warnings"]:
            logger.warning(
                "Rejected %s: zero fee in agreement %s",
                item.code, self.agreement.name,
            )
            return _result([], details)
        self.invoice.add(item)
        return _result([item], details)

    def _practice(self, code: str) -> PracticeEntry:
        entry = self.catalog.get_practice(code)
        if entry is None:
            raise ValueError(f"Practice code {code} not found in catalog")
        return entry
