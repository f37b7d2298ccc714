"""
Invoice aggregation.

The aggregator owns the five line-item collections of an invoice and is the
only place invoice state changes after items are created. Totals are derived
on demand from the items, so they reconcile after every operation.
"""

import logging
import math
from typing import Dict, Iterator, List, Optional, Tuple

from .models import (
    BillingWarning,
    GrandTotals,
    InvoiceTotals,
    ItemCategory,
    LineItem,
    Patient,
    PersistedInvoice,
    clamp_quantity,
)

logger = logging.getLogger(__name__)

# Persisted collection name for each category, in invoice order
SECTION_NAMES: Dict[ItemCategory, str] = {
    ItemCategory.PRACTICE: "practicas",
    ItemCategory.SURGERY: "cirugias",
    ItemCategory.LAB: "laboratorios",
    ItemCategory.MEDICATION: "medicamentos",
    ItemCategory.DISPOSABLE: "descartables",
}

# Undifferentiated items count towards one side of the honorarium/facility split
_HONORARIUM_CATEGORIES = {ItemCategory.LAB}


def honorarium_share(item: LineItem) -> float:
    """Part of an item's total billed as honorarium."""
    if item.is_split:
        return item.honorarium
    return item.total if item.category in _HONORARIUM_CATEGORIES else 0.0


def facility_share(item: LineItem) -> float:
    """Part of an item's total billed as facility cost."""
    if item.is_split:
        return item.facility_cost
    return 0.0 if item.category in _HONORARIUM_CATEGORIES else item.total


class InvoiceAggregator:
    """
    Editable collection of invoice line items with derived totals.

    Example:
        >>> invoice = InvoiceAggregator()
        >>> invoice.add(item)
        >>> invoice.set_quantity(item.id, 3)
        >>> invoice.grand_totals().total
    """

    def __init__(self, patient: Optional[Patient] = None):
        self.patient = patient or Patient()
        self.sections: Dict[ItemCategory, List[LineItem]] = {category: [] for category in SECTION_NAMES}

    def __iter__(self) -> Iterator[LineItem]:
        for items in self.sections.values():
            yield from items

    def __len__(self) -> int:
        return sum(len(items) for items in self.sections.values())

    def items(self, category: ItemCategory) -> List[LineItem]:
        """Items of one section, in insertion order."""
        return list(self.sections[ItemCategory(category)])

    def get(self, item_id: str) -> LineItem:
        section, index = self._locate(item_id)
        return self.sections[section][index]

    def add(self, item: LineItem) -> LineItem:
        """
        Append an item to its section.

        Raises:
            ValueError: If the item's quantity is not positive
        """
        if not item.quantity > 0:
            raise ValueError(f"Line item {item.id} must have a positive quantity")
        self.sections[item.category].append(item)
        return item

    def add_all(self, items: List[LineItem]) -> List[LineItem]:
        return [self.add(item) for item in items]

    def set_quantity(self, item_id: str, quantity: object) -> Tuple[LineItem, List[BillingWarning]]:
        """
        Change an item's quantity, rescaling its amounts.

        The quantity is clamped to the item category's minimum. Amounts are
        recomputed from the unit amounts captured when the item was created,
        so repeated edits never drift the unit price.

        Args:
            item_id: Item identifier
            quantity: Requested quantity

        Returns:
            Tuple of (updated_item, warnings)

        Raises:
            KeyError: If no item has that id
        """
        section, index = self._locate(item_id)
        current = self.sections[section][index]

        clamped, valid = clamp_quantity(current.category, quantity)
        warnings: List[BillingWarning] = []
        if not valid:
            logger.debug("Quantity %r for item %s clamped to %s", quantity, item_id, clamped)
            warnings.append(BillingWarning.INVALID_QUANTITY)

        updated = current.with_quantity(clamped)
        self.sections[section][index] = updated
        return updated, warnings

    def update_provider_name(self, item_id: str, name: str) -> LineItem:
        """
        Set an item's free-text provider name. Amounts are untouched.

        Raises:
            KeyError: If no item has that id
        """
        section, index = self._locate(item_id)
        updated = self.sections[section][index].model_copy(update={"provider_name": str(name)})
        self.sections[section][index] = updated
        return updated

    def remove(self, item_id: str) -> LineItem:
        """
        Remove an item.

        Raises:
            KeyError: If no item has that id
        """
        section, index = self._locate(item_id)
        return self.sections[section].pop(index)

    def remove_group(self, group_id: str) -> List[LineItem]:
        """Remove every item generated together with a group id."""
        removed: List[LineItem] = []
        for category, items in self.sections.items():
            removed.extend(item for item in items if item.group_id == group_id)
            self.sections[category] = [item for item in items if item.group_id != group_id]
        return removed

    def reset(self) -> None:
        """Clear every section and the patient metadata."""
        self.patient = Patient()
        for items in self.sections.values():
            items.clear()

    def section_subtotal(self, category: ItemCategory) -> float:
        """Sum of item totals in one section."""
        return math.fsum(item.total for item in self.sections[ItemCategory(category)])

    def grand_totals(self) -> GrandTotals:
        """
        Invoice-wide honorarium, facility cost and total.

        Undifferentiated items are attributed by section: lab totals count
        as honorarium, medication and disposable totals as facility cost.
        Each sum is correctly rounded, so total is exactly the sum of the
        item totals regardless of item order.
        """
        return GrandTotals(
            honorarium=math.fsum(honorarium_share(item) for item in self),
            facility_cost=math.fsum(facility_share(item) for item in self),
            total=math.fsum(item.total for item in self),
        )

    def to_persisted(self) -> PersistedInvoice:
        """Build the invoice in the shape written by the persistence layer."""
        totals = self.grand_totals()
        sections = {
            SECTION_NAMES[category]: [item.to_record() for item in items]
            for category, items in self.sections.items()
        }
        return PersistedInvoice(
            paciente=self.patient,
            totales=InvoiceTotals(
                honorarios=totals.honorarium,
                gastos=totals.facility_cost,
                total=totals.total,
            ),
            **sections,
        )

    def _locate(self, item_id: str) -> Tuple[ItemCategory, int]:
        for category, items in self.sections.items():
            for index, item in enumerate(items):
                if item.id == item_id:
                    return category, index
        raise KeyError(f"Line item {item_id} not found")
