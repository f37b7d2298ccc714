"""
Clinic Billing Engine

Fee computation and invoice aggregation for a clinic billing against
insurer agreements (convenios): national-nomenclator practices, surgical
fees by complexity tier, bioquímica lab studies and supplies.
"""

from .agreement import AgreementStore, AgreementValues, resolve_agreement
from .catalog import CodeCatalog
from .invoice import InvoiceAggregator
from .models import (
    AssistantSelection,
    BillingWarning,
    ItemCategory,
    LineItem,
    Patient,
    PersistedInvoice,
    ProviderKind,
)
from .session import AddResult, BillingSession

__version__ = "1.0.0"
__all__ = [
    "AgreementStore",
    "AgreementValues",
    "resolve_agreement",
    "CodeCatalog",
    "InvoiceAggregator",
    "AssistantSelection",
    "BillingWarning",
    "ItemCategory",
    "LineItem",
    "Patient",
    "PersistedInvoice",
    "ProviderKind",
    "AddResult",
    "BillingSession",
]
