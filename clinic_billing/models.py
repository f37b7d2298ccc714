"""
Data models for billing line items and invoices.
"""

import math
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ItemCategory(str, Enum):
    """Invoice section a line item belongs to."""

    PRACTICE = "practica"
    SURGERY = "cirugia"
    LAB = "laboratorio"
    MEDICATION = "medicamento"
    DISPOSABLE = "descartable"

    @property
    def allows_fractional_quantity(self) -> bool:
        return self in (ItemCategory.MEDICATION, ItemCategory.DISPOSABLE)


MIN_FRACTIONAL_QUANTITY = 0.01


def clamp_quantity(category: ItemCategory, value: Any) -> Tuple[float, bool]:
    """
    Clamp a requested quantity to the category's minimum.

    Practices, surgeries and labs take whole quantities of at least 1,
    rounded half up; medications and disposables keep decimals, with a
    minimum of 0.01.
    Non-numeric or non-finite input falls back to the minimum.

    Returns:
        Tuple of (quantity, was_valid); was_valid is False when the request
        had to be replaced or clamped
    """
    if isinstance(value, bool):
        number = None
    elif isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip().replace(",", "."))
        except ValueError:
            number = None

    if category.allows_fractional_quantity:
        if number is None or not math.isfinite(number) or number <= 0:
            return MIN_FRACTIONAL_QUANTITY, False
        if number < MIN_FRACTIONAL_QUANTITY:
            return MIN_FRACTIONAL_QUANTITY, False
        return number, True

    if number is None or not math.isfinite(number):
        return 1, False
    whole = int(math.floor(number + 0.5))
    if whole < 1:
        return 1, False
    return whole, whole == number


class ProviderKind(str, Enum):
    """Who bills a line item: a doctor (honorarium) or the clinic (facility cost)."""

    DOCTOR = "Dr"
    CLINIC = "Clinica"


class AssistantSelection(str, Enum):
    """Number of surgical assistants requested."""

    NONE = "none"
    ONE = "one"
    TWO = "two"


class BillingWarning(str, Enum):
    """Conditions reported to the caller instead of raised."""

    NO_AGREEMENT_SELECTED = "NoAgreementSelected"
    ZERO_FEE_TIER = "ZeroFeeTier"
    INVALID_QUANTITY = "InvalidQuantity"


class FeeBreakdown(BaseModel):
    """Honorarium / facility cost split for one unit of a practice."""

    honorarium: float = Field(0.0, description="Doctor honorarium")
    facility_cost: float = Field(0.0, description="Clinic (facility) cost")
    total: float = Field(0.0, description="honorarium + facility_cost")

    @classmethod
    def split(cls, honorarium: float, facility_cost: float) -> "FeeBreakdown":
        return cls(honorarium=honorarium, facility_cost=facility_cost, total=honorarium + facility_cost)


class LineItem(BaseModel):
    """
    One billable entry of an invoice.

    Split items carry honorarium and facility cost with total equal to their
    sum; undifferentiated items (labs, medications, disposables) carry only a
    total. The unit amounts are captured at creation and are what quantity
    changes scale from, so the implied unit price never drifts.
    """

    id: str = Field(..., description="Unique item identifier")
    group_id: str = Field(..., description="Shared by items generated together", serialization_alias="groupId")
    category: ItemCategory = Field(..., serialization_alias="categoria")
    code: str = Field(..., description="Catalog code snapshot", serialization_alias="codigo")
    description: str = Field("", serialization_alias="descripcion")
    quantity: float = Field(1, description="Billed quantity", gt=0, serialization_alias="cantidad")

    honorarium: Optional[float] = Field(None, serialization_alias="honorarioMedico")
    facility_cost: Optional[float] = Field(None, serialization_alias="gastoSanatorial")
    total: float = Field(..., serialization_alias="total")

    unit_honorarium: Optional[float] = Field(None, serialization_alias="honorarioUnitario")
    unit_facility_cost: Optional[float] = Field(None, serialization_alias="gastoUnitario")
    unit_total: float = Field(..., serialization_alias="valorUnitario")

    provider_name: str = Field("", description="Free text, editable", serialization_alias="prestadorNombre")
    provider_kind: Optional[ProviderKind] = Field(None, serialization_alias="prestadorTipo")
    role: Optional[str] = Field(None, description="Surgical role, e.g. Cirujano", serialization_alias="rol")

    source: Dict[str, Any] = Field(default_factory=dict, description="Catalog entry snapshot")

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        """Normalize code."""
        return str(v).strip()

    @property
    def is_split(self) -> bool:
        return self.honorarium is not None and self.facility_cost is not None

    @property
    def unit_price(self) -> float:
        return self.total / self.quantity

    @classmethod
    def priced(
        cls,
        *,
        quantity: float = 1,
        unit_total: Optional[float] = None,
        unit_honorarium: Optional[float] = None,
        unit_facility_cost: Optional[float] = None,
        **fields: Any,
    ) -> "LineItem":
        """
        Build an item from unit amounts.

        Pass unit_honorarium and unit_facility_cost for a split item (the
        unit total is their sum), or only unit_total for an undifferentiated
        item.
        """
        if unit_honorarium is not None and unit_facility_cost is not None:
            unit_total = unit_honorarium + unit_facility_cost
            honorarium = unit_honorarium * quantity
            facility_cost = unit_facility_cost * quantity
            total = honorarium + facility_cost
        else:
            unit_total = unit_total or 0.0
            honorarium = facility_cost = None
            unit_honorarium = unit_facility_cost = None
            total = unit_total * quantity

        return cls(
            quantity=quantity,
            honorarium=honorarium,
            facility_cost=facility_cost,
            total=total,
            unit_honorarium=unit_honorarium,
            unit_facility_cost=unit_facility_cost,
            unit_total=unit_total,
            **fields,
        )

    def with_quantity(self, quantity: float) -> "LineItem":
        """Return a copy rescaled to a new quantity from the unit amounts."""
        if self.is_split:
            honorarium = self.unit_honorarium * quantity
            facility_cost = self.unit_facility_cost * quantity
            return self.model_copy(update={
                "quantity": quantity,
                "honorarium": honorarium,
                "facility_cost": facility_cost,
                "total": honorarium + facility_cost,
            })
        return self.model_copy(update={"quantity": quantity, "total": self.unit_total * quantity})

    def to_record(self) -> Dict[str, Any]:
        """Serialize with the persisted (Spanish) field names."""
        return self.model_dump(mode="json", by_alias=True)


class Patient(BaseModel):
    """Patient metadata attached to an invoice."""

    model_config = ConfigDict(populate_by_name=True)

    full_name: str = Field("", alias="nombreCompleto")
    dni: str = Field("", alias="dni")
    insurer: str = Field("", alias="artSeguro", description="ART / insurer name")
    claim_number: str = Field("", alias="nroSiniestro")
    attention_date: str = Field(default_factory=lambda: date.today().isoformat(), alias="fechaAtencion")


class GrandTotals(BaseModel):
    """Invoice-wide totals."""

    honorarium: float = 0.0
    facility_cost: float = 0.0
    total: float = 0.0


class InvoiceTotals(BaseModel):
    """Totals in the persisted invoice shape."""

    honorarios: float = 0.0
    gastos: float = 0.0
    total: float = 0.0

    @field_validator("honorarios", "gastos", "total")
    @classmethod
    def validate_finite(cls, v: float) -> float:
        """Persisted totals are always finite."""
        return v if math.isfinite(v) else 0.0


class PersistedInvoice(BaseModel):
    """Invoice as handed to the persistence layer."""

    paciente: Patient
    practicas: List[Dict[str, Any]] = Field(default_factory=list)
    cirugias: List[Dict[str, Any]] = Field(default_factory=list)
    laboratorios: List[Dict[str, Any]] = Field(default_factory=list)
    medicamentos: List[Dict[str, Any]] = Field(default_factory=list)
    descartables: List[Dict[str, Any]] = Field(default_factory=list)
    totales: InvoiceTotals

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
