"""
Agreement (convenio) resolution.

An agreement record is stored as loosely keyed data: the same fee concept
appears under several historical spellings, values may be localized strings,
and the surgical fee table may be a list or a mapping. This module turns such
a record into a canonical AgreementValues object with documented defaults.
"""

import json
import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .numeric import parse_number

logger = logging.getLogger(__name__)

NO_AGREEMENT_NAME = "No seleccionado"

# (canonical field, accepted alias keys in priority order, default)
FIELD_ALIASES: Tuple[Tuple[str, Tuple[str, ...], float], ...] = (
    (
        "xray_facility_cost",
        ("Gasto_Rx", "Gastos_Rx", "Gasto Rx", "Gastos Rx", "gasto_rx"),
        1648.0,
    ),
    (
        "xray_honorarium",
        (
            "Galeno_Rx_Practica", "Galeno_Rx_y_Practica", "Galeno Rx Practica",
            "Galeno Rx y Practica", "Galeno_Rx", "galeno_rx",
        ),
        1411.0,
    ),
    (
        "surgical_facility_cost",
        (
            "Gasto_Operatorio", "Gasto Operatorio", "Gastos Operatorios",
            "gasto_operatorio", "GASTOS_OPERATORIOS",
        ),
        3281.0,
    ),
    (
        "surgical_honorarium",
        (
            "Galeno_Quir", "Galeno Quir", "Galeno_Quirurgico", "Galeno Quirúrgico",
            "Galeno Quirurgico", "galeno_quir", "GALENO_QX",
        ),
        1435.5,
    ),
    (
        "daily_bed_rate",
        ("PENSION", "Pension", "Dia_Pension", "Día_Pensión", "Dia Pension", "Día Pension", "pension"),
        2838.0,
    ),
    (
        "misc_costs",
        (
            "Otros_Gastos", "Otros gastos", "Otros Gastos", "Otros_Gastos_Medicos",
            "Otros Gastos Medicos", "otros_gastos",
        ),
        0.0,
    ),
    (
        "consultation_fee",
        ("Consulta", "consulta", "CONSULTA"),
        34650.0,
    ),
    (
        "lab_unit_value",
        (
            "Laboratorios_NBU_T", "Laboratorios_NBU", "Laboratorios NBU", "Unidad_Bioquimica",
            "Unidad Bioquimica", "UB", "unidad_bioquimica",
        ),
        1224.11,
    ),
)

SURGEON_KEYS = ("Cirujano", "cirujano")
FIRST_ASSISTANT_KEYS = ("Ayudante_1", "Ayudante 1", "ayudante_1")
SECOND_ASSISTANT_KEYS = ("Ayudante_2", "Ayudante 2", "ayudante_2")

_PERCENT = re.compile(r"(\d+(?:[.,]\d+)?)\s*%")
_DIGITS = re.compile(r"\d+")


@dataclass(frozen=True)
class SurgicalTier:
    """Surgeon and assistant fees for one complexity tier."""

    tier: int
    surgeon_fee: float = 0.0
    first_assistant_fee: float = 0.0
    second_assistant_fee: float = 0.0


class SurgicalFeeTable:
    """
    Surgical fee table indexed by complexity tier.

    Tiers not configured by the agreement resolve to an all-zero tier, which
    callers treat as incomplete agreement data.
    """

    def __init__(self, tiers: Optional[Dict[int, SurgicalTier]] = None):
        self.tiers: Dict[int, SurgicalTier] = dict(tiers or {})

    def get(self, tier: Any) -> SurgicalTier:
        level = int(parse_number(tier))
        return self.tiers.get(level, SurgicalTier(tier=level))

    def __len__(self) -> int:
        return len(self.tiers)

    def __bool__(self) -> bool:
        return bool(self.tiers)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SurgicalFeeTable) and self.tiers == other.tiers

    def __repr__(self) -> str:
        return f"SurgicalFeeTable(tiers={sorted(self.tiers)})"


@dataclass(frozen=True)
class AgreementValues:
    """Canonical fee configuration resolved from an agreement record."""

    name: str = NO_AGREEMENT_NAME
    is_selected: bool = False

    xray_facility_cost: float = 1648.0
    xray_honorarium: float = 1411.0
    surgical_facility_cost: float = 3281.0
    surgical_honorarium: float = 1435.5
    daily_bed_rate: float = 2838.0
    misc_costs: float = 0.0
    consultation_fee: float = 34650.0
    lab_unit_value: float = 1224.11

    surgical_fees: SurgicalFeeTable = field(default_factory=SurgicalFeeTable)

    # Every numeric concept of the raw record, parsed, keyed as stored
    extras: Mapping[str, float] = field(default_factory=dict)

    def concept(self, key: str, default: float = 0.0) -> float:
        """Look up any raw concept (e.g. "Curaciones_R") by its stored key."""
        return self.extras.get(key, default)


def _resolve_field(values: Mapping[str, Any], aliases: Tuple[str, ...], default: float) -> float:
    for alias in aliases:
        raw = values.get(alias)
        if raw is None or raw == "":
            continue
        if isinstance(raw, float) and not math.isfinite(raw):
            continue
        return parse_number(raw)
    return default


def _first_present(row: Mapping[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        value = row.get(key)
        if value is not None and value != "":
            return value
    return None


def _assistant_fee(raw: Any, surgeon_fee: float) -> float:
    """Parse an assistant fee, which may be written as a share of the surgeon fee ("30%")."""
    if isinstance(raw, str):
        match = _PERCENT.search(raw)
        if match:
            return surgeon_fee * parse_number(match.group(1)) / 100.0
    return parse_number(raw)


def _parse_tier(tier: int, row: Any) -> Optional[SurgicalTier]:
    if not isinstance(row, Mapping):
        return None
    surgeon = parse_number(_first_present(row, SURGEON_KEYS))
    return SurgicalTier(
        tier=tier,
        surgeon_fee=surgeon,
        first_assistant_fee=_assistant_fee(_first_present(row, FIRST_ASSISTANT_KEYS), surgeon),
        second_assistant_fee=_assistant_fee(_first_present(row, SECOND_ASSISTANT_KEYS), surgeon),
    )


def parse_surgical_fee_table(raw: Any) -> SurgicalFeeTable:
    """
    Build a SurgicalFeeTable from the stored `honorarios_medicos` value.

    Lists are positional: entry i is tier i + 1, unless the first entry is
    empty, in which case the list came from tier-numbered keys and entry i is
    tier i. Mappings are keyed by the digits in each key ("0", "Nivel_0");
    keys are 0-based when a zero key exists, tier numbers otherwise.
    """
    tiers: Dict[int, SurgicalTier] = {}

    if isinstance(raw, (list, tuple)):
        offset = 0 if raw and not raw[0] else 1
        for index, row in enumerate(raw):
            parsed = _parse_tier(index + offset, row)
            if parsed:
                tiers[parsed.tier] = parsed

    elif isinstance(raw, Mapping):
        numbered: List[Tuple[int, Any]] = []
        for key, row in raw.items():
            match = _DIGITS.search(str(key))
            if match:
                numbered.append((int(match.group(0)), row))
        offset = 1 if any(number == 0 for number, _ in numbered) else 0
        for number, row in numbered:
            parsed = _parse_tier(number + offset, row)
            if parsed:
                tiers[parsed.tier] = parsed

    return SurgicalFeeTable(tiers)


def _numeric_extras(values: Mapping[str, Any]) -> Dict[str, float]:
    extras: Dict[str, float] = {}
    for key, value in values.items():
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float, str)):
            extras[str(key)] = parse_number(value)
    return extras


def resolve_agreement(record: Optional[Mapping[str, Any]], name: Optional[str] = None) -> AgreementValues:
    """
    Resolve a raw agreement record into canonical fee values.

    Each canonical field tries its aliases in order and uses the first
    present, non-empty value; otherwise the field's documented default
    applies. This never raises: absent or malformed data yields defaults.

    Args:
        record: Raw agreement record with `valores_generales` and
                `honorarios_medicos`, or None when no agreement is selected
        name: Optional agreement name (falls back to the record's `nombre`)

    Returns:
        AgreementValues
    """
    if not isinstance(record, Mapping):
        return AgreementValues()

    general = record.get("valores_generales")
    if not isinstance(general, Mapping):
        general = {}

    resolved = {
        canonical: _resolve_field(general, aliases, default)
        for canonical, aliases, default in FIELD_ALIASES
    }
    missing = [
        canonical for canonical, aliases, _ in FIELD_ALIASES
        if not any(general.get(alias) not in (None, "") for alias in aliases)
    ]
    agreement_name = name or record.get("nombre") or record.get("key") or NO_AGREEMENT_NAME
    if missing:
        logger.debug("Agreement %s uses defaults for: %s", agreement_name, ", ".join(missing))

    return AgreementValues(
        name=str(agreement_name),
        is_selected=True,
        surgical_fees=parse_surgical_fee_table(record.get("honorarios_medicos")),
        extras=_numeric_extras(general),
        **resolved,
    )


class AgreementStore:
    """
    Agreement records keyed by name.

    Records are kept raw; resolution happens on demand and is cached per
    agreement name, so swapping the selected agreement is cheap.
    """

    def __init__(self, records: Optional[Mapping[str, Any]] = None):
        self.records: Dict[str, Mapping[str, Any]] = {}
        self._resolved: Dict[str, AgreementValues] = {}
        for name, record in (records or {}).items():
            self.add_agreement(name, record)

    def add_agreement(self, name: str, record: Mapping[str, Any]) -> None:
        """Add or replace an agreement record."""
        key = str(name).strip()
        self.records[key] = record
        self._resolved.pop(key, None)

    def names(self) -> List[str]:
        return list(self.records)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip() in self.records

    def __len__(self) -> int:
        return len(self.records)

    def resolve(self, name: str) -> AgreementValues:
        """
        Resolve a named agreement.

        Raises:
            KeyError: If no agreement with that name is stored
        """
        key = str(name).strip()
        if key not in self.records:
            raise KeyError(f"Agreement {name!r} not found")
        if key not in self._resolved:
            self._resolved[key] = resolve_agreement(self.records[key], name=key)
        return self._resolved[key]

    def load_from_file(self, path: Path) -> None:
        """
        Load agreement records from a JSON file.

        The file holds a mapping of agreement name to record, optionally
        wrapped in a top-level "convenios" key.
        """
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, Mapping) and isinstance(data.get("convenios"), Mapping):
            data = data["convenios"]
        for name, record in data.items():
            self.add_agreement(name, record)
        logger.info("Loaded %d agreements from %s", len(data), path)


def create_default_agreements() -> AgreementStore:
    """
    Create an agreement store with sample data.

    Values are written the way they are stored in practice: some numbers,
    some localized strings, assistant fees partly as percentages.
    """
    store = AgreementStore()

    store.add_agreement("ART General", {
        "nombre": "ART General",
        "valores_generales": {
            "Gasto Rx": "1.648,00",
            "Galeno Rx Practica": "1.411,00",
            "Gasto Operatorio": 3281,
            "Galeno Quir": "1435,5",
            "Pension": "2.838",
            "Otros Gastos": "",
            "Laboratorios NBU": 1224.11,
            "Consulta": "$ 34.650,00",
            "Curaciones R": 8820,
            "Artroscopia_Simple_Gastos_Sanatoriales": "452.000",
            "Artroscopia_Hombro": "618.500,00",
        },
        "honorarios_medicos": [
            {"Cirujano": 52000, "Ayudante 1": "30%", "Ayudante 2": "20%"},
            {"Cirujano": 78000, "Ayudante 1": "30%", "Ayudante 2": "20%"},
            {"Cirujano": 104000, "Ayudante 1": "30%", "Ayudante 2": "20%"},
            {"Cirujano": 136500, "Ayudante 1": "30%", "Ayudante 2": "20%"},
            {"Cirujano": 182000, "Ayudante 1": 54600, "Ayudante 2": 36400},
            {"Cirujano": 234000, "Ayudante 1": 70200, "Ayudante 2": 46800},
            {"Cirujano": 0, "Ayudante 1": 0, "Ayudante 2": 0},
        ],
    })

    store.add_agreement("Prepaga Basica", {
        "nombre": "Prepaga Basica",
        "valores_generales": {
            "Gasto_Rx": 1200,
            "Galeno_Rx_Practica": 950,
            "Laboratorios_NBU_T": "1.050,75",
        },
        "honorarios_medicos": {
            "Nivel_0": {"Cirujano": "40.000", "Ayudante_1": "12.000", "Ayudante_2": ""},
            "Nivel_1": {"Cirujano": "60.000", "Ayudante_1": "18.000", "Ayudante_2": ""},
        },
    })

    return store
