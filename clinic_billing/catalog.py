"""
Code catalogs (nomencladores) for practices, surgeries and lab studies.

Catalog entries are immutable reference data, loaded once per session and
kept as ordered tuples so that positional relationships between entries
(see linker.py) stay stable for the session's lifetime.
"""

import json
import logging
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .numeric import parse_number

logger = logging.getLogger(__name__)

PRACTICE_CATALOG_FILE = "nomenclador_nacional.json"
SURGERY_CATALOG_FILE = "nomenclador_aoter.json"
LAB_CATALOG_FILE = "nomenclador_bioquimica.json"

NO_REGION = "SIN REGIÓN"


@dataclass(frozen=True)
class PracticeEntry:
    """A practice from the national nomenclator."""

    code: str
    description: str
    chapter: str
    chapter_name: str
    key: str

    # Galeno and expense units as listed by the nomenclator
    q_gal: float = 0.0
    gto: float = 0.0

    # Delegated pricing: rates carried by the entry itself
    honorarium_rate: Optional[float] = None
    facility_rate: Optional[float] = None

    @property
    def has_delegated_rates(self) -> bool:
        return self.honorarium_rate is not None or self.facility_rate is not None


@dataclass(frozen=True)
class SurgeryEntry:
    """A surgical procedure, classified by region and complexity tier."""

    code: str
    description: str
    region: str
    complexity: int
    key: str


@dataclass(frozen=True)
class LabStudyEntry:
    """A lab study priced in bioquímica units."""

    code: str
    description: str
    unit_value: float
    key: str


def _optional_rate(item: Mapping[str, Any], keys: Tuple[str, ...]) -> Optional[float]:
    for key in keys:
        value = item.get(key)
        if value is not None and value != "":
            return parse_number(value)
    return None


def flatten_practice_catalog(chapters: Iterable[Mapping[str, Any]]) -> Tuple[PracticeEntry, ...]:
    """
    Flatten the chapter-grouped practice catalog.

    Keys are "{chapter}|{code}#{n}", where n counts repeated chapter/code
    pairs, so entries listed twice still have distinct keys.
    """
    counts: Dict[str, int] = defaultdict(int)
    entries: List[PracticeEntry] = []

    for chapter in chapters:
        chapter_id = str(chapter.get("capitulo") or "").strip()
        chapter_name = str(chapter.get("descripcion") or "").strip()
        for item in chapter.get("practicas") or []:
            code = str(item.get("codigo") or "").strip()
            base = f"{chapter_id}|{code}"
            counts[base] += 1
            entries.append(PracticeEntry(
                code=code,
                description=str(item.get("descripcion") or "").strip(),
                chapter=chapter_id,
                chapter_name=chapter_name,
                key=f"{base}#{counts[base]}",
                q_gal=parse_number(item.get("q_gal")),
                gto=parse_number(item.get("gto")),
                honorarium_rate=_optional_rate(item, ("honorario", "honorarioMedico")),
                facility_rate=_optional_rate(item, ("gasto", "gastoSanatorial")),
            ))

    return tuple(entries)


def flatten_surgery_catalog(data: Mapping[str, Any]) -> Tuple[SurgeryEntry, ...]:
    """Flatten the region/complexity grouped surgery catalog."""
    regions = data.get("regiones")
    if not isinstance(regions, Mapping):
        regions = {}
    entries: List[SurgeryEntry] = []

    for group in data.get("practicas") or []:
        region = group.get("region_nombre") or regions.get(str(group.get("region"))) or NO_REGION
        complexity = int(parse_number(group.get("complejidad")))
        for item in group.get("practicas") or []:
            code = str(item.get("codigo") or "").strip()
            entries.append(SurgeryEntry(
                code=code,
                description=str(item.get("descripcion") or "").strip(),
                region=str(region),
                complexity=complexity,
                key=f"{code}-{region}-{complexity}-{len(entries)}",
            ))

    return tuple(entries)


def flatten_lab_catalog(data: Mapping[str, Any]) -> Tuple[LabStudyEntry, ...]:
    """Flatten the bioquímica lab catalog."""
    entries: List[LabStudyEntry] = []
    for item in data.get("practicas") or []:
        code = str(item.get("codigo") or "").strip()
        entries.append(LabStudyEntry(
            code=code,
            description=str(item.get("practica_bioquimica") or item.get("descripcion") or "").strip(),
            unit_value=parse_number(item.get("unidad_bioquimica")),
            key=f"lab|{code}#{len(entries) + 1}",
        ))
    return tuple(entries)


class CodeCatalog:
    """
    The three code catalogs used for billing.

    Each catalog is an immutable, ordered tuple snapshot; lookups by code
    return the first entry in catalog order.
    """

    def __init__(
        self,
        practices: Iterable[PracticeEntry] = (),
        surgeries: Iterable[SurgeryEntry] = (),
        labs: Iterable[LabStudyEntry] = (),
    ):
        self.practices: Tuple[PracticeEntry, ...] = tuple(practices)
        self.surgeries: Tuple[SurgeryEntry, ...] = tuple(surgeries)
        self.labs: Tuple[LabStudyEntry, ...] = tuple(labs)

    def get_practice(self, code: str) -> Optional[PracticeEntry]:
        """
        Get the first practice with a code.

        Args:
            code: Nomenclator code

        Returns:
            PracticeEntry if found, None otherwise
        """
        code = str(code).strip()
        return next((p for p in self.practices if p.code == code), None)

    def get_surgery(self, code: str) -> Optional[SurgeryEntry]:
        code = str(code).strip()
        return next((s for s in self.surgeries if s.code == code), None)

    def get_lab(self, code: str) -> Optional[LabStudyEntry]:
        code = str(code).strip()
        return next((lab for lab in self.labs if lab.code == code), None)

    def load_from_directory(self, directory: Path) -> None:
        """
        Load catalogs from JSON files in a directory.

        Expected files (each optional):
        - nomenclador_nacional.json: practice chapters
        - nomenclador_aoter.json: surgery regions and complexity tiers
        - nomenclador_bioquimica.json: lab studies

        Args:
            directory: Path to directory containing catalog files
        """
        directory = Path(directory)

        practice_file = directory / PRACTICE_CATALOG_FILE
        if practice_file.exists():
            with open(practice_file, "r", encoding="utf-8") as f:
                self.practices = flatten_practice_catalog(json.load(f))
            logger.info("Loaded %d practices from %s", len(self.practices), practice_file)

        surgery_file = directory / SURGERY_CATALOG_FILE
        if surgery_file.exists():
            with open(surgery_file, "r", encoding="utf-8") as f:
                self.surgeries = flatten_surgery_catalog(json.load(f))
            logger.info("Loaded %d surgeries from %s", len(self.surgeries), surgery_file)

        lab_file = directory / LAB_CATALOG_FILE
        if lab_file.exists():
            with open(lab_file, "r", encoding="utf-8") as f:
                self.labs = flatten_lab_catalog(json.load(f))
            logger.info("Loaded %d lab studies from %s", len(self.labs), lab_file)


def create_default_catalog() -> CodeCatalog:
    """
    Create a catalog with a small sample of each nomenclator.

    Returns:
        CodeCatalog with sample data loaded
    """
    practices = flatten_practice_catalog([
        {
            "capitulo": "34",
            "descripcion": "RADIOLOGIA - DIAGNOSTICO POR IMAGENES",
            "practicas": [
                {"codigo": "340101", "descripcion": "RADIOGRAFIA DE TORAX (FRENTE)", "q_gal": 7, "gto": 15},
                {"codigo": "340102", "descripcion": "Por exposición subsiguiente", "q_gal": 2, "gto": 7.5},
                {"codigo": "340201", "descripcion": "RADIOGRAFIA DE COLUMNA CERVICAL", "q_gal": 8, "gto": 18},
                {"codigo": "340202", "descripcion": "Por exposicion subsiguiente", "q_gal": 2, "gto": 8},
                {"codigo": "340301", "descripcion": "RX DE MANO O PIE", "q_gal": 5, "gto": 12},
                {"codigo": "340401", "descripcion": "ECOGRAFIA ABDOMINAL", "q_gal": 10, "gto": 20},
            ],
        },
        {
            "capitulo": "42",
            "descripcion": "CONSULTAS Y CURACIONES",
            "practicas": [
                {"codigo": "420101", "descripcion": "CONSULTA EN CONSULTORIO"},
                {"codigo": "420301", "descripcion": "CURACION PLANA", "honorario": 0, "gasto": "8.820"},
            ],
        },
        {
            "capitulo": "12",
            "descripcion": "OPERACIONES EN EL SISTEMA MUSCULOESQUELETICO",
            "practicas": [
                {"codigo": "120101", "descripcion": "OSTEOSINTESIS DE DIAFISIS DE FEMUR", "q_gal": 180, "gto": 45},
                {"codigo": "120902", "descripcion": "ARTROSCOPIA DE RODILLA U HOMBRO", "q_gal": 150, "gto": 40},
            ],
        },
        {
            "capitulo": "13",
            "descripcion": "OPERACIONES EN EL SISTEMA NERVIOSO",
            "practicas": [
                {"codigo": "130201", "descripcion": "LAMINECTOMIA DESCOMPRESIVA", "q_gal": 200, "gto": "52,5"},
            ],
        },
    ])

    surgeries = flatten_surgery_catalog({
        "practicas": [
            {
                "region": 1,
                "region_nombre": "MANO",
                "complejidad": 2,
                "practicas": [{"codigo": "A0201", "descripcion": "REDUCCION CRUENTA FRACTURA FALANGE"}],
            },
            {
                "region": 2,
                "region_nombre": "RODILLA",
                "complejidad": 5,
                "practicas": [{"codigo": "R0501", "descripcion": "PLASTICA DE LIGAMENTO CRUZADO"}],
            },
            {
                "region": 3,
                "region_nombre": "CADERA",
                "complejidad": 7,
                "practicas": [{"codigo": "C0701", "descripcion": "REEMPLAZO TOTAL DE CADERA"}],
            },
        ]
    })

    labs = flatten_lab_catalog({
        "practicas": [
            {"codigo": "475", "practica_bioquimica": "HEMOGRAMA COMPLETO", "unidad_bioquimica": 2.5},
            {"codigo": "412", "practica_bioquimica": "GLUCEMIA", "unidad_bioquimica": "1,5"},
            {"codigo": "711", "practica_bioquimica": "ORINA COMPLETA", "unidad_bioquimica": 2},
        ]
    })

    return CodeCatalog(practices=practices, surgeries=surgeries, labs=labs)
