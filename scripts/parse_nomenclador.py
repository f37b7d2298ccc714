#!/usr/bin/env python3
"""
Convert nomenclator spreadsheets into the catalog JSON files.

The clinic receives the national nomenclator, the AOTER surgical
nomenclator and the bioquímica lab nomenclator as Excel or CSV exports.
This script reads them with pandas and writes the JSON shapes loaded by
CodeCatalog.load_from_directory().

Usage:
    python parse_nomenclador.py nacional Nomenclador.xlsx --output-dir ../data
    python parse_nomenclador.py aoter aoter.csv --output-dir ../data
    python parse_nomenclador.py bioquimica nbu.xlsx --output-dir ../data

Requirements:
    pip install pandas openpyxl
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List

import pandas as pd

from clinic_billing.catalog import (
    LAB_CATALOG_FILE,
    PRACTICE_CATALOG_FILE,
    SURGERY_CATALOG_FILE,
)
from clinic_billing.numeric import normalize_text, parse_number

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Spreadsheet header (normalized) -> catalog field
COLUMN_MAP = {
    'capitulo': 'capitulo',
    'cap': 'capitulo',
    'capitulo descripcion': 'capitulo_nombre',
    'nombre capitulo': 'capitulo_nombre',
    'codigo': 'codigo',
    'cod': 'codigo',
    'descripcion': 'descripcion',
    'practica': 'descripcion',
    'practica bioquimica': 'descripcion',
    'q gal': 'q_gal',
    'galenos': 'q_gal',
    'gto': 'gto',
    'gastos': 'gto',
    'region': 'region',
    'region nombre': 'region_nombre',
    'complejidad': 'complejidad',
    'nivel': 'complejidad',
    'unidad bioquimica': 'unidad_bioquimica',
    'ub': 'unidad_bioquimica',
    'nbu': 'unidad_bioquimica',
}

OUTPUT_FILES = {
    'nacional': PRACTICE_CATALOG_FILE,
    'aoter': SURGERY_CATALOG_FILE,
    'bioquimica': LAB_CATALOG_FILE,
}


def read_sheet(path: Path) -> pd.DataFrame:
    """
    Read an Excel or CSV export, with headers mapped to catalog fields.

    Every cell is read as text so codes keep their leading zeros; numeric
    columns are parsed later with the localized-number rules.
    """
    if path.suffix.lower() in ('.xlsx', '.xls'):
        df = pd.read_excel(path, dtype=str)
    else:
        df = pd.read_csv(path, dtype=str, sep=None, engine='python', encoding='utf-8-sig')

    renamed = {}
    for column in df.columns:
        header = normalize_text(column).strip().replace('_', ' ')
        if header in COLUMN_MAP:
            renamed[column] = COLUMN_MAP[header]
    df = df.rename(columns=renamed)

    if 'codigo' not in df.columns:
        raise ValueError(f"{path.name} has no code (codigo) column")

    df = df.fillna('')
    df = df[df['codigo'].str.strip() != '']
    logger.info(f"Read {len(df)} rows from {path.name} (columns: {', '.join(df.columns)})")
    return df


def build_practice_catalog(df: pd.DataFrame) -> List[Dict]:
    """Group practice rows by chapter, keeping spreadsheet order."""
    if 'capitulo' not in df.columns:
        df = df.assign(capitulo='')
    if 'capitulo_nombre' not in df.columns:
        df = df.assign(capitulo_nombre='')

    chapters = []
    for chapter_id, rows in df.groupby('capitulo', sort=False):
        chapters.append({
            'capitulo': str(chapter_id).strip(),
            'descripcion': str(rows['capitulo_nombre'].iloc[0]).strip(),
            'practicas': [
                {
                    'codigo': str(row['codigo']).strip(),
                    'descripcion': str(row.get('descripcion', '')).strip(),
                    'q_gal': parse_number(row.get('q_gal', 0)),
                    'gto': parse_number(row.get('gto', 0)),
                }
                for _, row in rows.iterrows()
            ],
        })
    return chapters


def build_surgery_catalog(df: pd.DataFrame) -> Dict:
    """Group surgery rows by region and complexity tier."""
    if 'region' not in df.columns:
        df = df.assign(region='')
    if 'region_nombre' not in df.columns:
        df = df.assign(region_nombre=df['region'])

    groups = []
    regions = {}
    for (region, complexity), rows in df.groupby(['region', 'complejidad'], sort=False):
        region_name = str(rows['region_nombre'].iloc[0]).strip()
        regions[str(region).strip()] = region_name
        groups.append({
            'region': str(region).strip(),
            'region_nombre': region_name,
            'complejidad': int(parse_number(complexity)),
            'practicas': [
                {
                    'codigo': str(row['codigo']).strip(),
                    'descripcion': str(row.get('descripcion', '')).strip(),
                }
                for _, row in rows.iterrows()
            ],
        })
    return {'practicas': groups, 'regiones': regions}


def build_lab_catalog(df: pd.DataFrame) -> Dict:
    """Lab studies with their bioquímica unit values."""
    return {
        'practicas': [
            {
                'codigo': str(row['codigo']).strip(),
                'practica_bioquimica': str(row.get('descripcion', '')).strip(),
                'unidad_bioquimica': parse_number(row.get('unidad_bioquimica', 0)),
            }
            for _, row in df.iterrows()
        ]
    }


BUILDERS = {
    'nacional': build_practice_catalog,
    'aoter': build_surgery_catalog,
    'bioquimica': build_lab_catalog,
}


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Convert nomenclator spreadsheets to catalog JSON')
    parser.add_argument('kind', choices=sorted(BUILDERS), help='Nomenclator being converted')
    parser.add_argument('input', type=Path, help='Excel or CSV file')
    parser.add_argument('--output-dir', type=Path, default=Path(__file__).parent.parent / 'data',
                        help='Directory to write the catalog JSON to')
    args = parser.parse_args()

    if not args.input.exists():
        logger.error(f"Input file not found: {args.input}")
        return 1

    df = read_sheet(args.input)
    if args.kind == 'aoter' and 'complejidad' not in df.columns:
        logger.error("Surgical nomenclator needs a complexity (complejidad/nivel) column")
        return 1

    catalog = BUILDERS[args.kind](df)

    args.output_dir.mkdir(parents=True, exist_ok=True)
    output_file = args.output_dir / OUTPUT_FILES[args.kind]
    with open(output_file, 'w', encoding='utf-8') as f:
        json.dump(catalog, f, indent=2, ensure_ascii=False)

    logger.info(f"Wrote {output_file}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
