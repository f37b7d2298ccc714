#!/usr/bin/env python
"""
Command-line interface for clinic billing.

Quick tool for pricing individual practices, surgeries or lab studies
against an agreement (convenio).
"""

import argparse
import logging
import sys
from pathlib import Path

from clinic_billing import AssistantSelection, BillingSession
from clinic_billing.numeric import format_money


def create_session(args) -> BillingSession:
    """Build a session and select the requested agreement."""
    data_dir = Path(args.data_dir) if args.data_dir else None
    session = BillingSession(data_directory=data_dir)
    if args.convenio:
        try:
            session.select_agreement(args.convenio)
        except KeyError:
            print(f"\nERROR: Agreement '{args.convenio}' not found", file=sys.stderr)
            print(f"Available: {', '.join(session.agreements.names())}", file=sys.stderr)
            sys.exit(1)
    return session


def print_warnings(warnings) -> None:
    for warning in warnings:
        print(f"WARNING: {warning.value}")


def price_practice(args):
    """Price a practice and its linked subsequent exposure."""
    session = create_session(args)

    try:
        result = session.add_practice(args.code, quantity=args.quantity)
    except ValueError as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        sys.exit(1)

    print("\n" + "=" * 60)
    print("PRACTICE PRICING RESULT")
    print("=" * 60)
    print(f"Agreement:       {session.agreement.name if session.agreement else 'No seleccionado'}")
    if not result.accepted:
        print(f"Practice {args.code} rejected: the agreement prices it at zero")
    for item in result.items:
        print()
        print(f"Code:            {item.code}")
        print(f"Description:     {item.description}")
        print(f"Quantity:        {item.quantity:g}")
        print(f"  Honorarium:    $ {format_money(item.honorarium)}")
        print(f"  Facility cost: $ {format_money(item.facility_cost)}")
        print(f"  Total:         $ {format_money(item.total)}")
    print()
    print(f"INVOICE TOTAL:   $ {format_money(session.invoice.grand_totals().total)}")
    print("=" * 60)
    print_warnings(result.warnings)
    print()


def price_surgery(args):
    """Allocate surgeon and assistant fees for a surgery."""
    session = create_session(args)

    try:
        result = session.add_surgery(args.code, AssistantSelection(args.assistants))
    except ValueError as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        sys.exit(1)

    print("\n" + "=" * 60)
    print("SURGERY PRICING RESULT")
    print("=" * 60)
    if not result.accepted:
        print(f"Surgery {args.code} rejected: the agreement has no surgeon fee for its tier")
    for item in result.items:
        print(f"{item.role:<12} $ {format_money(item.honorarium)}")
    print()
    print(f"TOTAL:           $ {format_money(session.invoice.grand_totals().total)}")
    print("=" * 60)
    print_warnings(result.warnings)
    for note in result.notes:
        print(f"Note: {note}")
    print()


def price_surgical_practice(args):
    """Price the clinic expense of a practice billed from the surgery screen."""
    session = create_session(args)

    try:
        result = session.add_surgical_practice(args.code, quantity=args.quantity, arthroscopy=args.arthroscopy)
    except ValueError as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        sys.exit(1)

    print("\n" + "=" * 60)
    print("SURGICAL PRACTICE EXPENSE")
    print("=" * 60)
    if not result.accepted:
        print(f"Practice {args.code} rejected: it has no facility cost under this agreement")
    for item in result.items:
        print(f"Code:            {item.code}")
        print(f"Description:     {item.description}")
        print(f"Quantity:        {item.quantity:g}")
        print(f"Facility cost:   $ {format_money(item.facility_cost)}")
    print("=" * 60)
    print_warnings(result.warnings)
    print()


def price_lab(args):
    """Price a lab study."""
    session = create_session(args)

    try:
        result = session.add_lab(args.code, quantity=args.quantity)
    except ValueError as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        sys.exit(1)

    item = result.items[0]
    print("\n" + "=" * 60)
    print("LAB PRICING RESULT")
    print("=" * 60)
    print(f"Code:            {item.code}")
    print(f"Description:     {item.description}")
    print(f"Bioq. units:     {item.source['unidadBioquimica']}")
    print(f"Quantity:        {item.quantity:g}")
    print(f"Unit price:      $ {format_money(item.unit_total)}")
    print(f"TOTAL:           $ {format_money(item.total)}")
    print("=" * 60)
    print_warnings(result.warnings)
    print()


def show_agreement(args):
    """Show the resolved values of an agreement."""
    session = create_session(args)
    agreement = session.agreement

    if agreement is None:
        print("\nAvailable agreements:")
        for name in session.agreements.names():
            print(f"  {name}")
        print()
        return

    print("\n" + "=" * 60)
    print("AGREEMENT VALUES")
    print("=" * 60)
    print(f"Name:                {agreement.name}")
    print(f"RX facility cost:    $ {format_money(agreement.xray_facility_cost)}")
    print(f"RX honorarium:       $ {format_money(agreement.xray_honorarium)}")
    print(f"Surgical facility:   $ {format_money(agreement.surgical_facility_cost)}")
    print(f"Surgical honorarium: $ {format_money(agreement.surgical_honorarium)}")
    print(f"Other expenses:      $ {format_money(agreement.misc_costs)}")
    print(f"Daily bed rate:      $ {format_money(agreement.daily_bed_rate)}")
    print(f"Consultation:        $ {format_money(agreement.consultation_fee)}")
    print(f"Lab unit value:      $ {format_money(agreement.lab_unit_value)}")
    if agreement.surgical_fees:
        print()
        print("Surgical fees by tier:")
        for tier in sorted(agreement.surgical_fees.tiers):
            fees = agreement.surgical_fees.get(tier)
            print(
                f"  {tier:>2}: $ {format_money(fees.surgeon_fee)}"
                f" / $ {format_money(fees.first_assistant_fee)}"
                f" / $ {format_money(fees.second_assistant_fee)}"
            )
    print("=" * 60)
    print()


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Clinic Billing CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Price a chest X-ray (adds its subsequent exposure too)
  %(prog)s practice 340101 --convenio "ART General"

  # Surgery with two assistants
  %(prog)s surgery R0501 --assistants two --convenio "ART General"

  # Clinic expense of a surgical practice
  %(prog)s surgical-practice 120101 --convenio "ART General"

  # Lab study, three units
  %(prog)s lab 475 --quantity 3 --convenio "Prepaga Basica"

  # Show agreement values
  %(prog)s agreement --convenio "ART General"
        """
    )
    # Options shared by every subcommand
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--data-dir', help='Directory with catalog and agreement JSON files')
    common.add_argument('--convenio', help='Agreement (convenio) to price against')
    common.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    practice_parser = subparsers.add_parser('practice', parents=[common], help='Price a nomenclator practice')
    practice_parser.add_argument('code', help='Practice code')
    practice_parser.add_argument('--quantity', type=int, default=1, help='Quantity (default: 1)')
    practice_parser.set_defaults(func=price_practice)

    surgery_parser = subparsers.add_parser('surgery', parents=[common], help='Allocate surgical fees')
    surgery_parser.add_argument('code', help='Surgery code')
    surgery_parser.add_argument(
        '--assistants',
        choices=[s.value for s in AssistantSelection],
        default=AssistantSelection.NONE.value,
        help='Assistants requested (default: none)'
    )
    surgery_parser.set_defaults(func=price_surgery)

    surgical_parser = subparsers.add_parser(
        'surgical-practice', parents=[common], help='Price a practice billed from the surgery screen'
    )
    surgical_parser.add_argument('code', help='Practice code')
    surgical_parser.add_argument('--quantity', type=int, default=1, help='Quantity (default: 1)')
    surgical_parser.add_argument(
        '--arthroscopy',
        choices=['simple', 'compleja'],
        default='simple',
        help='Arthroscopy type, for code 120902 (default: simple)'
    )
    surgical_parser.set_defaults(func=price_surgical_practice)

    lab_parser = subparsers.add_parser('lab', parents=[common], help='Price a lab study')
    lab_parser.add_argument('code', help='Lab study code')
    lab_parser.add_argument('--quantity', type=int, default=1, help='Quantity (default: 1)')
    lab_parser.set_defaults(func=price_lab)

    agreement_parser = subparsers.add_parser('agreement', parents=[common], help='Show agreement values')
    agreement_parser.set_defaults(func=show_agreement)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    args.func(args)


if __name__ == '__main__':
    main()
