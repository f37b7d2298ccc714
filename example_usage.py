"""
Example usage of the Clinic Billing Engine.

This script demonstrates how to build an invoice against an agreement
with various scenarios.
"""

import json

from clinic_billing import AssistantSelection, BillingSession, ItemCategory, Patient
from clinic_billing.numeric import format_money


def example_1_xray_with_subsequent_exposure():
    """Example 1: Chest X-ray, billed together with its subsequent exposure."""
    print("=" * 80)
    print("Example 1: Chest X-ray with Subsequent Exposure")
    print("=" * 80)

    session = BillingSession()
    session.select_agreement("ART General")

    result = session.add_practice("340101")

    print(f"\n{'Code':<10} {'Description':<40} {'Honorarium':>12} {'Facility':>12}")
    print("-" * 80)
    for item in result.items:
        print(
            f"{item.code:<10} {item.description:<40} "
            f"{format_money(item.honorarium):>12} {format_money(item.facility_cost):>12}"
        )

    totals = session.invoice.grand_totals()
    print(f"\n{'Invoice total:':<62} $ {format_money(totals.total):>12}")
    print()


def example_2_surgery_with_assistants():
    """Example 2: Tier 5 knee surgery with two assistants."""
    print("=" * 80)
    print("Example 2: Surgery with Two Assistants")
    print("=" * 80)

    session = BillingSession()
    session.select_agreement("ART General")

    result = session.add_surgery("R0501", AssistantSelection.TWO)

    print(f"\n{'Role':<14} {'Honorarium':>14}")
    print("-" * 30)
    for item in result.items:
        print(f"{item.role:<14} $ {format_money(item.honorarium):>12}")
    print(f"\nGroup: {result.items[0].group_id}")

    # Tier 2 never bills second assistants
    small = session.add_surgery("A0201", AssistantSelection.TWO)
    print(f"\nTier 2 with two assistants requested -> {len(small.items)} item(s)")
    for note in small.notes:
        print(f"  Note: {note}")
    print()


def example_3_full_invoice():
    """Example 3: A complete invoice, edited and persisted."""
    print("=" * 80)
    print("Example 3: Complete Invoice")
    print("=" * 80)

    session = BillingSession()
    session.select_agreement("Prepaga Basica")
    session.invoice.patient = Patient(
        full_name="Juan Pérez",
        dni="30111222",
        insurer="Prepaga Basica",
        claim_number="S-0042",
    )

    session.add_consultation()
    lab = session.add_lab("475").items[0]
    session.add_bed_days(2)
    session.add_surgical_practice("120101")
    session.add_medication("DICLO75", "Diclofenac 75mg ampolla", "1.250,50", quantity=2.5)
    session.add_disposable("GASA", "Gasa estéril", 350, quantity=4)

    session.invoice.set_quantity(lab.id, 3)

    for category in ItemCategory:
        subtotal = session.invoice.section_subtotal(category)
        print(f"{category.value:<14} $ {format_money(subtotal):>14}")

    totals = session.invoice.grand_totals()
    print("-" * 32)
    print(f"{'Honorarios':<14} $ {format_money(totals.honorarium):>14}")
    print(f"{'Gastos':<14} $ {format_money(totals.facility_cost):>14}")
    print(f"{'Total':<14} $ {format_money(totals.total):>14}")

    print("\nPersisted totals:")
    print(json.dumps(session.invoice.to_persisted().to_record()["totales"], indent=2))
    print()


def example_4_no_agreement():
    """Example 4: Pricing without selecting an agreement."""
    print("=" * 80)
    print("Example 4: No Agreement Selected")
    print("=" * 80)

    session = BillingSession()
    result = session.add_lab("412")

    item = result.items[0]
    print(f"\n{item.description}: $ {format_money(item.total)}")
    print(f"Warnings: {', '.join(w.value for w in result.warnings)}")
    print()


if __name__ == "__main__":
    example_1_xray_with_subsequent_exposure()
    example_2_surgery_with_assistants()
    example_3_full_invoice()
    example_4_no_agreement()
