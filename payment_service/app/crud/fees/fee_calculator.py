"""Pure fee arithmetic.

All amounts leaving this module are integer minor units (kobo). Each component
is rounded half-up on its own, so base + platform + processing + beneficiary
always equals the total that is charged.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence

from ...core.exceptions import AmountOutOfRange, FeeNotFound, ValidationError
from ...models.fees.fee_definitions import FeeDefinition
from ...schemas.fees.fee_definitions_schemas import FeeBreakdown, FeeStructure, FormattedBreakdown

MINOR_UNITS_PER_MAJOR = 100
HUNDRED = Decimal(100)

CURRENCY_SYMBOLS = {"NGN": "₦", "USD": "$", "GBP": "£", "EUR": "€"}


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_minor_units(amount) -> int:
    return round_half_up(Decimal(str(amount)) * MINOR_UNITS_PER_MAJOR)


def percent_of(base_minor: int, percent) -> int:
    return round_half_up(Decimal(base_minor) * Decimal(str(percent or 0)) / HUNDRED)


def compute_breakdown(
    base_minor: int,
    structure: FeeStructure,
    currency: str,
    gateway_split_id: Optional[str] = None,
    fee_codes: Sequence[str] = (),
    fee_version: Optional[int] = None,
    multiplier: int = 1
) -> FeeBreakdown:
    """Split a base amount (already in minor units) according to one fee structure."""
    if base_minor < 0:
        raise ValidationError("Amount must not be negative")

    platform_fee = percent_of(base_minor, structure.platform_fee_percent) + structure.platform_fee_fixed

    processing_fee = percent_of(base_minor, structure.processing_fee_percent)
    if structure.processing_fee_cap:
        processing_fee = min(processing_fee, structure.processing_fee_cap)

    beneficiary_share = (
        percent_of(base_minor, structure.beneficiary_share_percent) + structure.beneficiary_share_fixed
    )

    return FeeBreakdown(
        base_minor=base_minor,
        platform_fee=platform_fee,
        processing_fee=processing_fee,
        beneficiary_share=beneficiary_share,
        currency=currency,
        gateway_split_id=gateway_split_id,
        fee_codes=list(fee_codes),
        fee_version=fee_version,
        multiplier=multiplier,
    )


def fee_structure_of(definition: FeeDefinition) -> FeeStructure:
    return FeeStructure.model_validate(definition)


def check_amount_range(amount: Decimal, min_amount, max_amount, label: str):
    if min_amount is not None and amount < Decimal(str(min_amount)):
        raise AmountOutOfRange(
            f"Amount {amount} for {label} is below the minimum of {min_amount}",
            data={"min_amount": str(min_amount), "amount": str(amount)})
    if max_amount is not None and amount > Decimal(str(max_amount)):
        raise AmountOutOfRange(
            f"Amount {amount} for {label} exceeds the maximum of {max_amount}",
            data={"max_amount": str(max_amount), "amount": str(amount)})


def breakdown_for_definitions(
    definitions: List[FeeDefinition],
    override_amount: Optional[Decimal] = None,
    multiplier: int = 1
) -> FeeBreakdown:
    """Breakdown for one or more resolved fee definitions charged together.

    Base amounts are summed and the fee structure of the first definition is
    applied once to the sum, so a processing cap is applied once per charge.
    An override replaces the summed base and is bounded by the summed limits.
    Without one, each base amount must sit inside its own definition's limits.
    """
    if not definitions:
        raise FeeNotFound("No fee definitions selected")
    if multiplier < 1:
        raise ValidationError("Multiplier must be at least 1")

    primary = definitions[0]
    currencies = {d.currency for d in definitions}
    if len(currencies) > 1:
        raise ValidationError(
            f"Selected fees use different currencies: {', '.join(sorted(currencies))}")

    codes = [d.code for d in definitions]
    if override_amount is not None:
        base_amount = Decimal(str(override_amount))
        if base_amount < 0:
            raise ValidationError("Amount must not be negative")
        mins = [d.min_amount for d in definitions if d.min_amount is not None]
        maxes = [d.max_amount for d in definitions]
        check_amount_range(
            base_amount,
            sum(mins, Decimal(0)) if mins else None,
            sum(maxes, Decimal(0)) if all(m is not None for m in maxes) else None,
            " + ".join(codes),
        )
    else:
        for d in definitions:
            check_amount_range(Decimal(str(d.base_amount)), d.min_amount, d.max_amount, d.code)
        base_amount = sum((Decimal(str(d.base_amount)) for d in definitions), Decimal(0))

    split_id = next((d.gateway_split_id for d in definitions if d.gateway_split_id), None)

    return compute_breakdown(
        base_minor=to_minor_units(base_amount) * multiplier,
        structure=fee_structure_of(primary),
        currency=primary.currency,
        gateway_split_id=split_id,
        fee_codes=codes,
        fee_version=primary.version,
        multiplier=multiplier,
    )


def format_minor_units(amount_minor: int, currency: str = "NGN") -> str:
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    major = Decimal(amount_minor) / MINOR_UNITS_PER_MAJOR
    return f"{symbol}{major:,.2f}"


def format_breakdown(breakdown: FeeBreakdown) -> FormattedBreakdown:
    currency = breakdown.currency
    return FormattedBreakdown(
        base_amount=format_minor_units(breakdown.base_minor, currency),
        platform_fee=format_minor_units(breakdown.platform_fee, currency),
        processing_fee=format_minor_units(breakdown.processing_fee, currency),
        beneficiary_share=format_minor_units(breakdown.beneficiary_share, currency),
        total_fees=format_minor_units(breakdown.total_fees, currency),
        total_amount=format_minor_units(breakdown.total, currency),
    )
