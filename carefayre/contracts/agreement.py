"""
Rate agreement text.

The agreement is rendered once, when a bid is accepted, and stored on the
contract as an immutable snapshot. Rendering is deterministic: the same
details always produce the same text.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from carefayre.utils import format_date, format_money

STANDARD_TERMS = (
    "Either party may end this arrangement by giving at least 7 days' written notice. "
    "Either party may withdraw after the care assessment and before care begins with no "
    "penalty and no charges.",
    "The Agency will submit a timesheet for each week of care. The Customer will approve or "
    "query each timesheet, and approved hours are billed weekly at the agreed rate.",
    "The hourly rate above is fixed for the duration of this care arrangement and cannot be "
    "changed by either party.",
    "{platform} acts only as an intermediary introducing the Customer and the Agency. "
    "{platform} is not a care provider and accepts no liability for the care delivered.",
    "The Agency confirms that it holds current public liability insurance and that every "
    "carer it sends has an enhanced DBS check.",
    "The Agency will report any safeguarding concern to the local authority safeguarding team "
    "without delay, and the Customer will report concerns about the care received to the "
    "Agency and, where appropriate, to the local authority.",
)


@dataclass
class AgreementDetails:
    """Everything the agreement quotes, captured at acceptance time."""

    holder_name: str
    holder_address: str
    recipient_name: str
    recipient_address: str
    relationship_to_holder: str
    agency_name: str
    agency_cqc_id: str
    hourly_rate: Decimal
    hours_per_week: Decimal
    frequency: str
    care_types: List[str] = field(default_factory=list)
    recipient_dob: Optional[date] = None
    start_date: Optional[date] = None
    overnight_rate: Optional[Decimal] = None
    nights_per_week: Optional[int] = None
    night_type: Optional[str] = None
    platform_name: str = "Care Fayre"
    currency_symbol: str = "£"

    @property
    def has_overnight_section(self) -> bool:
        return self.overnight_rate is not None and (self.nights_per_week or 0) > 0


def _or_dash(value: Optional[str]) -> str:
    return value if value else "-"


def render_agreement(details: AgreementDetails) -> str:
    """Render the plain-text rate agreement."""

    def money(amount: Decimal) -> str:
        return format_money(amount, details.currency_symbol)

    lines = [
        "RATE AGREEMENT",
        "",
        f'This Rate Agreement is between {_or_dash(details.holder_name)} ("the Customer") and '
        f'{_or_dash(details.agency_name)} ("the Agency"), facilitated by {details.platform_name}.',
        "",
        "ACCOUNT HOLDER",
        f"Name: {_or_dash(details.holder_name)}",
        f"Address: {_or_dash(details.holder_address)}",
        "",
        "CARE RECIPIENT",
        f"Name: {_or_dash(details.recipient_name)}",
        f"Date of birth: {format_date(details.recipient_dob) if details.recipient_dob else '-'}",
        f"Address: {_or_dash(details.recipient_address)}",
        f"Relationship to account holder: {_or_dash(details.relationship_to_holder)}",
        "",
        "AGENCY",
        f"Name: {_or_dash(details.agency_name)}",
        f"CQC ID: {_or_dash(details.agency_cqc_id)}",
        "",
        "AGREED TERMS",
        f"Agreed hourly rate: {money(details.hourly_rate)}/hr",
        f"Estimated hours per week: {details.hours_per_week}",
        f"Frequency: {_or_dash(details.frequency)}",
        f"Start date: {format_date(details.start_date)}",
        f"Care types: {', '.join(details.care_types) if details.care_types else '-'}",
    ]

    if details.has_overnight_section:
        lines += [
            "",
            "OVERNIGHT CARE",
            f"Overnight rate: {money(details.overnight_rate)}/night",
            f"Nights per week: {details.nights_per_week}",
            f"Night type: {(details.night_type or 'sleeping').capitalize()}",
        ]

    lines += ["", "THIS AGREEMENT CONFIRMS THAT"]
    for number, term in enumerate(STANDARD_TERMS, start=1):
        lines.append(f"{number}. {term.format(platform=details.platform_name)}")

    return "\n".join(lines) + "\n"
