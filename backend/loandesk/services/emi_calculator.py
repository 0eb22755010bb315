"""EMI (equated monthly instalment) calculation.

Uses the reducing-balance amortization formula:

    EMI = P * r / (1 - (1 + r)^-n)

where P is the principal, r the monthly rate (annual % / 12 / 100) and n the
tenure in months. Results are whole currency units.
"""

import math

from loandesk.services.errors import ValidationError


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _is_finite_number(value) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except TypeError:
        return False


def validate_terms(principal: float, annual_rate: float, tenure_months: int) -> None:
    """Raise ValidationError listing every out-of-range term."""
    errors: dict[str, str] = {}
    if not _is_finite_number(principal) or not principal > 0:
        errors["loan_amount"] = "Loan amount must be positive"
    if not _is_finite_number(annual_rate) or not 0 <= annual_rate <= 100:
        errors["interest_rate"] = "Interest rate must be between 0-100"
    if (
        not _is_finite_number(tenure_months)
        or int(tenure_months) != tenure_months
        or tenure_months <= 0
    ):
        errors["tenure"] = "Tenure must be a positive integer"
    if errors:
        raise ValidationError("Invalid loan terms", errors)


def calculate_emi(principal: float, annual_rate: float, tenure_months: int) -> int:
    """Monthly instalment for the given terms, rounded to the nearest unit.

    A zero rate degenerates to straight-line repayment: principal / tenure.
    For very long tenures the discount factor underflows to zero and the
    instalment converges on the monthly interest, P * r.
    """
    validate_terms(principal, annual_rate, tenure_months)
    principal = float(principal)
    n = int(tenure_months)
    r = float(annual_rate) / 12 / 100

    if r == 0:
        emi = principal / n
    else:
        emi = principal * r / (1 - (1 + r) ** -n)
    if not math.isfinite(emi):
        raise ValidationError("Invalid loan terms", {"loan_amount": "Loan amount is out of range"})
    return _round_half_up(emi)


def payment_summary(principal: float, annual_rate: float, tenure_months: int) -> dict:
    """EMI plus the totals shown alongside a quotation."""
    emi = calculate_emi(principal, annual_rate, tenure_months)
    total_payable = emi * int(tenure_months)
    return {
        "emi": emi,
        "total_payable": total_payable,
        "total_interest": round(total_payable - float(principal), 2),
    }
