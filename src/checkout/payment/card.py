"""Card field checks for the ``card`` payment method.

Only the format is checked here (number, MM/YY expiry, CVV); the card itself
is charged by the gateway. Failing checks stop a submission before any order
is created.
"""

import re
from dataclasses import dataclass
from datetime import UTC, datetime

from checkout.errors import CardValidationError

_EXPIRY = re.compile(r"^(\d{2})\s*/\s*(\d{2})$")


def luhn_valid(number: str) -> bool:
    total = 0
    for position, char in enumerate(reversed(number)):
        digit = int(char)
        if position % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


@dataclass(frozen=True)
class CardDetails:
    number: str
    expiry: str  # MM/YY
    cvv: str

    @property
    def digits(self) -> str:
        return re.sub(r"[\s-]", "", self.number or "")

    def errors(self, now: datetime | None = None) -> dict[str, list[str]]:
        now = now or datetime.now(UTC)
        errors = {}

        digits = self.digits
        if not digits.isdigit() or not 12 <= len(digits) <= 19 or not luhn_valid(digits):
            errors["number"] = ["Enter a valid card number"]

        match = _EXPIRY.match((self.expiry or "").strip())
        if not match:
            errors["expiry"] = ["Enter the expiration date as MM/YY"]
        else:
            month, year = int(match.group(1)), 2000 + int(match.group(2))
            if not 1 <= month <= 12:
                errors["expiry"] = ["Enter the expiration date as MM/YY"]
            elif (year, month) < (now.year, now.month):
                errors["expiry"] = ["This card has expired"]

        if not re.fullmatch(r"\d{3,4}", self.cvv or ""):
            errors["cvv"] = ["CVV must be 3 or 4 digits"]

        return errors

    def validate(self, now: datetime | None = None) -> None:
        errors = self.errors(now)
        if errors:
            raise CardValidationError(errors)
