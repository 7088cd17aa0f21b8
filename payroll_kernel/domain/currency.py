"""Currency minor units for the payroll currencies."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar

from payroll_kernel.exceptions import InvalidCurrencyError


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    decimal_places: int
    name: str

    @property
    def minor_unit(self) -> Decimal:
        """Smallest payable amount; also the reconciliation tolerance."""
        return Decimal(1).scaleb(-self.decimal_places)


def _table(*entries: tuple[str, int, str]) -> dict[str, CurrencyInfo]:
    return {code: CurrencyInfo(code, places, name) for code, places, name in entries}


class CurrencyRegistry:
    """
    ISO 4217 currencies a payroll may be run in.

    Payslip lines are rounded to the currency's minor unit and payslip
    totals reconcile within one minor unit.
    """

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = _table(
        ("INR", 2, "Indian Rupee"),
        ("PKR", 2, "Pakistani Rupee"),
        ("BDT", 2, "Bangladeshi Taka"),
        ("LKR", 2, "Sri Lankan Rupee"),
        ("NPR", 2, "Nepalese Rupee"),
        ("AED", 2, "UAE Dirham"),
        ("SAR", 2, "Saudi Riyal"),
        ("QAR", 2, "Qatari Riyal"),
        ("BHD", 3, "Bahraini Dinar"),
        ("KWD", 3, "Kuwaiti Dinar"),
        ("OMR", 3, "Omani Rial"),
        ("USD", 2, "US Dollar"),
        ("EUR", 2, "Euro"),
        ("GBP", 2, "Pound Sterling"),
        ("SGD", 2, "Singapore Dollar"),
        ("MYR", 2, "Malaysian Ringgit"),
        ("PHP", 2, "Philippine Peso"),
        ("IDR", 2, "Indonesian Rupiah"),
        ("ZAR", 2, "South African Rand"),
        ("KES", 2, "Kenyan Shilling"),
        ("NGN", 2, "Nigerian Naira"),
        ("JPY", 0, "Japanese Yen"),
        ("KRW", 0, "South Korean Won"),
        ("VND", 0, "Vietnamese Dong"),
    )

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        if not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def is_valid(cls, code: str) -> bool:
        return cls.get_info(code) is not None

    @classmethod
    def validate(cls, code: str) -> str:
        """Return the normalized code or raise InvalidCurrencyError."""
        info = cls.get_info(code)
        if info is None:
            raise InvalidCurrencyError(str(code))
        return info.code

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        return cls._require(code).decimal_places

    @classmethod
    def get_rounding_tolerance(cls, code: str) -> Decimal:
        return cls._require(code).minor_unit

    @classmethod
    def _require(cls, code: str) -> CurrencyInfo:
        info = cls.get_info(code)
        if info is None:
            raise InvalidCurrencyError(str(code))
        return info
