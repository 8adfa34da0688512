"""Field value validators."""

from .references import ReferenceValidator, UniqueFieldValidator
from .rules import (
    HostnameValidator,
    IPAddressValidator,
    LengthValidator,
    MACAddressValidator,
    NumericRangeValidator,
    PortValidator,
    RegexValidator,
    SubnetValidator,
    Validator,
)

__all__ = [
    "Validator",
    "IPAddressValidator",
    "SubnetValidator",
    "HostnameValidator",
    "PortValidator",
    "MACAddressValidator",
    "RegexValidator",
    "NumericRangeValidator",
    "LengthValidator",
    "UniqueFieldValidator",
    "ReferenceValidator",
]
