"""Format validators for field values.

A validator receives one candidate value, returns it (possibly normalized) and
raises ``ValidationError`` with a stable code when the value is rejected.
Validators are stateless and may be shared between fields.
"""

import ipaddress
import logging
import re
from typing import TYPE_CHECKING, Any, Iterable, Optional, Union

from ..errors import ValidationError

if TYPE_CHECKING:
    from ..models.model import Model

logger = logging.getLogger(__name__)

HOSTNAME_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")
MAC_ADDRESS = re.compile(r"^([0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}$")


class Validator:
    """Base class for field validators."""

    code = "FIELD_INVALID_FORMAT"

    def validate(self, value: Any, field_name: str = "value", model: Optional["Model"] = None) -> Any:
        """Validate a value.

        Args:
            value: Value to validate
            field_name: Name of the field being validated
            model: Model owning the field, for validators needing context

        Returns:
            The accepted value

        Raises:
            ValidationError: If the value is rejected
        """
        raise NotImplementedError("Subclasses must implement validate method")

    def fail(self, field_name: str, value: Any, message: str, code: Optional[str] = None) -> ValidationError:
        """Build the error this validator raises."""
        return ValidationError(
            f"Field '{field_name}' {message}",
            code=code or self.code,
            field=field_name,
            value=value,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class IPAddressValidator(Validator):
    """Validator for IP addresses."""

    def __init__(
        self,
        allow_ipv4: bool = True,
        allow_ipv6: bool = True,
        allow_keywords: Iterable[str] = (),
    ):
        """Initialize IP address validator.

        Args:
            allow_ipv4: Whether IPv4 addresses are allowed
            allow_ipv6: Whether IPv6 addresses are allowed
            allow_keywords: Literal values accepted in place of an address
        """
        self.allow_ipv4 = allow_ipv4
        self.allow_ipv6 = allow_ipv6
        self.allow_keywords = set(allow_keywords)

    def validate(self, value: Any, field_name: str = "value", model: Optional["Model"] = None) -> Any:
        if value in self.allow_keywords:
            return value
        if not isinstance(value, str):
            raise self.fail(field_name, value, "must be a string IP address")

        try:
            ip = ipaddress.ip_address(value.strip())
        except ValueError:
            raise self.fail(field_name, value, f"must be a valid IP address, got '{value}'")

        if isinstance(ip, ipaddress.IPv4Address) and not self.allow_ipv4:
            raise self.fail(field_name, value, "does not allow IPv4 addresses")
        if isinstance(ip, ipaddress.IPv6Address) and not self.allow_ipv6:
            raise self.fail(field_name, value, "does not allow IPv6 addresses")

        return str(ip)


class SubnetValidator(Validator):
    """Validator for networks in CIDR notation."""

    def __init__(self, allow_ipv4: bool = True, allow_ipv6: bool = True, strict: bool = False):
        """Initialize subnet validator.

        Args:
            allow_ipv4: Whether IPv4 networks are allowed
            allow_ipv6: Whether IPv6 networks are allowed
            strict: Reject networks with host bits set
        """
        self.allow_ipv4 = allow_ipv4
        self.allow_ipv6 = allow_ipv6
        self.strict = strict

    def validate(self, value: Any, field_name: str = "value", model: Optional["Model"] = None) -> Any:
        if not isinstance(value, str) or "/" not in value:
            raise self.fail(field_name, value, "must be a network in CIDR notation")

        try:
            network = ipaddress.ip_network(value.strip(), strict=self.strict)
        except ValueError:
            raise self.fail(field_name, value, f"must be a valid network, got '{value}'")

        if network.version == 4 and not self.allow_ipv4:
            raise self.fail(field_name, value, "does not allow IPv4 networks")
        if network.version == 6 and not self.allow_ipv6:
            raise self.fail(field_name, value, "does not allow IPv6 networks")

        return value.strip()


class HostnameValidator(Validator):
    """Validator for hostnames and fully qualified domain names."""

    def __init__(self, allow_hostname: bool = True, allow_fqdn: bool = True):
        self.allow_hostname = allow_hostname
        self.allow_fqdn = allow_fqdn

    def validate(self, value: Any, field_name: str = "value", model: Optional["Model"] = None) -> Any:
        if not isinstance(value, str) or not value or len(value) > 253:
            raise self.fail(field_name, value, "must be a hostname")

        labels = value.rstrip(".").split(".")
        if not all(HOSTNAME_LABEL.match(label) for label in labels):
            raise self.fail(field_name, value, f"must be a valid hostname, got '{value}'")

        if len(labels) == 1 and not self.allow_hostname:
            raise self.fail(field_name, value, "must be a fully qualified domain name")
        if len(labels) > 1 and not self.allow_fqdn:
            raise self.fail(field_name, value, "must be a single-label hostname")

        return value


class PortValidator(Validator):
    """Validator for TCP/UDP ports and port ranges (``1000:2000``)."""

    def __init__(self, allow_range: bool = False, range_separator: str = ":"):
        self.allow_range = allow_range
        self.range_separator = range_separator

    def _check_port(self, part: str, field_name: str, value: Any) -> int:
        if not part.isdigit() or not 1 <= int(part) <= 65535:
            raise self.fail(field_name, value, f"must be a port between 1 and 65535, got '{value}'")
        return int(part)

    def validate(self, value: Any, field_name: str = "value", model: Optional["Model"] = None) -> Any:
        text = str(value)
        if self.allow_range and self.range_separator in text:
            start, _, end = text.partition(self.range_separator)
            if self._check_port(start, field_name, value) > self._check_port(end, field_name, value):
                raise self.fail(field_name, value, "port range start must not exceed its end")
            return value

        self._check_port(text, field_name, value)
        return value


class MACAddressValidator(Validator):
    """Validator for colon- or dash-separated MAC addresses."""

    def validate(self, value: Any, field_name: str = "value", model: Optional["Model"] = None) -> Any:
        if not isinstance(value, str) or not MAC_ADDRESS.match(value):
            raise self.fail(field_name, value, f"must be a valid MAC address, got '{value}'")
        return value.lower().replace("-", ":")


class RegexValidator(Validator):
    """Validator requiring a full match against a regular expression."""

    def __init__(self, pattern: Union[str, re.Pattern], message: Optional[str] = None):
        self.pattern = re.compile(pattern) if isinstance(pattern, str) else pattern
        self.message = message

    def validate(self, value: Any, field_name: str = "value", model: Optional["Model"] = None) -> Any:
        if not isinstance(value, str) or not self.pattern.fullmatch(value):
            raise self.fail(
                field_name,
                value,
                self.message or f"must match pattern '{self.pattern.pattern}'",
            )
        return value


class NumericRangeValidator(Validator):
    """Validator for numbers, or numeric strings, within inclusive bounds."""

    def __init__(self, minimum: Optional[float] = None, maximum: Optional[float] = None):
        self.minimum = minimum
        self.maximum = maximum

    def validate(self, value: Any, field_name: str = "value", model: Optional["Model"] = None) -> Any:
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise self.fail(field_name, value, "must be numeric", code="FIELD_INVALID_TYPE")

        if self.minimum is not None and number < self.minimum:
            raise self.fail(
                field_name, value, f"must be at least {self.minimum}", code="FIELD_VALUE_TOO_SMALL"
            )
        if self.maximum is not None and number > self.maximum:
            raise self.fail(
                field_name, value, f"must be at most {self.maximum}", code="FIELD_VALUE_TOO_LARGE"
            )
        return value


class LengthValidator(Validator):
    """Validator bounding the length of strings and lists."""

    def __init__(self, min_length: Optional[int] = None, max_length: Optional[int] = None):
        self.min_length = min_length
        self.max_length = max_length

    def validate(self, value: Any, field_name: str = "value", model: Optional["Model"] = None) -> Any:
        try:
            length = len(value)
        except TypeError:
            raise self.fail(field_name, value, "must have a length", code="FIELD_INVALID_TYPE")

        if self.min_length is not None and length < self.min_length:
            raise self.fail(
                field_name,
                value,
                f"must be at least {self.min_length} long",
                code="FIELD_LENGTH_TOO_SHORT",
            )
        if self.max_length is not None and length > self.max_length:
            raise self.fail(
                field_name,
                value,
                f"must be at most {self.max_length} long",
                code="FIELD_LENGTH_TOO_LONG",
            )
        return value
