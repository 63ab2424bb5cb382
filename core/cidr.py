"""
CIDR Module
Parses IPv4 CIDR ranges, the "all" keyword and client addresses, and tests
membership. Failures are returned as ParseError values instead of raised.
"""

import re
from typing import Optional, Union

from core.models import CidrRange, ParseError


_QUAD_RE = re.compile(r'([0-9]+)\.([0-9]+)\.([0-9]+)\.([0-9]+)')
_PREFIX_RE = re.compile(r'/([0-9]+)')

FULL_MASK = 0xFFFFFFFF


def prefix_to_mask(prefix: int) -> int:
    """Convert a prefix length (0-32) into a 32-bit netmask."""
    if prefix <= 0:
        return 0
    return (FULL_MASK << (32 - prefix)) & FULL_MASK


def _parse_quad(text: str):
    """Parse a leading dotted quad. Returns (address, remainder) or ParseError."""
    m = _QUAD_RE.match(text)
    if not m:
        return ParseError("syntax", f"not a dotted-quad address: {text!r}")

    address = 0
    for octet in m.groups():
        if len(octet) > 1 and octet[0] == '0':
            return ParseError("leading_zero", f"octet has a leading zero: {octet}")
        value = int(octet)
        if value > 255:
            return ParseError("octet_range", f"octet out of range: {octet}")
        address = (address << 8) | value

    return address, text[m.end():]


def parse_ip(text: Optional[str]) -> Union[int, ParseError]:
    """Parse a bare dotted-quad IPv4 address into a 32-bit integer."""
    if text is None or not text.strip():
        return ParseError("empty", "empty address")

    result = _parse_quad(text.strip())
    if isinstance(result, ParseError):
        return result

    address, rest = result
    if rest:
        return ParseError("trailing", f"unexpected trailing text: {rest!r}")
    return address


def parse_cidr(text: Optional[str]) -> Union[CidrRange, ParseError]:
    """
    Parse "all", "a.b.c.d" or "a.b.c.d/N" into a CidrRange.

    The network is always stored with its host bits cleared.
    """
    if text is None:
        return ParseError("empty", "empty CIDR")

    s = text.lstrip()
    if not s:
        return ParseError("empty", "empty CIDR")

    if s[:3].lower() == "all" and not s[3:].strip():
        return CidrRange(network=0, mask=0)

    result = _parse_quad(s)
    if isinstance(result, ParseError):
        return result
    address, rest = result

    prefix = 32
    if rest.startswith('/'):
        pm = _PREFIX_RE.match(rest)
        if not pm:
            return ParseError("syntax", f"missing prefix length: {text!r}")
        prefix = int(pm.group(1))
        if prefix > 32:
            return ParseError("prefix_range", f"prefix length out of range: {prefix}")
        rest = rest[pm.end():]

    if rest.strip():
        return ParseError("trailing", f"unexpected trailing text: {rest.strip()!r}")

    mask = prefix_to_mask(prefix)
    return CidrRange(network=address & mask, mask=mask)


def cidr_match(cidr: CidrRange, ip: int) -> bool:
    """Check whether a 32-bit address falls inside the range."""
    return (ip & cidr.mask) == (cidr.network & cidr.mask)


def ip_in_cidr_list(ip: int, text: Optional[str]) -> bool:
    """
    Test an address against a space/tab separated list of CIDR entries.
    Malformed entries are skipped.
    """
    if not text:
        return False
    for token in re.split(r'[ \t]+', text.strip()):
        if not token:
            continue
        cidr = parse_cidr(token)
        if isinstance(cidr, ParseError):
            continue
        if cidr_match(cidr, ip):
            return True
    return False


def format_ip(ip: int) -> str:
    """Render a 32-bit address as a dotted quad."""
    return ".".join(str((ip >> shift) & 0xFF) for shift in (24, 16, 8, 0))
