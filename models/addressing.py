"""
Subnet allocation for the cluster tree.

An AddressPool hands out one subnet per request. Child clusters share the
root pool by reference, so every cluster of a tree ends up with a globally
unique subnet even though it only knows its parent.
"""

import ipaddress
import logging
from dataclasses import dataclass
from typing import Optional

from .errors import CapacityExceeded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AddressRange:
    """Contiguous host addresses taken from exactly one subnet."""
    network: str                   # e.g. "192.168.3.0"
    prefix_length: int             # e.g. 24
    hosts: tuple[str, ...] = ()
    subnet_index: int = 0

    @property
    def netmask(self) -> str:
        """Dotted decimal netmask."""
        return str(ipaddress.IPv4Network(self.cidr).netmask)

    @property
    def cidr(self) -> str:
        return f"{self.network}/{self.prefix_length}"

    def overlaps(self, other: "AddressRange") -> bool:
        """True if the two ranges share any address."""
        return ipaddress.IPv4Network(self.cidr).overlaps(ipaddress.IPv4Network(other.cidr))

    def __contains__(self, address: str) -> bool:
        return address in self.hosts

    def __len__(self) -> int:
        return len(self.hosts)


class AddressPool:
    """
    Allocates non-overlapping subnets on demand.

    Subnet ``i`` of the pool starts at ``base + i * subnet_size``. The cursor
    is the index of the next free subnet and only ever moves forward.

    Args:
        base: First subnet address, aligned to ``prefix_length``
        prefix_length: Prefix of every subnet handed out (the mask)
        max_subnets: Optional cap on how many subnets the pool may use
    """

    def __init__(self, base: str = "192.168.0.0", prefix_length: int = 24,
                 max_subnets: Optional[int] = None):
        if not 1 <= prefix_length <= 30:
            raise ValueError(f"Prefix length must be between 1 and 30, got {prefix_length}")
        # strict parsing rejects a base with host bits set
        first = ipaddress.IPv4Network(f"{base}/{prefix_length}")
        self._base = int(first.network_address)
        self._prefix_length = prefix_length
        self._max_subnets = max_subnets
        self._cursor = 0
        self._allocations: list[AddressRange] = []

    @property
    def base(self) -> str:
        return str(ipaddress.IPv4Address(self._base))

    @property
    def prefix_length(self) -> int:
        return self._prefix_length

    @property
    def netmask(self) -> str:
        return str(ipaddress.IPv4Network(f"0.0.0.0/{self._prefix_length}").netmask)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def subnet_size(self) -> int:
        return 1 << (32 - self._prefix_length)

    @property
    def host_capacity(self) -> int:
        """Usable hosts per subnet (network and broadcast excluded)."""
        return self.subnet_size - 2

    @property
    def allocations(self) -> list[AddressRange]:
        """Every range handed out so far, in allocation order."""
        return list(self._allocations)

    def current_subnet(self) -> ipaddress.IPv4Network:
        """The subnet the next allocation will use."""
        return self._subnet_at(self._cursor)

    def allocate(self, host_count: int) -> AddressRange:
        """
        Take ``host_count`` hosts from the current subnet and move to the next.

        Raises:
            CapacityExceeded: More hosts than a subnet holds, or no subnet left.
                The cursor is left unchanged.
        """
        if host_count < 0:
            raise ValueError(f"Host count must not be negative, got {host_count}")
        if host_count > self.host_capacity:
            raise CapacityExceeded(
                f"Cannot allocate {host_count} hosts from a /{self._prefix_length} subnet "
                f"(capacity {self.host_capacity})"
            )

        subnet = self._subnet_at(self._cursor)
        hosts = tuple(
            str(ipaddress.IPv4Address(int(subnet.network_address) + offset))
            for offset in range(1, host_count + 1)
        )
        allocated = AddressRange(
            network=str(subnet.network_address),
            prefix_length=self._prefix_length,
            hosts=hosts,
            subnet_index=self._cursor,
        )
        self._allocations.append(allocated)
        self._cursor += 1

        logger.debug(f"Allocated {host_count} hosts in {allocated.cidr}")
        return allocated

    def new_network(self) -> ipaddress.IPv4Network:
        """
        Reserve the current subnet without assigning hosts.

        Returns the reserved subnet for callers that assign addresses
        themselves.
        """
        subnet = self._subnet_at(self._cursor)
        self._cursor += 1
        logger.debug(f"Reserved subnet {subnet}")
        return subnet

    def _subnet_at(self, index: int) -> ipaddress.IPv4Network:
        if self._max_subnets is not None and index >= self._max_subnets:
            raise CapacityExceeded(
                f"Address space exhausted: pool {self.base}/{self._prefix_length} "
                f"is limited to {self._max_subnets} subnets"
            )
        start = self._base + index * self.subnet_size
        if start + self.subnet_size - 1 > 0xFFFFFFFF:
            raise CapacityExceeded(
                f"Address space exhausted: no subnet {index} above {self.base}/{self._prefix_length}"
            )
        return ipaddress.IPv4Network(f"{ipaddress.IPv4Address(start)}/{self._prefix_length}")

    def __repr__(self) -> str:
        return f"AddressPool(base={self.base!r}, prefix_length={self._prefix_length}, cursor={self._cursor})"
