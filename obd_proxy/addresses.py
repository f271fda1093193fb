"""
Local IPv4 address discovery.

Used only to tell the operator which address to type into the OBD app;
nothing here may prevent the proxy from starting.
"""

import asyncio
import ipaddress
import logging

logger = logging.getLogger(__name__)

# Interface name fragments of WiFi adapters (wlan0, wlp2s0, en0, ...)
WIRELESS_PATTERNS = ("wl", "wifi", "en")


def parse_ip_addr_output(output: str) -> list[tuple[str, str]]:
    """
    Parse the output of `ip -o -4 addr show`.

    Args:
        output: Command output, one address per line, e.g.
            '3: wlan0    inet 192.168.1.23/24 brd 192.168.1.255 scope global wlan0'

    Returns:
        List of (interface name, address) pairs.
    """
    result = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 4 or parts[2] != "inet":
            continue
        name = parts[1].rstrip(":").split("@")[0]
        address = parts[3].split("/")[0]
        result.append((name, address))
    return result


def select_candidate_addresses(interfaces: list[tuple[str, str]]) -> list[str]:
    """
    Pick the addresses a client on the WiFi network can reach.

    Loopback and link-local addresses are dropped. Addresses on interfaces
    that look wireless are preferred; if there are none, every remaining
    address is returned.
    """
    usable = []
    for name, address in interfaces:
        try:
            ip = ipaddress.IPv4Address(address)
        except ipaddress.AddressValueError:
            continue
        if ip.is_loopback or ip.is_link_local:
            continue
        usable.append((name.lower(), address))

    wireless = [address for name, address in usable if any(p in name for p in WIRELESS_PATTERNS)]
    return wireless or [address for _, address in usable]


async def list_candidate_addresses() -> list[str]:
    """
    Enumerate local IPv4 addresses for the "connect here" hint.

    Returns:
        List of dotted-quad addresses, empty if enumeration fails.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            "ip", "-o", "-4", "addr", "show",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=2.0)
    except (OSError, asyncio.TimeoutError) as e:
        logger.warning("Error getting IP addresses: %s", e)
        return []

    if proc.returncode != 0:
        logger.warning("Error getting IP addresses: ip exited with %s", proc.returncode)
        return []

    return select_candidate_addresses(parse_ip_addr_output(stdout.decode(errors="replace")))
