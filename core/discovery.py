"""Bridge discovery.

Resolves the bridge address through an ordered chain of strategies, each
tried once, first success wins:

1. RemoteDiscovery: the Philips discovery service (N-UPnP)
2. BroadcastDiscovery: mDNS browse for the bridge's service on the LAN
3. ManualDiscovery: an address supplied by the user

Every candidate must pass the liveness probe (GET /api/0/config answering
with a bridge id) before it is accepted.
"""

import threading
import time
from typing import Callable

import click
from zeroconf import ServiceBrowser, ServiceListener, Zeroconf

from core.bridge import BridgeClient
from core.errors import AllMethodsFailed, HueStatusError, MalformedResponse, Unreachable
from core.transport import Transport
from models.types import DEFAULT_DISCOVERY_WINDOW, BridgeAddress, DiscoveredBridge
from models.utils import report, truncate_for_display

DISCOVERY_URL = 'https://discovery.meethue.com/'
HUE_SERVICE_TYPE = '_hue._tcp.local.'

# Milliseconds allowed for resolving one mDNS service record
SERVICE_INFO_TIMEOUT_MS = 2000


def probe(address: BridgeAddress, transport: Transport) -> str | None:
    """Check that an address is a bridge.

    The probe is a single attempt bounded by one transport timeout; failing
    it just means the candidate is skipped.

    Returns:
        The bridge id, or None if the address is not a reachable bridge
    """
    client = BridgeClient(address, transport)
    try:
        return client.probe(policy=transport.policy.single_attempt())
    except HueStatusError as e:
        report(f"  ✗ {address} failed the liveness probe: {e.message}", transport.verbose, fg='yellow')
        return None


class DiscoveryStrategy:
    """One way of finding candidate addresses."""

    name = 'strategy'

    def candidates(self) -> list[BridgeAddress]:
        raise NotImplementedError


class RemoteDiscovery(DiscoveryStrategy):
    """Ask the Philips cloud service which bridges share our public IP."""

    name = 'remote'

    def __init__(self, transport: Transport, url: str = DISCOVERY_URL):
        self.transport = transport
        self.url = url

    def candidates(self) -> list[BridgeAddress]:
        # One request only; the service rate limits aggressively
        body = self.transport.send('GET', self.url, policy=self.transport.policy.single_attempt())
        if isinstance(body, dict) and 'error' in body:
            raise MalformedResponse(
                f"Discovery service refused the request: {truncate_for_display(body['error'])}")
        if not isinstance(body, list):
            raise MalformedResponse("Discovery service did not return a list")
        return [address for address in map(address_from_entry, body) if address is not None]


def address_from_entry(entry: DiscoveredBridge) -> BridgeAddress | None:
    """Convert a discovery service entry to an address, skipping bad entries."""
    if not isinstance(entry, dict):
        return None
    host = entry.get('internalipaddress')
    if not host or not isinstance(host, str):
        return None
    port = entry.get('port')
    return BridgeAddress(host, port if isinstance(port, int) else None)


class _BridgeListener(ServiceListener):
    """Collect resolved bridge addresses in arrival order."""

    def __init__(self):
        self.found: list[BridgeAddress] = []
        self._lock = threading.Lock()

    def add_service(self, zc: Zeroconf, type_: str, name: str):
        info = zc.get_service_info(type_, name, timeout=SERVICE_INFO_TIMEOUT_MS)
        if info is None:
            return
        with self._lock:
            for host in info.parsed_addresses():
                address = BridgeAddress(host, info.port)
                if address not in self.found:
                    self.found.append(address)

    def update_service(self, zc: Zeroconf, type_: str, name: str):
        pass

    def remove_service(self, zc: Zeroconf, type_: str, name: str):
        pass

    def snapshot(self) -> list[BridgeAddress]:
        with self._lock:
            return list(self.found)


class BroadcastDiscovery(DiscoveryStrategy):
    """Browse the local network for bridges advertising over mDNS."""

    name = 'broadcast'

    def __init__(self, window: float = DEFAULT_DISCOVERY_WINDOW,
                 sleep: Callable[[float], None] = time.sleep,
                 zeroconf_factory: Callable[[], Zeroconf] = Zeroconf):
        self.window = window
        self._sleep = sleep
        self._zeroconf_factory = zeroconf_factory

    def candidates(self) -> list[BridgeAddress]:
        listener = _BridgeListener()
        try:
            zc = self._zeroconf_factory()
        except OSError as e:
            raise Unreachable(f"mDNS is unavailable on this machine: {e}") from e
        try:
            browser = ServiceBrowser(zc, HUE_SERVICE_TYPE, listener)
            # Responses arrive on zeroconf's threads until the window closes
            self._sleep(self.window)
            browser.cancel()
        finally:
            zc.close()
        return listener.snapshot()


class ManualDiscovery(DiscoveryStrategy):
    """Use an address supplied by the user.

    The address may be given directly or as a callable, so the user is only
    asked once the automatic strategies have failed.
    """

    name = 'manual'

    def __init__(self, address: str | BridgeAddress | Callable[[], str | None] | None):
        self.address = address

    def candidates(self) -> list[BridgeAddress]:
        value = self.address() if callable(self.address) else self.address
        if not value:
            return []
        if isinstance(value, BridgeAddress):
            return [value]
        return [parse_address(value)]


def parse_address(value: str) -> BridgeAddress:
    """Parse 'host' or 'host:port' into a BridgeAddress."""
    value = value.strip()
    if value.startswith('['):
        # '[fe80::1]' or '[fe80::1]:8080'
        host, _, rest = value[1:].partition(']')
        port = rest[1:] if rest.startswith(':') else ''
        return BridgeAddress(host, int(port) if port.isdigit() else None)
    host, sep, port = value.rpartition(':')
    # IPv6 addresses contain colons; only treat a trailing number as a port
    if sep and port.isdigit() and host and ':' not in host:
        return BridgeAddress(host, int(port))
    return BridgeAddress(value)


class Discovery:
    """Run strategies in order until one yields a bridge that passes the probe."""

    def __init__(self, strategies: list[DiscoveryStrategy], transport: Transport,
                 verbose: bool = False):
        self.strategies = strategies
        self.transport = transport
        self.verbose = verbose
        self.bridge_id: str | None = None

    def discover(self) -> BridgeAddress:
        """Resolve the bridge address.

        Returns:
            The first candidate that passes the liveness probe

        Raises:
            AllMethodsFailed: If no strategy produced a live bridge
        """
        reasons = {}

        for strategy in self.strategies:
            report(f"Trying {strategy.name} discovery...", self.verbose, fg='cyan')
            try:
                candidates = strategy.candidates()
            except HueStatusError as e:
                click.secho(f"⚠ {strategy.name.capitalize()} discovery failed: {e.message}",
                            fg='yellow', err=True)
                reasons[strategy.name] = e.message
                continue

            if not candidates:
                reasons[strategy.name] = 'no bridges found'
                continue

            for address in candidates:
                bridge_id = probe(address, self.transport)
                if bridge_id:
                    report(f"✓ Found bridge {bridge_id} at {address}", self.verbose, fg='green')
                    self.bridge_id = bridge_id
                    return address

            reasons[strategy.name] = f"{len(candidates)} candidate(s) failed the liveness probe"

        raise AllMethodsFailed(reasons)


def default_strategies(transport: Transport, manual_address=None,
                       window: float = DEFAULT_DISCOVERY_WINDOW,
                       sleep: Callable[[float], None] = time.sleep) -> list[DiscoveryStrategy]:
    """Build the standard remote → broadcast → manual chain."""
    return [
        RemoteDiscovery(transport),
        BroadcastDiscovery(window=window, sleep=sleep),
        ManualDiscovery(manual_address),
    ]
