"""Tests for bridge discovery in core/discovery.py"""

from unittest.mock import MagicMock, patch

import pytest

from conftest import BRIDGE_URL, bridge_config
from core.discovery import (
    DISCOVERY_URL,
    HUE_SERVICE_TYPE,
    BroadcastDiscovery,
    Discovery,
    ManualDiscovery,
    RemoteDiscovery,
    address_from_entry,
    parse_address,
    probe,
)
from core.errors import AllMethodsFailed, Unreachable
from models.types import BridgeAddress


def fake_zeroconf(*hosts, port=80):
    """A Zeroconf stand-in resolving every service to the given hosts."""
    zc = MagicMock()
    info = MagicMock(port=port)
    info.parsed_addresses.return_value = list(hosts)
    zc.get_service_info.return_value = info
    return zc


def announce(zc, type_, listener):
    """ServiceBrowser side effect: report one bridge immediately."""
    listener.add_service(zc, type_, 'Philips Hue - 123456._hue._tcp.local.')
    return MagicMock()


class TestProbe:
    """Test the liveness probe."""

    def test_live_bridge(self, transport, session, address):
        session.add('GET', f'{BRIDGE_URL}/api/0/config', bridge_config('bridge-1'))
        assert probe(address, transport) == 'bridge-1'

    def test_unreachable_address(self, transport, session):
        """An address that refuses connections fails after a single attempt."""
        assert probe(BridgeAddress('10.0.0.99'), transport) is None
        assert len(session.calls) == 1

    def test_not_a_bridge(self, transport, session, address):
        session.add('GET', f'{BRIDGE_URL}/api/0/config', {'hello': 'world'})
        assert probe(address, transport) is None


class TestRemoteDiscovery:
    """Test the discovery service strategy."""

    def test_parses_candidates(self, transport, session):
        session.add('GET', DISCOVERY_URL, [
            {'id': '001788fffe123456', 'internalipaddress': '192.168.1.50', 'port': 443},
            {'id': 'broken'},
            {'id': '001788fffe654321', 'internalipaddress': '192.168.1.51'},
        ])
        candidates = RemoteDiscovery(transport).candidates()
        assert candidates == [BridgeAddress('192.168.1.50', 443), BridgeAddress('192.168.1.51')]

    def test_single_request(self, transport, session):
        """The service is asked once even when it cannot be reached."""
        with pytest.raises(Unreachable):
            RemoteDiscovery(transport).candidates()
        assert len(session.calls_to('GET', DISCOVERY_URL)) == 1


class TestAddressHelpers:
    """Test address parsing helpers."""

    def test_address_from_entry(self):
        assert address_from_entry({'internalipaddress': '10.0.0.2'}) == BridgeAddress('10.0.0.2')
        assert address_from_entry({'internalipaddress': '10.0.0.2', 'port': '443'}) == BridgeAddress('10.0.0.2')
        assert address_from_entry({'id': 'x'}) is None
        assert address_from_entry('nonsense') is None

    def test_parse_address(self):
        assert parse_address(' 192.168.1.50 ') == BridgeAddress('192.168.1.50')
        assert parse_address('192.168.1.50:8080') == BridgeAddress('192.168.1.50', 8080)
        assert parse_address('fe80::1') == BridgeAddress('fe80::1')
        assert parse_address('[fe80::1]') == BridgeAddress('fe80::1')
        assert parse_address('[fe80::1]:8080') == BridgeAddress('fe80::1', 8080)
        assert parse_address('hue-bridge.local') == BridgeAddress('hue-bridge.local')


class TestBroadcastDiscovery:
    """Test the mDNS strategy with zeroconf mocked out."""

    @patch('core.discovery.ServiceBrowser')
    def test_collects_responders(self, mock_browser, clock):
        """Addresses announced during the window are returned in order."""
        mock_browser.side_effect = announce
        zc = fake_zeroconf('192.168.1.60', '192.168.1.61', port=443)

        candidates = BroadcastDiscovery(window=3, sleep=clock.sleep, zeroconf_factory=lambda: zc).candidates()

        assert candidates == [BridgeAddress('192.168.1.60', 443), BridgeAddress('192.168.1.61', 443)]
        assert mock_browser.call_args[0][1] == HUE_SERVICE_TYPE
        assert clock.sleeps == [3]
        zc.close.assert_called_once()

    @patch('core.discovery.ServiceBrowser')
    def test_unresolved_service_ignored(self, mock_browser, clock):
        mock_browser.side_effect = announce
        zc = MagicMock()
        zc.get_service_info.return_value = None
        assert BroadcastDiscovery(sleep=clock.sleep, zeroconf_factory=lambda: zc).candidates() == []

    def test_no_network_interface(self, clock):
        """Failing to start zeroconf is reported as a discovery failure."""
        def broken():
            raise OSError("no interfaces")

        with pytest.raises(Unreachable):
            BroadcastDiscovery(sleep=clock.sleep, zeroconf_factory=broken).candidates()


class TestDiscoveryChain:
    """Test ordering and fallback of the strategy chain."""

    def test_remote_wins_when_valid(self, transport, session):
        session.add('GET', DISCOVERY_URL, [{'id': 'a', 'internalipaddress': '192.168.1.50'}])
        session.add('GET', f'{BRIDGE_URL}/api/0/config', bridge_config())
        manual = MagicMock(return_value='192.168.1.70')

        discovery = Discovery([RemoteDiscovery(transport), ManualDiscovery(manual)], transport)

        assert discovery.discover() == BridgeAddress('192.168.1.50')
        assert discovery.bridge_id == bridge_config()['bridgeid']
        manual.assert_not_called()

    @patch('core.discovery.ServiceBrowser')
    def test_falls_back_to_broadcast(self, mock_browser, transport, session, clock):
        """A remote candidate that fails the probe loses to a live broadcast responder."""
        session.add('GET', DISCOVERY_URL, [{'id': 'stale', 'internalipaddress': '10.0.0.99'}])
        session.add('GET', f'{BRIDGE_URL}/api/0/config', bridge_config())
        mock_browser.side_effect = announce
        zc = fake_zeroconf('192.168.1.50')

        discovery = Discovery([
            RemoteDiscovery(transport),
            BroadcastDiscovery(sleep=clock.sleep, zeroconf_factory=lambda: zc),
            ManualDiscovery('192.168.1.70'),
        ], transport)

        assert discovery.discover() == BridgeAddress('192.168.1.50', 80)
        assert session.calls_to('GET', 'http://192.168.1.70/api/0/config') == []

    def test_manual_fallback(self, transport, session):
        session.add('GET', 'http://192.168.1.70/api/0/config', bridge_config())
        discovery = Discovery([RemoteDiscovery(transport), ManualDiscovery('192.168.1.70')], transport)
        assert discovery.discover() == BridgeAddress('192.168.1.70')

    def test_each_strategy_tried_once(self, transport, session):
        """Every strategy is attempted exactly once before giving up."""
        remote = MagicMock(spec=RemoteDiscovery)
        remote.name = 'remote'
        remote.candidates.return_value = []
        manual = MagicMock(spec=ManualDiscovery)
        manual.name = 'manual'
        manual.candidates.return_value = [BridgeAddress('10.0.0.99')]

        with pytest.raises(AllMethodsFailed) as exc_info:
            Discovery([remote, manual], transport).discover()

        remote.candidates.assert_called_once()
        manual.candidates.assert_called_once()
        assert set(exc_info.value.reasons) == {'remote', 'manual'}
        assert exc_info.value.exit_code == 2

    def test_rate_limited_service(self, transport, session):
        """An error object from the discovery service moves on to the next strategy."""
        session.add('GET', DISCOVERY_URL, {'error': 'Too many requests'})
        with pytest.raises(AllMethodsFailed) as exc_info:
            Discovery([RemoteDiscovery(transport), ManualDiscovery(None)], transport).discover()
        assert 'Too many requests' in exc_info.value.reasons['remote']
        assert exc_info.value.reasons['manual'] == 'no bridges found'
