"""Pytest configuration and fixtures for huestatus tests.

The bridge is simulated with a scripted stand-in for requests.Session, and
time with a clock whose sleep() simply advances it, so no test touches the
network or waits in real time.
"""

import json
from pathlib import Path

import pytest
import requests

from core.transport import RetryPolicy, Transport
from models.types import BridgeAddress

BRIDGE_IP = '192.168.1.50'
BRIDGE_URL = f'http://{BRIDGE_IP}'
CREDENTIAL = 'abcdefghij1234567890'
API = f'{BRIDGE_URL}/api/{CREDENTIAL}'


class FakeResponse:
    """Minimal requests.Response replacement."""

    def __init__(self, body=None, status_code=200, text=None):
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(body)

    def json(self):
        return json.loads(self.text)


class FakeSession:
    """Scripted requests.Session.

    Each route holds a queue of replies (bodies, FakeResponses or exceptions
    to raise); the last reply repeats once the queue is down to one. Requests
    to unknown routes fail like a refused connection.
    """

    def __init__(self):
        self.verify = True
        self.headers = {}
        self.calls = []
        self.routes = {}
        self.closed = False

    def add(self, method: str, url: str, *replies):
        self.routes[(method, url)] = list(replies)

    def request(self, method, url, json=None, timeout=None):
        self.calls.append((method, url, json))
        queue = self.routes.get((method, url))
        if not queue:
            raise requests.exceptions.ConnectionError(f"Connection refused: {url}")
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, FakeResponse):
            return reply
        return FakeResponse(reply)

    def calls_to(self, method: str, url: str) -> list:
        return [call for call in self.calls if call[0] == method and call[1] == url]

    def close(self):
        self.closed = True


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


def bridge_config(bridge_id='001788fffe123456'):
    return {'name': 'Philips hue', 'bridgeid': bridge_id, 'apiversion': '1.60.0'}


def gamut_light(name='Desk', reachable=True):
    """Extended colour light with a precise gamut C."""
    return {
        'name': name,
        'type': 'Extended color light',
        'state': {'on': True, 'bri': 254, 'hue': 8418, 'sat': 140, 'effect': 'none',
                  'xy': [0.4573, 0.41], 'ct': 366, 'colormode': 'xy', 'reachable': reachable},
        'capabilities': {'control': {
            'mindimlevel': 1000, 'maxlumen': 806, 'colorgamuttype': 'C',
            'colorgamut': [[0.6915, 0.3083], [0.17, 0.7], [0.1532, 0.0475]],
            'ct': {'min': 153, 'max': 500},
        }},
    }


def hue_sat_light(name='Lamp'):
    """Colour light without gamut data or effect support (older firmware)."""
    return {
        'name': name,
        'type': 'Color light',
        'state': {'on': False, 'bri': 100, 'hue': 1000, 'sat': 200, 'reachable': True},
    }


def white_light(name='Hallway'):
    return {
        'name': name,
        'type': 'Dimmable light',
        'state': {'on': True, 'bri': 254, 'reachable': True},
        'capabilities': {'control': {'mindimlevel': 5000, 'maxlumen': 800}},
    }


def capabilities_body(available_scenes=180, available_lightstates=1900):
    return {
        'lights': {'available': 50, 'total': 63},
        'scenes': {'available': available_scenes, 'total': 200,
                   'lightstates': {'available': available_lightstates, 'total': 2048}},
    }


@pytest.fixture
def project_root():
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport(session, clock):
    """Transport using the fake session with 3 attempts 1 second apart."""
    return Transport(timeout=10, policy=RetryPolicy(max_attempts=3, delay=1.0),
                     session=session, sleep=clock.sleep)


@pytest.fixture
def address():
    return BridgeAddress(BRIDGE_IP)
