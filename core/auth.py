"""
Link button authentication for the Hue bridge.

The bridge only issues a credential within 30 seconds of its physical link
button being pressed. Authenticator models the handshake as an explicit
state machine:

    IDLE -> AWAITING_BUTTON_PRESS -> POLLING -> AUTHENTICATED
                                            \\-> FAILED (TIMED_OUT | REJECTED)

Clock, sleep and the "button pressed" signal are injected so the timing can
be driven deterministically.
"""

import re
import time
from enum import Enum
from typing import Callable

from core.bridge import BridgeClient
from core.errors import (
    AuthRejected,
    AuthTimedOut,
    HueStatusError,
    InvalidTransition,
    LinkButtonNotPressed,
    MalformedResponse,
    TransportError,
    error_from_envelope,
)
from core.transport import RetryPolicy
from models.utils import report

DEVICE_TYPE = 'huestatus#cli'

# Fixed by the bridge firmware, not configurable
LINK_BUTTON_WINDOW = 30.0
POLL_INTERVAL = 1.0

MAX_DEVICE_TYPE_LENGTH = 40
DEVICE_TYPE_PATTERN = re.compile(r'^[^#\s]{1,20}#[^#]{1,19}$')


class AuthState(Enum):
    IDLE = 'idle'
    AWAITING_BUTTON_PRESS = 'awaiting_button_press'
    POLLING = 'polling'
    AUTHENTICATED = 'authenticated'
    FAILED = 'failed'


class FailureReason(Enum):
    TIMED_OUT = 'timed_out'
    REJECTED = 'rejected'


TERMINAL_STATES = frozenset({AuthState.AUTHENTICATED, AuthState.FAILED})


def validate_device_type(device_type: str) -> str:
    """Check a devicetype has the bridge's 'application#instance' shape.

    Raises:
        ValueError: If the value would be rejected by the bridge
    """
    if len(device_type) > MAX_DEVICE_TYPE_LENGTH or not DEVICE_TYPE_PATTERN.match(device_type):
        raise ValueError(f"Invalid device type {device_type!r}: expected 'application#instance' "
                         f"of at most {MAX_DEVICE_TYPE_LENGTH} characters")
    return device_type


def parse_pairing_response(body: list) -> str:
    """Extract the credential from a pairing response.

    Returns:
        The username issued by the bridge

    Raises:
        LinkButtonNotPressed: For error 101
        ApiError: For any other error envelope
        MalformedResponse: If the envelope holds neither success nor error
    """
    for entry in body:
        if not isinstance(entry, dict):
            continue
        if 'success' in entry:
            username = entry['success'].get('username') if isinstance(entry['success'], dict) else None
            if username:
                return str(username)
        if 'error' in entry and isinstance(entry['error'], dict):
            raise error_from_envelope(entry['error'])
    raise MalformedResponse("Pairing response contained neither a credential nor an error")


class Authenticator:
    """One link button handshake against one bridge.

    Instances are single use: once AUTHENTICATED or FAILED no transition is
    possible and a new attempt needs a new instance.
    """

    def __init__(self, client: BridgeClient, device_type: str = DEVICE_TYPE,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep,
                 deadline: float = LINK_BUTTON_WINDOW, poll_interval: float = POLL_INTERVAL,
                 verbose: bool = False):
        """Initialise Authenticator.

        Args:
            client: Client for the discovered bridge (no credential needed)
            device_type: Application identifier sent as 'devicetype'
            clock: Monotonic time source in seconds
            sleep: Function used to wait between polls
            deadline: Seconds allowed after the button press
            poll_interval: Seconds between pairing requests while polling
            verbose: Print each poll to stderr
        """
        self.client = client
        self.device_type = validate_device_type(device_type)
        self._clock = clock
        self._sleep = sleep
        self.deadline = deadline
        self.poll_interval = poll_interval
        self.verbose = verbose

        self.state = AuthState.IDLE
        self.failure: FailureReason | None = None
        self.credential: str | None = None
        self.attempts = 0
        self._pressed_at: float | None = None

    def _expect(self, state: AuthState):
        if self.state is not state:
            raise InvalidTransition(f"Cannot do that while {self.state.value}; expected {state.value}")

    def _pair_once(self) -> list:
        # Polling is the retry loop, so each request is a single attempt
        policy = RetryPolicy(max_attempts=1, delay=0, idempotent=False)
        timeout = None
        if self._pressed_at is not None:
            remaining = self.deadline - (self._clock() - self._pressed_at)
            timeout = max(min(self.client.transport.timeout, remaining), 0.1)
        self.attempts += 1
        return self.client.pair(self.device_type, policy=policy, timeout=timeout)

    def begin(self):
        """IDLE -> AWAITING_BUTTON_PRESS.

        Sends the initial pairing request. The bridge is expected to answer
        with error 101, and the transition happens whatever the answer is.
        A credential issued already (button pressed early) is kept and
        returned by the first poll().
        """
        self._expect(AuthState.IDLE)
        try:
            self.credential = parse_pairing_response(self._pair_once())
        except HueStatusError as e:
            report(f"  Initial pairing request: {e.message}", self.verbose)
        self.state = AuthState.AWAITING_BUTTON_PRESS

    def button_pressed(self):
        """AWAITING_BUTTON_PRESS -> POLLING; starts the deadline."""
        self._expect(AuthState.AWAITING_BUTTON_PRESS)
        self._pressed_at = self._clock()
        self.state = AuthState.POLLING

    def elapsed(self) -> float:
        if self._pressed_at is None:
            return 0.0
        return self._clock() - self._pressed_at

    def _fail(self, reason: FailureReason):
        self.state = AuthState.FAILED
        self.failure = reason

    def poll(self) -> str:
        """Poll until the bridge issues a credential or the window closes.

        Returns:
            The credential (state becomes AUTHENTICATED)

        Raises:
            AuthTimedOut: No credential within the deadline (FAILED/TIMED_OUT)
            AuthRejected: The bridge answered with an error other than 101
                (FAILED/REJECTED)
        """
        self._expect(AuthState.POLLING)

        if self.credential is not None:
            self.state = AuthState.AUTHENTICATED
            return self.credential

        while True:
            if self.elapsed() >= self.deadline:
                self._fail(FailureReason.TIMED_OUT)
                raise AuthTimedOut(self.elapsed())

            try:
                credential = parse_pairing_response(self._pair_once())
            except LinkButtonNotPressed:
                report(f"  Waiting for link button... ({self.elapsed():.0f}s)", self.verbose)
            except TransportError as e:
                # A dropped request does not end the window; the deadline does
                report(f"  Pairing request failed: {e.message}", self.verbose, fg='yellow')
            except HueStatusError as e:
                self._fail(FailureReason.REJECTED)
                raise AuthRejected(f"Bridge rejected pairing: {e.message}") from e
            else:
                self.credential = credential
                self.state = AuthState.AUTHENTICATED
                return credential

            remaining = self.deadline - self.elapsed()
            if remaining <= self.poll_interval:
                # The window closes before the next poll would be sent
                if remaining > 0:
                    self._sleep(remaining)
                self._fail(FailureReason.TIMED_OUT)
                raise AuthTimedOut(self.deadline)
            self._sleep(self.poll_interval)

    def authenticate(self, wait_for_button: Callable[[], None]) -> str:
        """Run the whole handshake.

        Args:
            wait_for_button: Blocks until the user says the button was
                pressed; a KeyboardInterrupt aborts the handshake

        Returns:
            The credential issued by the bridge
        """
        self.begin()
        wait_for_button()
        self.button_pressed()
        return self.poll()
