"""HTTP transport shared by every component that talks to the network.

One Transport wraps one requests.Session so connections are reused for the
whole invocation. Retrying is driven by an explicit RetryPolicy rather than
loops in the callers.
"""

import time
from dataclasses import dataclass, replace
from typing import Callable

import requests
from requests.packages.urllib3.exceptions import InsecureRequestWarning

from core.errors import MalformedResponse, Timeout, TransportError, Unreachable
from models.types import DEFAULT_RETRY_ATTEMPTS, DEFAULT_RETRY_DELAY, DEFAULT_TIMEOUT
from models.utils import report, truncate_for_display

# Disable SSL warnings for the bridge's self-signed certificate
requests.packages.urllib3.disable_warnings(InsecureRequestWarning)

USER_AGENT = 'huestatus/1.0'

IDEMPOTENT_METHODS = frozenset({'GET', 'PUT', 'DELETE', 'HEAD'})


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry: how many attempts, how long between them, and whether
    the request may be repeated after a response was received."""
    max_attempts: int = DEFAULT_RETRY_ATTEMPTS
    delay: float = DEFAULT_RETRY_DELAY
    idempotent: bool = True

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay < 0:
            raise ValueError("delay cannot be negative")

    def should_retry(self, error: TransportError, attempt: int) -> bool:
        """Decide whether another attempt follows a failed one.

        Non-idempotent requests are only repeated when no response arrived at
        all, because the bridge may already have acted on them otherwise.
        """
        if attempt >= self.max_attempts:
            return False
        if self.idempotent:
            return True
        return isinstance(error, (Unreachable, Timeout))

    def single_attempt(self) -> 'RetryPolicy':
        return replace(self, max_attempts=1)


class Transport:
    """Send JSON requests with a per-attempt timeout and bounded retry."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, policy: RetryPolicy | None = None,
                 session: requests.Session | None = None,
                 sleep: Callable[[float], None] = time.sleep, verbose: bool = False):
        """Initialise Transport.

        Args:
            timeout: Seconds allowed for each attempt
            policy: Default retry policy (GET/PUT/DELETE use it as-is, POST
                uses a non-idempotent copy)
            session: Session to reuse; a new one is created if omitted
            sleep: Function used to wait between attempts
            verbose: Print each attempt to stderr
        """
        self.timeout = timeout
        self.policy = policy or RetryPolicy()
        self.session = session or requests.Session()
        self.session.verify = False  # Accept self-signed certificate
        self.session.headers.update({'User-Agent': USER_AGENT})
        self._sleep = sleep
        self.verbose = verbose

    def policy_for(self, method: str, idempotent: bool | None = None) -> RetryPolicy:
        """Return the default policy adjusted for the request's idempotency."""
        if idempotent is None:
            idempotent = method.upper() in IDEMPOTENT_METHODS
        return replace(self.policy, idempotent=idempotent)

    def send(self, method: str, url: str, payload: dict | None = None,
             idempotent: bool | None = None, policy: RetryPolicy | None = None,
             timeout: float | None = None):
        """Send a request and return the decoded JSON body.

        Args:
            method: HTTP method
            url: Absolute URL
            payload: JSON body, if any
            idempotent: Overrides the method-based idempotency guess
            policy: Overrides the retry policy for this request
            timeout: Overrides the per-attempt timeout for this request

        Returns:
            The decoded JSON envelope (list or dict)

        Raises:
            TransportError: Unreachable, Timeout or MalformedResponse once
                the policy gives up
        """
        method = method.upper()
        policy = policy or self.policy_for(method, idempotent)
        attempt = 0

        while True:
            attempt += 1
            try:
                return self._attempt(method, url, payload, timeout or self.timeout)
            except TransportError as e:
                if not policy.should_retry(e, attempt):
                    raise
                report(f"  {method} {truncate_for_display(url, 60)} failed "
                       f"(attempt {attempt}/{policy.max_attempts}): {e.message}", self.verbose, fg='yellow')
                if policy.delay:
                    self._sleep(policy.delay)

    def _attempt(self, method: str, url: str, payload: dict | None, timeout: float):
        report(f"  {method} {truncate_for_display(url, 60)}", self.verbose)
        try:
            response = self.session.request(method, url, json=payload, timeout=timeout)
        except requests.exceptions.Timeout as e:
            raise Timeout(f"Request to {truncate_for_display(url, 60)} timed out after {timeout}s", url) from e
        except requests.exceptions.ConnectionError as e:
            raise Unreachable(f"Could not connect to {truncate_for_display(url, 60)}", url) from e
        except requests.exceptions.RequestException as e:
            raise Unreachable(f"Request to {truncate_for_display(url, 60)} failed: {e}", url) from e

        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponse(
                f"HTTP {response.status_code} from {truncate_for_display(url, 60)} is not JSON: "
                f"{truncate_for_display(response.text)}", url) from e

        if not isinstance(body, (list, dict)):
            raise MalformedResponse(f"Unexpected response from {truncate_for_display(url, 60)}: "
                                    f"{truncate_for_display(body)}", url)
        return body

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
