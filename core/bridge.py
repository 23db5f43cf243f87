"""BridgeClient: the Hue v1 control protocol on top of Transport.

Turns bridge endpoints into method calls and error envelopes into typed
exceptions. Components above this module never build URLs themselves.
"""

from core.errors import MalformedResponse, Unauthorized, error_from_envelope
from core.transport import Transport
from models.types import BridgeAddress, SceneRequest

# Unauthenticated endpoint every bridge answers; used as the liveness probe
PROBE_USER = '0'


def check_envelope(body):
    """Raise the first error in a v1 response envelope.

    Successful responses are either a dict (GET of a resource) or a list of
    ``{"success": ...}`` entries. Any ``{"error": ...}`` entry is turned into
    the matching exception.

    Args:
        body: Decoded JSON response

    Returns:
        The body unchanged when it carries no error
    """
    entries = body if isinstance(body, list) else [body]
    for entry in entries:
        if isinstance(entry, dict) and 'error' in entry and isinstance(entry['error'], dict):
            raise error_from_envelope(entry['error'])
    return body


def success_values(body: list) -> list:
    """Return the payloads of the ``success`` entries of an envelope."""
    if not isinstance(body, list):
        raise MalformedResponse("Expected a list of success entries")
    return [entry['success'] for entry in body if isinstance(entry, dict) and 'success' in entry]


class BridgeClient:
    """Issue control protocol requests against one bridge."""

    def __init__(self, address: BridgeAddress, transport: Transport, credential: str | None = None):
        self.address = address
        self.transport = transport
        self.credential = credential

    def url(self, path: str = '', user: str | None = None) -> str:
        """Build an API URL, e.g. url('/lights') -> http://ip/api/<credential>/lights."""
        base = f"{self.address.base_url}/api"
        if user is None:
            user = self.credential
        if user:
            base = f"{base}/{user}"
        return f"{base}{path}"

    def _require_credential(self):
        if not self.credential:
            raise Unauthorized("No credential available for this bridge")

    def request(self, method: str, path: str, payload: dict | None = None, **kwargs):
        """Send an authenticated request and raise on error envelopes."""
        self._require_credential()
        body = self.transport.send(method, self.url(path), payload, **kwargs)
        return check_envelope(body)

    # Unauthenticated endpoints

    def pair(self, device_type: str, **kwargs) -> list:
        """Send one pairing request (POST /api) and return the raw envelope.

        The envelope is returned without checking for errors, since error 101
        is the expected answer until the link button has been pressed.
        """
        body = self.transport.send('POST', self.url(user=''), {'devicetype': device_type}, **kwargs)
        if not isinstance(body, list):
            raise MalformedResponse("Pairing response is not a list", self.url(user=''))
        return body

    def config(self, **kwargs) -> dict:
        """Return the public bridge configuration (GET /api/0/config)."""
        body = self.transport.send('GET', self.url('/config', user=PROBE_USER), **kwargs)
        check_envelope(body)
        if not isinstance(body, dict):
            raise MalformedResponse("Bridge configuration is not an object")
        return body

    def probe(self, **kwargs) -> str:
        """Liveness probe: confirm the address belongs to a bridge.

        Returns:
            The bridge id

        Raises:
            MalformedResponse: If the address answers but is not a bridge
            TransportError: If the address does not answer
        """
        config = self.config(**kwargs)
        bridge_id = config.get('bridgeid')
        if not bridge_id:
            raise MalformedResponse(f"{self.address} answered but did not identify as a bridge")
        return str(bridge_id)

    # Authenticated endpoints

    def lights(self) -> dict:
        body = self.request('GET', '/lights')
        if not isinstance(body, dict):
            raise MalformedResponse("Light inventory is not an object")
        return body

    def capabilities(self) -> dict:
        body = self.request('GET', '/capabilities')
        if not isinstance(body, dict):
            raise MalformedResponse("Capabilities response is not an object")
        return body

    def scene(self, scene_id: str) -> dict:
        body = self.request('GET', f'/scenes/{scene_id}')
        if not isinstance(body, dict):
            raise MalformedResponse("Scene response is not an object")
        return body

    def create_scene(self, scene: SceneRequest) -> str:
        """Create a scene (POST /scenes, non-idempotent) and return its id."""
        body = self.request('POST', '/scenes', dict(scene), idempotent=False)
        for value in success_values(body):
            if isinstance(value, dict) and value.get('id'):
                return str(value['id'])
        raise MalformedResponse("Scene creation response did not include an id")

    def delete_scene(self, scene_id: str):
        self.request('DELETE', f'/scenes/{scene_id}')

    def recall_scene(self, scene_id: str, group: str = '0') -> list:
        """Apply a scene to a group (PUT /groups/<group>/action)."""
        return self.request('PUT', f'/groups/{group}/action', {'scene': scene_id}, idempotent=True)
