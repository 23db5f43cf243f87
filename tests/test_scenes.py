"""Tests for the scene engine in core/scenes.py"""

from dataclasses import replace
from datetime import timedelta

import pytest
import requests

from conftest import API, CREDENTIAL, gamut_light, hue_sat_light, white_light
from core.bridge import BridgeClient
from core.capabilities import light_from_descriptor
from core.errors import CapacityExceeded, SceneNotFound, Unauthorized, ValidationRejected
from core.scenes import SceneEngine, build_pattern, needs_validation, resolve_colour_mode
from models.colour import FAILURE_TEMPLATE, SUCCESS_TEMPLATE, ColourMode
from models.types import BridgeLimits, SceneHandle, utc_now

GROUP_ACTION = f'{API}/groups/0/action'
RECALLED = [{'success': {'address': '/groups/0/action/scene', 'value': 'scene-1'}}]
SCENE_MISSING = [{'error': {'type': 3, 'address': '/scenes/scene-1',
                            'description': 'resource, /scenes/scene-1, not available'}}]


@pytest.fixture
def lights():
    return [
        light_from_descriptor('1', gamut_light('Desk')),
        light_from_descriptor('2', hue_sat_light('Lamp')),
    ]


@pytest.fixture
def engine(transport, address):
    return SceneEngine(BridgeClient(address, transport, CREDENTIAL))


@pytest.fixture
def handle():
    return SceneHandle(id='scene-1', name='huestatus-success', last_validated=utc_now())


class TestResolveColourMode:
    """Test the per-light representation choice."""

    def test_precise_gamut_uses_xy(self):
        assert resolve_colour_mode(light_from_descriptor('1', gamut_light())) is ColourMode.XY

    def test_no_gamut_uses_hue_sat(self):
        assert resolve_colour_mode(light_from_descriptor('2', hue_sat_light())) is ColourMode.HUE_SAT

    def test_unknown_gamut_type_uses_hue_sat(self):
        light = replace(light_from_descriptor('1', gamut_light()), gamut_type='other')
        assert resolve_colour_mode(light) is ColourMode.HUE_SAT

    def test_white_light_has_no_mode(self):
        assert resolve_colour_mode(light_from_descriptor('3', white_light())) is None


class TestBuildPattern:
    """Test filtering of lights and fields when building a pattern."""

    def test_one_state_per_light(self, lights):
        pattern = build_pattern('huestatus-success', lights, SUCCESS_TEMPLATE)
        request = pattern.to_request()
        assert request['lights'] == ['1', '2']
        assert request['recycle'] is True
        assert request['lightstates']['1'] == {'on': True, 'bri': 254, 'xy': [0.409, 0.518]}
        assert request['lightstates']['2'] == {'on': True, 'bri': 254, 'hue': 21845, 'sat': 254}

    def test_unsupported_lights_dropped_with_warning(self, lights):
        """Lights that cannot show colour are skipped, not fatal."""
        extra = [light_from_descriptor('3', white_light()), light_from_descriptor('4', gamut_light(reachable=False))]
        pattern = build_pattern('huestatus-failure', lights + extra, FAILURE_TEMPLATE)
        assert [light.id for light in pattern.lights] == ['1', '2']
        assert len(pattern.warnings) == 2
        assert 'does not support colour' in pattern.warnings[0]
        assert 'unreachable' in pattern.warnings[1]

    def test_effect_only_for_confirming_lights(self, lights):
        """A colorloop template reaches only the light that confirms the effect."""
        template = replace(SUCCESS_TEMPLATE, effect='colorloop')
        states = build_pattern('huestatus-success', lights, template).to_request()['lightstates']
        assert states['1']['effect'] == 'colorloop'
        assert 'effect' not in states['2']

    def test_no_effect_by_default(self, lights):
        states = build_pattern('huestatus-success', lights, SUCCESS_TEMPLATE).to_request()['lightstates']
        assert all('effect' not in state for state in states.values())


class TestCreatePattern:
    """Test scene creation and reuse."""

    def test_creates_scene(self, engine, session, lights):
        session.add('POST', f'{API}/scenes', [{'success': {'id': 'scene-1'}}])

        handle = engine.create_pattern('huestatus-success', lights, SUCCESS_TEMPLATE, BridgeLimits())

        assert handle.id == 'scene-1'
        assert handle.name == 'huestatus-success'
        assert handle.auto_created
        assert handle.last_validated is not None
        body = session.calls[0][2]
        assert body['name'] == 'huestatus-success'
        assert set(body['lightstates']) == {'1', '2'}

    def test_at_most_one_creation_per_pattern(self, engine, session, lights):
        """A second request for the same pattern returns the first handle."""
        session.add('POST', f'{API}/scenes', [{'success': {'id': 'scene-1'}}])
        first = engine.create_pattern('huestatus-success', lights, SUCCESS_TEMPLATE)
        second = engine.create_pattern('huestatus-success', lights, SUCCESS_TEMPLATE)
        assert first is second
        assert len(session.calls_to('POST', f'{API}/scenes')) == 1

    def test_invalidate_forces_recreation(self, engine, session, lights):
        session.add('POST', f'{API}/scenes', [{'success': {'id': 'scene-1'}}], [{'success': {'id': 'scene-2'}}])
        engine.create_pattern('huestatus-success', lights, SUCCESS_TEMPLATE)
        engine.invalidate('huestatus-success')
        assert engine.create_pattern('huestatus-success', lights, SUCCESS_TEMPLATE).id == 'scene-2'

    def test_existing_handle_reused(self, engine, session, lights, handle):
        """A previous scene that still exists is not recreated."""
        session.add('GET', f'{API}/scenes/scene-1', {'name': 'huestatus-success', 'lights': ['1']})
        assert engine.create_pattern('huestatus-success', lights, SUCCESS_TEMPLATE, existing=handle) is handle
        assert session.calls_to('POST', f'{API}/scenes') == []

    def test_stale_handle_recreated(self, engine, session, lights, handle):
        session.add('GET', f'{API}/scenes/scene-1', SCENE_MISSING)
        session.add('POST', f'{API}/scenes', [{'success': {'id': 'scene-9'}}])
        assert engine.create_pattern('huestatus-success', lights, SUCCESS_TEMPLATE, existing=handle).id == 'scene-9'

    def test_no_usable_lights(self, engine, session):
        with pytest.raises(ValidationRejected):
            engine.create_pattern('huestatus-success', [light_from_descriptor('3', white_light())],
                                  SUCCESS_TEMPLATE)
        assert session.calls == []

    def test_scene_table_full(self, engine, session, lights):
        """Capacity is checked before anything is sent."""
        with pytest.raises(CapacityExceeded):
            engine.create_pattern('huestatus-success', lights, SUCCESS_TEMPLATE,
                                  BridgeLimits(available_scenes=0))
        assert session.calls == []

    def test_lightstates_exhausted(self, engine, lights):
        with pytest.raises(CapacityExceeded):
            engine.create_pattern('huestatus-success', lights, SUCCESS_TEMPLATE,
                                  BridgeLimits(available_lightstates=1))

    def test_name_too_long(self, engine, lights):
        with pytest.raises(ValidationRejected):
            engine.create_pattern('x' * 33, lights, SUCCESS_TEMPLATE)


class TestExecutePattern:
    """Test scene recall."""

    def test_recall_sends_group_action(self, engine, session, handle):
        session.add('PUT', GROUP_ACTION, RECALLED)
        engine.execute_pattern(handle)
        assert session.calls == [('PUT', GROUP_ACTION, {'scene': 'scene-1'})]

    def test_recall_is_idempotent(self, engine, session, handle):
        """Executing twice sends the same request twice without error."""
        session.add('PUT', GROUP_ACTION, RECALLED)
        engine.execute_pattern(handle)
        engine.execute_pattern(handle)
        assert session.calls[0] == session.calls[1]
        assert len(session.calls) == 2

    def test_recall_retried_on_transport_failure(self, engine, session, handle, clock):
        session.add('PUT', GROUP_ACTION, requests.exceptions.ConnectionError(), RECALLED)
        engine.execute_pattern(handle)
        assert len(session.calls) == 2

    def test_missing_scene_not_retried(self, engine, session, handle):
        """Recalling a deleted scene raises SceneNotFound after one request."""
        session.add('PUT', GROUP_ACTION, [{'error': {
            'type': 7, 'address': '/groups/0/action/scene',
            'description': 'invalid value, scene-1, for parameter, scene'}}])
        with pytest.raises(SceneNotFound):
            engine.execute_pattern(handle)
        assert len(session.calls) == 1

    def test_unauthorized(self, engine, session, handle):
        session.add('PUT', GROUP_ACTION, [{'error': {'type': 1, 'address': '/groups/0/action',
                                                     'description': 'unauthorized user'}}])
        with pytest.raises(Unauthorized):
            engine.execute_pattern(handle)


class TestValidatePattern:
    """Test handle validation and freshness."""

    def test_existing_scene(self, engine, session, handle):
        handle.last_validated = None
        session.add('GET', f'{API}/scenes/scene-1', {'name': 'huestatus-success'})
        assert engine.validate_pattern(handle) is True
        assert handle.last_validated is not None

    def test_missing_scene(self, engine, session, handle):
        session.add('GET', f'{API}/scenes/scene-1', SCENE_MISSING)
        assert engine.validate_pattern(handle) is False

    def test_needs_validation(self, handle):
        now = utc_now()
        handle.last_validated = now - timedelta(hours=23)
        assert not needs_validation(handle, 24, now)
        handle.last_validated = now - timedelta(hours=25)
        assert needs_validation(handle, 24, now)
        handle.last_validated = None
        assert needs_validation(handle, 24, now)


class TestDeletePattern:
    """Test removal of replaced scenes."""

    def test_delete_auto_created(self, engine, session, handle):
        session.add('DELETE', f'{API}/scenes/scene-1', [{'success': '/scenes/scene-1 deleted'}])
        assert engine.delete_pattern(handle) is True

    def test_user_scene_kept(self, engine, session, handle):
        handle.auto_created = False
        assert engine.delete_pattern(handle) is False
        assert session.calls == []

    def test_already_gone(self, engine, session, handle):
        session.add('DELETE', f'{API}/scenes/scene-1', SCENE_MISSING)
        assert engine.delete_pattern(handle) is False
