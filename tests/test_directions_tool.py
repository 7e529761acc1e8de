from unittest.mock import MagicMock, patch

import pytest
import requests

from itinerary_core.schemas.itinerary import Coordinate
from itinerary_core.schemas.route import TravelMode
from itinerary_core.modules.tool_usage.directions_tool import (
    DirectionsTool,
    RoutingRequestError,
    RoutingUnavailableError,
)

ORIGIN = Coordinate(48.8584, 2.2945)
DEST = Coordinate(48.8606, 2.3376)

_POST = "itinerary_core.modules.tool_usage.directions_tool.requests.post"


def _response(status=200, payload=None):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload if payload is not None else {}
    resp.text = "upstream says no"
    return resp


_ROUTE = {
    "distanceMeters": 4200,
    "duration": "1260s",
    "polyline": {"encodedPolyline": "abc123"},
    "legs": [{
        "steps": [
            {
                "navigationInstruction": {"instructions": "Head east on Av. Gustave Eiffel"},
                "localizedValues": {
                    "distance": {"text": "300 m"},
                    "staticDuration": {"text": "1 min"},
                },
            },
            {"navigationInstruction": {"instructions": "Turn left"}},
        ],
    }],
}


def test_stub_mode_makes_no_http_call():
    tool = DirectionsTool(use_stub=True)
    with patch(_POST) as post:
        result = tool.compute_route(ORIGIN, DEST, TravelMode.WALK)
    post.assert_not_called()
    assert result.is_fallback
    assert result.distance_meters > 0


def test_live_mode_without_key_is_unavailable():
    tool = DirectionsTool(api_key="", use_stub=False)
    with pytest.raises(RoutingUnavailableError, match="ERROR_ROUTING_UNAVAILABLE"):
        tool.ensure_available()
    with patch(_POST) as post, pytest.raises(RoutingUnavailableError):
        tool.compute_route(ORIGIN, DEST)
    post.assert_not_called()


def test_live_route_is_parsed():
    tool = DirectionsTool(api_key="k-123", use_stub=False)
    with patch(_POST, return_value=_response(payload={"routes": [_ROUTE]})) as post:
        result = tool.compute_route(ORIGIN, DEST, TravelMode.WALK)

    assert result.distance_meters == 4200
    assert result.duration == "1260s"
    assert result.duration_text == "21 min"
    assert result.distance_text == "4.2 km"
    assert result.encoded_polyline == "abc123"
    assert not result.is_fallback
    assert [s.instruction for s in result.steps] == [
        "Head east on Av. Gustave Eiffel", "Turn left",
    ]
    assert result.steps[0].distance_text == "300 m"
    assert result.steps[0].duration_text == "1 min"
    assert result.steps[1].distance_text == ""

    _, kwargs = post.call_args
    assert kwargs["headers"]["X-Goog-Api-Key"] == "k-123"
    assert "routes.polyline.encodedPolyline" in kwargs["headers"]["X-Goog-FieldMask"]
    assert kwargs["json"]["travelMode"] == "WALK"
    assert kwargs["json"]["origin"]["location"]["latLng"] == {
        "latitude": ORIGIN.lat, "longitude": ORIGIN.lng,
    }


def test_unknown_mode_sent_as_drive():
    tool = DirectionsTool(api_key="k", use_stub=False)
    with patch(_POST, return_value=_response(payload={"routes": [_ROUTE]})) as post:
        tool.compute_route(ORIGIN, DEST, "SKATEBOARD")
    assert post.call_args.kwargs["json"]["travelMode"] == "DRIVE"


def test_no_coverage_falls_back_to_estimate():
    tool = DirectionsTool(api_key="k", use_stub=False)
    with patch(_POST, return_value=_response(payload={"routes": []})):
        result = tool.compute_route(ORIGIN, DEST, TravelMode.BICYCLE)
    assert result.is_fallback
    assert result.encoded_polyline == ""


def test_http_error_raises_request_error():
    tool = DirectionsTool(api_key="k", use_stub=False)
    with patch(_POST, return_value=_response(status=500)):
        with pytest.raises(RoutingRequestError, match="500"):
            tool.compute_route(ORIGIN, DEST)


def test_transport_error_raises_request_error():
    tool = DirectionsTool(api_key="k", use_stub=False)
    with patch(_POST, side_effect=requests.ConnectionError("reset")):
        with pytest.raises(RoutingRequestError):
            tool.compute_route(ORIGIN, DEST)


# ── Waypoint order ────────────────────────────────────────────────────────────

# origin, far, near, destination along one meridian
STOPS = [Coordinate(0.0, 0.0), Coordinate(0.0, 3.0), Coordinate(0.0, 1.0), Coordinate(0.0, 4.0)]


def test_stub_order_is_nearest_neighbour():
    tool = DirectionsTool(use_stub=True)
    with patch(_POST) as post:
        assert tool.optimize_order(STOPS) == [0, 2, 1, 3]
    post.assert_not_called()


def test_fewer_than_three_stops_unchanged():
    tool = DirectionsTool(api_key="k", use_stub=False)
    with patch(_POST) as post:
        assert tool.optimize_order(STOPS[:2]) == [0, 1]
        assert tool.optimize_order([]) == []
    post.assert_not_called()


def test_live_order_maps_intermediate_indices():
    tool = DirectionsTool(api_key="k", use_stub=False)
    payload = {"routes": [{"optimizedIntermediateWaypointIndex": [1, 0]}]}
    with patch(_POST, return_value=_response(payload=payload)) as post:
        assert tool.optimize_order(STOPS, TravelMode.WALK) == [0, 2, 1, 3]

    kwargs = post.call_args.kwargs
    assert kwargs["json"]["optimizeWaypointOrder"] is True
    assert len(kwargs["json"]["intermediates"]) == 2
    assert kwargs["json"]["destination"]["location"]["latLng"]["longitude"] == 4.0
    assert kwargs["headers"]["X-Goog-FieldMask"] == "routes.optimizedIntermediateWaypointIndex"


def test_live_order_without_index_keeps_order():
    tool = DirectionsTool(api_key="k", use_stub=False)
    with patch(_POST, return_value=_response(payload={"routes": [{}]})):
        assert tool.optimize_order(STOPS) == [0, 1, 2, 3]


def test_live_order_no_coverage_uses_nearest_neighbour():
    tool = DirectionsTool(api_key="k", use_stub=False)
    with patch(_POST, return_value=_response(payload={"routes": []})):
        assert tool.optimize_order(STOPS) == [0, 2, 1, 3]


def test_live_order_rejects_bad_permutation():
    tool = DirectionsTool(api_key="k", use_stub=False)
    payload = {"routes": [{"optimizedIntermediateWaypointIndex": [0, 0]}]}
    with patch(_POST, return_value=_response(payload=payload)):
        with pytest.raises(RoutingRequestError, match="invalid waypoint order"):
            tool.optimize_order(STOPS)


def test_live_order_without_key_is_unavailable():
    tool = DirectionsTool(api_key="", use_stub=False)
    with patch(_POST) as post, pytest.raises(RoutingUnavailableError):
        tool.optimize_order(STOPS)
    post.assert_not_called()
