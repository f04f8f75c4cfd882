import base64

import pytest

from atlas_mcp.tools.shaping import (
    shape_geocode,
    shape_ip_batch,
    shape_polygon,
    shape_route_directions,
    shape_route_matrix,
    shape_route_range,
    shape_static_map,
)
from atlas_mcp.tools.shared import ProviderError, ToolFailure, error_envelope, success_envelope
from atlas_mcp.tools.validation import BoundingBox, Coordinate


def test_success_envelope_has_data_only():
    envelope = success_envelope({"answer": 42})
    assert envelope["success"] is True
    assert envelope["data"] == {"answer": 42}
    assert envelope["error"] is None
    assert envelope["meta"]["requestId"]
    assert envelope["meta"]["timestamp"].endswith("+00:00")


def test_error_envelope_has_error_only():
    envelope = error_envelope("latitude must be between -90 and 90 degrees")
    assert envelope["success"] is False
    assert envelope["data"] is None
    assert "latitude" in envelope["error"]


def test_error_envelope_never_has_empty_error():
    assert error_envelope("")["error"]


def test_request_ids_are_unique():
    ids = {success_envelope(None)["meta"]["requestId"] for _ in range(50)}
    assert len(ids) == 50


def test_geocode_without_features_is_failure():
    with pytest.raises(ToolFailure):
        shape_geocode("nowhere", {"features": []})


def test_polygon_flattens_geometry_collection():
    payload = {
        "type": "Feature",
        "geometry": {
            "type": "GeometryCollection",
            "geometries": [
                {"type": "Polygon", "coordinates": [[[-122.4, 47.5], [-122.2, 47.5], [-122.3, 47.7], [-122.4, 47.5]]]},
                {
                    "type": "MultiPolygon",
                    "coordinates": [
                        [[[-122.5, 47.4], [-122.45, 47.4], [-122.5, 47.45]]],
                        [[[-122.6, 47.3], [-122.55, 47.3], [-122.6, 47.35]]],
                    ],
                },
            ],
        },
        "properties": {"name": "Seattle", "copyright": "Microsoft"},
    }

    result = shape_polygon(Coordinate(47.6, -122.3), "locality", "small", payload)

    assert result["PolygonCount"] == len(result["Polygons"]) == 3
    assert result["Polygons"][0]["PointCount"] == 4
    assert result["Polygons"][0]["Coordinates"][0] == [47.5, -122.4]
    assert result["BoundaryInfo"]["QueryCoordinates"] == {"Latitude": 47.6, "Longitude": -122.3}
    assert result["BoundaryInfo"]["Copyright"] == "Microsoft"


def test_polygon_reads_feature_collection():
    payload = {
        "features": [
            {"geometry": {"type": "Polygon", "coordinates": [[[1, 2], [3, 4], [5, 6]]]}, "properties": {}}
        ]
    }
    result = shape_polygon(Coordinate(2, 1), "postalCode", "large", payload)
    assert result["PolygonCount"] == 1
    assert result["BoundaryInfo"]["ResultType"] == "postalCode"


def test_polygon_without_geometry_is_failure():
    with pytest.raises(ToolFailure):
        shape_polygon(Coordinate(0, 0), "locality", "small", {"geometry": None})


def test_route_directions_projection():
    payload = {
        "routes": [
            {
                "summary": {"lengthInMeters": 280000, "travelTimeInSeconds": 10800, "trafficDelayInSeconds": 60},
                "legs": [
                    {
                        "summary": {"lengthInMeters": 280000, "travelTimeInSeconds": 10800},
                        "points": [{"latitude": 47.6, "longitude": -122.3}, {"latitude": 45.5, "longitude": -122.7}],
                    }
                ],
                "guidance": {
                    "instructions": [
                        {"message": "Leave from Main St", "maneuver": "DEPART", "routeOffsetInMeters": 0},
                    ]
                },
            }
        ]
    }

    result = shape_route_directions(payload)

    assert result["Summary"] == {
        "DistanceMeters": 280000,
        "TravelTimeSeconds": 10800,
        "TrafficDelaySeconds": 60,
    }
    assert result["Geometry"] == [[47.6, -122.3], [45.5, -122.7]]
    assert result["Legs"][0]["PointCount"] == 2
    assert result["Instructions"][0]["Maneuver"] == "DEPART"


def test_route_directions_without_routes_is_failure():
    with pytest.raises(ToolFailure):
        shape_route_directions({"routes": []})


def test_route_matrix_keeps_row_major_order_and_per_cell_failures():
    ok = {"statusCode": 200, "response": {"routeSummary": {"lengthInMeters": 100, "travelTimeInSeconds": 10}}}
    failed = {"statusCode": 400, "response": {"error": {"message": "unreachable"}}}
    payload = {"matrix": [[ok, failed], [ok]]}

    result = shape_route_matrix(2, 2, payload)

    cells = result["Results"]
    assert [(c["OriginIndex"], c["DestinationIndex"]) for c in cells] == [(0, 0), (0, 1), (1, 0), (1, 1)]
    assert [c["Success"] for c in cells] == [True, False, True, False]
    assert cells[1]["Error"] == "unreachable"
    assert cells[0]["DistanceMeters"] == 100
    assert result["Summary"] == {
        "Origins": 2,
        "Destinations": 2,
        "TotalRequests": 4,
        "SuccessfulRequests": 2,
        "FailedRequests": 2,
    }


def test_route_matrix_without_matrix_is_provider_error():
    with pytest.raises(ProviderError):
        shape_route_matrix(1, 1, {})


def test_route_range_projection():
    payload = {
        "reachableRange": {
            "center": {"latitude": 47.6, "longitude": -122.3},
            "boundary": [{"latitude": 47.7, "longitude": -122.3}, {"latitude": 47.6, "longitude": -122.2}],
        }
    }
    result = shape_route_range(Coordinate(47.6, -122.3), "car", "fastest", {"TimeSeconds": 900}, payload)
    assert result["PointCount"] == 2
    assert result["Boundary"][1] == [47.6, -122.2]
    assert result["Budget"] == {"TimeSeconds": 900}


def test_static_map_counts_and_data_uri():
    image = b"\x89PNG\r\n\x1a\nfake"
    box = BoundingBox(-122.4, 47.5, -122.2, 47.7)

    result = shape_static_map(image, "road", 13, 640, 480, marker_count=2, path_count=1, bounding_box=box)

    assert result["Image"]["Format"] == "PNG"
    assert result["Image"]["SizeBytes"] == len(image)
    prefix, encoded = result["Image"]["DataUri"].split(",", 1)
    assert prefix == "data:image/png;base64"
    assert base64.b64decode(encoded) == image
    info = result["MapInfo"]
    assert info["MarkerCount"] == 2
    assert info["PathCount"] == 1
    assert info["Dimensions"] == {"Width": 640, "Height": 480}
    assert info["BoundingBox"]["North"] == 47.7
    assert info["Center"]["Latitude"] == pytest.approx(47.6)


def test_ip_batch_summary():
    results = [
        {"Index": 0, "IPAddress": "8.8.8.8", "Success": True, "CountryCode": "US"},
        {"Index": 1, "IPAddress": "bad", "Success": False, "Error": "invalid"},
    ]
    summary = shape_ip_batch(results)["Summary"]
    assert summary == {
        "TotalRequests": 2,
        "SuccessfulRequests": 1,
        "FailedRequests": 1,
        "SuccessRate": 50.0,
    }
