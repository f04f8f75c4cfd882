import base64

import httpx
import pytest

from atlas_mcp.tools import render_static_map
from conftest import envelope

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
BBOX = '{"west": -122.4, "south": 47.5, "east": -122.2, "north": 47.7}'


def _png_reply():
    return httpx.Response(200, content=PNG, headers={"content-type": "image/png"})


@pytest.mark.asyncio
async def test_render_bounding_box_defaults(atlas):
    atlas.add("/map/static", _png_reply())

    result = await render_static_map.handler({"bounding_box": BBOX})
    body = envelope(result)

    params = atlas.calls("/map/static")[0].url.params
    assert params["bbox"] == "-122.4,47.5,-122.2,47.7"
    assert params["zoom"] == "13"
    assert params["width"] == "512"
    assert params["tilesetId"] == "microsoft.base.road"
    assert params["api-version"] == "2024-04-01"

    data = body["data"]
    assert data["Image"]["Format"] == "PNG"
    assert data["Image"]["SizeBytes"] == len(PNG)
    assert data["MapInfo"]["ZoomLevel"] == 13
    assert data["MapInfo"]["MarkerCount"] == 0
    assert data["MapInfo"]["PathCount"] == 0

    image_block = result["content"][1]
    assert image_block["type"] == "image"
    assert image_block["mimeType"] == "image/png"
    assert base64.b64decode(image_block["data"]) == PNG


@pytest.mark.asyncio
async def test_render_treats_blank_lists_as_missing(atlas):
    atlas.add("/map/static", _png_reply())

    body = envelope(await render_static_map.handler({"bounding_box": BBOX, "markers": "", "paths": "  "}))

    assert body["success"] is True
    assert body["data"]["MapInfo"]["MarkerCount"] == 0
    assert "pins" not in atlas.calls("/map/static")[0].url.params

@pytest.mark.asyncio
async def test_render_markers_and_paths(atlas):
    atlas.add("/map/static", _png_reply())
    markers = [
        {"latitude": 47.6, "longitude": -122.3, "label": "Seattle", "color": "red"},
        {"latitude": 47.65, "longitude": -122.35, "label": "Fremont", "color": "#ff0000"},
        {"latitude": 47.55, "longitude": -122.25, "color": "blue"},
    ]
    paths = [
        {
            "coordinates": [{"latitude": 47.6, "longitude": -122.3}, {"latitude": 47.65, "longitude": -122.35}],
            "color": "green",
            "width": 5,
        }
    ]

    body = envelope(
        await render_static_map.handler(
            {
                "latitude": 47.6,
                "longitude": -122.3,
                "zoom": 11,
                "map_style": "Satellite",
                "markers": markers,
                "paths": paths,
            }
        )
    )

    params = atlas.calls("/map/static")[0].url.params
    assert params["center"] == "-122.3,47.6"
    assert params["tilesetId"] == "microsoft.imagery"
    assert params.get_list("pins") == [
        "default|coFF0000||'Seattle'-122.3 47.6|'Fremont'-122.35 47.65",
        "default|co0000FF||-122.25 47.55",
    ]
    assert params.get_list("path") == ["lc008000|lw5||-122.3 47.6|-122.35 47.65"]
    assert body["data"]["MapInfo"]["MarkerCount"] == 3
    assert body["data"]["MapInfo"]["PathCount"] == 1
    assert body["data"]["MapInfo"]["Style"] == "satellite"
    assert body["data"]["MapInfo"]["BoundingBox"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "args, needle",
    [
        ({"bounding_box": '{"west": -122.2, "south": 47.7, "east": -122.4, "north": 47.5}'}, "inverted"),
        ({"bounding_box": '{"west": -122.4, "south": 47.5, "east": -122.2}'}, "north"),
        ({"bounding_box": BBOX, "zoom": 23}, "zoom"),
        ({"bounding_box": BBOX, "width": 0}, "width"),
        ({"bounding_box": BBOX, "height": 8193}, "height"),
        ({"bounding_box": BBOX, "map_style": "watercolor"}, "map_style"),
        ({"bounding_box": BBOX, "latitude": 1, "longitude": 1}, "not both"),
        ({}, "required"),
        ({"latitude": 47.6}, "longitude"),
        ({"bounding_box": BBOX, "markers": [{"latitude": 95, "longitude": 0}]}, "markers[1]"),
        ({"bounding_box": BBOX, "markers": [{"latitude": 1, "longitude": 1, "color": "plaid"}]}, "color"),
        ({"bounding_box": BBOX, "markers": [{"latitude": 1, "longitude": 1}] * 51}, "markers"),
        ({"bounding_box": BBOX, "paths": [{"coordinates": [{"latitude": 1, "longitude": 1}]}]}, "at least 2"),
    ],
)
async def test_render_validation_errors(atlas, args, needle):
    body = envelope(await render_static_map.handler(args))

    assert body["success"] is False
    assert needle in body["error"]
    assert atlas.requests == []


@pytest.mark.asyncio
async def test_render_upstream_failure(atlas):
    atlas.add("/map/static", httpx.Response(400, json={"error": {"message": "bad zoom for bbox"}}))

    result = await render_static_map.handler({"bounding_box": BBOX})
    body = envelope(result)

    assert result["is_error"] is True
    assert len(result["content"]) == 1
    assert "bad zoom for bbox" in body["error"]
