from .country import get_country_info, search_countries
from .geolocation import geolocate_ip, geolocate_ip_batch, validate_ip
from .render import render_static_map
from .routing import route_directions, route_matrix, route_range, routing_countries
from .search import geocode, reverse_geocode, search_polygon
from .timezone import timezone_by_coordinates

TOOLS = [
    geocode,
    reverse_geocode,
    search_polygon,
    route_directions,
    route_matrix,
    route_range,
    routing_countries,
    render_static_map,
    geolocate_ip,
    geolocate_ip_batch,
    validate_ip,
    get_country_info,
    search_countries,
    timezone_by_coordinates,
]

__all__ = [
    "TOOLS",
    "geocode",
    "reverse_geocode",
    "search_polygon",
    "route_directions",
    "route_matrix",
    "route_range",
    "routing_countries",
    "render_static_map",
    "geolocate_ip",
    "geolocate_ip_batch",
    "validate_ip",
    "get_country_info",
    "search_countries",
    "timezone_by_coordinates",
]
