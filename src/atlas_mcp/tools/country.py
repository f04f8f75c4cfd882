from __future__ import annotations

import difflib
from typing import Any, Dict, List, Optional

import pycountry
from claude_agent_sdk import tool
from lmnr import observe

from .shaping import country_record
from .shared import (
    ToolFailure,
    ValidationError,
    log_tool_call,
    log_tool_result,
    tool_crash,
    tool_failure,
    tool_json,
)
from .validation import is_missing, validate_dimension, validate_string_input


class CountryCatalog:
    """ISO 3166 lookups backed by pycountry."""

    def get(self, code: str) -> Optional[Any]:
        code = code.strip().upper()
        if len(code) == 2:
            return pycountry.countries.get(alpha_2=code)
        if len(code) == 3:
            return pycountry.countries.get(alpha_3=code)
        return None

    def name_for(self, code: str) -> str:
        country = self.get(code)
        if country is None:
            return code
        return country_record(country)["CountryName"]

    def suggestions(self, code: str, limit: int = 3) -> List[str]:
        code = code.strip().upper()
        attribute = "alpha_3" if len(code) == 3 else "alpha_2"
        known = [getattr(country, attribute) for country in pycountry.countries]
        return difflib.get_close_matches(code, known, n=limit, cutoff=0.5)

    def search(self, term: str) -> List[Any]:
        needle = term.strip().lower()
        matches = []
        for country in pycountry.countries:
            names = [
                country.name,
                getattr(country, "official_name", None),
                getattr(country, "common_name", None),
            ]
            codes = (country.alpha_2.lower(), country.alpha_3.lower())
            if needle in codes or any(name and needle in name.lower() for name in names):
                matches.append(country)
        return sorted(matches, key=lambda country: country_record(country)["CountryName"])


CATALOG = CountryCatalog()


def fetch_country_info(country_code: Any) -> Dict[str, Any]:
    code = validate_string_input(country_code, "country_code", min_length=2, max_length=3).unwrap()
    if not code.isalpha():
        raise ValidationError("country_code must be a 2-letter or 3-letter ISO 3166 code")
    country = CATALOG.get(code)
    if country is None:
        suggestions = CATALOG.suggestions(code)
        message = f"country code {code.upper()!r} not found"
        if suggestions:
            message += f"; did you mean: {', '.join(suggestions)}"
        raise ToolFailure(message, {"country_code": code, "suggestions": suggestions})
    return {"Country": country_record(country)}


def fetch_country_search(search_term: Any, max_results: Any = None) -> Dict[str, Any]:
    term = validate_string_input(search_term, "search_term", min_length=2, max_length=100).unwrap()
    limit = 10 if is_missing(max_results) else validate_dimension(max_results, 1, 50, "max_results").unwrap()
    matches = CATALOG.search(term)
    return {
        "SearchTerm": term,
        "TotalMatches": len(matches),
        "Countries": [country_record(country) for country in matches[:limit]],
    }


@tool(
    "get_country_info",
    "Look up a country by ISO 3166 alpha-2 (US) or alpha-3 (USA) code.",
    {"country_code": str},
)
@observe()
async def get_country_info(args: Dict[str, Any]) -> Dict[str, Any]:
    call_id = log_tool_call("get_country_info", args)
    try:
        result = fetch_country_info(args.get("country_code"))
    except ToolFailure as exc:
        return tool_failure("get_country_info", exc, call_id=call_id)
    except Exception as exc:  # pragma: no cover - best-effort tool guard
        return tool_crash("get_country_info", exc, call_id=call_id)
    log_tool_result("get_country_info", "ok", call_id=call_id)
    return tool_json(result)


@tool(
    "search_countries",
    "Search countries by partial name or code. Returns up to max_results (default 10, max 50).",
    {
        "type": "object",
        "properties": {
            "search_term": {"type": "string"},
            "max_results": {"type": "integer", "minimum": 1, "maximum": 50},
        },
        "required": ["search_term"],
    },
)
@observe()
async def search_countries(args: Dict[str, Any]) -> Dict[str, Any]:
    call_id = log_tool_call("search_countries", args)
    try:
        result = fetch_country_search(args.get("search_term"), args.get("max_results"))
    except ToolFailure as exc:
        return tool_failure("search_countries", exc, call_id=call_id)
    except Exception as exc:  # pragma: no cover - best-effort tool guard
        return tool_crash("search_countries", exc, call_id=call_id)
    log_tool_result("search_countries", "ok", call_id=call_id)
    return tool_json(result)
