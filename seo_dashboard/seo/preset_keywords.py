"""
Preset dental keyword templates.

Templates use {city}, {state} (abbreviation) and {state_full}
placeholders, all filled in lowercase.
"""

from typing import Dict, List

STATE_MAP: Dict[str, str] = {
    "AL": "alabama",
    "AK": "alaska",
    "AZ": "arizona",
    "AR": "arkansas",
    "CA": "california",
    "CO": "colorado",
    "CT": "connecticut",
    "DE": "delaware",
    "DC": "district of columbia",
    "FL": "florida",
    "GA": "georgia",
    "HI": "hawaii",
    "ID": "idaho",
    "IL": "illinois",
    "IN": "indiana",
    "IA": "iowa",
    "KS": "kansas",
    "KY": "kentucky",
    "LA": "louisiana",
    "ME": "maine",
    "MD": "maryland",
    "MA": "massachusetts",
    "MI": "michigan",
    "MN": "minnesota",
    "MS": "mississippi",
    "MO": "missouri",
    "MT": "montana",
    "NE": "nebraska",
    "NV": "nevada",
    "NH": "new hampshire",
    "NJ": "new jersey",
    "NM": "new mexico",
    "NY": "new york",
    "NC": "north carolina",
    "ND": "north dakota",
    "OH": "ohio",
    "OK": "oklahoma",
    "OR": "oregon",
    "PA": "pennsylvania",
    "RI": "rhode island",
    "SC": "south carolina",
    "SD": "south dakota",
    "TN": "tennessee",
    "TX": "texas",
    "UT": "utah",
    "VT": "vermont",
    "VA": "virginia",
    "WA": "washington",
    "WV": "west virginia",
    "WI": "wisconsin",
    "WY": "wyoming",
}

# {keyword} {city}
CITY_TEMPLATES = [
    "dentist {city}",
    "orthodontist {city}",
    "emergency dentist {city}",
    "pediatric dentist {city}",
    "dental implants {city}",
    "{city} dentist",
    "{city} dentists",
    "dentist in {city}",
    "dentists in {city}",
    "dentists {city}",
    "teeth whitening {city}",
    "invisalign {city}",
    "endodontist {city}",
    "{city} orthodontist",
    "best dentist {city}",
    "veneers {city}",
    "pediatric dentist in {city}",
    "whitening teeth {city}",
    "24 hour emergency dentist {city}",
    "braces {city}",
    "wisdom teeth removal {city}",
    "dentist near me {city}",
    "{city} orthodontists",
    "all on 4 dental implants {city}",
    "teeth in a day {city}",
    "dental implants in {city}",
    "{city} dental implants",
    "dental office {city}",
    "{city} emergency dentist",
    "dental clinic {city}",
    "dental {city}",
    "emergency dental care {city}",
    "emergency dental {city}",
    "porcelain veneers {city}",
    "childrens dentist {city}",
    "{city} pediatric dentistry",
    "root canal {city}",
    "{city} invisalign",
    "cosmetic dentist in {city}",
    "dentist office {city}",
    "{city} cosmetic dentist",
    "dental veneers {city}",
    "wisdom teeth extraction {city}",
    "dental insurance {city}",
    "cosmetic dentistry in {city}",
    "natural dentist {city}",
    "kids dentist {city}",
    "invisalign in {city}",
    "implant supported dentures {city}",
    "best dental implants {city}",
    "oral surgeons {city}",
    "tooth extraction {city}",
    "dental cleaning {city}",
    "teeth cleaning {city}",
    "dental bridges {city}",
    "dental crown {city}",
    "dental crowns {city}",
    "dentist {city} near me",
    "{city} porcelain veneers",
    "emergency root canal {city}",
    "dental clinics in {city}",
]

# {keyword} {city} {state}
CITY_STATE_TEMPLATES = [
    "dentist {city} {state}",
    "dental implants {city} {state}",
    "emergency dentist in {city} {state}",
    "orthodontist in {city} {state}",
    "dentist in {city} {state}",
    "dental {city} {state}",
    "oral surgeon {city} {state}",
    "teeth whitening {city} {state}",
    "invisalign {city} {state}",
    "dentist office {city} {state}",
    "endodontist {city} {state}",
    "best dentist in {city} {state}",
    "dental implants in {city} {state}",
    "dental crowns {city} {state}",
    "dental insurance {city} {state}",
    "cosmetic dentist {city} {state}",
    "emergency dentist {city} {state}",
    "dentists {city} {state}",
    "cosmetic dentistry {city} {state}",
]

SPECIAL_TEMPLATES = [
    "dentist in {city} {state_full}",
    "emergency dentist {city} medicaid",
]

DENTAL_KEYWORD_TEMPLATES: List[str] = CITY_TEMPLATES + CITY_STATE_TEMPLATES + SPECIAL_TEMPLATES


def state_options() -> List[Dict[str, str]]:
    """Dropdown options: {"value": "TX", "label": "TX - Texas"}."""
    return [
        {"value": abbrev, "label": f"{abbrev} - {full.title()}"}
        for abbrev, full in STATE_MAP.items()
    ]


def generate_preset_keywords(city: str, state: str) -> List[str]:
    """Fill every template for a city and state abbreviation, deduplicated in order."""
    city_value = city.strip().lower()
    state_value = state.strip().lower()
    state_full = STATE_MAP.get(state.strip().upper(), state_value)

    keywords: List[str] = []
    seen = set()
    for template in DENTAL_KEYWORD_TEMPLATES:
        keyword = template.format(city=city_value, state=state_value, state_full=state_full)
        if keyword not in seen:
            seen.add(keyword)
            keywords.append(keyword)
    return keywords
