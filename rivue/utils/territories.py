"""
Static lookup tables for App Store storefronts.

App Store Connect reports ISO-3166 alpha-3 territories ("USA"); the RSS feeds
are addressed by lowercase alpha-2 country codes ("us").
"""

# RSS storefronts offered in the dashboard
RSS_COUNTRIES: dict[str, str] = {
    "us": "United States",
    "gb": "United Kingdom",
    "ca": "Canada",
    "au": "Australia",
    "de": "Germany",
    "fr": "France",
    "it": "Italy",
    "es": "Spain",
    "jp": "Japan",
    "kr": "South Korea",
    "cn": "China",
    "br": "Brazil",
    "mx": "Mexico",
    "in": "India",
    "ru": "Russia",
    "nl": "Netherlands",
    "se": "Sweden",
    "no": "Norway",
    "dk": "Denmark",
    "fi": "Finland",
}

TERRITORY_TO_COUNTRY: dict[str, str] = {
    "USA": "us", "GBR": "gb", "CAN": "ca", "AUS": "au", "DEU": "de",
    "FRA": "fr", "JPN": "jp", "CHN": "cn", "KOR": "kr", "IND": "in",
    "BRA": "br", "MEX": "mx", "ESP": "es", "ITA": "it", "NLD": "nl",
    "CHE": "ch", "SWE": "se", "NOR": "no", "DNK": "dk", "FIN": "fi",
    "NZL": "nz", "SGP": "sg", "HKG": "hk", "TWN": "tw", "RUS": "ru",
    "POL": "pl", "TUR": "tr", "ARE": "ae", "SAU": "sa", "ZAF": "za",
}

COUNTRY_TO_LANGUAGE: dict[str, str] = {
    "us": "en", "gb": "en", "ca": "en", "au": "en", "nz": "en",
    "de": "de", "fr": "fr", "it": "it", "es": "es", "pt": "pt",
    "jp": "ja", "kr": "ko", "cn": "zh", "tw": "zh", "hk": "zh",
    "br": "pt", "mx": "es", "ar": "es", "cl": "es", "co": "es",
    "in": "hi", "ru": "ru", "nl": "nl", "be": "nl", "se": "sv",
    "no": "no", "dk": "da", "fi": "fi", "pl": "pl", "tr": "tr",
}


def language_for_country(country: str) -> str:
    """Map "de" → "de", "jp" → "ja"; unknown countries fall back to "en"."""
    return COUNTRY_TO_LANGUAGE.get((country or "").lower(), "en")


def language_for_territory(territory: str) -> str:
    """Map an alpha-3 territory to its primary review language."""
    code = TERRITORY_TO_COUNTRY.get((territory or "").upper())
    return language_for_country(code) if code else "en"
