"""
Tasting AI — Wine Label Heuristics
===================================

What:  Turns verbatim label text into a WineLabelInfo with a confidence score.
Why:   The vision model is asked only to *read* the label. Deciding which
       line is the producer or the vintage is done here, deterministically,
       so results are cacheable and testable without a network.
How:   Ordered regex patterns per field; the first pattern that matches
       wins. Confidence is the sum of per-field weights for every field
       found (max 100).

Field weights:
    wine_name 20 · producer 15 · vintage 15 · appellation 15 ·
    grape_varieties 15 · alcohol_content 10 · wine_type 10
"""

import re
from typing import List, Optional

from tasting_ai.schemas.wine import WineLabelInfo

# ── Patterns ──────────────────────────────────────────────────────────────

_NAME_PATTERNS = (
    re.compile(r"([A-Z][a-zA-Z\s&'-]+(?:Estate|Vineyard|Winery|Cellars?|Reserve|Selection))", re.I),
    re.compile(r"^([A-Z][a-zA-Z\s&'-]{3,30})\s*$", re.M),
    re.compile(r"([A-Z][a-zA-Z\s&'-]+(?:Red|White|Rosé|Champagne|Sparkling))", re.I),
)

_PRODUCER_PATTERNS = (
    re.compile(r"(?:Estate|Vineyard|Winery|Cellars?|Domaine|Château)\s*([A-Za-z\s&'-]+)", re.I),
    re.compile(r"([A-Z][a-zA-Z\s&'-]+)(?:\s+(?:Estate|Vineyard|Winery|Cellars?))", re.I),
    re.compile(r"Produced\s*by\s*([A-Za-z\s&'-]+)", re.I),
)

_VINTAGE_PATTERN = re.compile(r"\b(19[8-9]\d|20[0-3]\d)\b")

_ALCOHOL_PATTERNS = (
    re.compile(r"(\d{1,2}(?:\.\d{1,2})?)\s*%\s*(?:alc|alcohol|vol)", re.I),
    re.compile(r"alcohol\s*(?:by\s*volume)?\s*(\d{1,2}(?:\.\d{1,2})?)\s*%", re.I),
    re.compile(r"(\d{1,2}(?:\.\d{1,2})?)\s*%"),
)

_REGIONS = (
    "Napa Valley", "Sonoma", "Bordeaux", "Burgundy", "Champagne", "Chianti",
    "Rioja", "Barolo", "Mosel", "Rhine Valley", "Mendoza", "Central Valley",
    "Hunter Valley",
)

_APPELLATION_PATTERNS = (
    re.compile(r"\b(" + "|".join(_REGIONS) + r")\b", re.I),
    re.compile(r"([A-Z][a-zA-Z\s]+)\s+(?:AOC|AOP|DOC|DOCG|AVA|GI)\b"),
    re.compile(r"(?:Appellation|Region|Valley|County)\s+([A-Z][a-zA-Z\s]+)"),
)

_WINE_TYPE_PATTERNS = (
    re.compile(r"(Red|White|Rosé|Rose|Sparkling|Champagne|Port|Sherry|Dessert)\s*Wine", re.I),
    re.compile(r"\b(Red|White|Rosé|Rose|Sparkling|Champagne)\b", re.I),
)

GRAPE_VARIETIES = (
    "Cabernet Sauvignon", "Merlot", "Pinot Noir", "Chardonnay", "Sauvignon Blanc",
    "Pinot Grigio", "Pinot Gris", "Riesling", "Syrah", "Shiraz", "Grenache",
    "Sangiovese", "Nebbiolo", "Tempranillo", "Zinfandel", "Malbec", "Petit Verdot",
    "Cabernet Franc", "Gewürztraminer", "Viognier", "Chenin Blanc", "Sémillon",
    "Barbera", "Dolcetto", "Garnacha", "Mourvèdre", "Carignan", "Petite Sirah",
)

_GRAPE_PATTERNS = tuple(
    (grape, re.compile(r"\b" + re.escape(grape) + r"\b", re.I)) for grape in GRAPE_VARIETIES
)

WEIGHTS = {
    "wine_name": 20,
    "producer": 15,
    "vintage": 15,
    "alcohol_content": 10,
    "appellation": 15,
    "wine_type": 10,
    "grape_varieties": 15,
}

MIN_ALCOHOL = 5.0
MAX_ALCOHOL = 20.0


def _clean(value: str) -> str:
    """Collapse runs of whitespace (patterns may span label lines)."""
    return " ".join(value.split())


# ── Field extractors ──────────────────────────────────────────────────────

def _extract_name(text: str) -> Optional[str]:
    for pattern in _NAME_PATTERNS:
        match = pattern.search(text)
        if match:
            name = _clean(match.group(0))
            if name:
                return name
    # Fall back to the first line that looks like a title
    for line in text.splitlines():
        line = line.strip()
        if 3 < len(line) < 50:
            return line
    return None


def _extract_producer(text: str) -> Optional[str]:
    for pattern in _PRODUCER_PATTERNS:
        match = pattern.search(text)
        if match:
            producer = _clean(match.group(1))
            if len(producer) >= 2:
                return producer
    return None


def _extract_vintage(text: str) -> Optional[int]:
    years = [int(y) for y in _VINTAGE_PATTERN.findall(text)]
    return max(years) if years else None


def _extract_alcohol(text: str) -> Optional[str]:
    for pattern in _ALCOHOL_PATTERNS:
        for match in pattern.finditer(text):
            value = float(match.group(1))
            if MIN_ALCOHOL <= value <= MAX_ALCOHOL:
                return f"{match.group(1)}%"
    return None


def _extract_appellation(text: str) -> Optional[str]:
    for pattern in _APPELLATION_PATTERNS:
        match = pattern.search(text)
        if match:
            appellation = _clean(match.group(1))
            if appellation:
                return appellation
    return None


def _extract_wine_type(text: str) -> Optional[str]:
    for pattern in _WINE_TYPE_PATTERNS:
        match = pattern.search(text)
        if match:
            wine_type = match.group(1).lower()
            return "rosé" if wine_type == "rose" else wine_type
    return None


def _extract_grapes(text: str) -> List[str]:
    return [grape for grape, pattern in _GRAPE_PATTERNS if pattern.search(text)]


# ── Public API ────────────────────────────────────────────────────────────

def parse_wine_label(raw_text: str) -> WineLabelInfo:
    """
    Extract structured fields from label text.

    Empty or whitespace-only text yields an empty WineLabelInfo with
    confidence 0.
    """
    text = raw_text.strip()
    if not text:
        return WineLabelInfo(raw_text=raw_text)

    fields = {
        "wine_name": _extract_name(text),
        "producer": _extract_producer(text),
        "vintage": _extract_vintage(text),
        "alcohol_content": _extract_alcohol(text),
        "appellation": _extract_appellation(text),
        "wine_type": _extract_wine_type(text),
        "grape_varieties": _extract_grapes(text),
    }
    confidence = sum(WEIGHTS[name] for name, value in fields.items() if value)

    info = WineLabelInfo(raw_text=text, confidence=min(confidence, 100), **fields)
    return info.model_copy(update={"suggested_corrections": suggest_label_corrections(info)})


def suggest_label_corrections(info: WineLabelInfo) -> List[str]:
    """Hints shown to the taster when recognition looks incomplete."""
    suggestions = []
    if info.confidence < 50:
        suggestions.append("Try retaking the photo with better lighting")
        suggestions.append("Ensure the wine label is flat and clearly visible")
    if not info.wine_name:
        suggestions.append("Wine name not detected - please enter manually")
    if not info.producer:
        suggestions.append("Producer not detected - check the back label")
    if not info.vintage:
        suggestions.append("Vintage year not found - look for a 4-digit year on the label")
    if not info.grape_varieties:
        suggestions.append("Grape varieties not detected - check the back label or wine description")
    if info.confidence >= 70 and info.wine_name and info.producer:
        suggestions.append("Recognition looks good! Review and confirm the details")
    return suggestions
