"""Address block normalization.

Turns a noisy multi-line or comma-joined address blob into a canonical block:

    street line (with an optional ", Suite N" segment)
    City, ST ZIP
    any unclassified lines
    (NNN) NNN-NNNN

Text coming out of PDF text layers and model responses regularly fuses tokens
together ("286 HEMLOCK STREPUBLIC, MI 49879"). Those repairs are kept in an
ordered rule table so new artifacts can be added without touching the
block algorithm.
"""

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from intake.normalize.fields import PHONE_PATTERN, format_phone, normalize_space

STREET_SUFFIXES = (
    "street",
    "st",
    "road",
    "rd",
    "avenue",
    "ave",
    "boulevard",
    "blvd",
    "drive",
    "dr",
    "lane",
    "ln",
    "court",
    "ct",
    "place",
    "pl",
    "terrace",
    "ter",
    "parkway",
    "pkwy",
    "circle",
    "cir",
    "trail",
    "trl",
    "way",
    "highway",
    "hwy",
)
# Longest first so "STREET" wins over "ST"
_SUFFIX_ALTERNATION = "|".join(sorted(STREET_SUFFIXES, key=len, reverse=True))
_ZIP = r"\d{5}(?:-\d{4})?"
_NAME_PARTICLE = re.compile(r"(?:^|\s)(?:Mc|Mac|De|Di|La|Le|El|O')$", re.IGNORECASE)


@dataclass(frozen=True)
class SpacingRule:
    """One run-together repair applied to a single address line."""

    name: str
    pattern: re.Pattern[str]
    replacement: str | Callable[[re.Match[str]], str]

    def apply(self, line: str) -> str:
        return self.pattern.sub(self.replacement, line)


def _split_title_case(match: re.Match[str]) -> str:
    # McAllen, DeKalb, LaSalle, O'Brien stay joined
    if _NAME_PARTICLE.search(match.string[: match.start() + 1]):
        return match.group(0)
    return f"{match.group(1)} {match.group(2)}"


SPACING_RULES: list[SpacingRule] = [
    # "COUNTY ROAD CKLCHAMPION, MI 49814" -> "COUNTY ROAD CKL CHAMPION, MI 49814"
    SpacingRule(
        name="county-road-route",
        pattern=re.compile(
            r"(\b(?:county\s+road|county\s+rd|co\.?\s*rd|cr)\s+)"
            r"([B-DF-HJ-NP-TV-Z]{3})([B-DF-HJ-NP-TV-Z][A-Z]{3,})"
            rf"(,\s*[A-Za-z]{{2}}\s+{_ZIP}\b)",
            re.IGNORECASE,
        ),
        replacement=r"\1\2 \3\4",
    ),
    # "286 HEMLOCK STREPUBLIC, MI 49879" -> "286 HEMLOCK ST REPUBLIC, MI 49879"
    SpacingRule(
        name="street-suffix-city",
        pattern=re.compile(
            rf"(?<=[A-Za-z]\s)(\b(?:{_SUFFIX_ALTERNATION})\.?)"
            rf"(?=(?-i:[A-Z])[A-Za-z.'-]{{2,}},\s*[A-Za-z]{{2}}\s+{_ZIP}\b)",
            re.IGNORECASE,
        ),
        replacement=r"\1 ",
    ),
    # "123Main StSpringfield" -> "123 Main St Springfield"
    SpacingRule(
        name="title-case-boundary",
        pattern=re.compile(r"([a-z0-9#.])([A-Z][a-z])"),
        replacement=_split_title_case,
    ),
]

_COMMA = re.compile(r"\s*,\s*")
_PHONE_LABEL = re.compile(r"\b(?:phone|tel|telephone|mobile|cell)\b\s*[:\-]*", re.IGNORECASE)
_STREET_START = re.compile(r"^\d+\s+")
_SUITE = re.compile(r"\b(?:apt|apartment|suite|ste|unit)\b|#\s*\w", re.IGNORECASE)
_STATE_TOKEN = re.compile(r",\s*[A-Za-z]{2}\b")
_BARE_STATE_ZIP = re.compile(rf"^[A-Za-z]{{2}}\s+{_ZIP}$")
_SUFFIX_SPLIT = re.compile(
    rf"^(\d+\s.*\b(?:{_SUFFIX_ALTERNATION})\.?)\s+"
    rf"([A-Za-z][A-Za-z .'-]*?,?\s+[A-Za-z]{{2}}\s+{_ZIP})$",
    re.IGNORECASE,
)

_CITY_LABEL = re.compile(r"^city\s*[:\-]\s*", re.IGNORECASE)
_CITY_STATE_ZIP = re.compile(rf"^(.+?),?\s+([A-Za-z]{{2}})\s+({_ZIP})$")
_CITY_ZIP_STATE = re.compile(rf"^(.+?),?\s+({_ZIP})\s+([A-Za-z]{{2}})$")

_DESCRIPTION_SEPARATORS = (" | ", " - ", " \u2014 ", " \u2013 ")
_ZIP_TOKEN = re.compile(_ZIP)


def normalize_line_spacing(value: Any, rules: Iterable[SpacingRule] = SPACING_RULES) -> str:
    """Repair run-together tokens in one line and normalize comma spacing."""
    line = normalize_space(value)
    if not line:
        return ""
    line = _COMMA.sub(", ", line)
    for rule in rules:
        line = rule.apply(line)
    return normalize_space(_COMMA.sub(", ", line))


def normalize_locality_line(value: Any) -> str:
    """Emit ``City, ST ZIP`` from ``City, ST ZIP`` or ``City ZIP ST``.

    Anything that matches neither shape is returned with spacing repaired only.
    """
    line = normalize_line_spacing(_CITY_LABEL.sub("", str(value or "")))
    if not line:
        return ""

    match = _CITY_STATE_ZIP.match(line)
    if match:
        city, state, zip_code = match.groups()
        return f"{normalize_space(city.rstrip(', '))}, {state.upper()} {zip_code}"

    match = _CITY_ZIP_STATE.match(line)
    if match:
        city, zip_code, state = match.groups()
        return f"{normalize_space(city.rstrip(', '))}, {state.upper()} {zip_code}"

    return line


def _locality_strength(line: str) -> int:
    """2 when the line carries a ZIP, 1 for a bare ", ST" state token, else 0."""
    if _ZIP_TOKEN.search(line):
        return 2
    if _STATE_TOKEN.search(line):
        return 1
    return 0


def _looks_like_locality(line: str) -> bool:
    return _locality_strength(line) > 0


def _first_index(lines: list[str], predicate: Callable[[str], Any], skip: set[int | None]) -> int | None:
    for index, line in enumerate(lines):
        if index not in skip and predicate(line):
            return index
    return None


def _strongest_locality_index(lines: list[str], skip: set[int | None]) -> int | None:
    """First line with the strongest locality hint, so "City, ST ZIP" beats "Attn, Bo"."""
    best_index, best_strength = None, 0
    for index, line in enumerate(lines):
        strength = _locality_strength(line) if index not in skip else 0
        if strength > best_strength:
            best_index, best_strength = index, strength
    return best_index


def _append_suites(street: str, suites: list[str]) -> str:
    segments = [street] if street else []
    for suite in suites:
        if suite not in ", ".join(segments):
            segments.append(suite)
    return ", ".join(segments)


def _split_joined_line(line: str) -> tuple[str, str, list[str]]:
    """Split one comma-joined or unsegmented line into (street, locality, extras).

    Suite parts join the street wherever they sit. The locality is whichever
    side of the street carries the stronger hint; the other side becomes extras.
    """
    parts = [part for part in (normalize_space(p) for p in line.split(",")) if part]
    if len(parts) < 2:
        match = _SUFFIX_SPLIT.match(line)
        if match:
            return normalize_space(match.group(1)), normalize_space(match.group(2)), []
        if not _STREET_START.match(line) and _looks_like_locality(line):
            return "", line, []
        return line, "", []

    street_index = next((i for i, part in enumerate(parts) if _STREET_START.match(part)), None)
    suite_indexes = {i for i, part in enumerate(parts) if i != street_index and _SUITE.search(part)}
    suites = [parts[i] for i in sorted(suite_indexes)]

    if street_index is None:
        others = [part for i, part in enumerate(parts) if i not in suite_indexes]
        if others and _looks_like_locality(", ".join(others)):
            return ", ".join(suites), ", ".join(others), []
        if suites:
            return ", ".join(suites), "", others
        return others[0], "", others[1:]

    street = parts[street_index]
    before = [part for i, part in enumerate(parts[:street_index]) if i not in suite_indexes]
    after = [part for i, part in enumerate(parts) if i > street_index and i not in suite_indexes]
    before_text, after_text = ", ".join(before), ", ".join(after)
    if after and _locality_strength(after_text) >= _locality_strength(before_text):
        locality, extras = after_text, before
    else:
        locality, extras = before_text, after

    # "123 Main St Springfield, IL 62704": the city is still fused to the street
    if _BARE_STATE_ZIP.match(locality):
        match = _SUFFIX_SPLIT.match(f"{street}, {locality}")
        if match:
            street, locality = normalize_space(match.group(1)), normalize_space(match.group(2))

    return _append_suites(street, suites), locality, extras


def normalize_address_block(value: Any, include_phone: bool = True) -> str:
    """Normalize an address blob into a canonical multi-line block.

    Normalizing an already normalized block returns it unchanged.

    Args:
        value: Raw address text (multi-line, comma-joined, or a single line)
        include_phone: Pull the last phone number out and emit it formatted
            as the last line. When False the text is left as-is, phone included.

    Returns:
        Canonical block, or an empty string when nothing usable remains
    """
    text = str(value or "").replace("\r", "\n").strip()
    if not text:
        return ""

    formatted_phone = ""
    if include_phone:
        phone_match = None
        for phone_match in PHONE_PATTERN.finditer(text):
            pass
        if phone_match:
            formatted_phone = format_phone(phone_match.group(0))
            text = f"{text[: phone_match.start()]} {text[phone_match.end() :]}"

    text = _PHONE_LABEL.sub(" ", text)
    lines = [line for line in (normalize_line_spacing(raw) for raw in text.split("\n")) if line]
    if not lines:
        return formatted_phone

    if len(lines) == 1:
        street, locality, extras = _split_joined_line(lines[0])
    else:
        street_index = _first_index(lines, _STREET_START.match, skip=set())
        locality_index = _strongest_locality_index(lines, skip={street_index})
        consumed = {street_index, locality_index}
        suite_indexes = [i for i, line in enumerate(lines) if i not in consumed and _SUITE.search(line)]
        consumed.update(suite_indexes)
        if street_index is None and not suite_indexes:
            street_index = _first_index(lines, lambda line: not _looks_like_locality(line), skip=consumed)
            consumed.add(street_index)

        street = lines[street_index] if street_index is not None else ""
        locality = lines[locality_index] if locality_index is not None else ""
        extras = [line for index, line in enumerate(lines) if index not in consumed]

        if street and not locality:
            street, locality, leading = _split_joined_line(street)
            extras = leading + extras
        street = _append_suites(street, [lines[i] for i in suite_indexes])

    output = [street] if street else []
    normalized_locality = normalize_locality_line(locality)
    if normalized_locality and normalized_locality != street:
        output.append(normalized_locality)
    output.extend(extras)
    if formatted_phone:
        output.append(formatted_phone)
    return "\n".join(output).strip()


def parse_description_fields(description: Any) -> tuple[str, str]:
    """Split a legacy single-field item description into (address, work).

    Multi-line text splits after the first line; otherwise the first spaced
    separator from _DESCRIPTION_SEPARATORS splits; otherwise the text after
    the last ZIP code is the work. With none of those the whole text is the address.
    """
    raw = str(description or "").strip()
    if not raw:
        return "", ""

    lines = [line.strip() for line in re.split(r"\r?\n", raw) if line.strip()]
    if len(lines) > 1:
        return lines[0], "\n".join(lines[1:])

    for separator in _DESCRIPTION_SEPARATORS:
        index = raw.find(separator)
        if index > 0:
            return raw[:index].strip(), raw[index + len(separator) :].strip()

    last_zip = None
    for last_zip in _ZIP_TOKEN.finditer(raw):
        pass
    if last_zip and last_zip.end() < len(raw):
        return raw[: last_zip.end()].strip(), raw[last_zip.end() :].strip()

    return raw, ""
