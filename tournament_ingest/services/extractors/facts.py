from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from bs4 import BeautifulSoup
from bs4.element import Tag

from tournament_ingest.services.candidate_facts import FactKind
from tournament_ingest.services.extractors.base import absolute_url, clean_text
from tournament_ingest.services.extractors.dates import DATE_PHRASE_RE, parse_date_range

logger = logging.getLogger(__name__)

EMAIL_TLDS = frozenset(
    {"com", "org", "net", "edu", "gov", "us", "co", "io", "ai", "club", "sports", "soccer", "info"}
)
BLOCKED_EMAIL_DOMAINS = (
    "example.com",
    "example.org",
    "domain.com",
    "yourdomain.com",
    "email.com",
    "sentry.io",
    "wixpress.com",
    "wix.com",
)
BLOCKED_EMAIL_LOCALS = frozenset(
    {"noreply", "no-reply", "donotreply", "do-not-reply", "support", "privacy", "abuse", "webmaster", "postmaster"}
)

# ordered strongest first; the cue nearest to an email wins
ROLE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("assignor", ("referee assignor", "referee coordinator", "officials coordinator", "assignor")),
    ("director", ("tournament director", "event director", "director")),
    ("assignor", ("referees", "referee", "officials", "umpires", "umpire")),
    ("general", ("contact", "questions", "info", "email us")),
)
NAME_STOPWORDS = frozenset(
    {
        "tournament",
        "director",
        "event",
        "referee",
        "referees",
        "assignor",
        "coordinator",
        "officials",
        "contact",
        "email",
        "phone",
        "questions",
        "info",
        "park",
        "field",
        "fields",
        "complex",
        "club",
        "registration",
    }
)
VENUE_KEYWORDS = ("venue", "location", "field", "fields", "complex", "park", "facility", "stadium", "sportsplex")
LINK_KEYWORDS = (
    "director",
    "assignor",
    "coordinator",
    "venue",
    "location",
    "fields",
    "directions",
    "rates",
    "pay",
    "hotel",
    "lodging",
    "travel",
)
PRIORITY_LINK_KEYWORDS = (
    "contact",
    "questions",
    "referee",
    "officials",
    "assignor",
    "director",
    "staff",
    "tournament",
    "about",
    "help",
)
REFEREE_LINK_KEYWORDS = ("referee", "officials", "assignor")
SKIPPED_LINK_SUFFIXES = (".pdf", ".jpg", ".jpeg", ".png", ".gif", ".doc", ".docx", ".xls", ".xlsx", ".zip")

MAX_DATE_FACTS = 10
_CONTEXT_CHARS = 120

_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_OBFUSCATED_EMAIL_RE = re.compile(
    r"([\w.+-]+)\s*[\[(]\s*at\s*[\])]\s*([\w-]+(?:\s*(?:[\[(]\s*dot\s*[\])]|\.)\s*[\w-]+)+)", re.I
)
_OBFUSCATED_DOT_RE = re.compile(r"\s*(?:[\[(]\s*dot\s*[\])]|\.)\s*", re.I)
_CF_EMAIL_HREF_RE = re.compile(r"/cdn-cgi/l/email-protection#([0-9a-f]+)", re.I)
_PHONE_RE = re.compile(r"(?<!\d)(?:\+?1[\s.-]?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}(?!\d)")
_NAME_RE = re.compile(r"\b([A-Z][a-z]+(?: [A-Z]\.)? [A-Z][a-z]+(?:-[A-Z][a-z]+)?)\b")
_ADDRESS_RE = re.compile(
    r"\b\d{1,5}\s+(?:[NSEW]\.?\s+)?[A-Za-z0-9][A-Za-z0-9.']*(?:\s+[A-Za-z0-9.']+){0,4}?\s+"
    r"(?:St|Street|Ave|Avenue|Rd|Road|Blvd|Boulevard|Dr|Drive|Way|Ln|Lane|Pkwy|Parkway|Hwy|Highway"
    r"|Ct|Court|Pl|Place|Cir|Circle|Trl|Trail)\b\.?"
)
_VENUE_KEYWORD_RE = re.compile(rf"\b(?:{'|'.join(VENUE_KEYWORDS)})\b", re.I)
_VENUE_LABEL_RE = re.compile(r"^(?:venue|location|where|fields?|address)\s*:\s*", re.I)
_MAP_LINK_RE = re.compile(r"google\.[a-z.]+/maps|maps\.google|maps\.apple|goo\.gl/maps|bing\.com/maps", re.I)
_MONEY_RE = re.compile(r"\$\s?(\d+(?:\.\d{1,2})?)(?:\s*[-–]\s*\$?\s?(\d+(?:\.\d{1,2})?))?")
_REFEREE_CONTEXT_RE = re.compile(r"\b(?:refs?|referees?|officials?|officiating|umpires?|assignors?)\b", re.I)
_FEE_CONTEXT_RE = re.compile(
    r"\b(?:team fee|entry fee|registration|register|per team|admission|gate fee|spectator|parking|vendor|sponsor)",
    re.I,
)
_HOTEL_RE = re.compile(r"\b(?:hotel|lodging|accommodations?|housing)\b", re.I)
_STIPEND_RE = re.compile(r"\b(?:stipend|per diem|reimburse(?:d|ment)?|mileage|travel|meals?)\b", re.I)
_CASH_AT_FIELD_RE = re.compile(r"\bcash\b.*\b(?:at the field|on site|onsite|at field|fieldside|field)\b", re.I)
_RATE_UNITS = (
    ("per_game", re.compile(r"\b(?:per|a|each|/)\s*(?:game|match)\b", re.I)),
    ("per_day", re.compile(r"\b(?:per|a|each|/)\s*day\b|\bdaily\b", re.I)),
    ("per_hour", re.compile(r"\b(?:per|an|each|/)\s*(?:hour|hr)\b|\bhourly\b", re.I)),
)
_DATE_CONTEXT_RE = re.compile(r"\b(?:tournament|dates?|when|event|schedule)\b", re.I)
_BLOCK_TAGS = ("address", "h1", "h2", "h3", "h4", "h5", "p", "li", "td", "th", "dd", "dt")


@dataclass(slots=True)
class PageFacts:
    facts: dict[FactKind, list[dict[str, Any]]] = field(default_factory=dict)
    links: list[str] = field(default_factory=list)

    def total(self) -> int:
        return sum(len(items) for items in self.facts.values())


def decode_cf_email(encoded: str) -> str | None:
    """Cloudflare email protection: first byte is the XOR key for the rest."""
    try:
        payload = bytes.fromhex(encoded)
    except ValueError:
        return None
    if len(payload) < 2:
        return None
    key = payload[0]
    return "".join(chr(byte ^ key) for byte in payload[1:])


def is_likely_email(email: str) -> bool:
    local, _, domain = email.strip().lower().rpartition("@")
    if not local or "." not in domain:
        return False
    if domain.rsplit(".", 1)[-1] not in EMAIL_TLDS:
        return False
    if any(domain == blocked or domain.endswith("." + blocked) for blocked in BLOCKED_EMAIL_DOMAINS):
        return False
    return local not in BLOCKED_EMAIL_LOCALS


def extract_page_facts(html: str, url: str) -> PageFacts:
    """Propose contact, venue, comp and date facts from one tournament page.

    Never raises; a page that cannot be parsed yields no facts.
    """
    if not html or not html.strip():
        return PageFacts()
    try:
        soup = BeautifulSoup(html, "html.parser")
        for tag in soup(["script", "style", "noscript", "template"]):
            tag.decompose()
        _inline_emails(soup)
        blocks = [text for text in (clean_text(block) for block in soup.find_all(_BLOCK_TAGS)) if text]
        text = _deobfuscate(clean_text(soup.get_text(" ")))

        facts: dict[FactKind, list[dict[str, Any]]] = {kind: [] for kind in FactKind}
        facts[FactKind.CONTACT] = _contacts(text, url)
        facts[FactKind.VENUE] = _venues(soup, url)
        facts[FactKind.DATE] = _dates(text, url)
        for kind, fields in _comp(blocks, url):
            facts[kind].append(fields)
        links = rank_links(soup, url)
    except Exception:  # pragma: no cover - malformed third-party markup
        logger.exception("fact extraction failed url=%s", url)
        return PageFacts()

    result = PageFacts(facts={kind: items for kind, items in facts.items() if items}, links=links)
    logger.debug("page facts extracted url=%s facts=%s links=%s", url, result.total(), len(links))
    return result


def rank_links(soup: BeautifulSoup, base_url: str) -> list[str]:
    """Same-host links ordered by how likely they lead to contact, venue or pay details."""
    base_host = _bare_host(base_url)
    scores: dict[str, int] = {}
    for link in soup.find_all("a", href=True):
        url = absolute_url(link["href"], base_url)
        if url is None or url == base_url or _bare_host(url) != base_host:
            continue
        path = urlsplit(url).path.lower()
        if path.endswith(SKIPPED_LINK_SUFFIXES):
            continue
        haystack = f"{path} {clean_text(link).lower()}"
        score = sum(2 for keyword in LINK_KEYWORDS if keyword in haystack)
        score += sum(4 for keyword in PRIORITY_LINK_KEYWORDS if keyword in haystack)
        score += sum(6 for keyword in REFEREE_LINK_KEYWORDS if keyword in haystack)
        if score > 0:
            scores[url] = max(score, scores.get(url, 0))
    return [url for url, _ in sorted(scores.items(), key=lambda item: (-item[1], item[0]))]


def _bare_host(url: str) -> str:
    host = (urlsplit(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def _inline_emails(soup: BeautifulSoup) -> None:
    """Put protected and mailto addresses into the page text where they appear."""
    for tag in soup.find_all(attrs={"data-cfemail": True}):
        decoded = decode_cf_email(str(tag.get("data-cfemail")))
        if decoded:
            tag.replace_with(f" {decoded} ")
    for link in soup.find_all("a", href=True):
        href = str(link["href"]).strip()
        email: str | None = None
        cf_match = _CF_EMAIL_HREF_RE.search(href)
        if cf_match:
            email = decode_cf_email(cf_match.group(1))
        elif href.lower().startswith("mailto:"):
            email = href[len("mailto:") :].split("?", 1)[0].strip()
        if not email or not isinstance(link, Tag):
            continue
        label = clean_text(link)
        link.replace_with(f" {label} {email} " if email.lower() not in label.lower() else f" {label} ")


def _deobfuscate(text: str) -> str:
    return _OBFUSCATED_EMAIL_RE.sub(
        lambda match: f"{match.group(1)}@{_OBFUSCATED_DOT_RE.sub('.', match.group(2))}", text
    )


def _role_cue(window: str) -> tuple[str | None, int]:
    lowered = window.lower()
    best_role: str | None = None
    best_index = -1
    for role, keywords in ROLE_KEYWORDS:
        for keyword in keywords:
            index = lowered.rfind(keyword)
            if index > best_index:
                best_role, best_index = role, index
    return best_role, best_index


def _name_in(window: str) -> str | None:
    names = [
        name
        for name in _NAME_RE.findall(window)
        if not any(word.lower().strip(".") in NAME_STOPWORDS for word in name.split())
    ]
    return names[-1] if names else None


def _describe_contact(text: str, start: int, floor: int) -> dict[str, Any]:
    window = text[max(floor, start - _CONTEXT_CHARS) : start]
    role, role_index = _role_cue(window)
    name = _name_in(window[role_index:] if role_index >= 0 else window)
    confidence = 0.4 + (0.3 if role else 0.0) + (0.2 if name else 0.0)
    return {
        "role": role or "general",
        "name": name,
        "evidence_text": window.strip()[-200:] or None,
        "confidence": round(confidence, 2),
    }


def _contacts(text: str, url: str) -> list[dict[str, Any]]:
    contacts: list[dict[str, Any]] = []
    positions: list[tuple[int, int]] = []
    seen: set[str] = set()
    floor = 0
    for match in _EMAIL_RE.finditer(text):
        email = match.group(0).strip(".").lower()
        if email in seen or not is_likely_email(email):
            floor = match.end()
            continue
        seen.add(email)
        contact = _describe_contact(text, match.start(), floor)
        contact.update({"email": email, "phone": None, "source_url": url})
        contacts.append(contact)
        positions.append((match.start(), match.end()))
        floor = match.end()

    for match in _PHONE_RE.finditer(text):
        phone = match.group(0).strip()
        nearest: int | None = None
        nearest_gap = _CONTEXT_CHARS
        for index, (start, end) in enumerate(positions):
            gap = match.start() - end if match.start() >= end else start - match.end()
            if 0 <= gap < nearest_gap and contacts[index]["phone"] is None:
                nearest, nearest_gap = index, gap
        if nearest is not None:
            contacts[nearest]["phone"] = phone
            continue
        contact = _describe_contact(text, match.start(), 0)
        if contact["role"] == "general" and contact["confidence"] < 0.7:
            continue
        contact.update({"email": None, "phone": phone, "source_url": url})
        contacts.append(contact)
    return contacts


def _venues(soup: BeautifulSoup, url: str) -> list[dict[str, Any]]:
    venues: list[dict[str, Any]] = []
    seen: set[tuple[str, str]] = set()
    for block in soup.find_all(_BLOCK_TAGS):
        text = clean_text(block)
        if not text or len(text) > 200:
            continue
        address = _ADDRESS_RE.search(text)
        if address is None:
            continue
        venue_name = _VENUE_LABEL_RE.sub("", text[: address.start()].strip(" ,:-–|")).strip(" ,:-–|") or None
        address_text = text[address.start() :].strip(" .,;|")[:160]
        key = ((venue_name or "").lower(), address_text.lower())
        if key in seen:
            continue
        seen.add(key)
        has_keyword = bool(_VENUE_KEYWORD_RE.search(text)) or block.name == "address"
        map_link = block.find("a", href=_MAP_LINK_RE) if isinstance(block, Tag) else None
        confidence = 0.5 + (0.3 if has_keyword else 0.0) + (0.1 if venue_name else 0.0)
        venues.append(
            {
                "venue_name": venue_name,
                "address_text": address_text,
                "venue_url": str(map_link["href"]) if map_link is not None else None,
                "source_url": url,
                "evidence_text": text,
                "confidence": round(confidence, 2),
            }
        )
    return venues


def _travel_lodging(text: str) -> str | None:
    if _HOTEL_RE.search(text):
        return "hotel"
    if _STIPEND_RE.search(text):
        return "stipend"
    return None


def _rate_unit(text: str) -> str:
    for unit, pattern in _RATE_UNITS:
        if pattern.search(text):
            return unit
    return "flat"


def _comp(blocks: list[str], url: str) -> list[tuple[FactKind, dict[str, Any]]]:
    found: list[tuple[FactKind, dict[str, Any]]] = []
    seen: set[str] = set()
    for index, line in enumerate(blocks):
        if line in seen:
            continue
        money = _MONEY_RE.search(line)
        travel = _travel_lodging(line)
        cash = bool(_CASH_AT_FIELD_RE.search(line))
        if not (money or travel or cash):
            continue
        window = blocks[max(0, index - 1) : index + 2]
        line_context = bool(_REFEREE_CONTEXT_RE.search(line))
        if not line_context and not any(_REFEREE_CONTEXT_RE.search(item) for item in window):
            continue
        if not line_context and _FEE_CONTEXT_RE.search(line):
            continue

        if cash:
            kind = FactKind.COMP_CASH
        elif money:
            kind = FactKind.COMP_RATE
        else:
            kind = FactKind.COMP_HOTEL
        seen.add(line)
        fields: dict[str, Any] = {
            "rate_text": line[:200],
            "rate_amount_min": float(money.group(1)) if money else None,
            "rate_amount_max": float(money.group(2) or money.group(1)) if money else None,
            "rate_unit": _rate_unit(line) if money else None,
            "travel_lodging": travel,
            "source_url": url,
            "evidence_text": " | ".join(window)[:400],
            "confidence": round(0.5 + (0.2 if line_context else 0.0) + (0.1 if money else 0.0), 2),
        }
        found.append((kind, fields))
    return found


def _dates(text: str, url: str) -> list[dict[str, Any]]:
    dates: list[dict[str, Any]] = []
    seen: set[str] = set()
    for match in DATE_PHRASE_RE.finditer(text):
        date_text = " ".join(match.group(0).split())
        if date_text.lower() in seen:
            continue
        start, end = parse_date_range(date_text)
        if start is None or end is None:
            continue
        seen.add(date_text.lower())
        lead = text[max(0, match.start() - 60) : match.start()]
        dates.append(
            {
                "date_text": date_text,
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "source_url": url,
                "evidence_text": text[max(0, match.start() - 60) : match.end() + 60].strip(),
                "confidence": 0.6 if _DATE_CONTEXT_RE.search(lead) else 0.4,
            }
        )
        if len(dates) >= MAX_DATE_FACTS:
            break
    return dates
