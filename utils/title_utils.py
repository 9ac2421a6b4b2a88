"""Normalization helpers shared by source adapters and the source manager.

Consolidates the mapping of heterogeneous upstream values (ratings, types,
statuses, quality labels, HTML descriptions) onto the canonical model, plus
title keys used for de-duplication and fuzzy matching.
"""

import html
import re

from fuzzywuzzy import fuzz

from models.models import AiringStatus, AnimeType, Quality


def normalize_rating(value, scale: float | None = None) -> float | None:
    """Normalize an upstream score to a 0-10 scale.

    Args:
        value: Score as number or string ("4.5/5" carries its own scale)
        scale: Native upstream scale (5, 10 or 100); guessed when None

    Returns:
        Score rounded to 2 decimals, or None if unparseable

    Examples:
        87 -> 8.7
        "8.12" -> 8.12
        "4.5/5" -> 9.0
        4 (scale=5) -> 8.0
        "N/A" -> None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        match = re.search(r"(\d+(?:[.,]\d+)?)\s*(?:/\s*(\d+))?", value)
        if not match:
            return None
        number = float(match.group(1).replace(",", "."))
        if match.group(2):
            scale = float(match.group(2))
    else:
        number = float(value)

    if number < 0:
        return None
    if scale is None:
        scale = 100.0 if number > 10 else 10.0
    if scale <= 0 or number > scale:
        return None
    return round(number * 10.0 / scale, 2)


def map_type(raw: str | None) -> AnimeType:
    """Map an upstream format label to AnimeType (TV when unknown)."""
    label = (raw or "").strip().lower()
    if "movie" in label or "película" in label or "pelicula" in label:
        return AnimeType.MOVIE
    if "ova" in label:
        return AnimeType.OVA
    if "ona" in label:
        return AnimeType.ONA
    if "special" in label or "especial" in label:
        return AnimeType.SPECIAL
    return AnimeType.TV


def map_status(raw: str | None) -> AiringStatus:
    """Map an upstream status label to AiringStatus (Completed when unknown)."""
    label = (raw or "").strip().lower()
    if "finished" in label or "finalizado" in label:
        return AiringStatus.COMPLETED
    if "upcoming" in label or "not yet" in label or "próximamente" in label:
        return AiringStatus.UPCOMING
    if any(word in label for word in ("ongoing", "airing", "currently", "emision", "emisión")):
        return AiringStatus.ONGOING
    return AiringStatus.COMPLETED


def normalize_quality(raw: str | None) -> Quality:
    """Map an upstream quality label to Quality.

    Examples:
        "1080" / "FHD" -> 1080p
        "HD" / "720p" -> 720p
        "SD" -> 480p
        "default" -> auto
    """
    label = (raw or "").strip().lower()
    if "1080" in label or "fhd" in label:
        return Quality.Q1080
    if "720" in label or label == "hd":
        return Quality.Q720
    if "480" in label or label == "sd":
        return Quality.Q480
    if "360" in label:
        return Quality.Q360
    return Quality.AUTO


def strip_html(text: str | None) -> str:
    """Remove tags and entities from an upstream description."""
    if not text:
        return ""
    text = re.sub(r"<br\s*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    text = html.unescape(text)
    return re.sub(r"[ \t]+", " ", text).strip()


def dedupe_key(title: str) -> str:
    """Key used to collapse the same anime returned by different sources.

    Lowercased, punctuation-insensitive and whitespace-collapsed.

    Examples:
        "Naruto: Shippuden" -> "naruto shippuden"
        "  NARUTO  " -> "naruto"
    """
    title = re.sub(r"[^\w\s]", " ", title.lower())
    return re.sub(r"\s+", " ", title).strip()


def normalize_title(title: str) -> str:
    """Aggressive normalization for fuzzy matching across sources.

    Drops season/part/year markers and dub/sub tags on top of dedupe_key().

    Examples:
        "Jujutsu Kaisen Season 2 (Dub)" -> "jujutsu kaisen"
        "Solo Leveling (2024)" -> "solo leveling"
    """
    title = title.lower()
    title = re.sub(r"\((?:dub|sub|tv|\d{4})\)", " ", title)
    title = re.sub(r"\b(?:season|part|cour)\s*\d+\b", " ", title)
    title = re.sub(r"\b\d+(?:st|nd|rd|th)\s+season\b", " ", title)
    return dedupe_key(title)


def title_similarity(a: str, b: str) -> float:
    """Similarity of two titles in [0, 1] after normalization."""
    na, nb = normalize_title(a), normalize_title(b)
    if not na or not nb:
        return 0.0
    if na == nb:
        return 1.0
    return max(fuzz.ratio(na, nb), fuzz.token_set_ratio(na, nb)) / 100.0


def best_match(title: str, candidates: list[str], threshold: float) -> int | None:
    """Index of the candidate most similar to title.

    Args:
        title: Title to look for
        candidates: Candidate titles
        threshold: Minimum similarity in [0, 1]

    Returns:
        Index of the best candidate, or None if none reaches threshold

    Ties (e.g. "Naruto" vs "Naruto" and "Naruto Shippuden", both a full
    token-set match) go to the closer plain ratio, then to the earlier index.
    """
    wanted = normalize_title(title)
    best_index, best_key = None, None
    for index, candidate in enumerate(candidates):
        score = title_similarity(title, candidate)
        if score < threshold:
            continue
        key = (score, fuzz.ratio(wanted, normalize_title(candidate)))
        if best_key is None or key > best_key:
            best_index, best_key = index, key
    return best_index
