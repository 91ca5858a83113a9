"""Shared helpers for backend identifiers and URLs."""

import re

# Absolute URL, e.g. "https://host/..."
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")

# /photos/{id} or /faces/{id}, id is lowercase hex and hyphens
_ENTITY_SEGMENT_RE = re.compile(r"/(?:photos|faces)/([a-f0-9-]+)(?=/|$|\?|#)")

# Relative face thumbnail path the image loaders expect
_FACE_THUMBNAIL_RE = re.compile(r"/api/faces/[a-f0-9-]+/thumbnail", re.IGNORECASE)


def extract_id(raw: str | None) -> str:
    """Return the canonical entity id held by ``raw``.

    The backend sometimes sends a bare id and sometimes a URL that embeds
    one, e.g. ``http://host/api/faces/abc-123/thumbnail/image``. Bare ids are
    returned unchanged; for URLs the id from the first ``/photos/{id}`` or
    ``/faces/{id}`` segment is returned. A URL without such a segment is
    returned unchanged so it degrades to an unmatched key.
    """
    if not raw:
        return ""
    if not _SCHEME_RE.match(raw):
        return raw
    match = _ENTITY_SEGMENT_RE.search(raw)
    return match.group(1) if match else raw


def normalize_thumbnail_path(url: str | None) -> str:
    """Reduce an absolute face thumbnail URL to ``/api/faces/{id}/thumbnail``.

    Auto-generated thumbnails come back as full URLs while hand-picked ones
    are already relative paths; anything that is not a face thumbnail is
    returned unchanged.
    """
    if not url:
        return ""
    if "/api/faces/" not in url:
        return url
    match = _FACE_THUMBNAIL_RE.search(url)
    return match.group(0) if match else url
