"""Query key builders.

Keys are tuples so that invalidation can target a prefix: ``photos_key(c)``
covers every filtered photo sequence of collection ``c``.
"""

from __future__ import annotations

from typing import Hashable


def collections_key() -> tuple:
    return ("collections",)


def collection_key(collection_id: str) -> tuple:
    return ("collections", collection_id)


def photos_key(collection_id: str | None = None, filters: Hashable | None = None) -> tuple:
    if collection_id is None:
        return ("photos",)
    if filters is None:
        return ("photos", collection_id)
    return ("photos", collection_id, filters)


def photo_detail_key(photo_id: str | None = None) -> tuple:
    return ("photo-detail",) if photo_id is None else ("photo-detail", photo_id)


def people_key(collection_id: str) -> tuple:
    return ("people", collection_id)


def clusters_key(collection_id: str) -> tuple:
    return ("clusters", collection_id)


def cluster_metadata_key(collection_id: str, cluster_ids: tuple[str, ...] | None = None) -> tuple:
    if cluster_ids is None:
        return ("cluster-metadata", collection_id)
    return ("cluster-metadata", collection_id, cluster_ids)


def members_key(collection_id: str) -> tuple:
    return ("members", collection_id)


def invites_key(collection_id: str) -> tuple:
    return ("invites", collection_id)


def invite_details_key(token: str) -> tuple:
    return ("invite", token)


def current_user_key() -> tuple:
    return ("current-user",)
