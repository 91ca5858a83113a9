"""
Client-side data synchronization on top of the photo API.

- cache: shared query cache with prefix invalidation
- paging: cursor and tiered offset/limit paged fetchers
- photos: collection photo sequences and photo detail
- people: named people and clusters unified into one entity list
- mutations: writes plus the invalidation that follows them
- lightbox: photo navigator with wraparound and neighbor prefetch
- thumbnails: image byte loaders
- collections: collection, membership and user reads
"""

from .cache import Query, QueryCache
from .lightbox import LightboxNavigator, NullPresentation
from .mutations import MutationCoordinator, MutationResult, YearCorrection
from .paging import CursorPagedFetcher, OffsetPagedFetcher, Page, PagedData, TieredPageSize
from .people import ClusterMetadata, EntityUnifier, extract_cluster_ids
from .photos import CollectionPhotos, PhotoDetails, PhotoFilters
from .thumbnails import ImageLoader
from .types import FaceAnnotation, PersonLikeEntity, Photo, PhotoDetail

__all__ = [
    "Query",
    "QueryCache",
    "LightboxNavigator",
    "NullPresentation",
    "MutationCoordinator",
    "MutationResult",
    "YearCorrection",
    "CursorPagedFetcher",
    "OffsetPagedFetcher",
    "Page",
    "PagedData",
    "TieredPageSize",
    "ClusterMetadata",
    "EntityUnifier",
    "extract_cluster_ids",
    "CollectionPhotos",
    "PhotoDetails",
    "PhotoFilters",
    "ImageLoader",
    "FaceAnnotation",
    "PersonLikeEntity",
    "Photo",
    "PhotoDetail",
]
