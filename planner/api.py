import hashlib
import logging
from dataclasses import asdict, dataclass, field
from typing import List, Optional

import requests
from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)

STATUS_ACTIVE = 'active'
STATUS_COMPLETED = 'completed'


class ApiError(Exception):
    """Raised for any failed call to the travel API."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.message = message
        self.status = status


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

@dataclass
class Place:
    id: int
    project_id: int
    external_id: int
    title: Optional[str] = None
    artist_display: Optional[str] = None
    place_of_origin: Optional[str] = None
    image_id: Optional[str] = None
    notes: Optional[str] = None
    visited: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            project_id=data['project_id'],
            external_id=data['external_id'],
            title=data.get('title'),
            artist_display=data.get('artist_display'),
            place_of_origin=data.get('place_of_origin'),
            image_id=data.get('image_id'),
            notes=data.get('notes'),
            visited=bool(data.get('visited', False)),
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at'),
        )

    @property
    def image_url(self):
        return image_url(self.image_id)


@dataclass
class Project:
    id: int
    name: str
    description: Optional[str] = None
    start_date: Optional[str] = None
    status: str = STATUS_ACTIVE
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    places: List[Place] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            name=data['name'],
            description=data.get('description'),
            start_date=data.get('start_date'),
            status=data.get('status') or STATUS_ACTIVE,
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at'),
            places=[Place.from_dict(p) for p in data.get('places') or []],
        )

    def to_dict(self):
        return asdict(self)

    @property
    def visited_count(self):
        return sum(1 for p in self.places if p.visited)

    @property
    def external_ids(self):
        return {p.external_id for p in self.places}


@dataclass
class ProjectListItem:
    id: int
    name: str
    description: Optional[str] = None
    start_date: Optional[str] = None
    status: str = STATUS_ACTIVE
    place_count: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            name=data['name'],
            description=data.get('description'),
            start_date=data.get('start_date'),
            status=data.get('status') or STATUS_ACTIVE,
            place_count=data.get('place_count', 0),
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at'),
        )


@dataclass
class PaginatedProjects:
    items: List[ProjectListItem]
    total: int
    page: int
    limit: int
    pages: int

    @classmethod
    def from_dict(cls, data):
        return cls(
            items=[ProjectListItem.from_dict(i) for i in data.get('items', [])],
            total=data.get('total', 0),
            page=data.get('page', 1),
            limit=data.get('limit', 10),
            pages=data.get('pages', 0),
        )


@dataclass
class ArtworkResult:
    """Search-result projection of a catalog entry. Never stored by the API."""
    id: int
    title: Optional[str] = None
    artist_display: Optional[str] = None
    place_of_origin: Optional[str] = None
    image_id: Optional[str] = None
    thumbnail: Optional[str] = None

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            title=data.get('title'),
            artist_display=data.get('artist_display'),
            place_of_origin=data.get('place_of_origin'),
            image_id=data.get('image_id'),
            thumbnail=data.get('thumbnail'),
        )

    def to_dict(self):
        return asdict(self)


@dataclass
class ArtworkSearchResponse:
    results: List[ArtworkResult]
    total: int
    page: int

    @classmethod
    def from_dict(cls, data):
        return cls(
            results=[ArtworkResult.from_dict(r) for r in data.get('results', [])],
            total=data.get('total', 0),
            page=data.get('page', 1),
        )


def image_url(image_id, width=300):
    """IIIF URL of a catalog image, or None when the entry has no image."""
    if not image_id:
        return None
    return f"{settings.ARTWORK_IIIF_URL}/{image_id}/full/{width},/0/default.jpg"


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

def _error_message(response):
    try:
        body = response.json()
    except ValueError:
        body = {}
    if isinstance(body, dict):
        detail = body.get('detail')
        if isinstance(detail, str) and detail:
            return detail
        if isinstance(detail, list) and detail and isinstance(detail[0], dict) and detail[0].get('msg'):
            return detail[0]['msg']
        if body.get('error'):
            return str(body['error'])
        # DRF-style validation errors: {"field": ["message", ...]}
        for name, errors in body.items():
            if isinstance(errors, list) and errors:
                return f"{name}: {errors[0]}"
    return f"Request failed: {response.status_code}"


def _request(method, path, params=None, payload=None):
    url = f"{settings.TRAVEL_API_URL.rstrip('/')}{path}"
    try:
        response = requests.request(
            method,
            url,
            params=params,
            json=payload,
            headers={'Content-Type': 'application/json'},
            timeout=settings.TRAVEL_API_TIMEOUT,
        )
    except requests.RequestException as exc:
        logger.warning("%s %s failed: %s", method, url, exc)
        raise ApiError("Could not reach the travel API.") from exc

    logger.debug("%s %s -> %s", method, url, response.status_code)

    if not response.ok:
        message = _error_message(response)
        logger.warning("%s %s returned %s: %s", method, url, response.status_code, message)
        raise ApiError(message, status=response.status_code)

    if response.status_code == 204:
        return None
    try:
        return response.json()
    except ValueError as exc:
        logger.warning("%s %s returned a body that is not JSON", method, url)
        raise ApiError("Invalid response from the travel API.", status=response.status_code) from exc


def _parse(record, data):
    """Build a typed record, turning a malformed body into an ApiError."""
    try:
        return record.from_dict(data)
    except (KeyError, TypeError, AttributeError, ValueError) as exc:
        logger.warning("Malformed %s from the travel API: %r", record.__name__, exc)
        raise ApiError("Invalid response from the travel API.") from exc


def _compact(**fields):
    return {key: value for key, value in fields.items() if value is not None}


# ---------------------------------------------------------------------------
# Project API
# ---------------------------------------------------------------------------

def list_projects(page=1, limit=10, status=None) -> PaginatedProjects:
    params = {'page': page, 'limit': limit}
    if status:
        params['status'] = status
    return _parse(PaginatedProjects, _request('GET', '/api/projects', params=params))


def get_project(project_id) -> Project:
    return _parse(Project, _request('GET', f'/api/projects/{project_id}'))


def create_project(name, description=None, start_date=None, places=()) -> Project:
    """
    Create a project and its places in one request.
    `places` is a sequence of {"external_id": ..., "notes": ...} dicts.
    """
    payload = _compact(name=name, description=description, start_date=start_date)
    payload['places'] = [_compact(external_id=p['external_id'], notes=p.get('notes')) for p in places]
    return _parse(Project, _request('POST', '/api/projects', payload=payload))


def update_project(project_id, name=None, description=None, start_date=None) -> Project:
    payload = _compact(name=name, description=description, start_date=start_date)
    return _parse(Project, _request('PUT', f'/api/projects/{project_id}', payload=payload))


def delete_project(project_id) -> None:
    _request('DELETE', f'/api/projects/{project_id}')


# ---------------------------------------------------------------------------
# Place API
# ---------------------------------------------------------------------------

def add_place(project_id, external_id, notes=None) -> Place:
    payload = _compact(external_id=external_id, notes=notes)
    return _parse(Place, _request('POST', f'/api/projects/{project_id}/places', payload=payload))


def update_place(project_id, place_id, notes=None, visited=None) -> Place:
    payload = _compact(notes=notes, visited=visited)
    return _parse(
        Place,
        _request('PATCH', f'/api/projects/{project_id}/places/{place_id}', payload=payload)
    )


# ---------------------------------------------------------------------------
# Artwork search
# ---------------------------------------------------------------------------

def search_artworks(q, page=1, limit=10) -> ArtworkSearchResponse:
    """
    Search the artwork catalog through the travel API.
    Responses are cached so that paging back and forth in the widget
    does not hit the catalog again.
    """
    digest = hashlib.md5(f"{q}|{page}|{limit}".encode('utf-8')).hexdigest()
    cache_key = f"artwork_search_{digest}"
    cached_data = cache.get(cache_key)
    if cached_data is not None:
        return ArtworkSearchResponse.from_dict(cached_data)

    data = _request('GET', '/api/artworks/search', params={'q': q, 'page': page, 'limit': limit})
    result = _parse(ArtworkSearchResponse, data)
    cache.set(cache_key, data, timeout=settings.ARTWORK_SEARCH_CACHE_TIMEOUT)
    return result
