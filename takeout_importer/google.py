"""
Google API clients for the remote collaborators.

- GoogleTimezoneLookup: Maps Time Zone API
- GoogleGeocoder: Maps Geocoding API (reverse geocoding)
- GooglePhotosClient: Photos Library API media item listing

The OAuth flow is out of scope; GooglePhotosClient takes a ready access
token. Every failure surfaces as RemoteServiceError and is never retried.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import requests

from takeout_importer.catalog import CatalogPage
from takeout_importer.errors import RemoteServiceError
from takeout_importer.logging import logger
from takeout_importer.models import Location
from takeout_importer.timezones import TimezoneInfo


TIMEZONE_URL = 'https://maps.googleapis.com/maps/api/timezone/json'
GEOCODE_URL = 'https://maps.googleapis.com/maps/api/geocode/json'
MEDIA_ITEMS_URL = 'https://photoslibrary.googleapis.com/v1/mediaItems'
MEDIA_ITEMS_SEARCH_URL = 'https://photoslibrary.googleapis.com/v1/mediaItems:search'

PAGE_SIZE = 100
DEFAULT_TIMEOUT = 30

# Place types whose names become location tags
WANTED_PLACE_TYPES = (
    'country',
    'administrative_area_level_1',
    'administrative_area_level_2',
    'administrative_area_level_3',
    'colloquial_area',
    'locality',
    'neighborhood',
    'natural_feature',
    'park',
    'point_of_interest',
)


@dataclass
class ReverseGeocode:
    """Formatted address plus named places, most specific result first."""
    address: str
    names: List[str] = field(default_factory=list)


class ReverseGeocoder(Protocol):
    def reverse_geocode(self, location: Location) -> ReverseGeocode:
        ...


def _get_json(
    session: requests.Session,
    method: str,
    url: str,
    timeout: float,
    **kwargs: Any,
) -> Dict[str, Any]:
    try:
        r = session.request(method, url, timeout=timeout, **kwargs)
        r.raise_for_status()
        body = r.json()
    except requests.exceptions.HTTPError as e:
        raise RemoteServiceError(f"HTTP error from {url}: {e}") from e
    except requests.exceptions.RequestException as e:
        raise RemoteServiceError(f"Request to {url} failed: {e}") from e
    except ValueError as e:
        raise RemoteServiceError(f"Response decode error from {url}: {e}") from e

    if not isinstance(body, dict):
        raise RemoteServiceError(f"Unexpected response from {url}")
    return body


def _check_status(body: Dict[str, Any]) -> None:
    status = body.get('status')
    if status != 'OK':
        raise RemoteServiceError(f"Bad response status: {status!r}, msg={body.get('error_message', '')!r}")


# --- Time Zone ---------------------------------------------------------------

class GoogleTimezoneLookup:
    """TimezoneLookup backed by the Google Maps Time Zone API."""

    def __init__(
        self,
        api_key: str,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def lookup(self, location: Location, when: datetime) -> TimezoneInfo:
        params = {
            'location': f"{location.latitude},{location.longitude}",
            'timestamp': str(int(when.timestamp())),
            'key': self.api_key,
        }
        body = _get_json(self.session, 'GET', TIMEZONE_URL, self.timeout, params=params)
        _check_status(body)

        try:
            info = TimezoneInfo(
                offset_seconds=int(body['rawOffset']) + int(body['dstOffset']),
                zone_id=body['timeZoneId'],
                name=body['timeZoneName'],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteServiceError(f"Bad response: missing {e}") from e

        logger.debug(f"Timezone lookup {params['location']} @ {when}: {info}")
        return info


# --- Geocoding ---------------------------------------------------------------

def _has_type(types: List[str], wanted: str) -> bool:
    return wanted in types


def _wanted(types: List[str]) -> bool:
    return any(t in types for t in WANTED_PLACE_TYPES)


def parse_reverse_geocode(body: Dict[str, Any]) -> ReverseGeocode:
    """Turn a Geocoding API response into an address and place names.

    Australian level 2 areas are council names like "Brisbane City"; their
    short name is used instead.
    """
    _check_status(body)
    results = body.get('results')
    if not results:
        raise RemoteServiceError('Bad response: empty results')

    address = results[0].get('formatted_address', '')

    country = ''
    for r in results:
        if _has_type(r.get('types', []), 'country'):
            country = r.get('formatted_address', '')

    names: List[str] = []
    for r in results:
        types = r.get('types', [])
        if not (_wanted(types) or _has_type(types, 'postal_code') or _has_type(types, 'street_address')):
            continue
        for component in r.get('address_components', []):
            component_types = component.get('types', [])
            if not _wanted(component_types):
                continue
            if _has_type(component_types, 'administrative_area_level_2') and country == 'Australia':
                name = component.get('short_name')
            else:
                name = component.get('long_name')
            if name and name not in names:
                names.append(name)

    return ReverseGeocode(address, names)


class GoogleGeocoder:
    """ReverseGeocoder backed by the Google Maps Geocoding API."""

    def __init__(
        self,
        api_key: str,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def reverse_geocode(self, location: Location) -> ReverseGeocode:
        params = {
            'latlng': f"{location.latitude},{location.longitude}",
            'key': self.api_key,
        }
        body = _get_json(self.session, 'GET', GEOCODE_URL, self.timeout, params=params)
        return parse_reverse_geocode(body)


# --- Photos Library ----------------------------------------------------------

class GooglePhotosClient:
    """RemoteCatalogClient for the Google Photos Library API."""

    def __init__(
        self,
        access_token: str,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.session = session or requests.Session()
        self.session.headers['Authorization'] = f"Bearer {access_token}"
        self.timeout = timeout

    def list_items(self, page_token: Optional[str] = None) -> CatalogPage:
        params = {'pageSize': str(PAGE_SIZE)}
        if page_token:
            params['pageToken'] = page_token
        body = _get_json(self.session, 'GET', MEDIA_ITEMS_URL, self.timeout, params=params)
        return CatalogPage(body.get('mediaItems', []), body.get('nextPageToken'))

    def search_items(self, collection_id: str, page_token: Optional[str] = None) -> CatalogPage:
        payload: Dict[str, Any] = {'albumId': collection_id, 'pageSize': PAGE_SIZE}
        if page_token:
            payload['pageToken'] = page_token
        body = _get_json(self.session, 'POST', MEDIA_ITEMS_SEARCH_URL, self.timeout, json=payload)
        return CatalogPage(body.get('mediaItems', []), body.get('nextPageToken'))
