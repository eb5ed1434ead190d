"""Geographical Data Package

Location lookup backends (ip-api.com, local GeoIP2 database) and the
enrichment stage that applies them to validated proxies.
"""

from .geo_manager import GeoBackend, IpApiGeoBackend, GeoIP2Backend, create_geo_backend
from .geo_enricher import GeoEnricher

__all__ = [
    'GeoBackend',
    'IpApiGeoBackend',
    'GeoIP2Backend',
    'GeoEnricher',
    'create_geo_backend'
]
