"""Geographic Information Backends

Lookup sources for the city and country of a proxy address: the ip-api.com
JSON service over aiohttp, or a local MaxMind database through geoip2.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from aiohttp import ClientSession, ClientTimeout, ClientError

# Optional imports with fallbacks
try:
    import geoip2.database
    import geoip2.errors
    HAS_GEOIP2 = True
except ImportError:
    HAS_GEOIP2 = False

from ..config import ScanConfig
from ..exceptions import ConfigurationError, GeoLookupError
from ..models import GeoFailure, GeoLocation, IPAddress

logger = logging.getLogger(__name__)


class GeoBackend:
    """Resolves one address to a location or raises ``GeoLookupError``"""

    name = "geo"

    async def __aenter__(self) -> 'GeoBackend':
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def lookup(self, address: IPAddress) -> GeoLocation:
        raise NotImplementedError

    async def close(self):
        pass


def _parse_retry_after(headers) -> Optional[float]:
    # ip-api reports seconds until the quota window resets in X-Ttl
    for header in ('X-Ttl', 'Retry-After'):
        value = headers.get(header)
        if value is None:
            continue
        try:
            return max(0.0, float(value))
        except ValueError:
            continue
    return None


class IpApiGeoBackend(GeoBackend):
    """ip-api.com JSON endpoint"""

    name = "ip-api"

    def __init__(self, config: Optional[ScanConfig] = None):
        self.config = config or ScanConfig()
        self.endpoint = self.config.geo_endpoint
        self._session: Optional[ClientSession] = None

    async def __aenter__(self) -> 'IpApiGeoBackend':
        self._session = ClientSession(
            timeout=ClientTimeout(total=self.config.geo_timeout),
            headers={'User-Agent': self.config.user_agent}
        )
        return self

    async def lookup(self, address: IPAddress) -> GeoLocation:
        if self._session is None:
            raise RuntimeError("IpApiGeoBackend must be used as an async context manager")

        url = self.endpoint.format(ip=address)
        try:
            async with self._session.get(url) as response:
                if response.status == 429:
                    raise GeoLookupError(GeoFailure.RATE_LIMITED, "Rate limited by ip-api",
                                         retry_after=_parse_retry_after(response.headers))
                if response.status >= 500:
                    raise GeoLookupError(GeoFailure.TIMEOUT, f"ip-api unavailable (HTTP {response.status})")
                if response.status != 200:
                    raise GeoLookupError(GeoFailure.SERVICE_ERROR, f"HTTP {response.status}")
                data = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise GeoLookupError(GeoFailure.TIMEOUT, "Lookup timeout") from e
        except ClientError as e:
            raise GeoLookupError(GeoFailure.TIMEOUT, f"Lookup failed: {e}") from e
        except ValueError as e:
            raise GeoLookupError(GeoFailure.SERVICE_ERROR, f"Malformed response: {e}") from e

        return self._parse_response(data)

    @staticmethod
    def _parse_response(data: Dict[str, Any]) -> GeoLocation:
        """Parse an ip-api response body"""
        if not isinstance(data, dict):
            raise GeoLookupError(GeoFailure.SERVICE_ERROR, "Unexpected response body")
        if data.get('status') != 'success':
            raise GeoLookupError(GeoFailure.SERVICE_ERROR, data.get('message') or 'lookup failed')
        return GeoLocation(
            city=data.get('city') or None,
            country=data.get('country') or None,
            country_code=data.get('countryCode') or None,
        )

    async def close(self):
        if self._session is not None:
            await self._session.close()
            self._session = None


class GeoIP2Backend(GeoBackend):
    """Local MaxMind GeoLite2/GeoIP2 City database"""

    name = "geoip2"

    def __init__(self, db_path: str):
        if not HAS_GEOIP2:
            raise ConfigurationError("GeoIP2 not available. Install with: pip install 'proxscan[geolocation]'")
        try:
            self.reader = geoip2.database.Reader(db_path)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Failed to load GeoIP2 database from {db_path}: {e}") from e
        logger.info(f"GeoIP2 database loaded from: {db_path}")

    async def lookup(self, address: IPAddress) -> GeoLocation:
        try:
            response = self.reader.city(str(address))
        except geoip2.errors.AddressNotFoundError as e:
            raise GeoLookupError(GeoFailure.SERVICE_ERROR, f"{address} not in database") from e
        except ValueError as e:
            raise GeoLookupError(GeoFailure.SERVICE_ERROR, str(e)) from e

        return GeoLocation(
            city=response.city.name,
            country=response.country.name,
            country_code=response.country.iso_code,
        )

    async def close(self):
        if self.reader is not None:
            self.reader.close()
            self.reader = None


def create_geo_backend(config: ScanConfig) -> GeoBackend:
    """Pick the lookup source configured for the run"""
    if config.geoip_db_path:
        return GeoIP2Backend(config.geoip_db_path)
    return IpApiGeoBackend(config)
