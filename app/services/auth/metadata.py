"""
Session metadata: client address, approximate location and device.

Computed once at login from the login request. Lookups are best effort;
nothing in here raises to the caller.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional, Protocol, Sequence

import geoip2.database
import geoip2.errors
import pycountry
from fastapi import Request
from user_agents import parse as parse_user_agent

from app.services.auth_schemas import UNKNOWN, DeviceInfo, LocationInfo, SessionMetadata

logger = logging.getLogger(__name__)

LOOPBACK_ADDRESS = "127.0.0.1"
EDGE_PROXY_HEADER = "cf-connecting-ip"
FORWARDED_FOR_HEADER = "x-forwarded-for"


@dataclass(frozen=True)
class NetworkInfo:
    """Network context of a request: peer address plus proxy headers (lower-case names)."""

    remote_addr: Optional[str] = None
    headers: Mapping[str, Sequence[str]] = field(default_factory=dict)

    @classmethod
    def from_request(cls, request: Request) -> "NetworkInfo":
        names = (EDGE_PROXY_HEADER, FORWARDED_FOR_HEADER)
        headers = {name: request.headers.getlist(name) for name in names}
        return cls(
            remote_addr=request.client.host if request.client else None,
            headers={name: values for name, values in headers.items() if values},
        )

    def header(self, name: str) -> Sequence[str]:
        return self.headers.get(name.lower(), ())


@dataclass(frozen=True)
class GeoLocation:
    country_code: Optional[str] = None
    city: Optional[str] = None
    coordinates: Optional[tuple[float, float]] = None


class GeoLookup(Protocol):
    def __call__(self, ip: str) -> Optional[GeoLocation]: ...


class NullGeoLookup:
    """Used when no geolocation database is configured; every lookup misses."""

    def __call__(self, ip: str) -> Optional[GeoLocation]:
        return None


class GeoIPLookup:
    """Lookup against a MaxMind City database (GeoLite2-City.mmdb or GeoIP2-City.mmdb)."""

    def __init__(self, database_path: str):
        self.reader = geoip2.database.Reader(database_path)

    def __call__(self, ip: str) -> Optional[GeoLocation]:
        try:
            response = self.reader.city(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return None

        coordinates = None
        if response.location.latitude is not None and response.location.longitude is not None:
            coordinates = (response.location.latitude, response.location.longitude)

        return GeoLocation(
            country_code=response.country.iso_code,
            city=response.city.name,
            coordinates=coordinates,
        )

    def close(self) -> None:
        self.reader.close()


def country_name(code: Optional[str]) -> str:
    """English short name for an ISO 3166-1 alpha-2 code, "Unknown" when unmappable."""
    if not code:
        return UNKNOWN
    try:
        country = pycountry.countries.get(alpha_2=code.upper())
    except (KeyError, LookupError):
        return UNKNOWN
    return country.name if country else UNKNOWN


def detect_device(user_agent: str) -> DeviceInfo:
    """Browser, OS and device type from a user-agent string."""
    ua = parse_user_agent(user_agent or "")

    if ua.is_bot:
        device_type = "bot"
    elif ua.is_tablet:
        device_type = "tablet"
    elif ua.is_mobile:
        device_type = "smartphone"
    elif ua.is_pc:
        device_type = "desktop"
    else:
        device_type = UNKNOWN

    def known(value: Optional[str]) -> str:
        return value if value and value != "Other" else UNKNOWN

    return DeviceInfo(
        browser=known(ua.browser.family),
        os=known(ua.os.family),
        type=device_type,
    )


class MetadataResolver:
    """
    Derives SessionMetadata from a request's network info and user agent.

    A geolocation miss returns the all-Unknown metadata without parsing
    the user agent.
    """

    def __init__(
        self,
        geo_lookup: Optional[GeoLookup] = None,
        device_detector: Callable[[str], DeviceInfo] = detect_device,
        dev_mode: bool = False,
    ):
        self.geo_lookup = geo_lookup or NullGeoLookup()
        self.device_detector = device_detector
        self.dev_mode = dev_mode

    def client_ip(self, network: NetworkInfo) -> str:
        if self.dev_mode:
            return LOOPBACK_ADDRESS

        edge = network.header(EDGE_PROXY_HEADER)
        if edge and edge[0]:
            return edge[0].strip()

        forwarded = network.header(FORWARDED_FOR_HEADER)
        if forwarded and forwarded[0]:
            first = forwarded[0].split(",")[0].strip()
            if first:
                return first

        return network.remote_addr or UNKNOWN

    def _locate(self, ip: str) -> Optional[GeoLocation]:
        try:
            return self.geo_lookup(ip)
        except Exception:
            logger.warning("Geolocation lookup failed for %s", ip, exc_info=True)
            return None

    def _device(self, user_agent: str) -> DeviceInfo:
        try:
            return self.device_detector(user_agent)
        except Exception:
            logger.warning("User-agent parsing failed", exc_info=True)
            return DeviceInfo()

    def resolve(self, network: NetworkInfo, user_agent: str) -> SessionMetadata:
        ip = self.client_ip(network)

        location = self._locate(ip)
        if location is None:
            return SessionMetadata.unknown(ip)

        latitude, longitude = location.coordinates or (0, 0)

        return SessionMetadata(
            location=LocationInfo(
                country=country_name(location.country_code),
                city=location.city or UNKNOWN,
                latitude=latitude,
                longitude=longitude,
            ),
            device=self._device(user_agent),
            ip=ip,
        )
