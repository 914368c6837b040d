"""
Uplink Monitor identity providers.
One lookup function per public service, each normalizing its payload into an IdentityRecord.
A ProviderClient pairs a lookup with its rate gate, timeout and error wrapping.
"""

import json
import urllib.request
from typing import Callable, List, Optional

from config import PROVIDER_TIMEOUT_S, USER_AGENT
from errors import ProviderError
from models import IdentityRecord
from services.rate_limiter import RateLimiter
from toolkit.utils import utc_now_iso

HttpGet = Callable[[str, float], str]


def http_get(url: str, timeout: float) -> str:
    req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    with urllib.request.urlopen(req, timeout=timeout) as response:
        status = getattr(response, "status", 200)
        if status != 200:
            raise ValueError(f"HTTP {status}")
        return response.read().decode("utf-8", errors="replace")


def _text(value, default: str = "") -> str:
    if value is None:
        return default
    return str(value).strip() or default


def _number(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class Http:
    """Bound HTTP helpers handed to lookup functions."""

    def __init__(self, get: HttpGet, timeout: float):
        self._get = get
        self.timeout = timeout

    def text(self, url: str) -> str:
        return self._get(url, self.timeout)

    def json(self, url: str) -> dict:
        data = json.loads(self.text(url))
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        return data


# ---------------------- lookups ----------------------
def lookup_ip_api(http: Http, source: str) -> IdentityRecord:
    data = http.json(
        "http://ip-api.com/json/?fields=status,message,country,countryCode,region,"
        "regionName,city,zip,lat,lon,timezone,isp,org,as,query"
    )
    if data.get("status") != "success":
        raise ValueError(data.get("message") or "status != success")
    return IdentityRecord(
        ip=_text(data.get("query")),
        country=_text(data.get("country")),
        region=_text(data.get("regionName")),
        city=_text(data.get("city")),
        isp=_text(data.get("isp")),
        organization=_text(data.get("org")),
        latitude=_number(data.get("lat")),
        longitude=_number(data.get("lon")),
        timezone=_text(data.get("timezone")),
        source=source,
        resolved_at=utc_now_iso(),
        country_code=_text(data.get("countryCode")),
        asn=_text(data.get("as")),
    )


def lookup_freeipapi(http: Http, source: str) -> IdentityRecord:
    data = http.json("https://freeipapi.com/api/json")
    zones = data.get("timeZones") or []
    return IdentityRecord(
        ip=_text(data.get("ipAddress")),
        country=_text(data.get("countryName")),
        region=_text(data.get("regionName")),
        city=_text(data.get("cityName")),
        isp=_text(data.get("asnOrganization"), "N/A"),
        organization=_text(data.get("asnOrganization")),
        latitude=_number(data.get("latitude")),
        longitude=_number(data.get("longitude")),
        timezone=_text(zones[0] if zones else data.get("timeZone")),
        source=source,
        resolved_at=utc_now_iso(),
        country_code=_text(data.get("countryCode")),
        asn=_text(data.get("asn")),
        is_proxy=bool(data.get("isProxy")),
    )


def _ipwhois_record(data: dict, source: str) -> IdentityRecord:
    if data.get("success") is False:
        raise ValueError(data.get("message") or "success == false")
    connection = data.get("connection") or {}
    tz = data.get("timezone") or {}
    security = data.get("security") or {}
    return IdentityRecord(
        ip=_text(data.get("ip")),
        country=_text(data.get("country")),
        region=_text(data.get("region")),
        city=_text(data.get("city")),
        isp=_text(connection.get("isp")),
        organization=_text(connection.get("org")),
        latitude=_number(data.get("latitude")),
        longitude=_number(data.get("longitude")),
        timezone=_text(tz.get("id") if isinstance(tz, dict) else tz),
        source=source,
        resolved_at=utc_now_iso(),
        country_code=_text(data.get("country_code")),
        asn=_text(connection.get("asn")),
        is_proxy=bool(security.get("proxy")),
    )


def lookup_ipwhois(http: Http, source: str) -> IdentityRecord:
    return _ipwhois_record(http.json("https://ipwho.is/"), source)


def lookup_ipify_ipapi(http: Http, source: str) -> IdentityRecord:
    """ipify.org for the address, then ipapi.co for its geolocation."""
    ip = _text(http.json("https://api.ipify.org?format=json").get("ip"))
    if not ip:
        raise ValueError("ipify returned no address")
    data = http.json(f"https://ipapi.co/{ip}/json/")
    if data.get("error"):
        raise ValueError(data.get("reason") or "ipapi.co error")
    return IdentityRecord(
        ip=_text(data.get("ip"), ip),
        country=_text(data.get("country_name")),
        region=_text(data.get("region")),
        city=_text(data.get("city")),
        isp=_text(data.get("org")),
        organization=_text(data.get("org")),
        latitude=_number(data.get("latitude")),
        longitude=_number(data.get("longitude")),
        timezone=_text(data.get("timezone")),
        source=source,
        resolved_at=utc_now_iso(),
        country_code=_text(data.get("country_code")),
        asn=_text(data.get("asn")),
    )


def lookup_icanhazip_ipwhois(http: Http, source: str) -> IdentityRecord:
    """icanhazip.com (plain text) for the address, then ipwho.is by IP."""
    ip = http.text("https://ipv4.icanhazip.com").strip()
    if not ip:
        raise ValueError("icanhazip returned no address")
    return _ipwhois_record(http.json(f"https://ipwho.is/{ip}"), source)


Lookup = Callable[[Http, str], IdentityRecord]

# Fallback priority order.
DEFAULT_LOOKUPS = (
    ("ip-api.com", lookup_ip_api),
    ("freeipapi.com", lookup_freeipapi),
    ("ipwho.is", lookup_ipwhois),
    ("ipify.org + ipapi.co", lookup_ipify_ipapi),
    ("icanhazip.com + ipwho.is", lookup_icanhazip_ipwhois),
)


class ProviderClient:
    """One named identity source behind a rate gate and a request timeout."""

    def __init__(
        self,
        name: str,
        lookup: Lookup,
        limiter: RateLimiter,
        *,
        timeout: float = PROVIDER_TIMEOUT_S,
        get: Optional[HttpGet] = None,
    ):
        self.name = name
        self.limiter = limiter
        self._lookup = lookup
        self._http = Http(get or http_get, float(timeout))

    def fetch(self) -> IdentityRecord:
        self.limiter.acquire(self.name)
        try:
            record = self._lookup(self._http, self.name)
        except Exception as exc:
            raise ProviderError(self.name, exc) from exc
        if not record.ip:
            raise ProviderError(self.name, "response carried no IP address")
        return record

    def __repr__(self) -> str:
        return f"ProviderClient({self.name!r})"


def default_providers(
    limiter: RateLimiter,
    *,
    timeout: float = PROVIDER_TIMEOUT_S,
    get: Optional[HttpGet] = None,
) -> List[ProviderClient]:
    return [ProviderClient(name, lookup, limiter, timeout=timeout, get=get) for name, lookup in DEFAULT_LOOKUPS]
