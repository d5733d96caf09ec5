"""Process-wide YouTube network configuration (proxies and cookies)."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from http.cookiejar import LoadError, MozillaCookieJar
import logging
import os

from assessgen.config import Settings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
MOBILE_USER_AGENT = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Mobile Safari/537.36"
)


@dataclass(frozen=True, slots=True)
class YouTubeNetwork:
    """Read-only proxy list and cookie material shared by all requests."""

    proxies: tuple[str, ...] = ()
    cookie_file: str | None = None
    cookies: dict[str, str] = field(default_factory=dict)

    @property
    def has_cookies(self) -> bool:
        return self.cookie_file is not None

    def cookie_header(self) -> str | None:
        if not self.cookies:
            return None
        return "; ".join(f"{name}={value}" for name, value in self.cookies.items())


def build_network(settings: Settings) -> YouTubeNetwork:
    """Load proxies and the Netscape cookie file described by settings."""

    cookie_file = settings.youtube_cookies_file.strip() if settings.youtube_cookies_file else None
    if cookie_file and (not os.path.isfile(cookie_file) or os.path.getsize(cookie_file) == 0):
        logger.warning("youtube cookie file missing or empty", extra={"path": cookie_file})
        cookie_file = None

    cookies: dict[str, str] = {}
    if cookie_file:
        jar = MozillaCookieJar(cookie_file)
        try:
            jar.load(ignore_discard=True, ignore_expires=True)
        except (LoadError, OSError):
            logger.warning("youtube cookie file unreadable", extra={"path": cookie_file})
            cookie_file = None
        else:
            cookies = {
                cookie.name: cookie.value or ""
                for cookie in jar
                if cookie.domain.lstrip(".").endswith("youtube.com")
            }

    network = YouTubeNetwork(
        proxies=tuple(settings.proxy_urls),
        cookie_file=cookie_file,
        cookies=cookies,
    )
    logger.info(
        "youtube network configured",
        extra={"proxy_count": len(network.proxies), "cookies_loaded": network.has_cookies},
    )
    return network


@lru_cache(maxsize=1)
def get_youtube_network() -> YouTubeNetwork:
    """Return the process-wide network configuration."""

    return build_network(get_settings())
