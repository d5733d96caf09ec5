"""Extraction strategies: independent ways of obtaining player data for a video."""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
import logging

import httpx
from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError, ExtractorError

from assessgen.errors import ExtractionError, compact_error
from assessgen.youtube.network import DEFAULT_USER_AGENT, MOBILE_USER_AGENT, YouTubeNetwork
from assessgen.youtube.page_state import extract_player_response
from assessgen.youtube.player import PlayerData, player_data_from_response, player_data_from_ytdlp

logger = logging.getLogger(__name__)

INNERTUBE_PLAYER_URL = "https://www.youtube.com/youtubei/v1/player?prettyPrint=false"
CONSENT_COOKIE = "CONSENT=YES+cb.20210328-17-p0.en+FX+000"
PAGE_TIMEOUT_SECONDS = 12.0
YTDLP_SOCKET_TIMEOUT_SECONDS = 10.0

# yt-dlp calls are blocking; an attempt abandoned on timeout keeps its worker
# until its own socket timeout fires, so they get a small pool of their own.
YTDLP_EXECUTOR = ThreadPoolExecutor(max_workers=4, thread_name_prefix="ytdlp")


class ExtractionStrategy(ABC):
    """One way of turning a video id into player data."""

    name: str = "strategy"
    proxy: str | None = None

    @abstractmethod
    async def fetch_player_data(self, video_id: str) -> PlayerData:
        """Return title and formats, or raise ``ExtractionError``."""

    def download_headers(self) -> dict[str, str]:
        """Headers the stream URL expects when it is fetched."""

        return {"User-Agent": DEFAULT_USER_AGENT}


class YtDlpStrategy(ExtractionStrategy):
    """Metadata extraction through yt-dlp, optionally with cookies or a proxy."""

    def __init__(
        self,
        *,
        name: str,
        proxy: str | None = None,
        cookie_file: str | None = None,
        socket_timeout: float = YTDLP_SOCKET_TIMEOUT_SECONDS,
    ) -> None:
        self.name = name
        self.proxy = proxy
        self.cookie_file = cookie_file
        self.socket_timeout = socket_timeout

    def build_options(self) -> dict:
        options: dict = {
            "quiet": True,
            "no_warnings": True,
            "skip_download": True,
            "noplaylist": True,
            "format": "bestaudio/best",
            "socket_timeout": self.socket_timeout,
            "retries": 1,
            "extractor_retries": 1,
        }
        if self.proxy:
            options["proxy"] = self.proxy
        if self.cookie_file:
            options["cookiefile"] = self.cookie_file
        return options

    async def fetch_player_data(self, video_id: str) -> PlayerData:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(YTDLP_EXECUTOR, self._extract, video_id)

    def _extract(self, video_id: str) -> PlayerData:
        watch_url = f"https://www.youtube.com/watch?v={video_id}"
        try:
            with YoutubeDL(self.build_options()) as ydl:
                info = ydl.extract_info(watch_url, download=False)
        except (DownloadError, ExtractorError) as exc:
            raise ExtractionError(compact_error(exc)) from exc

        if not isinstance(info, dict):
            raise ExtractionError("invalid yt-dlp payload")
        return player_data_from_ytdlp(info, video_id=video_id)


@dataclass(frozen=True, slots=True)
class InnerTubeProfile:
    """Device identity presented to the internal player API."""

    name: str
    client: dict[str, object]
    client_name_id: str
    user_agent: str
    extra_context: dict[str, object] = field(default_factory=dict)


INNERTUBE_PROFILES: tuple[InnerTubeProfile, ...] = (
    InnerTubeProfile(
        name="android",
        client={
            "clientName": "ANDROID",
            "clientVersion": "19.09.37",
            "androidSdkVersion": 30,
            "hl": "en",
            "gl": "US",
        },
        client_name_id="3",
        user_agent="com.google.android.youtube/19.09.37 (Linux; U; Android 11) gzip",
    ),
    InnerTubeProfile(
        name="tv",
        client={"clientName": "TVHTML5", "clientVersion": "7.20240724.13.00", "hl": "en"},
        client_name_id="7",
        user_agent=(
            "Mozilla/5.0 (SMART-TV; Linux; Tizen 6.0) AppleWebKit/538.1 "
            "(KHTML, like Gecko) Version/6.0 TV Safari/538.1"
        ),
    ),
    InnerTubeProfile(
        name="embedded",
        client={
            "clientName": "WEB_EMBEDDED_PLAYER",
            "clientVersion": "1.20240723.01.00",
            "hl": "en",
        },
        client_name_id="56",
        user_agent=DEFAULT_USER_AGENT,
        extra_context={"thirdParty": {"embedUrl": "https://www.youtube.com/"}},
    ),
)


class InnerTubeStrategy(ExtractionStrategy):
    """POST to the internal player API posing as a given device."""

    def __init__(
        self,
        profile: InnerTubeProfile,
        *,
        network: YouTubeNetwork,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.profile = profile
        self.name = f"innertube:{profile.name}"
        self.network = network
        self._transport = transport

    def build_payload(self, video_id: str) -> dict:
        context: dict[str, object] = {"client": dict(self.profile.client)}
        context.update(self.profile.extra_context)
        return {
            "videoId": video_id,
            "context": context,
            "contentCheckOk": True,
            "racyCheckOk": True,
        }

    def build_headers(self) -> dict[str, str]:
        headers = {
            "User-Agent": self.profile.user_agent,
            "Content-Type": "application/json",
            "Origin": "https://www.youtube.com",
            "Referer": "https://www.youtube.com/",
            "X-YouTube-Client-Name": self.profile.client_name_id,
            "X-YouTube-Client-Version": str(self.profile.client["clientVersion"]),
        }
        cookie_header = self.network.cookie_header()
        if cookie_header:
            headers["Cookie"] = cookie_header
        return headers

    def download_headers(self) -> dict[str, str]:
        return {"User-Agent": self.profile.user_agent}

    async def fetch_player_data(self, video_id: str) -> PlayerData:
        async with httpx.AsyncClient(
            timeout=PAGE_TIMEOUT_SECONDS, transport=self._transport
        ) as client:
            response = await client.post(
                INNERTUBE_PLAYER_URL,
                json=self.build_payload(video_id),
                headers=self.build_headers(),
            )
            if response.status_code >= 400:
                raise ExtractionError(f"player API answered HTTP {response.status_code}")
            try:
                payload = response.json()
            except ValueError as exc:
                raise ExtractionError("player API returned invalid JSON") from exc
        return player_data_from_response(payload, video_id=video_id)


class WatchPageStrategy(ExtractionStrategy):
    """Scrape the player response embedded in a public HTML page."""

    def __init__(
        self,
        *,
        name: str,
        url_template: str,
        user_agent: str,
        network: YouTubeNetwork,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.name = name
        self.url_template = url_template
        self.user_agent = user_agent
        self.network = network
        self._transport = transport

    def build_headers(self) -> dict[str, str]:
        cookies = [CONSENT_COOKIE]
        cookie_header = self.network.cookie_header()
        if cookie_header:
            cookies.append(cookie_header)
        return {
            "User-Agent": self.user_agent,
            "Accept-Language": "en-US,en;q=0.9",
            "Cookie": "; ".join(cookies),
        }

    def download_headers(self) -> dict[str, str]:
        return {"User-Agent": self.user_agent}

    async def fetch_player_data(self, video_id: str) -> PlayerData:
        url = self.url_template.format(video_id=video_id)
        async with httpx.AsyncClient(
            timeout=PAGE_TIMEOUT_SECONDS, follow_redirects=True, transport=self._transport
        ) as client:
            response = await client.get(url, headers=self.build_headers())
            if response.status_code >= 400:
                raise ExtractionError(f"page answered HTTP {response.status_code}")
            html_doc = response.text
        return player_data_from_response(extract_player_response(html_doc), video_id=video_id)


def build_default_strategies(
    network: YouTubeNetwork,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[ExtractionStrategy]:
    """Ordered chain: yt-dlp variants, device profiles, then page scraping."""

    strategies: list[ExtractionStrategy] = [YtDlpStrategy(name="ytdlp:direct")]
    if network.cookie_file:
        strategies.append(YtDlpStrategy(name="ytdlp:cookies", cookie_file=network.cookie_file))
    for index, proxy in enumerate(network.proxies, start=1):
        strategies.append(
            YtDlpStrategy(
                name=f"ytdlp:proxy{index}", proxy=proxy, cookie_file=network.cookie_file
            )
        )

    strategies.extend(
        InnerTubeStrategy(profile, network=network, transport=transport)
        for profile in INNERTUBE_PROFILES
    )
    strategies.append(
        WatchPageStrategy(
            name="page:mobile",
            url_template="https://m.youtube.com/watch?v={video_id}",
            user_agent=MOBILE_USER_AGENT,
            network=network,
            transport=transport,
        )
    )
    strategies.append(
        WatchPageStrategy(
            name="page:embed",
            url_template="https://www.youtube.com/embed/{video_id}",
            user_agent=DEFAULT_USER_AGENT,
            network=network,
            transport=transport,
        )
    )
    logger.debug("extraction chain built", extra={"strategies": [s.name for s in strategies]})
    return strategies
