"""
LinkedIn member analytics client.

Lists a member's posts inside a reporting window and collects per-post
statistics. LinkedIn grants analytics scopes unevenly across members, so both
steps try the precise endpoint first and degrade to an older, coarser one when
the precise endpoint answers 403:

* posts:       /rest/posts          -> /v2/shares
* statistics:  /rest/postAnalytics  -> /v2/socialActions/{urn}

Any other non-2xx status is an error.
"""

from datetime import date
from urllib.parse import quote

import httpx

from linkedin_pulse.config import settings
from linkedin_pulse.infrastructure.observability.logging import get_logger
from linkedin_pulse.models.domain.credential_domain import to_person_urn
from linkedin_pulse.models.domain.sync_domain import (
    AnalyticsPayload,
    LinkedInPost,
    PostStatistics,
)
from linkedin_pulse.utils.clock import date_end_ms, date_start_ms

logger = get_logger(__name__)

LINKEDIN_API_BASE_URL = "https://api.linkedin.com"
RESTLI_PROTOCOL_VERSION = "2.0.0"

REQUEST_TIMEOUT = 20  # seconds
POSTS_PAGE_SIZE = 100
MAX_POST_PAGES = 10
ANALYTICS_BATCH_SIZE = 20


class RemoteAnalyticsError(Exception):
    """LinkedIn analytics request failed outside the 403 fallback policy."""

    def __init__(self, message: str, status_code: int | None = None, endpoint: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class LinkedInAnalyticsService:
    """Fetches posts and per-post statistics for one member."""

    def __init__(
        self,
        api_version: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        base_url: str = LINKEDIN_API_BASE_URL,
        page_size: int = POSTS_PAGE_SIZE,
        max_pages: int = MAX_POST_PAGES,
        batch_size: int = ANALYTICS_BATCH_SIZE,
    ):
        self.api_version = api_version or settings.LINKEDIN_API_VERSION
        self.base_url = base_url
        self.page_size = page_size
        self.max_pages = max_pages
        self.batch_size = batch_size
        self._transport = transport

    def _client(self, access_token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=REQUEST_TIMEOUT,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {access_token}",
                "X-Restli-Protocol-Version": RESTLI_PROTOCOL_VERSION,
                "LinkedIn-Version": self.api_version,
            },
        )

    async def fetch_analytics(
        self,
        access_token: str,
        remote_subject_id: str,
        date_range_start: date,
        date_range_end: date,
    ) -> AnalyticsPayload:
        """
        Fetch posts created inside ``[date_range_start, date_range_end]`` and
        their statistics.

        Raises:
            RemoteAnalyticsError: On any non-2xx other than a fallback-eligible
                403, on network failure, or on an unparseable body
        """
        person_urn = to_person_urn(remote_subject_id)
        start_ms = date_start_ms(date_range_start)
        end_ms = date_end_ms(date_range_end)

        async with self._client(access_token) as client:
            posts, has_more, post_source = await self._fetch_posts(
                client, person_urn, start_ms, end_ms
            )
            statistics, statistics_source = await self._fetch_statistics(
                client, [post.urn for post in posts]
            )

        logger.info(
            "LinkedIn analytics fetched",
            remote_subject_id=remote_subject_id,
            post_count=len(posts),
            post_source=post_source,
            statistics_source=statistics_source,
            has_more=has_more,
        )

        return AnalyticsPayload(
            posts=posts,
            statistics=statistics,
            has_more=has_more,
            post_source=post_source,
            statistics_source=statistics_source,
        )

    async def _get_json(
        self,
        client: httpx.AsyncClient,
        path: str,
        endpoint: str,
        params: dict | None = None,
        allow_forbidden: bool = False,
    ) -> dict | None:
        """
        GET ``path`` and return the JSON body.

        Returns None only for a 403 when ``allow_forbidden`` is set.
        """
        try:
            response = await client.get(path, params=params)
        except httpx.RequestError as e:
            logger.error("LinkedIn request failed", endpoint=endpoint, error=str(e))
            raise RemoteAnalyticsError(
                f"Network error calling LinkedIn {endpoint}: {e}", endpoint=endpoint
            ) from e

        if response.status_code == 403 and allow_forbidden:
            logger.info("LinkedIn endpoint forbidden, using fallback", endpoint=endpoint)
            return None

        if not response.is_success:
            logger.warning(
                "LinkedIn request rejected",
                endpoint=endpoint,
                status_code=response.status_code,
                body_preview=response.text[:200],
            )
            raise RemoteAnalyticsError(
                f"LinkedIn {endpoint} request failed (HTTP {response.status_code})",
                status_code=response.status_code,
                endpoint=endpoint,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteAnalyticsError(
                f"Failed to parse LinkedIn {endpoint} response",
                status_code=response.status_code,
                endpoint=endpoint,
            ) from e

        return data if isinstance(data, dict) else {}

    async def _fetch_posts(
        self, client: httpx.AsyncClient, person_urn: str, start_ms: int, end_ms: int
    ) -> tuple[list[LinkedInPost], bool, str]:
        posts, has_more = await self._page_posts(
            client,
            "/rest/posts",
            "posts",
            {"author": person_urn, "q": "author"},
            self._parse_post,
            start_ms,
            end_ms,
            allow_forbidden=True,
        )
        if posts is not None:
            return posts, has_more, "posts"

        shares, has_more = await self._page_posts(
            client,
            "/v2/shares",
            "shares",
            {"q": "owners", "owners": person_urn},
            self._parse_share,
            start_ms,
            end_ms,
        )
        return shares, has_more, "shares"

    async def _page_posts(
        self,
        client: httpx.AsyncClient,
        path: str,
        endpoint: str,
        base_params: dict,
        parse,
        start_ms: int,
        end_ms: int,
        allow_forbidden: bool = False,
    ) -> tuple[list[LinkedInPost] | None, bool]:
        """
        Follow pages of ``path`` until exhausted, past the window, or the page cap.

        Returns ``(None, False)`` when the first page is forbidden and
        ``allow_forbidden`` is set.
        """
        collected: list[LinkedInPost] = []

        for page in range(self.max_pages):
            params = {**base_params, "start": page * self.page_size, "count": self.page_size}
            data = await self._get_json(
                client, path, endpoint, params=params, allow_forbidden=allow_forbidden and page == 0
            )
            if data is None:
                return None, False

            elements = data.get("elements") or []
            page_posts = [post for post in (parse(element) for element in elements) if post]

            collected.extend(
                post
                for post in page_posts
                if post.created_at is not None and start_ms <= post.created_at <= end_ms
            )

            if len(elements) < self.page_size:
                return collected, False

            # Results are newest first; once a page reaches past the window start
            # the remaining pages cannot contain posts inside it
            created = [post.created_at for post in page_posts if post.created_at is not None]
            if created and min(created) < start_ms:
                return collected, False

        logger.warning(
            "LinkedIn post listing truncated",
            endpoint=endpoint,
            max_pages=self.max_pages,
            collected=len(collected),
        )
        return collected, True

    @staticmethod
    def _parse_post(element: dict) -> LinkedInPost | None:
        urn = element.get("id")
        if not urn:
            return None
        article = (element.get("content") or {}).get("article") or {}
        return LinkedInPost(
            urn=urn,
            created_at=element.get("createdAt") or element.get("publishedAt"),
            text=element.get("commentary") or article.get("title"),
        )

    @staticmethod
    def _parse_share(element: dict) -> LinkedInPost | None:
        urn = element.get("activity")
        if not urn:
            return None
        return LinkedInPost(
            urn=urn,
            created_at=(element.get("created") or {}).get("time"),
            text=(element.get("text") or {}).get("text"),
        )

    async def _fetch_statistics(
        self, client: httpx.AsyncClient, post_urns: list[str]
    ) -> tuple[list[PostStatistics], str]:
        """
        Statistics for every post, in input order.

        After the first 403 from postAnalytics, this and all remaining posts
        use socialActions.
        """
        statistics: list[PostStatistics] = []
        use_fallback = False

        for offset in range(0, len(post_urns), self.batch_size):
            batch = post_urns[offset : offset + self.batch_size]

            if not use_fallback:
                batch_stats = await self._fetch_post_analytics(client, batch)
                if batch_stats is not None:
                    statistics.extend(batch_stats)
                    continue
                use_fallback = True

            for urn in batch:
                statistics.append(await self._fetch_social_actions(client, urn))

        return statistics, "social_actions" if use_fallback else "post_analytics"

    async def _fetch_post_analytics(
        self, client: httpx.AsyncClient, post_urns: list[str]
    ) -> list[PostStatistics] | None:
        encoded = ",".join(quote(urn, safe="") for urn in post_urns)
        path = f"/rest/postAnalytics?q=analytics&posts=List({encoded})"

        data = await self._get_json(client, path, "postAnalytics", allow_forbidden=True)
        if data is None:
            return None

        by_urn: dict[str, dict] = {}
        for element in data.get("elements") or []:
            urn = element.get("post") or element.get("entity")
            if urn:
                by_urn[urn] = element

        results = []
        for urn in post_urns:
            element = by_urn.get(urn, {})
            results.append(
                PostStatistics(
                    post_urn=urn,
                    impressions=element.get("impressionCount") or 0,
                    unique_impressions=element.get("uniqueImpressionsCount") or 0,
                    clicks=element.get("clickCount") or 0,
                    reactions=element.get("likeCount") or element.get("reactionCount") or 0,
                    comments=element.get("commentCount") or 0,
                    shares=element.get("shareCount") or 0,
                    source="post_analytics",
                )
            )
        return results

    async def _fetch_social_actions(self, client: httpx.AsyncClient, post_urn: str) -> PostStatistics:
        path = f"/v2/socialActions/{quote(post_urn, safe='')}"
        data = await self._get_json(client, path, "socialActions")

        return PostStatistics(
            post_urn=post_urn,
            reactions=(data.get("likesSummary") or {}).get("totalLikes") or 0,
            comments=(data.get("commentsSummary") or {}).get("totalFirstLevelComments") or 0,
            shares=(data.get("sharesSummary") or {}).get("totalShares") or 0,
            source="social_actions",
        )


# Singleton instance for application use
linkedin_analytics_service = LinkedInAnalyticsService()
