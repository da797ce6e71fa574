"""
News reader tool backed by a Hacker-News-style API.

Top story ids come from `{base}/topstories.json`; each story is then
fetched from `{base}/item/{id}.json` with bounded concurrency.
"""
import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field

from toolengine.config import Settings, get_settings
from toolengine.tools.base import NativeFunction, Tool, ToolDefinition
from toolengine.tools.fanout import bounded_gather

logger = logging.getLogger(__name__)


class NewsReaderInput(BaseModel):
    limit: int = Field(default=10, ge=1, le=30, description="Number of top stories to fetch")


class Story(BaseModel):
    id: int
    title: str = ""
    url: str | None = None
    score: int | None = None
    by: str | None = None
    time: int | None = None


class NewsReaderOutput(BaseModel):
    stories: list[Story] = Field(default_factory=list)
    total: int = Field(..., description="Number of stories returned")
    failed: list[int] = Field(default_factory=list, description="Story ids that could not be fetched")


class HackerNewsReader:
    """
    Fetches top stories.

    With fail_fast the first failed item fetch aborts the whole read;
    otherwise failed ids are reported in the output.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
        concurrency: int | None = None,
        fail_fast: bool | None = None
    ) -> None:
        self.settings = settings or get_settings()
        self.base_url = self.settings.news_api_base_url
        self.concurrency = concurrency or self.settings.fanout_concurrency
        self.fail_fast = self.settings.fanout_fail_fast if fail_fast is None else fail_fast
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": self.settings.http_user_agent},
                timeout=httpx.Timeout(self.settings.http_timeout)
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this reader created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.info("HackerNewsReader HTTP client closed")

    async def _get_json(self, path: str) -> Any:
        client = await self._get_client()
        response = await client.get(f"{self.base_url}/{path}")
        response.raise_for_status()
        return response.json()

    async def top_story_ids(self) -> list[int]:
        ids = await self._get_json("topstories.json")
        if not isinstance(ids, list):
            raise ValueError("Unexpected topstories response")
        return ids

    async def fetch_story(self, story_id: int) -> dict[str, Any] | None:
        return await self._get_json(f"item/{story_id}.json")

    async def read(self, params: NewsReaderInput) -> NewsReaderOutput:
        ids = (await self.top_story_ids())[:params.limit]
        logger.info(f"Fetching {len(ids)} stories (concurrency={self.concurrency})")

        failed: list[int] = []
        if self.fail_fast:
            items = await bounded_gather(ids, self.fetch_story, limit=self.concurrency, fail_fast=True)
        else:
            outcomes = await bounded_gather(ids, self.fetch_story, limit=self.concurrency, fail_fast=False)
            items = [outcome.value for outcome in outcomes if outcome.ok]
            failed = [outcome.item for outcome in outcomes if not outcome.ok]

        # deleted stories come back as null
        stories = [Story.model_validate(item) for item in items if item]
        return NewsReaderOutput(stories=stories, total=len(stories), failed=failed)

    def as_tool(self) -> Tool:
        return Tool(
            definition=ToolDefinition(
                name="news-reader",
                description="Fetch the current top stories from Hacker News",
                version="1.0.0",
                author="system",
                tags=("news", "web"),
                examples=({"limit": 5},),
                timeout=60.0
            ),
            implementation=NativeFunction(
                execute=self.read,
                input_schema=NewsReaderInput,
                output_schema=NewsReaderOutput
            )
        )
