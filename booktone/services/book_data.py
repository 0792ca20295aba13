"""
Client for the book data API, the source of titles, authors and genres.
"""
import logging
from typing import List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class BookData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    title: str
    author_first_name: str = Field(default="", alias="authorFirstName")
    author_last_name: str = Field(default="", alias="authorLastName")
    genres: List[str] = Field(default_factory=list)

    @property
    def author(self) -> str:
        return f"{self.author_first_name} {self.author_last_name}".strip()


class BookDataClient:
    """Looks books up over HTTP. Missing books and transport errors yield None."""

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def get_book(self, book_id: int) -> Optional[BookData]:
        logger.info(f"Fetching book data for book ID: {book_id}")
        try:
            response = await self.client.get(f"{self.base_url}/api/books/{book_id}")
        except httpx.HTTPError as e:
            logger.error(f"Error retrieving book data for book ID {book_id}: {e}")
            return None

        if response.status_code != 200:
            logger.warning(
                f"Failed to retrieve book data for book ID {book_id}. Status: {response.status_code}"
            )
            return None

        return BookData.model_validate(response.json())
