"""
Tone recommendation generation.

Looks the book up in the book data API, asks the local Ollama model for the
tones that fit it, and keeps only tones from the known vocabulary.
"""
import json
import logging
from typing import List, Optional, Sequence

import httpx

from booktone.core.exceptions import RecommendationError
from booktone.services.book_data import BookDataClient

logger = logging.getLogger(__name__)

VALID_TONES = (
    "Poignant", "Melancholic", "Bittersweet", "Gut-wrenching", "Heartwarming", "Haunting",
    "Dark", "Bleak", "Gritty", "Cynical", "Unsettling", "Hard-boiled", "Grimdark",
    "Disturbing", "Horrific", "Macabre", "Grotesque", "Claustrophobic", "Intense",
    "Suspenseful", "Atmospheric", "Lyrical", "Surreal", "Mystical", "Dramatic",
    "Heroic", "Tragic", "Romantic", "Steamy", "Sweet", "Angsty", "Flirty",
    "Realistic", "Detached", "Upbeat", "Hopeful", "Uplifting", "Playful",
    "Comforting", "Cozy", "Whimsical", "Philosophical", "Psychological", "Epic",
)

# Canonical spellings for tones the model writes several ways
_TONE_SPELLINGS = {
    "gut wrenching": "Gut-wrenching",
    "gut-wrenching": "Gut-wrenching",
    "hard boiled": "Hard-boiled",
    "hard-boiled": "Hard-boiled",
    "heart warming": "Heartwarming",
    "heart-warming": "Heartwarming",
}

STOP_SEQUENCES = ["]", "\n", "User:", "Assistant:", "System:"]


def format_tone(tone: str) -> str:
    """Normalize a stored tone for display."""
    if not tone:
        return tone
    normalized = tone.strip()
    canonical = _TONE_SPELLINGS.get(normalized.lower())
    if canonical:
        return canonical
    return normalized.lower().title()


def parse_tones(response: str, max_tones: int = 6, valid_tones: Sequence[str] = VALID_TONES) -> List[str]:
    """
    Extract known tones from a model response.

    Tries, in order: a JSON array, a case-insensitive scan of the text for
    each known tone, and comma-separated exact matches.
    """
    clean = response.strip()
    if not clean:
        return []

    try:
        parsed = json.loads(clean)
    except ValueError:
        parsed = None

    if isinstance(parsed, list) and parsed:
        found = []
        for tone in parsed:
            candidate = str(tone).strip().strip('"“”')
            if candidate in valid_tones:
                found.append(candidate)
        return found[:max_tones]

    lowered = clean.lower()
    found = [tone for tone in valid_tones if tone.lower() in lowered]
    if found:
        return found[:max_tones]

    by_lower = {tone.lower(): tone for tone in valid_tones}
    for part in clean.split(","):
        match = by_lower.get(part.strip().lower())
        if match:
            found.append(match)
    return found[:max_tones]


def build_prompt(title: str, author: str, genres: Sequence[str]) -> str:
    """Reader mood tags are not fetched; the prompt always reports none."""
    genre_list = ", ".join(genres)
    return (
        f"Based on the book '{title}' by {author} in the genres: {genre_list}, "
        "and with mood tags from readers: none available, "
        f"what would be the most appropriate tones for this book?"
    )


class RecommenderService:
    """
    Generates tone recommendations for one book.

    Raises RecommendationError when the book is unknown or the model cannot
    be reached; the batch engine counts that book as failed and moves on.
    There is no engine-side timeout; the httpx client owns it.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        book_data: BookDataClient,
        ollama_url: str,
        model: str = "booktone-phi",
        max_tones: int = 6,
    ):
        self.client = client
        self.book_data = book_data
        self.ollama_url = ollama_url.rstrip("/")
        self.model = model
        self.max_tones = max_tones

    async def generate_for_book(self, book_id: int) -> List[str]:
        logger.info(f"Starting recommendation generation for book ID: {book_id}")

        book = await self.book_data.get_book(book_id)
        if book is None:
            raise RecommendationError(book_id, "book not found in book data API")

        prompt = build_prompt(book.title, book.author, book.genres)
        logger.debug(f"Prompt for book {book_id}: {prompt}")

        response = await self._generate(book_id, prompt)
        tones = parse_tones(response or "", max_tones=self.max_tones)

        if not tones:
            logger.warning(f"Model response for book {book_id} contained no known tones: {response!r}")
        else:
            logger.info(f"Extracted {len(tones)} tones for book {book_id}: {', '.join(tones)}")
        return tones

    async def _generate(self, book_id: int, prompt: str) -> Optional[str]:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            # Nucleus sampling over 90% of the probability mass
            "top_p": 0.9,
            "temperature": 0.3,
            "repeat_penalty": 1.1,
            "stop": STOP_SEQUENCES,
            "num_predict": 50,
        }
        try:
            response = await self.client.post(f"{self.ollama_url}/api/generate", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise RecommendationError(book_id, f"Ollama request failed: {e}") from e

        return response.json().get("response")
