from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Sequence

import httpx

from controller.attachments import decode_data_uri

TRACE_MOE_SEARCH_URL = "https://api.trace.moe/search?cutBorders"
ANILIST_GRAPHQL_URL = "https://graphql.anilist.co"
LOOKUP_TIMEOUT_SECONDS = 30.0
# Scene matches below this similarity are not offered as image context.
MIN_CONTEXT_SIMILARITY = 0.9

ANILIST_MEDIA_QUERY = """
query ($id: Int) {
  Media(id: $id, type: ANIME) {
    title {
      romaji
      english
      native
    }
    siteUrl
    episodes
    genres
    averageScore
    description(asHtml: false)
  }
}
"""


class SauceLookupError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class SceneMatch:
    anilist_id: int
    filename: str
    episode: int | None
    similarity: float
    video: str
    image: str


@dataclass(frozen=True, slots=True)
class RateLimit:
    limit: int
    remaining: int
    reset: int


@dataclass(frozen=True, slots=True)
class SceneSearch:
    matches: list[SceneMatch]
    limit: RateLimit


@dataclass(frozen=True, slots=True)
class AnimeDetails:
    title: str
    episodes: int | None
    genres: list[str]
    average_score: int | None
    description: str
    site_url: str


@dataclass(frozen=True, slots=True)
class Sauce:
    match: SceneMatch
    details: AnimeDetails
    limit: RateLimit


def _int_header(headers: Any, name: str) -> int:
    try:
        return int(headers.get(name) or 0)
    except (TypeError, ValueError):
        return 0


def _scene_match(item: dict[str, Any]) -> SceneMatch:
    anilist = item.get("anilist")
    if isinstance(anilist, dict):
        anilist = anilist.get("id")
    episode = item.get("episode")
    return SceneMatch(
        anilist_id=int(anilist),
        filename=str(item.get("filename") or ""),
        episode=episode if isinstance(episode, int) else None,
        similarity=float(item.get("similarity") or 0.0),
        video=str(item.get("video") or ""),
        image=str(item.get("image") or ""),
    )


def best_match(matches: Sequence[SceneMatch]) -> SceneMatch | None:
    if not matches:
        return None
    return max(matches, key=lambda m: m.similarity)


async def search_scene(client: httpx.AsyncClient, image: bytes, *, content_type: str = "image/jpeg") -> SceneSearch:
    resp = await client.post(TRACE_MOE_SEARCH_URL, files={"image": ("blob", image, content_type)})
    resp.raise_for_status()
    body = resp.json()
    if body.get("error"):
        raise SauceLookupError(str(body["error"]))
    items = [item for item in body.get("result") or [] if item.get("anilist") is not None]
    return SceneSearch(
        matches=[_scene_match(item) for item in items],
        limit=RateLimit(
            limit=_int_header(resp.headers, "x-ratelimit-limit"),
            remaining=_int_header(resp.headers, "x-ratelimit-remaining"),
            reset=_int_header(resp.headers, "x-ratelimit-reset"),
        ),
    )


async def fetch_anime_details(client: httpx.AsyncClient, anilist_id: int) -> AnimeDetails:
    resp = await client.post(
        ANILIST_GRAPHQL_URL,
        json={"query": ANILIST_MEDIA_QUERY, "variables": {"id": int(anilist_id)}},
    )
    resp.raise_for_status()
    media = (resp.json().get("data") or {}).get("Media")
    if not media:
        raise SauceLookupError(f"No AniList entry for id {anilist_id}")
    title = media.get("title") or {}
    return AnimeDetails(
        title=title.get("english") or title.get("romaji") or title.get("native") or "Unknown",
        episodes=media.get("episodes"),
        genres=list(media.get("genres") or []),
        average_score=media.get("averageScore"),
        description=str(media.get("description") or "").strip(),
        site_url=str(media.get("siteUrl") or ""),
    )


def anime_context(sauce: Sauce) -> str:
    details = sauce.details
    return (
        f'The image is from the anime titled "{details.title}". '
        f"This anime falls under the genres: {', '.join(details.genres)}. "
        f"It has an average score of {details.average_score}. "
        f"The specific scene in the image is from episode {sauce.match.episode} "
        f"out of the total {details.episodes} episodes. "
        f'Here is a brief description of the anime: "{details.description}".'
    )


class SauceFinder:
    """Reverse-searches an anime screenshot on trace.moe and looks the show up on AniList."""

    def __init__(self, *, client_factory: Callable[[], httpx.AsyncClient] | None = None):
        self.client_factory = client_factory or (lambda: httpx.AsyncClient(timeout=LOOKUP_TIMEOUT_SECONDS))

    async def find(self, image: bytes, *, content_type: str = "image/jpeg") -> Sauce | None:
        async with self.client_factory() as client:
            search = await search_scene(client, image, content_type=content_type)
            match = best_match(search.matches)
            if match is None:
                return None
            details = await fetch_anime_details(client, match.anilist_id)
        print(f"[Sauce] match anilist_id={match.anilist_id} similarity={match.similarity:.3f}")
        return Sauce(match=match, details=details, limit=search.limit)

    async def scene_context(self, data_uri: str) -> str:
        """Anime context for an image data URI; empty when nothing close enough is found."""
        try:
            mime_type, payload = decode_data_uri(data_uri)
            sauce = await self.find(payload, content_type=mime_type)
        except (httpx.HTTPError, ValueError, KeyError) as e:
            print(f"[Sauce] scene context lookup failed: {e}")
            return ""
        if sauce is None or sauce.match.similarity < MIN_CONTEXT_SIMILARITY:
            return ""
        return anime_context(sauce)
