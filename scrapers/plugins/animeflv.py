import re

from selectolax.parser import HTMLParser

from models.models import (
    AiringStatus,
    AnimeRecord,
    Category,
    EpisodeRecord,
    EpisodeServer,
    SearchPage,
    SourceCapabilities,
    StreamingBundle,
    VideoVariant,
)
from scrapers.base import SourceAdapter
from scrapers.plugins.utils import absolute_url, script_variable
from utils.title_utils import map_status, map_type, normalize_rating


class AnimeFLV(SourceAdapter):
    """Spanish-language HTML adapter for www3.animeflv.net."""

    name = "animeflv"
    base_url = "https://www3.animeflv.net"
    capabilities = SourceCapabilities(has_dub=True, quality="medium")

    def _headers(self) -> dict:
        return {
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "es-ES,es;q=0.8,en-US;q=0.5,en;q=0.3",
            "Referer": self.base_url,
        }

    async def _page(self, path: str, params: dict | None = None) -> HTMLParser:
        html = await self.fetcher.get(
            path, base_url=self.base_url, params=params, headers=self._headers()
        )
        return HTMLParser(html)

    def _card(self, node, status: AiringStatus = AiringStatus.COMPLETED) -> AnimeRecord | None:
        link = node.css_first("a")
        title = node.css_first(".Title")
        href = link.attributes.get("href", "") if link else ""
        if "/anime/" not in href or title is None or not title.text(strip=True):
            return None
        image = node.css_first("img")
        image_url = absolute_url(image.attributes.get("src") if image else "", self.base_url)
        type_node = node.css_first(".Type")
        return AnimeRecord(
            id=self.qualify(href.split("/anime/")[-1].strip("/")),
            title=title.text(strip=True),
            image=image_url,
            cover=image_url,
            type=map_type(type_node.text(strip=True) if type_node else ""),
            status=status,
            source=self.name,
        )

    async def _health_check(self) -> bool:
        return await self.fetcher.head(self.base_url, headers=self._headers()) < 400

    async def _search(self, query: str, page: int, filters: dict) -> SearchPage:
        tree = await self._page("/browse", {"q": query, "page": page})
        results = [
            record
            for record in (self._card(node) for node in tree.css(".ListAnimes .Anime"))
            if record is not None
        ]
        has_next = tree.css_first(".pagination .active + li a") is not None
        return SearchPage(
            results=results,
            total_pages=page + 1 if has_next else page,
            current_page=page,
            has_next_page=has_next,
            source=self.name,
        )

    async def _get_details(self, raw_id: str) -> AnimeRecord | None:
        tree = await self._page(f"/anime/{raw_id}")
        title = tree.css_first(".Ficha .Title") or tree.css_first(".Title")
        if title is None or not title.text(strip=True):
            return None
        image = tree.css_first(".AnimeCover img")
        image_url = absolute_url(image.attributes.get("src") if image else "", self.base_url)
        description = tree.css_first(".Description")
        type_node = tree.css_first(".Type")
        status = tree.css_first(".AnmStts span")
        score = tree.css_first("#votes_prmd")
        episodes = script_variable(tree, "episodes") or []
        return AnimeRecord(
            id=self.qualify(raw_id),
            title=title.text(strip=True),
            image=image_url,
            cover=image_url,
            description=description.text(strip=True) if description else "",
            type=map_type(type_node.text(strip=True) if type_node else ""),
            status=map_status(status.text(strip=True) if status else ""),
            rating=normalize_rating(score.text(strip=True) if score else None, scale=5),
            total_episodes=len(episodes),
            sub_count=len(episodes),
            genres=[a.text(strip=True) for a in tree.css(".Nvgnrs a")],
            source=self.name,
        )

    async def _get_episodes(self, raw_id: str) -> list[EpisodeRecord]:
        tree = await self._page(f"/anime/{raw_id}")
        numbers = []
        for entry in script_variable(tree, "episodes") or []:
            if isinstance(entry, list) and entry and int(entry[0]) >= 1:
                numbers.append(int(entry[0]))

        if not numbers:
            # Older layout lists episode links instead of the inline script
            for link in tree.css(".ListCaps li a, #episodeList a"):
                match = re.search(r"-(\d+)/?$", link.attributes.get("href", ""))
                if match and int(match.group(1)) >= 1:
                    numbers.append(int(match.group(1)))

        return [
            EpisodeRecord(id=self.qualify(f"{raw_id}-{n}"), number=n, title=f"Episode {n}")
            for n in sorted(set(numbers))
        ]

    async def _get_servers(self, raw_episode_id: str) -> list[EpisodeServer]:
        tree = await self._page(f"/ver/{raw_episode_id}")
        videos = script_variable(tree, "videos") or {}
        servers = [
            EpisodeServer(name=v["server"], category=category)
            for key, category in (("SUB", Category.SUB), ("LAT", Category.DUB))
            for v in videos.get(key) or []
            if v.get("server")
        ]
        return servers or [EpisodeServer(name=self.default_server)]

    async def _fetch_stream(
        self, raw_episode_id: str, server: str, category: Category
    ) -> StreamingBundle:
        tree = await self._page(f"/ver/{raw_episode_id}")
        videos = script_variable(tree, "videos") or {}
        entries = videos.get("LAT" if category == Category.DUB else "SUB") or videos.get("SUB") or []
        if server != self.default_server:
            entries = [v for v in entries if (v.get("server") or "").lower() == server.lower()]

        sources = []
        for entry in entries:
            code = entry.get("code") or entry.get("url") or ""
            if not code.startswith(("http", "//")):
                match = re.search(r'src="([^"]+)"', code)
                code = match.group(1) if match else ""
            if code:
                url = absolute_url(code, self.base_url)
                sources.append(VideoVariant(url=url, is_m3u8=".m3u8" in url))

        if not sources and server == self.default_server:
            iframe = tree.css_first("iframe")
            src = iframe.attributes.get("src") if iframe else None
            if src:
                sources.append(VideoVariant(url=absolute_url(src, self.base_url)))

        return StreamingBundle(sources=sources, headers={"Referer": self.base_url})

    async def _get_trending(self, page: int) -> list[AnimeRecord]:
        if page > 1:  # Only the home page lists them
            return []
        tree = await self._page("/")
        cards = (self._card(node, AiringStatus.ONGOING) for node in tree.css(".ListAnimes .Anime"))
        return [record for record in cards if record is not None][:20]

    async def _get_latest(self, page: int) -> list[AnimeRecord]:
        if page > 1:
            return []
        tree = await self._page("/")
        results = []
        for node in tree.css(".ListEpisodios li"):
            link = node.css_first("a")
            title = node.css_first(".Title")
            href = link.attributes.get("href", "") if link else ""
            if "/ver/" not in href or title is None or not title.text(strip=True):
                continue
            anime_id = re.sub(r"-\d+/?$", "", href.split("/ver/")[-1])
            image = node.css_first("img")
            image_url = absolute_url(image.attributes.get("src") if image else "", self.base_url)
            results.append(
                AnimeRecord(
                    id=self.qualify(anime_id),
                    title=re.sub(r"\s*-\s*\d+$", "", title.text(strip=True)),
                    image=image_url,
                    cover=image_url,
                    status=AiringStatus.ONGOING,
                    source=self.name,
                )
            )
        return results


def load(manager) -> None:
    manager.register(AnimeFLV())
