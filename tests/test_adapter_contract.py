"""
Tests for the bundled source adapters (scrapers/plugins/)

Coverage:
- Contract: with the upstream down, every operation returns its empty value
  and reports a failure (never raises)
- HiAnime JSON mapping, mirror rotation and success-flag checks
- Home listings and charts are single-page
- AnimeFLV HTML parsing (listings, details, episodes, servers, streams)
- Plugin HTML helpers
"""

import json
from asyncio import run
from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest
from selectolax.parser import HTMLParser

from models.models import AiringStatus, AnimeType, Category, Outcome
from scrapers.plugins.animeflv import AnimeFLV
from scrapers.plugins.hianime import HiAnime
from scrapers.plugins.utils import absolute_url, script_variable
from scrapers.streaming import StreamingResolver


def build(cls, fetcher, **kwargs):
    return cls(
        fetcher=fetcher,
        resolver=StreamingResolver(max_retries=0, backoff=0, sleep=AsyncMock()),
        **kwargs,
    )


@pytest.fixture
def down_fetcher():
    """Fetcher whose every request fails at the transport level."""
    fetcher = AsyncMock()
    error = aiohttp.ClientConnectionError("connection refused")
    fetcher.get.side_effect = error
    fetcher.get_json.side_effect = error
    fetcher.head.side_effect = error
    return fetcher


@pytest.mark.parametrize("cls", [HiAnime, AnimeFLV])
class TestContractWhenUpstreamDown:
    """Test that adapter errors never escape the public contract."""

    def test_search(self, cls, down_fetcher):
        """Should return an empty page tagged with the adapter."""
        adapter = build(cls, down_fetcher)
        page = run(adapter.search("naruto", 2))
        assert page.is_empty
        assert page.current_page == 2
        assert page.source == adapter.name

    def test_id_scoped_operations(self, cls, down_fetcher):
        """Should return None/[] for details, episodes and servers."""
        adapter = build(cls, down_fetcher)
        assert run(adapter.get_details(adapter.qualify("naruto"))) is None
        assert run(adapter.get_episodes(adapter.qualify("naruto"))) == []
        assert run(adapter.get_servers(adapter.qualify("naruto-1"))) == []

    def test_streaming_links(self, cls, down_fetcher):
        """Should return an empty bundle after trying every server."""
        adapter = build(cls, down_fetcher)
        bundle = run(adapter.get_streaming_links(adapter.qualify("naruto-1"), category="dub"))
        assert bundle.is_empty
        assert bundle.source == adapter.name

    def test_listings(self, cls, down_fetcher):
        """Should return empty genre, trending and latest listings."""
        adapter = build(cls, down_fetcher)
        assert run(adapter.get_by_genre("action")).is_empty
        assert run(adapter.get_trending()) == []
        assert run(adapter.get_latest()) == []

    def test_health_check(self, cls, down_fetcher):
        """Should answer False instead of raising."""
        assert run(build(cls, down_fetcher).health_check()) is False

    def test_failure_reported(self, cls, down_fetcher):
        """Should report a failure outcome to the observer."""
        adapter = build(cls, down_fetcher)
        observer = Mock()
        adapter.bind_observer(observer)
        run(adapter.search("naruto"))
        name, outcome, latency = observer.call_args.args
        assert name == adapter.name
        assert outcome == Outcome.FAILURE
        assert latency >= 0


# ========== HiAnime ==========


def ok(data):
    return {"success": True, "data": data}


SEARCH_DATA = {
    "animes": [
        {
            "id": "one-piece-100",
            "name": "One Piece",
            "jname": "One Piece",
            "poster": "https://img.example/op.jpg",
            "type": "TV",
            "episodes": {"sub": 1100, "dub": 1080},
        },
        {"name": "No id, skipped"},
    ],
    "totalPages": 3,
    "currentPage": 1,
    "hasNextPage": True,
}


class TestHiAnime:
    """Test JSON mapping for the HiAnime API."""

    @pytest.fixture
    def fetcher(self):
        return AsyncMock()

    def test_search_mapping(self, fetcher):
        """Should map anime entries and pagination."""
        fetcher.get_json.return_value = ok(SEARCH_DATA)
        page = run(build(HiAnime, fetcher).search("one piece"))

        assert page.total_pages == 3
        assert page.has_next_page is True
        assert len(page.results) == 1
        record = page.results[0]
        assert record.id == "hianime-one-piece-100"
        assert record.sub_count == 1100
        assert record.dub_count == 1080
        assert record.source == "hianime"

        url = fetcher.get_json.call_args.args[0]
        assert url.endswith("/api/v2/hianime/search")
        assert fetcher.get_json.call_args.kwargs["params"] == {"q": "one piece", "page": 1}

    def test_details_mapping(self, fetcher):
        """Should merge info and moreInfo into one record."""
        fetcher.get_json.return_value = ok(
            {
                "anime": {
                    "info": {
                        "id": "frieren-18542",
                        "name": "Frieren",
                        "description": "<p>After the <b>journey</b></p>",
                        "stats": {"rating": "R+", "type": "Movie"},
                    },
                    "moreInfo": {
                        "malscore": "9.1",
                        "status": "Finished Airing",
                        "aired": "Sep 29, 2023 to Mar 22, 2024",
                        "genres": ["Adventure", "adventure", "Drama"],
                        "studios": "Madhouse",
                        "premiered": "Fall 2023",
                    },
                }
            }
        )
        record = run(build(HiAnime, fetcher).get_details("hianime-frieren-18542"))

        assert fetcher.get_json.call_args.args[0].endswith("/anime/frieren-18542")
        assert record.id == "hianime-frieren-18542"
        assert record.description == "After the journey"
        assert record.rating == 9.1
        assert record.is_mature is True
        assert record.type == AnimeType.MOVIE
        assert record.status == AiringStatus.COMPLETED
        assert record.year == 2023
        assert record.season == "Fall 2023"
        assert record.genres == ["Adventure", "Drama"]
        assert record.studios == ["Madhouse"]

    def test_details_missing(self, fetcher):
        """Should return None when the API has no info block."""
        fetcher.get_json.return_value = ok({"anime": {}})
        assert run(build(HiAnime, fetcher).get_details("hianime-x")) is None

    def test_episodes_qualified(self, fetcher):
        """Should prefix episode tokens with the adapter name."""
        fetcher.get_json.return_value = ok(
            {
                "episodes": [
                    {"episodeId": "frieren-18542?ep=107257", "number": 1, "title": "The Journey's End"},
                    {"episodeId": "frieren-18542?ep=107258", "number": 2, "isFiller": True},
                ]
            }
        )
        episodes = run(build(HiAnime, fetcher).get_episodes("hianime-frieren-18542"))

        assert [e.id for e in episodes] == [
            "hianime-frieren-18542?ep=107257",
            "hianime-frieren-18542?ep=107258",
        ]
        assert episodes[1].is_filler is True
        assert episodes[1].title == "Episode 2"

    def test_episode_dub_flags_from_details(self, fetcher):
        """Should mark only the episodes within the dubbed count as dubbed."""
        payloads = {
            "/anime/frieren-18542/episodes": ok(
                {
                    "episodes": [
                        {"episodeId": "frieren-18542?ep=1", "number": 1},
                        {"episodeId": "frieren-18542?ep=2", "number": 2},
                    ]
                }
            ),
            "/anime/frieren-18542": ok(
                {
                    "anime": {
                        "info": {
                            "id": "frieren-18542",
                            "name": "Frieren",
                            "stats": {"episodes": {"sub": 2, "dub": 1}},
                            "episodes": {"sub": 2, "dub": 1},
                        }
                    }
                }
            ),
        }
        fetcher.get_json.side_effect = lambda url, **kwargs: payloads[url.split("/api/v2/hianime")[1]]

        episodes = run(build(HiAnime, fetcher).get_episodes("hianime-frieren-18542"))

        assert [(e.number, e.has_dub) for e in episodes] == [(1, True), (2, False)]

    def test_episode_dub_flags_without_details(self, fetcher):
        """Should default to no dub when details are unavailable."""
        fetcher.get_json.return_value = ok({"episodes": [{"episodeId": "x?ep=1", "number": 1}]})
        episodes = run(build(HiAnime, fetcher).get_episodes("hianime-x"))
        assert [e.has_dub for e in episodes] == [False]

    def test_servers_by_category(self, fetcher):
        """Should list sub and dub servers."""
        fetcher.get_json.return_value = ok(
            {"sub": [{"serverName": "hd-1"}, {"serverName": "hd-2"}], "dub": [{"serverName": "hd-1"}]}
        )
        servers = run(build(HiAnime, fetcher).get_servers("hianime-x?ep=1"))
        assert [(s.name, s.category) for s in servers] == [
            ("hd-1", Category.SUB),
            ("hd-2", Category.SUB),
            ("hd-1", Category.DUB),
        ]
        assert fetcher.get_json.call_args.kwargs["params"] == {"animeEpisodeId": "x?ep=1"}

    def test_stream_mapping(self, fetcher):
        """Should map sources, caption tracks, skip times and headers."""
        fetcher.get_json.return_value = ok(
            {
                "sources": [{"url": "https://cdn.example/master.m3u8", "type": "hls"}],
                "tracks": [
                    {"file": "https://cdn.example/en.vtt", "label": "English", "kind": "captions"},
                    {"file": "https://cdn.example/thumbs.vtt", "kind": "thumbnails"},
                ],
                "intro": {"start": 30, "end": 120},
                "outro": {"start": 0, "end": 0},
            }
        )
        bundle = run(build(HiAnime, fetcher).get_streaming_links("hianime-x?ep=1", "hd-1", "dub"))

        assert bundle.server == "hd-1"
        assert bundle.source == "hianime"
        assert bundle.sources[0].is_m3u8 is True
        assert [t.label for t in bundle.subtitles] == ["English"]
        assert (bundle.intro.start, bundle.intro.end) == (30, 120)
        assert bundle.outro is None
        assert "Referer" in bundle.headers
        assert fetcher.get_json.call_args.kwargs["params"] == {
            "animeEpisodeId": "x?ep=1",
            "server": "hd-1",
            "category": "dub",
        }

    def test_mirror_rotation(self, fetcher):
        """Should move to the next mirror and remember it."""
        fetcher.get_json.side_effect = [
            aiohttp.ClientConnectionError("down"),
            ok(SEARCH_DATA),
            ok({"animes": []}),
        ]
        adapter = build(HiAnime, fetcher, mirrors=["https://m1.example", "https://m2.example"])

        page = run(adapter.search("one piece"))
        run(adapter.get_latest())

        assert page.results
        assert adapter.base_url == "https://m2.example"
        assert fetcher.get_json.call_args.args[0].startswith("https://m2.example")

    def test_missing_success_flag_is_failure(self, fetcher):
        """Should treat an unsuccessful envelope as an upstream failure."""
        fetcher.get_json.return_value = {"success": False, "message": "rate limited"}
        adapter = build(HiAnime, fetcher)
        observer = Mock()
        adapter.bind_observer(observer)

        assert run(adapter.search("one piece")).is_empty
        assert observer.call_args.args[1] == Outcome.FAILURE

    def test_trending_from_home(self, fetcher):
        """Should read trending titles from the home payload."""
        fetcher.get_json.return_value = ok(
            {"trendingAnimes": [{"id": "dandadan-19319", "name": "Dandadan"}]}
        )
        items = run(build(HiAnime, fetcher).get_trending())
        assert [r.id for r in items] == ["hianime-dandadan-19319"]

    def test_trending_single_page(self, fetcher):
        """Should not repeat the home list for later pages."""
        assert run(build(HiAnime, fetcher).get_trending(2)) == []
        fetcher.get_json.assert_not_awaited()

    def test_top_rated_chart(self, fetcher):
        """Should rank the daily top-10 and honour limit."""
        fetcher.get_json.return_value = ok(
            {
                "top10Animes": {
                    "today": [
                        {"id": "one-piece-100", "name": "One Piece", "rank": 1},
                        {"id": "frieren-18542", "name": "Frieren", "rank": 2},
                        {"id": "bleach-806", "name": "Bleach", "rank": 3},
                    ],
                    "week": [],
                }
            }
        )
        chart = run(build(HiAnime, fetcher).get_top_rated(limit=2))

        assert [(e.rank, e.anime.id) for e in chart] == [
            (1, "hianime-one-piece-100"),
            (2, "hianime-frieren-18542"),
        ]
        assert fetcher.get_json.call_args.args[0].endswith("/home")

    def test_top_rated_single_page(self, fetcher):
        assert run(build(HiAnime, fetcher).get_top_rated(page=2)) == []
        fetcher.get_json.assert_not_awaited()


# ========== AnimeFLV ==========


SEARCH_HTML = """
<html><body>
<ul class="ListAnimes">
  <li><article class="Anime">
    <a href="/anime/naruto"><figure><img src="/uploads/animes/covers/1.jpg"></figure>
    <span class="Type tv">Anime</span><h3 class="Title">Naruto</h3></a>
  </article></li>
  <li><article class="Anime">
    <a href="/anime/naruto-la-pelicula"><figure><img src="https://cdn.example/2.jpg"></figure>
    <span class="Type movie">Película</span><h3 class="Title">Naruto la Película</h3></a>
  </article></li>
  <li><article class="Anime"><a href="/noticias/1"><h3 class="Title">Not an anime</h3></a></article></li>
</ul>
<ul class="pagination">
  <li class="active"><a href="#">1</a></li>
  <li><a href="/browse?q=naruto&page=2">2</a></li>
</ul>
</body></html>
"""

DETAILS_HTML = """
<html><body>
<div class="Ficha"><div class="Container"><h1 class="Title">Naruto</h1></div></div>
<div class="AnimeCover"><figure><img src="/uploads/animes/covers/1.jpg"></figure></div>
<span class="Type tv">Anime</span>
<p class="AnmStts"><span class="fa-tv">Finalizado</span></p>
<span id="votes_prmd">4.5</span>
<nav class="Nvgnrs"><a href="/browse?genre[]=accion">Acción</a><a href="/browse?genre[]=comedia">Comedia</a></nav>
<div class="Description"><p>Un ninja adolescente.</p></div>
<script>
  var anime_info = ["1","Naruto","naruto"];
  var episodes = [[3,111],[2,110],[1,109]];
</script>
</body></html>
"""

LEGACY_EPISODES_HTML = """
<html><body>
<ul class="ListCaps">
  <li><a href="/ver/naruto-2">Episodio 2</a></li>
  <li><a href="/ver/naruto-1">Episodio 1</a></li>
</ul>
</body></html>
"""

VIDEOS = {
    "SUB": [
        {"server": "sw", "title": "SW", "code": "https://streamwish.example/e/abc"},
        {"server": "mega", "title": "Mega", "code": '<iframe src="https://mega.example/embed/x"></iframe>'},
    ],
    "LAT": [{"server": "yu", "title": "YourUpload", "code": "//yourupload.example/embed/y"}],
}
EPISODE_HTML = f"""
<html><body>
<iframe src="https://fallback.example/embed/z"></iframe>
<script>var videos = {json.dumps(VIDEOS)};</script>
</body></html>
"""

HOME_HTML = """
<html><body>
<ul class="ListEpisodios">
  <li><a href="/ver/one-piece-1100"><img src="/uploads/thumbs/1.jpg">
    <span class="Capi">Episodio 1100</span><strong class="Title">One Piece</strong></a></li>
</ul>
<ul class="ListAnimes">
  <li><article class="Anime"><a href="/anime/dandadan"><h3 class="Title">Dandadan</h3></a></article></li>
</ul>
</body></html>
"""


class TestAnimeFLV:
    """Test HTML parsing for AnimeFLV."""

    @pytest.fixture
    def fetcher(self):
        return AsyncMock()

    def test_search_cards(self, fetcher):
        """Should parse anime cards and skip non-anime links."""
        fetcher.get.return_value = SEARCH_HTML
        page = run(build(AnimeFLV, fetcher).search("naruto"))

        assert [r.id for r in page.results] == ["animeflv-naruto", "animeflv-naruto-la-pelicula"]
        assert page.results[0].image == "https://www3.animeflv.net/uploads/animes/covers/1.jpg"
        assert page.results[1].type == AnimeType.MOVIE
        assert page.has_next_page is True
        assert fetcher.get.call_args.args[0] == "/browse"
        assert fetcher.get.call_args.kwargs["params"] == {"q": "naruto", "page": 1}

    def test_details(self, fetcher):
        """Should parse the detail page and rescale the 5-point score."""
        fetcher.get.return_value = DETAILS_HTML
        record = run(build(AnimeFLV, fetcher).get_details("animeflv-naruto"))

        assert fetcher.get.call_args.args[0] == "/anime/naruto"
        assert record.title == "Naruto"
        assert record.rating == 9.0
        assert record.status == AiringStatus.COMPLETED
        assert record.genres == ["Acción", "Comedia"]
        assert record.total_episodes == 3
        assert record.description == "Un ninja adolescente."

    def test_episodes_from_script(self, fetcher):
        """Should read episode numbers from the inline script, ascending."""
        fetcher.get.return_value = DETAILS_HTML
        episodes = run(build(AnimeFLV, fetcher).get_episodes("animeflv-naruto"))
        assert [(e.id, e.number) for e in episodes] == [
            ("animeflv-naruto-1", 1),
            ("animeflv-naruto-2", 2),
            ("animeflv-naruto-3", 3),
        ]

    def test_episodes_from_links(self, fetcher):
        """Should fall back to episode links on older layouts."""
        fetcher.get.return_value = LEGACY_EPISODES_HTML
        episodes = run(build(AnimeFLV, fetcher).get_episodes("animeflv-naruto"))
        assert [e.number for e in episodes] == [1, 2]

    def test_servers(self, fetcher):
        """Should list SUB servers as sub and LAT servers as dub."""
        fetcher.get.return_value = EPISODE_HTML
        servers = run(build(AnimeFLV, fetcher).get_servers("animeflv-naruto-1"))
        assert fetcher.get.call_args.args[0] == "/ver/naruto-1"
        assert [(s.name, s.category) for s in servers] == [
            ("sw", Category.SUB),
            ("mega", Category.SUB),
            ("yu", Category.DUB),
        ]

    def test_stream_requested_server(self, fetcher):
        """Should extract the iframe src of the requested server."""
        fetcher.get.return_value = EPISODE_HTML
        bundle = run(build(AnimeFLV, fetcher).get_streaming_links("animeflv-naruto-1", "mega"))

        assert bundle.server == "mega"
        assert [v.url for v in bundle.sources] == ["https://mega.example/embed/x"]
        assert bundle.headers == {"Referer": "https://www3.animeflv.net"}

    def test_stream_dub_default(self, fetcher):
        """Should use LAT embeds for dub on the default server."""
        fetcher.get.return_value = EPISODE_HTML
        bundle = run(
            build(AnimeFLV, fetcher).get_streaming_links("animeflv-naruto-1", category="dub")
        )
        assert bundle.server == "default"
        assert [v.url for v in bundle.sources] == ["https://yourupload.example/embed/y"]

    def test_stream_iframe_fallback(self, fetcher):
        """Should use the page iframe when no video list exists."""
        fetcher.get.return_value = '<html><iframe src="//player.example/e/1"></iframe></html>'
        bundle = run(build(AnimeFLV, fetcher).get_streaming_links("animeflv-naruto-1"))
        assert [v.url for v in bundle.sources] == ["https://player.example/e/1"]

    def test_latest_from_home(self, fetcher):
        """Should map recent episodes to their anime."""
        fetcher.get.return_value = HOME_HTML
        items = run(build(AnimeFLV, fetcher).get_latest())
        assert [(r.id, r.title, r.status) for r in items] == [
            ("animeflv-one-piece", "One Piece", AiringStatus.ONGOING)
        ]

    def test_trending_from_home(self, fetcher):
        """Should read the homepage anime cards."""
        fetcher.get.return_value = HOME_HTML
        items = run(build(AnimeFLV, fetcher).get_trending())
        assert [r.id for r in items] == ["animeflv-dandadan"]

    @pytest.mark.parametrize("listing", ["get_trending", "get_latest"])
    def test_home_listings_single_page(self, fetcher, listing):
        """Should return nothing past page 1 instead of repeating the home page."""
        fetcher.get.return_value = HOME_HTML
        assert run(getattr(build(AnimeFLV, fetcher), listing)(2)) == []
        fetcher.get.assert_not_awaited()

    @pytest.mark.parametrize("status,expected", [(200, True), (503, False)])
    def test_health_check(self, fetcher, status, expected):
        """Should be healthy on a non-error HEAD status."""
        fetcher.head.return_value = status
        assert run(build(AnimeFLV, fetcher).health_check()) is expected


class TestPluginUtils:
    """Test HTML helpers shared by plugins."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("//cdn.example/a.jpg", "https://cdn.example/a.jpg"),
            ("/uploads/a.jpg", "https://site.example/uploads/a.jpg"),
            ("https://other.example/a.jpg", "https://other.example/a.jpg"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_absolute_url(self, url, expected):
        """Should resolve relative URLs against the site root."""
        assert absolute_url(url, "https://site.example/") == expected

    def test_script_variable(self):
        """Should decode JSON assigned to a script variable."""
        tree = HTMLParser("<script>var episodes = [[2,1],[1,2]];</script>")
        assert script_variable(tree, "episodes") == [[2, 1], [1, 2]]

    def test_script_variable_missing(self):
        """Should return None when the variable is absent."""
        tree = HTMLParser("<script>var other = 1;</script>")
        assert script_variable(tree, "episodes") is None
