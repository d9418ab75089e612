"""Tests for CachePolicySelector."""

from site_deploy.cache_policy import IMMUTABLE, MEDIUM_TTL, REVALIDATE, CachePolicySelector


class TestCachePolicySelector:
    def test_hashed_asset_directory_is_immutable(self):
        selector = CachePolicySelector()
        assert selector.select("_next/static/abc123.js") == IMMUTABLE
        assert selector.select("_next/static/css/app.css") == IMMUTABLE

    def test_immutable_directory_wins_over_extension(self):
        # A .txt under the hashed directory is still content-addressed
        assert CachePolicySelector().select("_next/static/chunks/LICENSE.txt") == IMMUTABLE

    def test_documents_always_revalidate(self):
        selector = CachePolicySelector(assets_hashed=True)
        for path in ("index.html", "about/index.html", "sitemap.xml", "robots.txt", "PAGE.HTML"):
            assert selector.select(path) == REVALIDATE

    def test_unhashed_assets_get_medium_ttl(self):
        selector = CachePolicySelector(assets_hashed=False)
        assert selector.select("images/hero.webp") == MEDIUM_TTL
        assert selector.select("favicon.ico") == MEDIUM_TTL

    def test_hashed_assets_cached_forever(self):
        selector = CachePolicySelector(assets_hashed=True)
        assert selector.select("images/hero.4f2a9c.webp") == IMMUTABLE

    def test_custom_immutable_directory(self):
        selector = CachePolicySelector(immutable_dir="/assets/")
        assert selector.select("assets/app.js") == IMMUTABLE
        assert selector.select("_next/static/app.js") == MEDIUM_TTL

    def test_prefix_match_is_per_directory(self):
        assert CachePolicySelector().select("_next/staticfile.js") == MEDIUM_TTL

    def test_windows_separators(self):
        assert CachePolicySelector().select("_next\\static\\abc.js") == IMMUTABLE

    def test_pure(self):
        selector = CachePolicySelector()
        paths = ["index.html", "_next/static/a.js", "img/x.png"]
        assert [selector.select(p) for p in paths] == [selector.select(p) for p in paths]

    def test_revalidate_policy_has_zero_max_age(self):
        assert "max-age=0" in REVALIDATE
        assert "must-revalidate" in REVALIDATE
