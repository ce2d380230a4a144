"""Tests for fragile-URL detection, proxy references and unwrapping."""

from __future__ import annotations

from urllib.parse import parse_qs, quote, urlsplit

import pytest

from notionmap.assets.urls import (
    AssetURLRewriter,
    is_already_proxied,
    parse_proxy_reference,
    unwrap_proxied_url,
)
from notionmap.config import NotionmapConfig
from notionmap.models import ProxyMetadata

SIGNED = (
    "https://prod-files-secure.s3.us-west-2.amazonaws.com/ws/file/image.png"
    "?X-Amz-Algorithm=AWS4-HMAC-SHA256&X-Amz-Credential=AKIA%2F20250101"
    "&X-Amz-Signature=deadbeef"
)


class TestShouldRewrite:
    @pytest.mark.parametrize(
        "url",
        [
            SIGNED,
            "https://s3.us-west-2.amazonaws.com/secure.notion-static.com/a/b.png",
            "https://prod-files-secure.s3.us-west-2.amazonaws.com/ws/file/doc.pdf",
            "https://bucket.s3.amazonaws.com/x.png?Signature=abc&Expires=1",
        ],
    )
    def test_fragile_urls(self, rewriter, url):
        assert rewriter.should_rewrite(url) is True

    @pytest.mark.parametrize(
        "url",
        [
            "https://images.unsplash.com/photo-1?X-Amz-Signature=x",
            "https://cdn.example.com/a.png?X-Amz-Signature=x",
            "https://bucket.s3.amazonaws.com/public/logo.png",
            "data:image/png;base64,iVBORw0KGgo=",
            "/relative/path.png",
            "",
            None,
        ],
    )
    def test_non_fragile_urls(self, rewriter, url):
        assert rewriter.should_rewrite(url) is False

    def test_already_proxied_is_not_fragile(self, rewriter):
        reference = rewriter.rewrite(SIGNED)
        assert rewriter.should_rewrite(reference) is False

    def test_custom_fragile_domain(self):
        config = NotionmapConfig(token="t", asset_fragile_domains=("storage.test",))
        rewriter = AssetURLRewriter(config)
        assert rewriter.should_rewrite("https://eu.storage.test/a.png?Signature=1") is True
        assert rewriter.should_rewrite(SIGNED) is False


class TestRewrite:
    def test_reference_shape(self, rewriter):
        metadata = ProxyMetadata(page_id="p1", block_id="b1", source="block")
        reference = rewriter.rewrite(SIGNED, metadata)

        parts = urlsplit(reference)
        assert f"{parts.scheme}://{parts.netloc}" == "https://blog.example.com"
        assert parts.path == "/api/image-proxy"
        query = parse_qs(parts.query)
        assert query == {
            "url": [SIGNED],
            "pageId": ["p1"],
            "blockId": ["b1"],
            "source": ["block"],
        }

    def test_relative_reference_without_site_url(self):
        rewriter = AssetURLRewriter(NotionmapConfig(token="t"))
        assert rewriter.rewrite(SIGNED).startswith("/api/image-proxy?url=")

    def test_empty_metadata_fields_omitted(self, rewriter):
        reference = rewriter.rewrite(SIGNED, ProxyMetadata(page_id="p1", block_id=""))
        assert set(parse_qs(urlsplit(reference).query)) == {"url", "pageId"}

    def test_no_double_wrap(self, rewriter):
        once = rewriter.rewrite(SIGNED)
        assert rewriter.rewrite(once) == once

    def test_encoded_reference_not_wrapped(self, rewriter):
        encoded = quote(rewriter.rewrite(SIGNED), safe="")
        assert rewriter.rewrite(encoded) == encoded

    @pytest.mark.parametrize(
        "url",
        [
            "data:image/gif;base64,R0lGODlhAQABAAAAACw=",
            "https://images.unsplash.com/photo-123?w=800",
            "mailto:someone@example.com",
        ],
    )
    def test_pass_through(self, rewriter, url):
        assert rewriter.rewrite(url) == url

    def test_map_url_only_rewrites_fragile(self, rewriter):
        assert rewriter.map_url("https://cdn.example.com/a.png") == "https://cdn.example.com/a.png"
        assert rewriter.map_url(SIGNED) != SIGNED
        assert rewriter.map_url(None) is None

    def test_map_url_respects_switch(self):
        rewriter = AssetURLRewriter(NotionmapConfig(token="t", rewrite_assets=False))
        assert rewriter.map_url(SIGNED) == SIGNED

    def test_custom_proxy_path(self):
        config = NotionmapConfig(token="t", proxy_path="/assets/p")
        rewriter = AssetURLRewriter(config)
        reference = rewriter.rewrite(SIGNED)
        assert reference.startswith("/assets/p?url=")
        assert rewriter.unwrap(reference) == SIGNED


class TestIsAlreadyProxied:
    def test_raw_and_encoded(self):
        assert is_already_proxied("/api/image-proxy?url=x")
        assert is_already_proxied("%2Fapi%2Fimage-proxy%3Furl%3Dx")

    def test_plain_urls(self):
        assert not is_already_proxied("https://example.com/api/other")
        assert not is_already_proxied("")
        assert not is_already_proxied(None)


class TestUnwrapProxiedUrl:
    def test_nested_s3_sample(self):
        reference = (
            "%2Fapi%2Fimage-proxy%3Furl%3Dhttps%253A%252F%252Fprod-files-secure.s3.us-west-2"
            ".amazonaws.com%252Fda63dd0f-9bae-4c9d-a318-bd0705ed73e2%252F890470fe-bb50-4322"
            "-98d2-db52e89b2fa3%252Fimage.png%253FX-Amz-Algorithm%253DAWS4-HMAC-SHA256"
        )
        out = unwrap_proxied_url(reference)
        assert out.startswith("https://")
        assert "amazonaws.com" in out
        assert "X-Amz-Algorithm=AWS4-HMAC-SHA256" in out

    def test_encoded_reference_to_plain_host(self):
        reference = "%2Fapi%2Fimage-proxy%3Furl%3Dhttps%3A%2F%2Fexample.com%2Fimg.png"
        assert unwrap_proxied_url(reference) == "https://example.com/img.png"

    def test_inner_query_parameters_survive(self):
        reference = (
            "%2Fapi%2Fimage-proxy%3Furl%3Dhttps%253A%252F%252Fexample.com%252Fimg.png"
            "%253Fparam%253Da%2526b%253Dc"
        )
        assert unwrap_proxied_url(reference) == "https://example.com/img.png?param=a&b=c"

    def test_doubly_wrapped_reference(self, rewriter):
        inner = rewriter.rewrite(SIGNED, ProxyMetadata(page_id="p"))
        outer = "/api/image-proxy?" + "url=" + quote(inner, safe="")
        assert unwrap_proxied_url(outer) == SIGNED

    def test_plain_url_unchanged(self):
        url = "https://example.com/a%20b.png?x=1"
        assert unwrap_proxied_url(url) == url

    def test_undecodable_input_returns_partial(self):
        assert unwrap_proxied_url("not-a-url") == "not-a-url"

    def test_deeply_encoded_input_terminates(self):
        value = "https://example.com/x.png"
        for _ in range(30):
            value = quote(value, safe="")
        out = unwrap_proxied_url(value)
        assert isinstance(out, str)


class TestParseProxyReference:
    def test_full_reference(self, rewriter):
        metadata = ProxyMetadata(
            page_id="p1", property="Thumbnail", property_type="files", source="page",
        )
        url, parsed = parse_proxy_reference(rewriter.rewrite(SIGNED, metadata))
        assert url == SIGNED
        assert parsed == metadata

    def test_encoded_reference(self, rewriter):
        metadata = ProxyMetadata(page_id="p1", block_id="b1", source="block")
        encoded = quote(rewriter.rewrite(SIGNED, metadata), safe="")
        url, parsed = parse_proxy_reference(encoded)
        assert url == SIGNED
        assert parsed == metadata

    def test_bare_url_has_empty_metadata(self):
        url, parsed = parse_proxy_reference("https://example.com/a.png")
        assert url == "https://example.com/a.png"
        assert parsed == ProxyMetadata()
