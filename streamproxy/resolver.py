"""Recursive playlist pipeline: media playlists are rewritten, master playlists resolved."""

import logging

from .errors import RecursionLimitExceeded
from .playlist import is_master_playlist, is_playlist, rewrite_media_playlist, select_variant
from .urls import resolve_base, resolve_url

logger = logging.getLogger(__name__)


class PlaylistResolver:
    """Turns any M3U8 document into a proxied media playlist.

    A master playlist is collapsed to its best variant, which is fetched and
    processed in turn, so the client always receives segment URIs. Nesting is
    bounded by ``max_recursion``; resolved variants are cached by URL.
    """

    def __init__(self, fetcher, cache, max_recursion=5):
        self.fetcher = fetcher
        self.cache = cache
        self.max_recursion = max_recursion

    def process(self, target_url, body, depth=0):
        if is_master_playlist(body):
            logger.debug(f"Detected master playlist: {target_url} (depth: {depth})")
            return self.resolve_master(target_url, body, depth)
        logger.debug(f"Detected media playlist: {target_url} (depth: {depth})")
        return rewrite_media_playlist(target_url, body)

    def resolve_master(self, target_url, body, depth):
        if depth > self.max_recursion:
            raise RecursionLimitExceeded(target_url, self.max_recursion)

        variant = select_variant(body)
        if variant is None:
            logger.info(f"No sub-playlist found in master playlist {target_url}, treating it as a media playlist")
            return rewrite_media_playlist(target_url, body)

        variant_url = resolve_url(resolve_base(target_url), variant.uri)
        cached = self.cache.get_processed(variant_url)
        if cached is not None:
            logger.info(f"[Cache hit] Sub-playlist of master playlist: {variant_url}")
            return cached

        logger.info(f"Selected sub-playlist (bandwidth: {variant.bandwidth}): {variant_url}")
        # Variant requests carry no client headers.
        result = self.fetcher.fetch(variant_url, {})
        variant_body = result.text

        if is_playlist(variant_body, result.content_type):
            processed = self.process(variant_url, variant_body, depth + 1)
        else:
            logger.info(f"Sub-playlist {variant_url} is not M3U8 (type: {result.content_type}), treating it as a media playlist")
            processed = rewrite_media_playlist(variant_url, variant_body)

        self.cache.put_processed(variant_url, processed)
        return processed
