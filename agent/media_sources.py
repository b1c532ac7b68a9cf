from typing import List, Optional

from loguru import logger

from core.data_models import MediaSource, PageMetadata, ScrapeMediaSource


class MediaShelf:
    """
    Presentation-side list of media sources with a cycling cursor.

    The cursor runs over len(sources) + 1 positions; the extra position (and the
    initial -1) mean "show the live video feed" rather than a stored source.
    """

    def __init__(self) -> None:
        self.sources: List[MediaSource] = []
        self.current_index = -1

    def add(self, source: MediaSource) -> MediaSource:
        self.sources.append(source)
        return source

    def add_scraped_content(
        self,
        content: str,
        url: str,
        html: Optional[str] = None,
        metadata: Optional[PageMetadata] = None,
    ) -> ScrapeMediaSource:
        """Matches the scrape tool's on_new_content(content, url) callback."""
        source = ScrapeMediaSource(
            content=content,
            url=url,
            html=html,
            metadata=metadata,
            title=metadata.title if metadata else None,
        )
        self.add(source)
        logger.debug("media shelf: stored scrape of {} ({} chars)", url, len(content))
        return source

    def cycle(self) -> int:
        if not self.sources:
            return self.current_index
        self.current_index = (self.current_index + 1) % (len(self.sources) + 1)
        return self.current_index

    def current(self) -> Optional[MediaSource]:
        if 0 <= self.current_index < len(self.sources):
            return self.sources[self.current_index]
        return None
