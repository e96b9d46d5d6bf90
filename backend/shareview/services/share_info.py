"""Share metadata lookup, cached for the lifetime of a page session."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from shareview.errors import LinkInvalid
from shareview.schemas.share import ShareInfo

if TYPE_CHECKING:
    from shareview.services.share_client import ShareApiClient

logger = logging.getLogger(__name__)


class ShareInfoResolver:
    """Resolves a token's policy once; later calls reuse the outcome."""

    def __init__(self, client: ShareApiClient, token: str):
        self._client = client
        self._token = token
        self._info: ShareInfo | None = None
        self._error: LinkInvalid | None = None

    @property
    def info(self) -> ShareInfo | None:
        return self._info

    @property
    def error(self) -> LinkInvalid | None:
        return self._error

    async def resolve(self) -> ShareInfo:
        """Return the ShareInfo or raise LinkInvalid. Hits the backend at most once."""
        if self._info is not None:
            return self._info
        if self._error is not None:
            raise self._error

        try:
            self._info = await self._client.get_share_info(self._token)
        except LinkInvalid as e:
            logger.info("Share link %s rejected: %s", self._token, e.message)
            self._error = e
            raise

        logger.info(
            "Share %s: type=%s restricted=%s expiry=%s",
            self._token, self._info.share_type, self._info.is_restricted, self._info.expiry_date,
        )
        return self._info
