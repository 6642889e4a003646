"""Lifecycle of the single durable share link bound to the stable delivery path."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Callable, Optional, Protocol

from handoff.core.models import DeliveryShareOutcome, ShareLinkState, ShareStatus, utc_now
from handoff.core.paths import is_stable_share_path
from handoff.errors import DeliveryCancelled

logger = logging.getLogger(__name__)

VERSION_FOLDER_ERROR = "Stable share path resolved to a version folder; refusing to create a share link."
MISSING_TOKEN_ERROR = "Dropbox access token not configured; share link not created."


class ShareLinkClient(Protocol):
    def validate_access_token(self, token: str) -> None:
        ...

    def get_or_create_shared_link(self, token: str, path: str):
        ...


class AccessTokenProvider(Protocol):
    def get_access_token(self):
        ...


@dataclass(frozen=True)
class ShareLinkDecision:
    should_create: bool
    reuse_existing: bool
    reason: str


def determine_share_link_decision(
    existing: ShareLinkState,
    *,
    refresh_requested: bool,
    test_mode: bool,
    now: datetime,
    ttl: timedelta = timedelta(days=7),
) -> ShareLinkDecision:
    """Evaluate the create/reuse table in order; the first matching row wins."""
    has_url = bool(existing.url and existing.url.strip())
    status_failed = (existing.status or "").strip().lower() == ShareStatus.FAILED.value

    if has_url and not refresh_requested and not status_failed:
        verified = existing.last_verified_at_utc
        if not test_mode and verified is not None and now - verified > ttl:
            return ShareLinkDecision(True, False, "ttl_expired")
        return ShareLinkDecision(False, True, "reuse_existing")
    if not has_url:
        return ShareLinkDecision(True, False, "missing_share")
    if refresh_requested:
        return ShareLinkDecision(True, False, "refresh_requested")
    if status_failed:
        return ShareLinkDecision(True, False, "previous_failed")
    return ShareLinkDecision(True, False, "refresh_fallback")


class ShareLinkManager:
    """Create, reuse or refresh the share link; failures become a ``failed`` outcome."""

    def __init__(
        self,
        client: ShareLinkClient,
        token_provider: AccessTokenProvider,
        *,
        ttl_days: int = 7,
        now_fn: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._client = client
        self._token_provider = token_provider
        self._ttl = timedelta(days=ttl_days)
        self._now_fn = now_fn or utc_now

    def ensure(
        self,
        stable_path: str,
        existing: ShareLinkState,
        *,
        refresh_requested: bool,
        test_mode: bool,
        resolve_api_path: Optional[Callable[[str], str]] = None,
    ) -> DeliveryShareOutcome:
        """Ensure a share link exists for ``stable_path``.

        Args:
            stable_path: Version-independent destination path to link
            existing: Share state read from project metadata at attempt start
            refresh_requested: Force recreation regardless of state
            test_mode: Disables the TTL check
            resolve_api_path: Maps ``stable_path`` to the API-addressable path;
                identity when omitted

        Returns:
            Outcome; on failure the previous url/id are preserved and no
            verification timestamp is set.
        """
        if not is_stable_share_path(stable_path):
            logger.warning("Refusing share link for version folder path %s", stable_path)
            return self._failed(existing, VERSION_FOLDER_ERROR)

        try:
            token_result = self._token_provider.get_access_token()
        except DeliveryCancelled:
            raise
        except Exception as exc:
            logger.warning("Dropbox token lookup failed: %s", exc)
            return self._failed(existing, f"Dropbox share link failed: {exc}")
        token = getattr(token_result, "access_token", None)
        if not token or not token.strip():
            return self._failed(existing, getattr(token_result, "error", None) or MISSING_TOKEN_ERROR)

        now = self._now_fn()
        decision = determine_share_link_decision(
            existing,
            refresh_requested=refresh_requested,
            test_mode=test_mode,
            now=now,
            ttl=self._ttl,
        )
        logger.info("Share link decision: %s", decision.reason)
        if decision.reuse_existing and existing.url:
            return DeliveryShareOutcome(
                status=ShareStatus.REUSED,
                url=existing.url,
                share_id=existing.share_id,
                verified_at_utc=now,
            )

        try:
            api_path = resolve_api_path(stable_path) if resolve_api_path else stable_path
            logger.info("Dropbox share link path=%s", api_path)
            self._client.validate_access_token(token)
            shared = self._client.get_or_create_shared_link(token, api_path)
        except DeliveryCancelled:
            raise
        except Exception as exc:
            logger.warning("Dropbox share link failed: %s", exc)
            return self._failed(existing, f"Dropbox share link failed: {exc}")

        return DeliveryShareOutcome(
            status=ShareStatus.CREATED if shared.is_new else ShareStatus.REUSED,
            url=shared.url,
            share_id=shared.share_id,
            verified_at_utc=self._now_fn(),
        )

    @staticmethod
    def _failed(existing: ShareLinkState, error: str) -> DeliveryShareOutcome:
        return DeliveryShareOutcome(
            status=ShareStatus.FAILED,
            url=existing.url,
            share_id=existing.share_id,
            error=error,
            verified_at_utc=None,
        )
