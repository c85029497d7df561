import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from sonosync.application.matching import TrackMatcher
from sonosync.application.pipeline import TransferOrchestrator
from sonosync.crosscutting.config import Settings
from sonosync.domain.entities import Platform, ResolvedCredentials, TransferReport
from sonosync.domain.ports import CatalogProvider
from sonosync.infrastructure.providers.registry import build_provider


logger = logging.getLogger(__name__)

ProviderRegistry = Callable[[Platform, ResolvedCredentials, Optional[Settings]], CatalogProvider]


@dataclass(frozen=True)
class TransferRequest:
    """Everything needed to transfer one playlist."""

    source: Union[str, Platform]
    destination: Union[str, Platform]
    playlist_id: str
    name: str
    credentials: ResolvedCredentials = field(default_factory=ResolvedCredentials)
    dry_run: bool = False


def build_orchestrator(settings: Settings, transfer_id: Optional[str] = None) -> TransferOrchestrator:
    return TransferOrchestrator(
        matcher=TrackMatcher(require_artist_overlap=settings.require_artist_overlap),
        window_size=settings.window_size,
        chunk_size=settings.chunk_size,
        transfer_id=transfer_id,
    )


def transfer(request: TransferRequest,
             registry: ProviderRegistry = build_provider,
             settings: Optional[Settings] = None,
             cancel_event: Optional[threading.Event] = None,
             orchestrator: Optional[TransferOrchestrator] = None) -> TransferReport:
    """Resolve both providers once and run the transfer.

    Platform and credential problems surface here, before any provider
    makes a network call. Pass an orchestrator to read its match results
    and metrics afterwards.
    """
    settings = settings or Settings()
    source_platform = Platform.parse(request.source)
    destination_platform = Platform.parse(request.destination)

    source = registry(source_platform, request.credentials, settings)
    destination = registry(destination_platform, request.credentials, settings)

    orchestrator = orchestrator or build_orchestrator(settings)
    logger.info(f"Transferring {source_platform.value}:{request.playlist_id} "
                f"to {destination_platform.value} as '{request.name}'")
    return orchestrator.transfer(
        request.playlist_id,
        source,
        destination,
        request.name,
        cancel_event=cancel_event,
        dry_run=request.dry_run,
    )
