from typing import Callable, Dict, Optional, Union

from sonosync.crosscutting.config import Settings
from sonosync.domain.entities import Platform, ResolvedCredentials
from sonosync.domain.errors import UnsupportedPlatform
from sonosync.domain.ports import CatalogProvider
from sonosync.infrastructure.providers.apple import AppleMusicProvider
from sonosync.infrastructure.providers.deezer import DeezerProvider
from sonosync.infrastructure.providers.spotify import SpotifyProvider
from sonosync.infrastructure.providers.youtube import YouTubeMusicProvider


ProviderFactory = Callable[[ResolvedCredentials, Settings], CatalogProvider]

# Each factory pulls its own token so the Apple stub can refuse before
# credentials are checked.
PROVIDER_FACTORIES: Dict[Platform, ProviderFactory] = {
    Platform.SPOTIFY: lambda creds, settings: SpotifyProvider(
        creds.token_for(Platform.SPOTIFY),
        market=settings.spotify_market,
        requests_timeout=settings.http_timeout,
    ),
    Platform.DEEZER: lambda creds, settings: DeezerProvider(
        creds.token_for(Platform.DEEZER), timeout=settings.http_timeout),
    Platform.YOUTUBE: lambda creds, settings: YouTubeMusicProvider(
        creds.token_for(Platform.YOUTUBE), timeout=settings.http_timeout),
    Platform.APPLE: lambda creds, settings: AppleMusicProvider(creds.tokens.get(Platform.APPLE)),
}


def build_provider(platform: Union[str, Platform],
                   credentials: ResolvedCredentials,
                   settings: Optional[Settings] = None) -> CatalogProvider:
    """Build the catalog provider for a platform tag.

    Raises UnsupportedPlatform for unknown or unimplemented platforms and
    AuthenticationMissing when no token was resolved. Neither check touches
    the network; providers connect lazily on their first call.
    """
    platform = Platform.parse(platform)
    factory = PROVIDER_FACTORIES.get(platform)
    if factory is None:
        raise UnsupportedPlatform(platform)
    return factory(credentials, settings or Settings())
