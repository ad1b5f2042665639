"""Wiring of feed clients and orchestrators from settings.

Feed clients are process-wide singletons so the scraped feed's response
cache survives between sync calls.
"""

from catalog_sync.clients.cache import ResponseCache
from catalog_sync.clients.http import RetryPolicy
from catalog_sync.clients.scraped import ScrapedFeedClient
from catalog_sync.clients.structured import StructuredFeedClient
from catalog_sync.infrastructure.config import Settings, settings
from catalog_sync.repository.base import CatalogStore
from catalog_sync.sync.aliases import CategoryAliases
from catalog_sync.sync.orchestrator import CatalogSyncOrchestrator, SyncOptions

_structured_client: StructuredFeedClient | None = None
_scraped_client: ScrapedFeedClient | None = None
_aliases: CategoryAliases | None = None


def create_structured_client(config: Settings = settings) -> StructuredFeedClient:
    """Create a structured feed client from settings."""
    return StructuredFeedClient(
        base_url=config.structured_api_url,
        token=config.structured_api_token,
        timeout=config.structured_timeout_seconds,
        retry_policy=RetryPolicy(
            attempts=config.structured_retry_attempts,
            delay=config.structured_retry_delay_seconds,
            max_delay=config.structured_retry_max_delay_seconds,
        ),
    )


def create_scraped_client(config: Settings = settings) -> ScrapedFeedClient:
    """Create a scraped feed client from settings."""
    return ScrapedFeedClient(
        base_url=config.scraped_api_url,
        access_token=config.scraped_access_token,
        cache=ResponseCache(ttl_seconds=config.scraped_cache_ttl_seconds),
        page_size=config.scraped_page_size,
        max_pages=config.scraped_max_pages,
        page_delay=config.scraped_page_delay_seconds,
        timeout=config.scraped_timeout_seconds,
        retry_policy=RetryPolicy(
            attempts=config.scraped_retry_attempts,
            delay=config.scraped_retry_delay_seconds,
            max_delay=config.scraped_retry_max_delay_seconds,
        ),
    )


def get_structured_client() -> StructuredFeedClient:
    """Get the structured feed client singleton."""
    global _structured_client
    if _structured_client is None:
        _structured_client = create_structured_client()
    return _structured_client


def get_scraped_client() -> ScrapedFeedClient:
    """Get the scraped feed client singleton."""
    global _scraped_client
    if _scraped_client is None:
        _scraped_client = create_scraped_client()
    return _scraped_client


def get_category_aliases() -> CategoryAliases:
    """Get the alias table, loaded once from the configured file."""
    global _aliases
    if _aliases is None:
        _aliases = CategoryAliases.from_file(settings.sync_category_aliases_path)
    return _aliases


async def close_clients() -> None:
    """Close the singleton clients."""
    global _structured_client, _scraped_client
    if _structured_client is not None:
        await _structured_client.close()
        _structured_client = None
    if _scraped_client is not None:
        await _scraped_client.close()
        _scraped_client = None


def build_orchestrator(store: CatalogStore) -> CatalogSyncOrchestrator:
    """Create an orchestrator over a store with the configured feeds."""
    return CatalogSyncOrchestrator(
        store,
        structured_client=get_structured_client(),
        scraped_client=get_scraped_client(),
        options=SyncOptions.from_settings(settings),
        aliases=get_category_aliases(),
    )
