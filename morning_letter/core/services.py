"""Wiring of settings, store, clients and services for one execution."""

import logging
from dataclasses import dataclass

from .dispatch import DispatchEngine
from .drafting import LetterDrafter
from .ingestion import NewsIngestor
from .newsletter import NewsletterService
from .sanitizer import ContentSanitizer
from .store import Datastore
from .subscribers import SubscriberService
from ..clients.link_preview import LinkPreviewClient
from ..clients.llm_router import LLMRouter
from ..clients.rss import FeedFetcher
from ..clients.stibee import StibeeClient
from ..models.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the CLI, web app and scheduler need."""

    settings: Settings
    store: Datastore
    stibee: StibeeClient
    router: LLMRouter
    ingestor: NewsIngestor
    drafter: LetterDrafter
    newsletters: NewsletterService
    dispatcher: DispatchEngine
    subscribers: SubscriberService


def build_services(settings: Settings) -> Services:
    """Create the service graph around one settings object."""
    sanitizer = ContentSanitizer()
    store = Datastore(settings.database_path)
    stibee = StibeeClient(settings)
    router = LLMRouter.from_settings(settings)
    router.sanitizer = sanitizer

    logger.debug(
        f"Services built: db={settings.database_path}, mode={settings.delivery_mode}, "
        f"ai={router.configured_providers or 'none'}"
    )
    return Services(
        settings=settings,
        store=store,
        stibee=stibee,
        router=router,
        ingestor=NewsIngestor(
            store,
            FeedFetcher(settings.feed_sources, settings),
            sanitizer,
            settings,
            LinkPreviewClient(settings),
        ),
        drafter=LetterDrafter(store, router),
        newsletters=NewsletterService(store),
        dispatcher=DispatchEngine(store, stibee, settings, sanitizer),
        subscribers=SubscriberService(store, stibee),
    )
