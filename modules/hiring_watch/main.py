from __future__ import annotations

from dataclasses import dataclass

from .lib.api_client import ListingsClient
from .lib.config import Settings
from .lib.dispatcher import TelegramDispatcher
from .lib.engine import PollEngine
from .lib.extractor import CredentialSource, TokenExtractor
from .lib.health import HealthReporter
from .lib.logging_bridge import activity as log_activity
from .lib.seen import SeenSet
from .lib.token_manager import TokenLifecycleManager


@dataclass
class Monitor:
    """Every long-lived component of one monitor process, wired together."""

    settings: Settings
    client: ListingsClient
    dispatcher: TelegramDispatcher
    source: CredentialSource
    tokens: TokenLifecycleManager
    seen: SeenSet
    engine: PollEngine
    health: HealthReporter

    def close(self) -> None:
        self.client.close()
        self.dispatcher.close()


def build(settings: Settings, *, source: CredentialSource | None = None) -> Monitor:
    """
    Entry point for the 'hiring_watch' module: construct the object graph.

    `source` replaces the browser-backed extractor (tests, or a future direct
    authentication path). Nothing is started here; the CLI primes the token and
    hands the jobs to the scheduler.
    """
    client = ListingsClient(settings)
    dispatcher = TelegramDispatcher(settings)
    if source is None:
        source = TokenExtractor(settings, verifier=client.verify)
    tokens = TokenLifecycleManager(source, guard_margin=settings.guard_margin)
    seen = SeenSet(settings.seen_policy, settings.seen_capacity, settings.seen_retain)
    engine = PollEngine(tokens, client, seen, dispatcher)
    health = HealthReporter(engine, tokens, seen)

    log_activity(
        "monitor_built",
        graphql_url=settings.graphql_url,
        poll_interval_ms=settings.poll_interval_ms,
        seen_policy=settings.seen_policy,
        max_per_cycle=settings.max_per_cycle,
    )
    return Monitor(
        settings=settings,
        client=client,
        dispatcher=dispatcher,
        source=source,
        tokens=tokens,
        seen=seen,
        engine=engine,
        health=health,
    )
