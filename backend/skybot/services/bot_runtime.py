from __future__ import annotations

from ..ai.provider_chain import AiProviderChain
from ..ai.providers import AiProvider, build_providers
from ..observability.logging import get_logger
from ..settings import Settings
from .cache_sweeper import CacheSweeper
from .commands import CommandRegistry, build_default_registry
from .conversation_history import ConversationHistoryStore
from .conversation_state_store import ConversationStateStore
from .dispatch_engine import DispatchEngine
from .event_dedupe import EventDeduplicator
from .interaction_log import InteractionLogger
from .slack_tokens import SlackTokenStore
from .slack_web import SlackGateway

log = get_logger("bot_runtime")


class BotRuntime:
    """
    Owns every in-memory component of the bot for one process.

    Collaborators can be swapped in for tests; anything left as None is built
    from settings.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        providers: list[AiProvider] | None = None,
        gateway: SlackGateway | None = None,
        tokens: SlackTokenStore | None = None,
        interactions: InteractionLogger | None = None,
        registry: CommandRegistry | None = None,
    ):
        self.settings = settings
        self.dedupe = EventDeduplicator(retention_seconds=settings.event_dedupe_retention_seconds)
        self.states = ConversationStateStore()
        self.history = ConversationHistoryStore()
        self.gateway = gateway or SlackGateway()
        self.tokens = tokens or SlackTokenStore()
        self.interactions = interactions or InteractionLogger()
        self.chain = AiProviderChain(
            providers=providers if providers is not None else build_providers(settings),
            states=self.states,
            history=self.history,
            default_system_prompt=settings.ai_system_prompt,
            compaction_threshold=settings.history_compaction_threshold,
            keep_recent=settings.history_keep_recent,
            interactions=self.interactions,
        )
        self.registry = registry or build_default_registry(
            gateway=self.gateway,
            prefix=settings.bot_command_prefix,
            timezone_name=settings.bot_timezone,
            interactions=self.interactions,
        )
        self.engine = DispatchEngine(
            dedupe=self.dedupe,
            states=self.states,
            history=self.history,
            chain=self.chain,
            registry=self.registry,
            gateway=self.gateway,
            tokens=self.tokens,
            interactions=self.interactions,
            command_prefix=settings.bot_command_prefix,
            max_attempts=settings.bot_max_command_attempts,
        )
        self.sweeper = CacheSweeper(
            dedupe=self.dedupe,
            states=self.states,
            history=self.history,
            interval_seconds=settings.cache_sweep_interval_seconds,
            pending_ttl_seconds=settings.event_dedupe_retention_seconds,
            ai_mode_ttl_seconds=settings.ai_mode_ttl_seconds,
        )

    def start(self) -> None:
        self.sweeper.start()
        log.info(
            "bot_runtime_started",
            providers=[p.name for p in self.chain.providers],
            configured=[p.name for p in self.chain.providers if p.configured],
        )

    def shutdown(self) -> None:
        self.sweeper.stop()
        log.info("bot_runtime_stopped")


_runtime: BotRuntime | None = None


def get_runtime() -> BotRuntime:
    global _runtime
    if _runtime is None:
        from ..settings import settings

        _runtime = BotRuntime(settings)
    return _runtime


def set_runtime(runtime: BotRuntime | None) -> None:
    global _runtime
    _runtime = runtime
