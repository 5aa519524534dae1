from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from nudge.adapters.llm import LLMClient
from nudge.channels.base import Channel
from nudge.config.settings import ReminderPolicy, Settings
from nudge.core.commands import CommandInterpreter
from nudge.core.delivery import ReminderDelivery
from nudge.core.scorer import ScoringQueue, UrgencyScorer
from nudge.core.selector import ReminderSelector
from nudge.core.snooze import SnoozeManager
from nudge.memory.store import ItemStore, PostgresItemStore, StoreConfig
from nudge.memory.types import MemoryItem

logger = logging.getLogger(__name__)


@dataclass
class ReminderEngine:
    policy: ReminderPolicy
    store: ItemStore
    scorer: UrgencyScorer
    scoring: ScoringQueue
    selector: ReminderSelector
    delivery: ReminderDelivery
    snoozer: SnoozeManager
    commands: CommandInterpreter

    @classmethod
    def build(cls, settings: Settings, channel: Channel, store: ItemStore | None = None) -> "ReminderEngine":
        if store is None:
            store = PostgresItemStore(
                StoreConfig(
                    host=settings.db_host,
                    port=settings.db_port,
                    dbname=settings.db_name,
                    user=settings.db_user,
                    password=settings.db_password,
                )
            )
        oracle = None
        if settings.llm_api_key:
            oracle = LLMClient(
                api_base=settings.llm_api_base,
                api_key=settings.llm_api_key,
                model=settings.llm_model,
                timeout_sec=settings.llm_timeout_sec,
            )
        else:
            logger.warning("LLM_API_KEY not set: scoring and selection are disabled")
        return cls.assemble(settings.policy(), store, oracle, channel, settings.reminder_recipient)

    @classmethod
    def assemble(
        cls,
        policy: ReminderPolicy,
        store: ItemStore,
        oracle: LLMClient | None,
        channel: Channel,
        recipient: str | None,
    ) -> "ReminderEngine":
        scorer = UrgencyScorer(store=store, oracle=oracle, policy=policy)
        snoozer = SnoozeManager(store=store, policy=policy)
        return cls(
            policy=policy,
            store=store,
            scorer=scorer,
            scoring=ScoringQueue(scorer),
            selector=ReminderSelector(store=store, oracle=oracle, policy=policy),
            delivery=ReminderDelivery(store=store, channel=channel, recipient=recipient, policy=policy),
            snoozer=snoozer,
            commands=CommandInterpreter(store=store, snoozer=snoozer, policy=policy),
        )

    def upsert_item(self, item: MemoryItem) -> None:
        self.store.upsert(item)
        self.rescore()

    def delete_item(self, item_id: str) -> bool:
        deleted = self.store.delete(item_id)
        if not deleted:
            logger.info("Delete of unknown item %s", item_id)
        return deleted

    def rescore(self) -> None:
        """Queue a scoring pass over every undone item."""
        self.scoring.submit(self.store.get_undone())

    def run_reminders(self, now: datetime | None = None) -> list[str]:
        released = self.snoozer.release_overdue(now)
        if released:
            logger.info("Released %d overdue snooze(s)", released)
        ids = self.selector.decide(now)
        if not ids:
            logger.info("No reminders to send this run.")
            return []
        sent = self.delivery.send_reminders(ids, now)
        return [m.id for m in sent]

    def handle_command(self, text: str) -> str:
        return self.commands.handle(text)
