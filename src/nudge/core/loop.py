from __future__ import annotations

import logging
import time

from nudge.channels.base import InboundMessage
from nudge.channels.whatsapp_gateway import WhatsAppConfig, WhatsAppGateway
from nudge.config.settings import Settings
from nudge.core.engine import ReminderEngine
from nudge.core.scheduler import HourlyScheduler

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def build_gateway(settings: Settings) -> WhatsAppGateway:
    return WhatsAppGateway(
        WhatsAppConfig(
            gateway_url=settings.whatsapp_gateway_url or "http://127.0.0.1:3001",
            api_key=settings.whatsapp_api_key,
        )
    )


def run_loop(settings: Settings) -> None:
    logger.info("Reminder daemon starting. Mode: %s", settings.mode)

    wa = build_gateway(settings)
    engine = ReminderEngine.build(settings, channel=wa)
    engine.store.ensure_schema()
    engine.snoozer.rearm()

    def _on_message(msg: InboundMessage) -> None:
        reply = engine.handle_command(msg.text)
        wa.send(msg.sender, reply)

    wa.on_message = _on_message
    wa.start()

    scheduler = HourlyScheduler(engine.run_reminders, engine.policy.tz)
    scheduler.start()

    try:
        while True:
            time.sleep(2)
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        scheduler.stop()
        wa.stop()
        engine.scoring.stop()
        engine.store.close()
