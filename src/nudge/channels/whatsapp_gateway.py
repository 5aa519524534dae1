from __future__ import annotations

import asyncio
import json
import logging
import threading
from dataclasses import dataclass
from typing import Callable

import requests
import websockets

from nudge.channels.base import Channel, ChannelError, InboundMessage

logger = logging.getLogger(__name__)

RECONNECT_DELAY_SEC = 2.0


@dataclass
class WhatsAppConfig:
    gateway_url: str
    api_key: str | None = None
    send_timeout_sec: int = 10


class WhatsAppGateway(Channel):
    def __init__(self, config: WhatsAppConfig, on_message: Callable[[InboundMessage], None] | None = None) -> None:
        self.config = config
        self.on_message = on_message
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def _headers(self) -> dict[str, str]:
        headers = {}
        if self.config.api_key:
            headers["x-api-key"] = self.config.api_key
        return headers

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name="whatsapp-listener", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def send(self, recipient: str, text: str) -> None:
        try:
            resp = requests.post(
                f"{self.config.gateway_url}/send",
                json={"to": recipient, "text": text},
                headers=self._headers(),
                timeout=self.config.send_timeout_sec,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise ChannelError(f"whatsapp send failed: {exc}") from exc

    def health(self) -> bool:
        try:
            resp = requests.get(f"{self.config.gateway_url}/health", headers=self._headers(), timeout=5)
        except requests.RequestException:
            return False
        return resp.ok

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                asyncio.run(self._listen())
            except Exception:
                logger.warning("Gateway event stream dropped, reconnecting", exc_info=True)
            self._stop.wait(RECONNECT_DELAY_SEC)

    async def _listen(self) -> None:
        ws_url = self.config.gateway_url.replace("http://", "ws://").replace("https://", "wss://")
        ws_url = f"{ws_url}/events"
        async with websockets.connect(ws_url, additional_headers=self._headers()) as ws:
            logger.info("Listening for WhatsApp events on %s", ws_url)
            async for message in ws:
                if self._stop.is_set():
                    return
                self._dispatch(message)

    def _dispatch(self, message: str | bytes) -> None:
        try:
            payload = json.loads(message)
        except ValueError:
            logger.debug("Ignoring non-JSON gateway event")
            return
        if not isinstance(payload, dict):
            return
        kind = payload.get("type")
        if kind == "status":
            logger.info("Gateway status: %s", payload.get("data"))
        if kind != "message" or not self.on_message:
            return
        incoming = InboundMessage(
            channel="whatsapp",
            sender=payload.get("from", ""),
            text=payload.get("text", ""),
        )
        try:
            self.on_message(incoming)
        except Exception:
            logger.exception("Inbound message handler failed")
