"""Websocket subscription that feeds room change notifications to a controller."""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING, Any, Callable

from websockets.exceptions import ConnectionClosedError
from websockets.sync.client import connect as ws_connect

if TYPE_CHECKING:
    from pokeraid.client.controller import RaidController

logger = logging.getLogger(__name__)


class RoomSubscription:
    """Reads `room.changed` events on a background thread until closed."""

    def __init__(
        self,
        controller: "RaidController",
        url: str,
        connect: Callable[[str], Any] | None = None,
    ) -> None:
        self.controller = controller
        self.url = url
        self._connect = connect if connect is not None else ws_connect
        self._connection: Any = None
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "RoomSubscription":
        self._connection = self._connect(self.url)
        self._thread = threading.Thread(target=self._run, name=f"raid-subscription:{self.url}", daemon=True)
        self._thread.start()
        logger.info("Subscribed to %s", self.url)
        return self

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)
        logger.info("Unsubscribed from %s", self.url)

    def _run(self) -> None:
        try:
            for message in self._connection:
                try:
                    event = json.loads(message)
                except ValueError:
                    logger.warning("Ignoring malformed change event from %s", self.url)
                    continue
                if isinstance(event, dict):
                    self.controller.handle_change(event)
        except ConnectionClosedError as exc:
            logger.warning("Subscription to %s closed abnormally: %s", self.url, exc)
