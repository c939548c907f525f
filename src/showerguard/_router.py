"""MQTT inbound topic routing.

Two kinds of inbound messages reach the bridge:

- **commands** on ``{prefix}/{command}/set`` (e.g. ``showerguard/coldshot/set``)
- **external state** on exact topics owned by another device, such as the
  boiler's tap state topic

Topic convention::

    {prefix}/{command}/set    → command topic (subscribed, routed here)
    {prefix}/{command}/state  → command response (published, not routed)
    <external topic>          → listener (subscribed, routed here)
"""

from __future__ import annotations

import logging

from showerguard._mqtt import MessageCallback

logger = logging.getLogger(__name__)


class TopicRouter:
    """Routes inbound MQTT messages to command handlers and listeners."""

    def __init__(self, *, topic_prefix: str) -> None:
        self._topic_prefix = topic_prefix
        self._handlers: dict[str, MessageCallback] = {}
        self._listeners: dict[str, MessageCallback] = {}

    def register(self, command: str, handler: MessageCallback) -> None:
        """Register the handler for ``{prefix}/{command}/set``.

        Raises:
            ValueError: If a handler is already registered for *command*.
        """
        if command in self._handlers:
            msg = f"Handler already registered for command '{command}'"
            raise ValueError(msg)
        self._handlers[command] = handler

    def listen(self, topic: str, handler: MessageCallback) -> None:
        """Register the listener for the exact external *topic*.

        Raises:
            ValueError: If a listener is already registered for *topic*.
        """
        if topic in self._listeners:
            msg = f"Listener already registered for topic '{topic}'"
            raise ValueError(msg)
        self._listeners[topic] = handler

    async def route(self, topic: str, payload: str) -> None:
        """Route an inbound MQTT message.

        Exact listeners win over command topics.  Unknown commands are
        logged at WARNING; unrelated topics are ignored silently.
        """
        listener = self._listeners.get(topic)
        if listener is not None:
            await listener(topic, payload)
            return

        command = self._extract_command(topic)
        if command is None:
            return

        handler = self._handlers.get(command)
        if handler is None:
            logger.warning(
                "No handler registered for command '%s' (topic: %s)",
                command,
                topic,
            )
            return

        await handler(topic, payload)

    def _extract_command(self, topic: str) -> str | None:
        """Return the command name if *topic* is ``{prefix}/{command}/set``."""
        prefix = self._topic_prefix + "/"
        suffix = "/set"
        if not (topic.startswith(prefix) and topic.endswith(suffix)):
            return None
        middle = topic[len(prefix) : -len(suffix)]
        if "/" in middle or not middle:
            return None
        return middle

    @property
    def subscriptions(self) -> list[str]:
        """Topics to subscribe to for every registered handler and listener."""
        subs = [f"{self._topic_prefix}/{command}/set" for command in self._handlers]
        subs.extend(self._listeners)
        return subs
