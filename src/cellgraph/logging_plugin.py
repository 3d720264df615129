"""Logging plugin. Opt-in: pass LoggingPlugin() in ReactiveSystem(plugins=...)."""

import logging

from cellgraph.plugin import Plugin

logger = logging.getLogger("cellgraph.logging_plugin")


class LoggingPlugin(Plugin):
    """Logs the lifecycle of every reactive.

    Creation, updates and removal go out at INFO, failures at ERROR.
    Never changes a config or value: transform hooks hand back what they get.
    """

    def __init__(self, name: str = "logger", *, log: logging.Logger | None = None) -> None:
        super().__init__(name)
        self._log = log or logger

    def initialize(self, context):
        self._log.info("Logging plugin initialized (%d reactives)", len(context.reactives))

    def before_create(self, config):
        self._log.info("Creating reactive: id=%r type=%r", config.id, config.type)
        return config

    def after_create(self, reactive):
        self._log.info("Reactive created: %r", reactive)

    def after_update(self, value, reactive):
        self._log.info(
            "Reactive updated: %r = %r (update %d)",
            reactive.id, value, reactive.meta.update_count,
        )

    def before_destroy(self, reactive):
        self._log.info("Removing reactive: %r", reactive.id)

    def handle_error(self, error, context):
        self._log.error(
            "Error in reactive %r during %s: %r",
            context.reactive_id, context.phase, error,
        )
