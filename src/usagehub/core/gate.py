"""Secure store prompt gate for usagehub.

Reading another tool's item from the OS secure store can show a system
prompt. The gate decides when such a prompt is acceptable and backs off
after a prompt was denied (or skipped) in the background.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC
from datetime import datetime
from datetime import timedelta
from enum import StrEnum

import msgspec

from usagehub.config.cache import CooldownState
from usagehub.config.cache import CooldownStore
from usagehub.config.cache import MemoryCooldownStore
from usagehub.models import Interaction

logger = logging.getLogger(__name__)

DENIED_COOLDOWN = timedelta(minutes=5)


class PromptMode(StrEnum):
    """When an interactive secure store prompt may be shown."""

    NEVER = "never"
    ONLY_ON_USER_ACTION = "only_on_user_action"
    ALWAYS = "always"


class ReadStrategy(StrEnum):
    """How the secure store is read."""

    SECURE_STORE = "secure_store"  # Library read, may prompt
    HELPER_CLI = "helper_cli"  # One-shot helper subprocess, never prompts


class PromptPolicy(msgspec.Struct, frozen=True):
    """Prompt decision inputs for one request."""

    mode: PromptMode
    is_applicable: bool
    interaction: Interaction

    @property
    def can_prompt_now(self) -> bool:
        match self.mode:
            case PromptMode.NEVER:
                return False
            case PromptMode.ONLY_ON_USER_ACTION:
                return self.interaction == Interaction.USER_INITIATED
            case PromptMode.ALWAYS:
                return True

    @property
    def should_respect_cooldown(self) -> bool:
        return self.interaction != Interaction.USER_INITIATED


class AccessGate:
    """Tracks denied prompts and answers "may we prompt now?"."""

    def __init__(
        self,
        mode: PromptMode = PromptMode.ONLY_ON_USER_ACTION,
        read_strategy: ReadStrategy = ReadStrategy.SECURE_STORE,
        denied_cooldown: timedelta = DENIED_COOLDOWN,
        clock: Callable[[], datetime] | None = None,
        store: CooldownStore | None = None,
    ):
        self.mode = mode
        self.read_strategy = read_strategy
        self.denied_cooldown = denied_cooldown
        self.clock = clock or (lambda: datetime.now(UTC))
        self.store = store or MemoryCooldownStore()
        self._lock = threading.Lock()
        self._denied_at = self.store.load().last_attempt_at

    @property
    def is_applicable(self) -> bool:
        """False when reads can never show a prompt."""
        return self.read_strategy != ReadStrategy.HELPER_CLI

    def _denied_active_locked(self, now: datetime) -> bool:
        if self._denied_at is None:
            return False
        return now - self._denied_at < self.denied_cooldown

    def denied_remaining(self, now: datetime | None = None) -> timedelta | None:
        """Time left in the denied cooldown."""
        now = now or self.clock()
        with self._lock:
            if not self._denied_active_locked(now):
                return None
            return self._denied_at + self.denied_cooldown - now

    def should_allow_prompt(
        self,
        interaction: Interaction = Interaction.BACKGROUND,
        now: datetime | None = None,
    ) -> bool:
        """Whether a prompt-capable read may run for this caller."""
        if not self.is_applicable:
            return True
        if self.mode == PromptMode.NEVER:
            return False
        if (
            self.mode == PromptMode.ONLY_ON_USER_ACTION
            and interaction != Interaction.USER_INITIATED
        ):
            return False
        if interaction == Interaction.USER_INITIATED:
            return True
        now = now or self.clock()
        with self._lock:
            return not self._denied_active_locked(now)

    def record_denied(self, now: datetime | None = None) -> None:
        """Start the denied cooldown."""
        now = now or self.clock()
        with self._lock:
            self._denied_at = now
        logger.info("Secure store prompt denied; backing off background prompts")
        self.store.save(
            CooldownState(
                last_attempt_at=now,
                cooldown_seconds=self.denied_cooldown.total_seconds(),
            )
        )

    def clear_denied(self) -> bool:
        """Clear the denied cooldown. Returns whether one was recorded."""
        with self._lock:
            cleared = self._denied_at is not None
            self._denied_at = None
        if cleared:
            self.store.clear()
        return cleared

    def policy(self, interaction: Interaction) -> PromptPolicy:
        """Build the prompt policy for a request.

        A user-initiated request clears any denied cooldown.
        """
        if interaction == Interaction.USER_INITIATED and self.clear_denied():
            logger.info("Cleared secure store denied cooldown on user action")
        return PromptPolicy(
            mode=self.mode,
            is_applicable=self.is_applicable,
            interaction=interaction,
        )
