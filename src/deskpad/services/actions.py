"""Registry of user-invokable actions dispatched by id."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from ..errors import ActionDisabledError, ActionNotFoundError

__all__ = ["Action", "ActionRegistry"]

LOGGER = logging.getLogger(__name__)

ActionCallback = Callable[[], Union[Any, Awaitable[Any]]]


@dataclass(slots=True)
class Action:
    """A menu/toolbar command exposed by the shell."""

    id: str
    label: str
    callback: ActionCallback
    shortcut: str | None = None
    enabled: bool = True


class ActionRegistry:
    def __init__(self) -> None:
        self._actions: dict[str, Action] = {}

    def register(self, action: Action) -> None:
        if action.id in self._actions:
            LOGGER.debug("Replacing action %s", action.id)
        self._actions[action.id] = action

    async def execute(self, action_id: str) -> Any:
        """Run ``action_id``'s callback, awaiting it if it returns an awaitable.

        Raises:
            ActionNotFoundError: no action is registered under ``action_id``.
            ActionDisabledError: the action exists but is disabled.
        """

        action = self._actions.get(action_id)
        if action is None:
            raise ActionNotFoundError(action_id)
        if not action.enabled:
            raise ActionDisabledError(action_id)
        try:
            result = action.callback()
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            LOGGER.exception("Failed to execute action %s", action_id)
            raise
        return result

    def update_state(self, action_id: str, enabled: bool) -> None:
        action = self._actions.get(action_id)
        if action is not None:
            action.enabled = enabled

    def get(self, action_id: str) -> Action | None:
        return self._actions.get(action_id)

    def all(self) -> list[Action]:
        return list(self._actions.values())

    def __contains__(self, action_id: object) -> bool:
        return action_id in self._actions
