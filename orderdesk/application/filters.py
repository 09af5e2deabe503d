"""Two-phase filter state: a draft edited by the controls and an applied snapshot."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, Iterable

from orderdesk.core.grouping import DEFAULT_GROUP_BY, GROUPABLE_OPTIONS
from orderdesk.domain.orders import Filters

INITIAL_GROUP_BY: tuple[str, ...] = ("Item",)

Listener = Callable[[Filters], None]


@dataclass(slots=True)
class Draft:
    tokens: list[str] = field(default_factory=list)
    start_date: str = ""
    end_date: str = ""
    limit: int = 25
    customers: list[str] = field(default_factory=list)
    items: list[str] = field(default_factory=list)


class FilterController:
    """Holds the draft and applied filters plus the group-by selection.

    Only :meth:`apply`, :meth:`clear_tokens`, :meth:`clear_dates`,
    :meth:`clear_all` and group-by changes touch the applied snapshot; every
    such change is reported to the registered listeners.
    """

    def __init__(self) -> None:
        self.applied = Filters()
        self.draft = Draft()
        self.group_by: list[str] = list(INITIAL_GROUP_BY)
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, applied: Filters) -> None:
        self.applied = applied
        snapshot = applied.copy()
        for listener in list(self._listeners):
            listener(snapshot)

    # ------------------------------------------------------------------
    # draft edits
    # ------------------------------------------------------------------
    def add_token(self, token: str) -> None:
        cleaned = token.strip()
        if cleaned and cleaned not in self.draft.tokens:
            self.draft.tokens = [*self.draft.tokens, cleaned]

    def remove_token(self, token: str) -> None:
        self.draft.tokens = [existing for existing in self.draft.tokens if existing != token]

    def set_dates(self, start_date: str, end_date: str) -> None:
        self.draft.start_date = start_date
        self.draft.end_date = end_date

    def set_customers(self, selected: Iterable[str]) -> None:
        self.draft.customers = list(selected)

    def set_items(self, selected: Iterable[str]) -> None:
        self.draft.items = list(selected)

    def set_limit(self, limit: int) -> None:
        self.draft.limit = limit if limit > 0 else 25

    # ------------------------------------------------------------------
    # applied changes
    # ------------------------------------------------------------------
    def clear_tokens(self) -> None:
        self.draft.tokens = []
        self._commit(replace(self.applied.copy(), tokens=[]))

    def clear_dates(self) -> None:
        self.draft.start_date = ""
        self.draft.end_date = ""
        self._commit(replace(self.applied.copy(), start_date="", end_date=""))

    def apply(self) -> Filters:
        self._commit(
            replace(
                self.applied.copy(),
                tokens=list(self.draft.tokens),
                start_date=self.draft.start_date,
                end_date=self.draft.end_date,
                limit=self.draft.limit,
                customers=list(self.draft.customers),
                items=list(self.draft.items),
            )
        )
        return self.applied.copy()

    def clear_all(self) -> None:
        self.draft = Draft()
        self.group_by = list(DEFAULT_GROUP_BY)
        self._commit(Filters())

    def set_group_by(self, selected: Iterable[str]) -> list[str]:
        chosen = set(selected)
        ordered = [option for option in GROUPABLE_OPTIONS if option in chosen]
        group_by = ordered or list(DEFAULT_GROUP_BY)
        if group_by != self.group_by:
            self.group_by = group_by
            self._commit(self.applied.copy())
        return list(self.group_by)
