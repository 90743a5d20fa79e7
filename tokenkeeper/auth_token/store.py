"""Shared token store."""

from __future__ import annotations

import logging
from typing import Any

from ..errors.internal import DuplicateNameError, NotFoundError
from .types import CredentialEntry, Token


class TokenStore:
    """Keyed mapping from credential name to its cached token.

    Entries are immutable ``CredentialEntry`` values; ``put`` swaps the whole
    entry in a single dict assignment, so a reader sees either the old token
    or the new one. All access happens on the event loop thread, no lock is
    needed for get or put and neither side ever waits on the other.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CredentialEntry] = {}

    def register(self, name: str, source: Any) -> CredentialEntry:
        """Create an empty entry for ``name``.

        Raises:
            DuplicateNameError: If ``name`` is already registered.
        """
        if name in self._entries:
            raise DuplicateNameError(name)
        entry = CredentialEntry(source=source)
        self._entries[name] = entry
        logging.debug(f"🗂️ Registered credential name={name}")
        return entry

    def get(self, name: str) -> CredentialEntry:
        """Return the current entry for ``name``.

        Raises:
            NotFoundError: If ``name`` was never registered.
        """
        try:
            return self._entries[name]
        except KeyError:
            raise NotFoundError(name) from None

    def put(self, name: str, token: Token | None) -> None:
        """Replace the cached token for ``name``, keeping its source."""
        entry = self.get(name)
        self._entries[name] = CredentialEntry(source=entry.source, token=token)

    def unregister(self, name: str) -> bool:
        """Drop the entry for ``name``; returns False if it was absent."""
        if self._entries.pop(name, None) is None:
            return False
        logging.debug(f"🗑️ Unregistered credential name={name}")
        return True

    def names(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)
