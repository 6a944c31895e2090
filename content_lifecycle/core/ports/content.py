"""
Content Repository Interface.

The lifecycle core does not own content items. It reads their publication
state and flips publication flags through this narrow port; item CRUD,
fields and models live in the external content repository.

Implementations raise TransientError subclasses when the repository is
temporarily unreachable and ItemNotFoundError when a write targets an item
that no longer exists.
"""

from __future__ import annotations

from typing import Protocol

from content_lifecycle.core.entities import ItemState, LocaleScope


class ContentRepositoryPort(Protocol):
    """External content repository."""

    def get_item_state(self, item_id: str) -> ItemState | None:
        """Get publication state per locale, or None if the item is gone."""
        ...

    def set_publication_state(
        self,
        item_id: str,
        locale_scope: LocaleScope,
        published: bool,
        non_localized: bool = False,
    ) -> None:
        """
        Publish or unpublish the scoped locales of an item.

        Args:
            item_id: Item to update
            locale_scope: Locales to change ("all" resolves to the item's locales)
            published: Target state for the scoped locales
            non_localized: Whether non-localized content follows the same change

        Raises:
            ItemNotFoundError: Item no longer exists
        """
        ...

    def item_exists(self, item_id: str) -> bool:
        """Check whether an item exists."""
        ...

    def available_locales(self) -> list[str]:
        """Configured project locales."""
        ...
