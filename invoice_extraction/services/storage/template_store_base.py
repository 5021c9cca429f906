"""
Abstract base class for template stores.

Templates are keyed by counterparty identity keys (VAT number, company
number, normalized name). The same template is saved under every key of a
counterparty, so it can be found by whichever identifier a later page shows.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ...models.invoice import PositionedFragment, Template


class TemplateStoreBase(ABC):
    """
    Abstract base class for template persistence.

    Implementations:
    - In-memory storage (for tests and single-process use)
    - SQLite (for persistent single-instance deployments)
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Template]:
        """
        Get the template stored under one identity key.

        Returns:
            Template or None if not found
        """
        pass

    @abstractmethod
    def save(self, key: str, template: Template) -> None:
        """Store (or replace) the template for an identity key."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Remove the template for an identity key.

        Returns:
            True if a template was removed, False if none existed
        """
        pass

    @abstractmethod
    def list_keys(self) -> list:
        """List all identity keys that have a template."""
        pass

    @abstractmethod
    def learn(
        self,
        fragments: list[PositionedFragment],
        image_width: int,
        image_height: int,
        confirmed: dict,
        identity_keys: list[str],
    ) -> Optional[dict[str, Template]]:
        """
        Learn from one confirmed page and persist the result atomically.

        The existing template is read from the first key that has one, the
        learned regions are merged into it and the result is written under
        every key, all without interleaving with other learners.

        Returns:
            The saved templates by key, or None when nothing was learned
        """
        pass

    def find(self, identity_keys: list[str]) -> Optional[Template]:
        """First stored template among the given keys."""
        for key in identity_keys:
            if not key or not key.strip():
                continue
            template = self.get(key.strip())
            if template is not None:
                return template
        return None
