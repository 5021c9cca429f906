"""
In-memory template store.
Use the SQLite store when templates must survive restarts.
"""
import threading
from typing import Dict, Optional

from ...models.invoice import PositionedFragment, Template
from ..template_learner import learn_template
from .template_store_base import TemplateStoreBase


class InMemoryTemplateStore(TemplateStoreBase):
    def __init__(self):
        self._templates: Dict[str, dict] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Template]:
        """Get template by identity key"""
        record = self._templates.get(key)
        return Template.from_record(record) if record is not None else None

    def save(self, key: str, template: Template) -> None:
        """Store template records, not live objects"""
        self._templates[key] = template.to_record()

    def delete(self, key: str) -> bool:
        return self._templates.pop(key, None) is not None

    def list_keys(self) -> list:
        """List all keys (for debugging)"""
        return sorted(self._templates)

    def learn(
        self,
        fragments: list[PositionedFragment],
        image_width: int,
        image_height: int,
        confirmed: dict,
        identity_keys: list[str],
    ) -> Optional[dict[str, Template]]:
        with self._lock:
            existing = self.find(identity_keys)
            learned = learn_template(
                fragments, image_width, image_height, confirmed, identity_keys, existing
            )
            if learned is None:
                return None
            for key, template in learned.items():
                self.save(key, template)
            return learned
