"""Registry of named prompt templates."""

from __future__ import annotations

import logging
import threading

from typing import Dict, Iterable, Iterator

from promptengine.exceptions import DuplicatePromptError, NotFoundError
from promptengine.types import PromptTemplate

_LOGGER = logging.getLogger(__name__)


class PromptRegistry:
    """Catalog mapping a prompt name to its template.

    Created once at startup and handed to the engine by reference. Writes
    are serialized; each write swaps a whole mapping, so concurrent readers
    see either the old or the new template and never a partial update.
    """

    def __init__(self, templates: Iterable[PromptTemplate] = ()) -> None:
        self._lock = threading.Lock()
        self._templates: Dict[str, PromptTemplate] = {}
        for template in templates:
            self.register(template)

    def register(
        self, template: PromptTemplate, *, replace: bool = True
    ) -> None:
        """Add ``template`` keyed by its name.

        An existing name is overwritten with a warning (templates may be
        hot-reloaded); with ``replace=False`` it raises instead.
        """

        with self._lock:
            if template.name in self._templates:
                if not replace:
                    raise DuplicatePromptError(template.name)
                _LOGGER.warning(
                    "Prompt template '%s' re-registered; replacing previous "
                    "definition",
                    template.name,
                )
            updated = dict(self._templates)
            updated[template.name] = template
            self._templates = updated

    def unregister(self, name: str) -> None:
        """Remove ``name`` if it is registered."""

        with self._lock:
            if name not in self._templates:
                return
            updated = dict(self._templates)
            updated.pop(name)
            self._templates = updated

    def get(self, name: str) -> PromptTemplate:
        template = self._templates.get(name)
        if template is None:
            raise NotFoundError("Prompt template", name)
        return template

    def list(self) -> Iterator[str]:
        """Return an iterator over a snapshot of the registered names."""

        return iter(tuple(self._templates))

    def clear(self) -> None:
        with self._lock:
            self._templates = {}

    def __contains__(self, name: object) -> bool:
        return name in self._templates

    def __len__(self) -> int:
        return len(self._templates)
