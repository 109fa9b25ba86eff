"""
Presentation-facing state for the memo list and editor.
"""

import logging
from typing import Optional

from pydantic import ValidationError

from database import NoteRepository
from errors import MemoStoreError
from models import AppContext, FontSettings, Note
from preferences import PreferenceStore

logger = logging.getLogger(__name__)


class ViewState:
    """
    Holds the snapshot the presentation layer renders and runs the
    repository and preference calls that change it.

    The note list is never patched in place: after every successful
    mutation it is re-read from the store with the current search keyword,
    before the mutating call returns.

    bind() must be called first. Until then every operation logs an error
    and does nothing.
    """

    def __init__(
        self,
        repository: Optional[NoteRepository] = None,
        preferences: Optional[PreferenceStore] = None,
    ):
        self.repository = repository or NoteRepository()
        self.preferences = preferences or PreferenceStore()

        self.notes: list[Note] = []
        self.is_loading: bool = False
        self.search_keyword: str = ""
        self.current_note: Optional[Note] = None
        self.font_settings: FontSettings = FontSettings()

        self._context: Optional[AppContext] = None

    def bind(self, context: AppContext) -> None:
        self._context = context
        logger.info("ViewState bound to context.")

    @property
    def is_bound(self) -> bool:
        return self._context is not None

    def _require_context(self, action: str) -> Optional[AppContext]:
        if self._context is None:
            logger.error("Context not bound before %s.", action)
        return self._context

    async def load_initial(self) -> None:
        """
        Font settings first, then the list, since the list is rendered
        with the loaded sizes.
        """
        context = self._require_context("loading data")
        if context is None:
            return

        self.is_loading = True
        logger.info("Loading initial data...")
        try:
            await self.load_font_settings()
            await self.search(self.search_keyword)
        finally:
            self.is_loading = False
            logger.info("Initial data loading finished.")

    async def search(self, keyword: str) -> None:
        context = self._require_context("searching memos")
        if context is None:
            return

        self.is_loading = True
        self.search_keyword = keyword.strip()
        logger.info('Searching memos with keyword: "%s"', self.search_keyword)
        try:
            self.notes = await self.repository.query_by_title(context, self.search_keyword)
            logger.info("Found %s memos.", len(self.notes))
        except MemoStoreError:
            logger.exception("Error searching memos")
            self.notes = []
        finally:
            self.is_loading = False

    async def load_by_id(self, note_id: int) -> None:
        context = self._require_context("loading memo by ID")
        if context is None:
            return

        self.is_loading = True
        logger.info("Loading memo with ID: %s...", note_id)
        try:
            self.current_note = await self.repository.query_by_id(context, note_id)
            if self.current_note is None:
                logger.warning("Memo with ID %s not found for editing.", note_id)
        except MemoStoreError:
            logger.exception("Error loading memo by ID")
            self.current_note = None
        finally:
            self.is_loading = False

    def prepare_new(self) -> None:
        self.current_note = None
        logger.info("Prepared for adding a new memo.")

    async def save(self, title: str, content: str) -> bool:
        """
        Updates current_note when one is loaded, otherwise adds a new note.
        Returns True on success; the list is refreshed before returning.
        """
        context = self._require_context("saving memo")
        if context is None:
            return False

        self.is_loading = True
        success = False
        try:
            if self.current_note is not None and self.current_note.is_persisted():
                logger.info("Updating existing memo...")
                affected = await self.repository.update(context, self.current_note.edited(title, content))
                success = affected > 0
            else:
                logger.info("Adding new memo...")
                row_id = await self.repository.add(context, Note.new(title, content))
                success = row_id > 0

            if success:
                logger.info("Memo saved successfully.")
                await self.search(self.search_keyword)
            else:
                logger.error("Failed to save memo.")
        except MemoStoreError:
            logger.exception("Error saving memo")
            success = False
        finally:
            self.is_loading = False
        return success

    async def remove(self, note_id: int) -> None:
        context = self._require_context("deleting memo")
        if context is None:
            return

        self.is_loading = True
        logger.info("Deleting memo with ID: %s...", note_id)
        try:
            affected = await self.repository.delete(context, note_id)
            if affected > 0:
                logger.info("Memo deleted successfully. Refreshing list...")
                await self.search(self.search_keyword)
            else:
                logger.error("Failed to delete memo (0 affected rows).")
        except MemoStoreError:
            logger.exception("Error deleting memo")
        finally:
            self.is_loading = False

    async def load_font_settings(self) -> None:
        context = self._require_context("loading font sizes")
        if context is None:
            return

        self.font_settings = await self.preferences.load_font_sizes(context)
        logger.info(
            "Font sizes loaded: Title=%s, Content=%s",
            self.font_settings.title_size,
            self.font_settings.content_size,
        )

    async def save_font_settings(
        self, title_size: Optional[int] = None, content_size: Optional[int] = None
    ) -> None:
        """
        Persists the current font settings, first applying any sizes given.
        """
        context = self._require_context("saving font sizes")
        if context is None:
            return

        if title_size is not None or content_size is not None:
            try:
                self.font_settings = FontSettings(
                    title_size=title_size if title_size is not None else self.font_settings.title_size,
                    content_size=content_size if content_size is not None else self.font_settings.content_size,
                )
            except ValidationError as e:
                logger.error("Invalid font sizes, keeping current settings: %s", e)
                return
        await self.preferences.save_font_sizes(
            context, self.font_settings.title_size, self.font_settings.content_size
        )
