"""
A small demo that drives the memo view state the way a screen would:
add, edit, search and delete, printing the list after each step.
"""

import asyncio
import logging

import config
from database import NoteRepository, StorageHandleProvider
from models import AppContext
from preferences import PreferenceStore
from view_state import ViewState


def show(state: ViewState, heading: str) -> None:
    print(f"\n--- {heading} (keyword: {state.search_keyword!r}) ---")
    for note in state.notes:
        print(f"ID: {note.id}")
        print(f"Title: {note.title}")
        print(f"Content: {note.content}")
        print("-" * 20)


async def run(context: AppContext) -> None:
    # 1. setup the store and the state object
    provider = StorageHandleProvider()
    state = ViewState(NoteRepository(provider), PreferenceStore())
    state.bind(context)

    try:
        # 2. load fonts and the full list
        await state.load_initial()
        print(f"Font sizes: {state.font_settings.title_size}/{state.font_settings.content_size}")

        # 3. add a note, the list refreshes itself
        state.prepare_new()
        await state.save("Python Generators", "yield pauses a function")
        show(state, "After add")

        # 4. edit the newest note
        await state.load_by_id(state.notes[0].id)
        await state.save("Python Generators", "yield pauses a function and keeps its frame")
        show(state, "After edit")

        # 5. search, then delete what was found
        await state.search("Generators")
        show(state, "Search")
        await state.remove(state.notes[0].id)
        show(state, "After delete")
    finally:
        await provider.close()


if __name__ == "__main__":
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run(AppContext.default()))
