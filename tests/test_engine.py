import logging

import pytest

from config.settings import ConversationState, IntentType
from src.core.coordinator import (
    ALL_CLEARED,
    DELETE_PROMPT,
    EMPTY_MESSAGE,
    HELP_TEXT,
    INVALID_PRIORITY,
    LOST_TRACK,
    NO_REMINDERS,
    NOT_FOUND,
    NOTHING_TO_CLEAR,
    PRIORITY_PROMPT,
    RETRY_MESSAGES,
    parse_priority,
)
from src.reminder.errors import RepositoryError

from conftest import FakeTextService

pytestmark = pytest.mark.asyncio


async def add_reminder(engine, user_id, text, priority):
    assert await engine.handle_message(user_id, text) == PRIORITY_PROMPT
    return await engine.handle_message(user_id, str(priority))


@pytest.mark.parametrize("text, expected", [
    ("3", 3),
    (" 5 ", 5),
    ("1", 1),
    ("0", None),
    ("6", None),
    ("ten", None),
    ("-2", None),
    ("3.5", None),
    ("1_0", None),
])
async def test_parse_priority(text, expected):
    assert parse_priority(text) == expected


async def test_two_turn_add_flow(engine, repository, store):
    first = await engine.handle_message("alice", "buy milk")

    assert first == PRIORITY_PROMPT
    assert store.get_state("alice") == ConversationState.AWAITING_PRIORITY

    second = await engine.handle_message("alice", "3")

    assert second == "Got it! I'll remind you: buy milk (priority 3)."
    reminders = repository.list_by_user("alice")
    assert len(reminders) == 1
    assert reminders[0].content == "buy milk"
    assert reminders[0].priority == 3
    assert store.get_state("alice") == ConversationState.IDLE


async def test_invalid_priority_keeps_pending_text(engine, repository, store):
    await engine.handle_message("alice", "buy milk")

    assert await engine.handle_message("alice", "6") == INVALID_PRIORITY
    assert await engine.handle_message("alice", "ten") == INVALID_PRIORITY
    assert store.get_state("alice") == ConversationState.AWAITING_PRIORITY

    reply = await engine.handle_message("alice", "2")

    assert reply == "Got it! I'll remind you: buy milk (priority 2)."
    assert [r.content for r in repository.list_by_user("alice")] == ["buy milk"]


async def test_pending_priority_wins_over_commands(engine, repository):
    await engine.handle_message("alice", "buy milk")

    assert await engine.handle_message("alice", "list reminders") == INVALID_PRIORITY
    assert repository.count_by_user("alice") == 0


async def test_lost_pending_text(engine, store, monkeypatch):
    await engine.handle_message("alice", "buy milk")
    monkeypatch.setattr(store, "pop_pending_message", lambda user_id: ("", False))

    assert await engine.handle_message("alice", "3") == LOST_TRACK


async def test_summary_from_text_model(make_engine, repository):
    service = FakeTextService(summary="Pick up milk.")
    engine = make_engine(service)

    reply = await add_reminder(engine, "alice", "remember to grab milk on the way home", 4)

    assert reply == "Got it! I'll remind you: Pick up milk. (priority 4)."
    stored = repository.list_by_user("alice")[0]
    assert stored.content == "remember to grab milk on the way home"
    assert stored.summary == "Pick up milk."


async def test_summary_failure_falls_back_to_truncation(make_engine, repository):
    engine = make_engine(FakeTextService(summary_error=TimeoutError()))
    content = "x" * 100

    reply = await add_reminder(engine, "alice", content, 1)

    assert reply == f"Got it! I'll remind you: {'x' * 80}... (priority 1)."
    assert repository.list_by_user("alice")[0].content == content


async def test_list_orders_by_priority(engine):
    for text, priority in [("five", 5), ("three", 3), ("one", 1)]:
        await add_reminder(engine, "alice", text, priority)

    reply = await engine.handle_message("alice", "list reminders")

    lines = reply.splitlines()
    assert lines[0] == "Here are your reminders:"
    assert lines[1].startswith("1. [5] five - saved ")
    assert lines[2].startswith("2. [3] three - saved ")
    assert lines[3].startswith("3. [1] one - saved ")


async def test_list_is_idempotent(engine):
    await add_reminder(engine, "alice", "buy milk", 2)

    first = await engine.handle_message("alice", "show my reminders")
    second = await engine.handle_message("alice", "show my reminders")

    assert first == second


async def test_list_empty(engine):
    assert await engine.handle_message("alice", "list reminders") == NO_REMINDERS


async def test_users_do_not_see_each_other(engine):
    await add_reminder(engine, "alice", "buy milk", 2)

    assert await engine.handle_message("bob", "list reminders") == NO_REMINDERS


async def test_delete_by_keyword(engine, repository):
    await add_reminder(engine, "alice", "Pay rent", 5)
    await add_reminder(engine, "alice", "buy milk", 3)
    await add_reminder(engine, "alice", "rent a car", 1)

    reply = await engine.handle_message("alice", "delete reminders about RENT")

    assert reply == "Deleted reminders matching 'RENT'."
    assert [r.content for r in repository.list_by_user("alice")] == ["buy milk"]


async def test_delete_by_keyword_without_match(engine, repository):
    await add_reminder(engine, "alice", "buy milk", 3)

    assert await engine.handle_message("alice", "delete reminder about rent") == NOT_FOUND
    assert repository.count_by_user("alice") == 1


async def test_delete_by_index_uses_list_order(engine, repository):
    await add_reminder(engine, "alice", "low", 1)
    await add_reminder(engine, "alice", "high", 5)
    await add_reminder(engine, "alice", "mid", 3)

    reply = await engine.handle_message("alice", "delete 1, 3")

    assert reply == "Deleted reminder(s): 1, 3."
    assert [r.content for r in repository.list_by_user("alice")] == ["mid"]


async def test_delete_by_index_is_atomic(engine, repository):
    for text, priority in [("a", 5), ("b", 3), ("c", 1)]:
        await add_reminder(engine, "alice", text, priority)

    reply = await engine.handle_message("alice", "delete 1,4")

    assert reply == "Reminder 4 doesn't exist. Choose between 1 and 3."
    assert repository.count_by_user("alice") == 3


async def test_delete_by_index_without_reminders(engine):
    assert await engine.handle_message("alice", "delete 2") == "You don't have any reminders yet."


async def test_delete_without_target_from_text_model(make_engine, store):
    engine = make_engine(FakeTextService(label=IntentType.DELETE_REMINDER))

    assert await engine.handle_message("alice", "get rid of one of them") == DELETE_PROMPT
    assert store.get_state("alice") == ConversationState.IDLE


async def test_clear(engine, repository):
    assert await engine.handle_message("alice", "clear all reminders") == NOTHING_TO_CLEAR

    await add_reminder(engine, "alice", "buy milk", 3)
    await add_reminder(engine, "bob", "pay rent", 3)

    assert await engine.handle_message("alice", "Clear reminders") == ALL_CLEARED
    assert repository.count_by_user("alice") == 0
    assert repository.count_by_user("bob") == 1


async def test_help_from_text_model(make_engine, store):
    engine = make_engine(FakeTextService(label=IntentType.HELP))

    assert await engine.handle_message("alice", "how does this work?") == HELP_TEXT
    assert store.get_state("alice") == ConversationState.IDLE


async def test_empty_message(engine):
    assert await engine.handle_message("alice", "   ") == EMPTY_MESSAGE
    assert await engine.handle_message("", "buy milk") == EMPTY_MESSAGE


async def test_repository_failure_is_logged_with_retry_reply(engine, repository, monkeypatch, caplog):
    def broken(user_id):
        raise RepositoryError("disk I/O error")

    monkeypatch.setattr(repository, "list_by_user", broken)

    with caplog.at_level(logging.ERROR):
        reply = await engine.handle_message("alice", "list reminders")

    assert reply == RETRY_MESSAGES[IntentType.LIST_REMINDERS]
    assert "disk I/O error" in caplog.text


async def test_user_errors_are_not_logged_as_faults(engine, caplog):
    with caplog.at_level(logging.ERROR):
        reply = await engine.handle_message("alice", "clear all reminders")

    assert reply == NOTHING_TO_CLEAR
    assert caplog.records == []


async def test_save_failure(engine, repository, store, monkeypatch):
    def broken(*args):
        raise RepositoryError("database is locked")

    monkeypatch.setattr(repository, "create", broken)
    await engine.handle_message("alice", "buy milk")

    assert await engine.handle_message("alice", "3") == RETRY_MESSAGES[IntentType.ADD_REMINDER]
    assert store.get_state("alice") == ConversationState.IDLE


async def test_delete_by_index_reports_rows_removed_meanwhile(engine, repository, monkeypatch):
    for text, priority in [("a", 5), ("b", 3), ("c", 1)]:
        await add_reminder(engine, "alice", text, priority)

    delete_by_ids = repository.delete_by_user_and_ids

    def delete_after_concurrent_removal(user_id, ids):
        # Another request removes "b" between the lookup and the delete
        repository.delete_by_user_and_content_substring(user_id, "b")
        return delete_by_ids(user_id, ids)

    monkeypatch.setattr(repository, "delete_by_user_and_ids", delete_after_concurrent_removal)

    reply = await engine.handle_message("alice", "delete 1, 2")

    assert reply == "Deleted 1 of reminder(s) 1, 2. The others were already removed."
    assert [r.content for r in repository.list_by_user("alice")] == ["c"]
