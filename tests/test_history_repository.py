import asyncio

import pytest
from pydantic import ValidationError

from scribe.models.user_settings import UserSettings
from scribe.pipelines.transcription.types import (
    GlobalSettings,
    ReferenceFile,
    ReviewSettings,
    TranscriptionOptions,
)
from scribe.services.history_repository import (
    HistoryBroadcaster,
    HistoryRecordCreate,
    HistoryRepository,
)
from scribe.services.settings_repository import SettingsRepository


def _record(name: str = "meeting.mp3", **overrides) -> HistoryRecordCreate:
    values = {
        "file_name": name,
        "file_storage_path": f"uploads/user-1/1-{name}",
        "transcription": "Hello world.",
        "corrected_transcription": "Hello world!",
        "changelog": "Added punctuation.",
        "summary": "A greeting.",
        "options": TranscriptionOptions(
            model="gemini-2.5-flash",
            subject="Weekly sync",
            reference_files=(ReferenceFile(name="glossary.txt", size=12),),
        ),
    }
    values.update(overrides)
    return HistoryRecordCreate(**values)


def test_create_then_get_round_trips_all_fields(session_factory):
    repository = HistoryRepository(session_factory)

    async def scenario():
        record_id = await repository.create("user-1", _record())
        return record_id, await repository.get("user-1", record_id)

    record_id, entry = asyncio.run(scenario())

    assert entry.id == record_id
    assert entry.file_name == "meeting.mp3"
    assert entry.corrected_transcription == "Hello world!"
    assert entry.changelog == "Added punctuation."
    assert entry.summary == "A greeting."
    assert entry.options.subject == "Weekly sync"
    assert entry.options.reference_files == (ReferenceFile(name="glossary.txt", size=12),)
    assert entry.created_at is not None


def test_records_are_scoped_to_their_owner(session_factory):
    repository = HistoryRepository(session_factory)

    async def scenario():
        record_id = await repository.create("user-1", _record())
        await repository.create("user-2", _record("other.mp3"))
        return (
            record_id,
            await repository.list("user-1"),
            await repository.get("user-2", record_id),
            await repository.delete("user-2", record_id),
        )

    record_id, own, foreign_get, foreign_delete = asyncio.run(scenario())

    assert [entry.id for entry in own] == [record_id]
    assert foreign_get is None
    assert foreign_delete is False


def test_delete_removes_record(session_factory):
    repository = HistoryRepository(session_factory)

    async def scenario():
        record_id = await repository.create("user-1", _record())
        deleted = await repository.delete("user-1", record_id)
        return deleted, await repository.list("user-1"), await repository.delete("user-1", record_id)

    deleted, remaining, deleted_again = asyncio.run(scenario())

    assert deleted is True
    assert remaining == []
    assert deleted_again is False


def test_review_fields_must_be_stored_together():
    with pytest.raises(ValidationError):
        _record(changelog=None)


def test_subscribe_pushes_snapshot_after_each_change(session_factory):
    broadcaster = HistoryBroadcaster()
    repository = HistoryRepository(session_factory, broadcaster)

    async def scenario():
        stream = repository.subscribe("user-1")
        initial = await stream.__anext__()
        record_id = await repository.create("user-1", _record())
        after_create = await stream.__anext__()
        await repository.delete("user-1", record_id)
        after_delete = await stream.__anext__()
        await stream.aclose()
        return record_id, initial, after_create, after_delete

    record_id, initial, after_create, after_delete = asyncio.run(scenario())

    assert initial == []
    assert [entry.id for entry in after_create] == [record_id]
    assert after_delete == []
    assert not broadcaster.has_subscribers("user-1")


def test_broadcaster_keeps_only_latest_snapshot_per_subscriber():
    broadcaster = HistoryBroadcaster()

    async def scenario():
        queue = broadcaster.register("user-1")
        broadcaster.publish("user-2", ["ignored"])
        empty_after_foreign = queue.empty()
        broadcaster.publish("user-1", ["first"])
        broadcaster.publish("user-1", ["second"])
        latest = queue.get_nowait()
        broadcaster.unregister("user-1", queue)
        return empty_after_foreign, latest, queue.empty()

    empty_after_foreign, latest, drained = asyncio.run(scenario())

    assert empty_after_foreign
    assert latest == ["second"]
    assert drained
    assert not broadcaster.has_subscribers("user-1")


def test_settings_default_when_nothing_stored(session_factory):
    loaded = asyncio.run(SettingsRepository(session_factory).load("nobody"))
    assert loaded == GlobalSettings()
    assert loaded.review_settings.correct_spelling is True


def test_settings_save_and_load(session_factory):
    repository = SettingsRepository(session_factory)
    value = GlobalSettings(
        standard_transcription_instructions="Use British spelling.",
        review_settings=ReviewSettings(analyze_diarization=True, custom_review_prompt="Be brief."),
        disable_file_size_limit=True,
    )

    async def scenario():
        await repository.save("user-1", value)
        await repository.save("user-1", value.model_copy(update={"disable_file_size_limit": False}))
        return await repository.load("user-1")

    loaded = asyncio.run(scenario())

    assert loaded.standard_transcription_instructions == "Use British spelling."
    assert loaded.review_settings.custom_review_prompt == "Be brief."
    assert loaded.disable_file_size_limit is False


def test_partially_stored_settings_are_merged_with_defaults(session_factory):
    async def scenario():
        async with session_factory() as session:
            session.add(
                UserSettings(
                    user_id="user-1",
                    data={"reviewSettings": {"analyzeDiarization": True}},
                )
            )
            await session.commit()
        return await SettingsRepository(session_factory).load("user-1")

    loaded = asyncio.run(scenario())

    assert loaded.review_settings.analyze_diarization is True
    assert loaded.review_settings.correct_spelling is True
    assert loaded.standard_transcription_instructions == ""
