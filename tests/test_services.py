import asyncio
from types import SimpleNamespace

import pytest

from status_tracker.config import settings
from status_tracker.services.container import build_record_store, build_services
from status_tracker.services.record_store import KeyValueRecordStore, PROJECTS, RecordStoreError, SqlRecordStore
from status_tracker.services.text_generation import (
    DisabledTextGenerator,
    OpenAITextGenerator,
    TextGenerationError,
    get_text_generator,
)
from status_tracker.utils.retry import call_with_retry

from fakes import InMemoryStorage, ScriptedTextGenerator, project_record


@pytest.mark.unit
class TestContainer:
    def test_sql_store_by_default(self):
        store = build_record_store(settings.model_copy(update={"RECORD_STORE": "sql"}), lambda: None)

        assert isinstance(store, SqlRecordStore)

    def test_kv_store_in_offline_mode(self):
        offline = settings.model_copy(update={"RECORD_STORE": "kv", "REDIS_URL": None})

        assert isinstance(build_record_store(offline, lambda: None), KeyValueRecordStore)

    def test_sessions_use_configured_collaborators(self):
        store = KeyValueRecordStore()
        store.create(PROJECTS, project_record())
        generator = ScriptedTextGenerator()
        services = build_services(settings, lambda: None, store=store, storage=InMemoryStorage(), generator=generator)

        session = services.chat_sessions.open(SimpleNamespace(id="contractor-1"), "proj_riverside")
        asyncio.run(session.submit("Excavation complete"))

        assert len(generator.calls) == 1
        assert generator.calls[0]["model"] == settings.AI_MODEL

    def test_close_tears_down_sessions(self):
        store = KeyValueRecordStore()
        store.create(PROJECTS, project_record())
        services = build_services(settings, lambda: None, store=store, storage=InMemoryStorage(),
                                  generator=ScriptedTextGenerator())
        services.chat_sessions.open(SimpleNamespace(id="contractor-1"), "proj_riverside")

        services.close()

        assert len(services.chat_sessions) == 0


@pytest.mark.unit
class TestTextGenerator:
    def test_disabled_mode(self):
        assert isinstance(get_text_generator("sk-test", "disabled"), DisabledTextGenerator)

    def test_missing_key(self):
        assert isinstance(get_text_generator(None, "full"), DisabledTextGenerator)

    def test_openai_when_configured(self):
        assert isinstance(get_text_generator("sk-test", "full"), OpenAITextGenerator)

    def test_disabled_generator_raises(self):
        with pytest.raises(TextGenerationError):
            asyncio.run(DisabledTextGenerator().generate("prompt", model="gpt-4o-mini", max_tokens=10))


@pytest.mark.unit
class TestRetry:
    def test_single_attempt_reraises(self):
        calls = []

        def flaky():
            calls.append(1)
            raise RecordStoreError("down")

        with pytest.raises(RecordStoreError):
            asyncio.run(call_with_retry(flaky, attempts=1, min_wait=0, max_wait=0, exception_types=(RecordStoreError,)))
        assert len(calls) == 1

    def test_retries_until_success(self):
        calls = []

        def flaky(value):
            calls.append(value)
            if len(calls) < 3:
                raise RecordStoreError("down")
            return value

        result = asyncio.run(call_with_retry(flaky, "ok", attempts=3, min_wait=0, max_wait=0, exception_types=(RecordStoreError,)))

        assert result == "ok"
        assert len(calls) == 3

    def test_other_errors_not_retried(self):
        calls = []

        def broken():
            calls.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            asyncio.run(call_with_retry(broken, attempts=3, min_wait=0, max_wait=0, exception_types=(RecordStoreError,)))
        assert len(calls) == 1
