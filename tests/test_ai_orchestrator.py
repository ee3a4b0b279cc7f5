"""Tests for AI orchestration: routing, single-flight and failure handling."""
import asyncio

import pytest

from magicnotes.ai.attachments import Attachment
from magicnotes.ai.orchestrator import AIOrchestrator, AIState, OutcomeStatus
from magicnotes.exceptions import ExternalServiceError
from magicnotes.models.schema import CodeLanguage, CodeNote, RichNote
from tests.fakes import FakeAIService


@pytest.fixture
def service():
    return FakeAIService(response="generated")


@pytest.fixture
def orchestrator(service):
    return AIOrchestrator(service)


@pytest.fixture
def rich_session(make_session):
    session = make_session(RichNote(title="Draft", content="Some text"))
    return session


@pytest.fixture
def code_session(make_session):
    return make_session(CodeNote(title="s", content="x = 1", code_language=CodeLanguage.PY))


class TestRouting:
    @pytest.mark.anyio
    async def test_title_replaces_title(self, orchestrator, rich_session, service):
        outcome = await orchestrator.generate_title(rich_session)
        assert outcome.ok
        assert rich_session.title == "generated"
        assert service.calls == [("generate_title", ("Some text",))]

    @pytest.mark.anyio
    async def test_summary_rich_inserts_block(self, orchestrator, rich_session):
        await orchestrator.summarize(rich_session)
        assert "Summary:" in rich_session.content
        assert "generated" in rich_session.content
        assert rich_session.content.startswith("Some text<br/><div")

    @pytest.mark.anyio
    async def test_summary_code_becomes_notice(self, orchestrator, code_session):
        outcome = await orchestrator.summarize(code_session)
        assert outcome.ok
        assert code_session.content == "x = 1"
        notices = code_session.notifier.drain()
        assert notices[0].message == "Summary:\ngenerated"

    @pytest.mark.anyio
    async def test_continue_rich_inserts_with_space(self, orchestrator, rich_session):
        await orchestrator.continue_writing(rich_session)
        assert rich_session.content == "Some text generated"

    @pytest.mark.anyio
    async def test_continue_code_appends(self, orchestrator, code_session):
        code_session.set_caret(0)
        await orchestrator.continue_writing(code_session)
        assert code_session.content == "x = 1 generated"

    @pytest.mark.anyio
    async def test_grammar_replaces_buffer(self, orchestrator, rich_session, service):
        service.response = "Fixed <text>"
        await orchestrator.fix_grammar(rich_session)
        assert rich_session.content == "Fixed &lt;text&gt;"

    @pytest.mark.anyio
    async def test_grammar_in_code_mode(self, orchestrator, code_session, service):
        service.response = "x = 2"
        await orchestrator.fix_grammar(code_session)
        assert code_session.content == "x = 2"

    @pytest.mark.anyio
    async def test_custom_rich_inserts_markup(self, orchestrator, rich_session, service):
        service.response = "<ul><li>a</li></ul>"
        await orchestrator.custom_generate(rich_session, "make a list")
        assert rich_session.content == "Some text<ul><li>a</li></ul>&nbsp;"

    @pytest.mark.anyio
    async def test_custom_code_appends_line(self, orchestrator, code_session):
        await orchestrator.custom_generate(code_session, "extend")
        assert code_session.content == "x = 1\ngenerated"

    @pytest.mark.anyio
    async def test_custom_context_is_capped(self, orchestrator, make_session, service):
        session = make_session(RichNote(content="y" * 6000))
        await orchestrator.custom_generate(session, "shorten")
        _, (prompt, context, image) = service.calls[0]
        assert len(context) == 5000
        assert image is None

    @pytest.mark.anyio
    async def test_text_attachment_joins_prompt(self, orchestrator, rich_session, service):
        attachment = Attachment.from_bytes("data.csv", b"a,b\n1,2")
        await orchestrator.custom_generate(rich_session, "explain", attachment)
        _, (prompt, _, image) = service.calls[0]
        assert prompt == "explain\n\n[File: data.csv]\na,b\n1,2"
        assert image is None

    @pytest.mark.anyio
    async def test_image_attachment_sent_alongside(self, orchestrator, rich_session, service):
        image = Attachment.from_bytes("p.png", b"img", mime_type="image/png")
        await orchestrator.custom_generate(rich_session, "", image)
        _, (prompt, _, sent) = service.calls[0]
        assert prompt == ""
        assert sent is image


class TestSkipping:
    @pytest.mark.anyio
    async def test_empty_note_skips(self, orchestrator, make_session, service):
        session = make_session(RichNote(content="<p> </p>"))
        for action in (orchestrator.generate_title, orchestrator.summarize, orchestrator.fix_grammar):
            outcome = await action(session)
            assert outcome.status == OutcomeStatus.SKIPPED_EMPTY
        assert service.calls == []

    @pytest.mark.anyio
    async def test_continue_runs_on_empty(self, orchestrator, make_session, service):
        session = make_session(RichNote(content=""))
        outcome = await orchestrator.continue_writing(session)
        assert outcome.ok

    @pytest.mark.anyio
    async def test_custom_needs_prompt_or_attachment(self, orchestrator, rich_session, service):
        outcome = await orchestrator.custom_generate(rich_session, "   ")
        assert outcome.status == OutcomeStatus.SKIPPED_EMPTY
        assert service.calls == []


class TestSingleFlight:
    @pytest.mark.anyio
    async def test_second_request_rejected(self, orchestrator, rich_session, service):
        service.gate = asyncio.Event()
        first = asyncio.create_task(orchestrator.summarize(rich_session))
        await asyncio.sleep(0)
        assert orchestrator.state == AIState.PROCESSING

        second = await orchestrator.generate_title(rich_session)
        assert second.status == OutcomeStatus.REJECTED_BUSY
        assert len(service.calls) == 1

        service.gate.set()
        outcome = await first
        assert outcome.ok
        assert orchestrator.state == AIState.IDLE

    @pytest.mark.anyio
    async def test_failure_keeps_content(self, orchestrator, rich_session, service):
        service.error = ExternalServiceError("backend down", operation="fix_grammar")
        before = rich_session.content
        outcome = await orchestrator.fix_grammar(rich_session)
        assert outcome.status == OutcomeStatus.FAILED
        assert rich_session.content == before
        assert orchestrator.state == AIState.IDLE
        notices = rich_session.notifier.drain()
        assert notices[0].code == "AI_SERVICE_FAILED"

    @pytest.mark.anyio
    async def test_unexpected_error_fails_closed(self, orchestrator, rich_session, service):
        service.error = RuntimeError("boom")
        outcome = await orchestrator.continue_writing(rich_session)
        assert outcome.status == OutcomeStatus.FAILED
        assert rich_session.content == "Some text"
        assert orchestrator.state == AIState.IDLE
        notices = rich_session.notifier.drain()
        assert notices[0].code == "AI_SERVICE_FAILED"
        assert "continue" in notices[0].message


class TestStaleResults:
    @pytest.mark.anyio
    async def test_result_after_close_is_discarded(self, orchestrator, rich_session, service):
        service.gate = asyncio.Event()
        task = asyncio.create_task(orchestrator.continue_writing(rich_session))
        await asyncio.sleep(0)
        rich_session.close()
        service.gate.set()
        outcome = await task
        assert outcome.status == OutcomeStatus.DISCARDED
        assert rich_session.content == "Some text"

    @pytest.mark.anyio
    async def test_result_after_reopen_is_discarded(self, orchestrator, rich_session, service, note_store):
        service.gate = asyncio.Event()
        task = asyncio.create_task(orchestrator.generate_title(rich_session))
        await asyncio.sleep(0)
        rich_session.reopen(note_store.get(rich_session.note_id))
        service.gate.set()
        outcome = await task
        assert outcome.status == OutcomeStatus.DISCARDED
        assert rich_session.title == "Draft"

    @pytest.mark.anyio
    async def test_closed_session_sends_nothing(self, orchestrator, rich_session, service):
        rich_session.close()
        outcome = await orchestrator.summarize(rich_session)
        assert outcome.status == OutcomeStatus.DISCARDED
        assert service.calls == []
