"""Runs AI actions against an editor session, one at a time.

Only one request may be in flight. A request made while another is
processing is rejected at once and nothing is sent. Results are applied
through the session's insertion API in completion order; a result that
arrives after its session was closed or re-opened is dropped. Service
failures leave the document untouched and become notices.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

from magicnotes.ai.attachments import Attachment
from magicnotes.ai.client import AIService
from magicnotes.config import CONTEXT_CHAR_LIMIT
from magicnotes.editor.notices import NoticeLevel
from magicnotes.editor.session import EditorSession
from magicnotes.exceptions import ExternalServiceError
from magicnotes.markup import text_to_markup
from magicnotes.observability import timed_operation

logger = logging.getLogger(__name__)


class AIState(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"


_ALLOWED_TRANSITIONS: Dict[AIState, set] = {
    AIState.IDLE: {AIState.PROCESSING},
    AIState.PROCESSING: {AIState.IDLE},
}


def can_transition(current: AIState, target: AIState) -> bool:
    return target in _ALLOWED_TRANSITIONS.get(current, set())


class AIAction(str, Enum):
    TITLE = "title"
    SUMMARY = "summary"
    CONTINUE = "continue"
    GRAMMAR = "grammar"
    CUSTOM = "custom"


class OutcomeStatus(str, Enum):
    APPLIED = "applied"
    REJECTED_BUSY = "rejected_busy"
    SKIPPED_EMPTY = "skipped_empty"
    FAILED = "failed"
    DISCARDED = "discarded"


@dataclass
class AIOutcome:
    action: AIAction
    status: OutcomeStatus
    text: str = ""
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.APPLIED


def summary_block(summary: str) -> str:
    """Markup for an inserted summary, set apart from the surrounding text."""
    return (
        '<br/><div style="background:#f1f5f9; padding:12px; border-radius:8px; margin-top:10px;">'
        f"<strong>🤖 Summary:</strong><br/>{text_to_markup(summary)}</div><br/>"
    )


class AIOrchestrator:
    """Single-flight gate between editor sessions and the AI service."""

    def __init__(self, service: AIService):
        self.service = service
        self.state = AIState.IDLE

    @property
    def is_processing(self) -> bool:
        return self.state == AIState.PROCESSING

    def _transition(self, target: AIState) -> None:
        if not can_transition(self.state, target):
            raise RuntimeError(f"Invalid AI state transition {self.state.value} -> {target.value}")
        self.state = target

    async def _run(
        self,
        action: AIAction,
        session: EditorSession,
        call: Callable[[], Awaitable[str]],
        apply: Callable[[str], None],
    ) -> AIOutcome:
        if self.is_processing:
            logger.info(f"AI {action.value} rejected: another request is in flight")
            return AIOutcome(action, OutcomeStatus.REJECTED_BUSY, message="AI is busy")
        if session.closed:
            return AIOutcome(action, OutcomeStatus.DISCARDED, message="Editor session is closed")

        epoch = session.epoch
        self._transition(AIState.PROCESSING)
        try:
            with timed_operation(f"ai_{action.value}", note_id=session.note_id) as op:
                text = await call()
                op["chars"] = len(text)
        except Exception as e:
            error = e
            if not isinstance(error, ExternalServiceError):
                logger.error(f"Unexpected AI failure for note {session.note_id}", exc_info=True)
                error = ExternalServiceError(
                    f"AI {action.value} failed unexpectedly",
                    operation=action.value,
                    original_error=e,
                )
            logger.warning(f"AI {action.value} failed for note {session.note_id}: {error}")
            session.notifier.from_error(error, level=NoticeLevel.WARNING)
            return AIOutcome(action, OutcomeStatus.FAILED, message=error.message)
        finally:
            self._transition(AIState.IDLE)

        if session.closed or session.epoch != epoch:
            logger.info(f"AI {action.value} result for note {session.note_id} discarded")
            return AIOutcome(action, OutcomeStatus.DISCARDED, text=text)
        apply(text)
        return AIOutcome(action, OutcomeStatus.APPLIED, text=text)

    @staticmethod
    def _skipped(action: AIAction) -> AIOutcome:
        return AIOutcome(action, OutcomeStatus.SKIPPED_EMPTY, message="Nothing to work with")

    async def generate_title(self, session: EditorSession) -> AIOutcome:
        """Replace the title with a generated one."""
        context = session.plain_text()
        if not context.strip():
            return self._skipped(AIAction.TITLE)
        return await self._run(
            AIAction.TITLE,
            session,
            lambda: self.service.generate_title(context),
            session.set_title,
        )

    async def summarize(self, session: EditorSession) -> AIOutcome:
        """Insert a summary block (rich) or report the summary as a notice (code)."""
        context = session.plain_text()
        if not context.strip():
            return self._skipped(AIAction.SUMMARY)

        def apply(summary: str) -> None:
            if session.is_code:
                session.notifier.notify(f"Summary:\n{summary}")
            else:
                session.insert_at_cursor(summary_block(summary), markup=True)

        return await self._run(
            AIAction.SUMMARY, session, lambda: self.service.summarize(context), apply
        )

    async def continue_writing(self, session: EditorSession) -> AIOutcome:
        """Insert a continuation at the caret (rich) or append it (code)."""
        context = session.plain_text()

        def apply(continuation: str) -> None:
            if session.is_code:
                session.append_code(" " + continuation)
            else:
                session.insert_at_cursor(" " + continuation)

        return await self._run(
            AIAction.CONTINUE, session, lambda: self.service.continue_writing(context), apply
        )

    async def fix_grammar(self, session: EditorSession) -> AIOutcome:
        """Replace the whole buffer with the corrected text."""
        context = session.plain_text()
        if not context.strip():
            return self._skipped(AIAction.GRAMMAR)

        def apply(fixed: str) -> None:
            session.replace_content(fixed if session.is_code else text_to_markup(fixed))

        return await self._run(
            AIAction.GRAMMAR, session, lambda: self.service.fix_grammar(context), apply
        )

    async def custom_generate(
        self,
        session: EditorSession,
        prompt: str,
        attachment: Optional[Attachment] = None,
    ) -> AIOutcome:
        """Run a free-form instruction with the note as context.

        A text attachment is folded into the prompt under a ``[File: name]``
        header; an image attachment is sent alongside it.
        """
        prompt = (prompt or "").strip()
        if not prompt and attachment is None:
            return self._skipped(AIAction.CUSTOM)

        image = None
        if attachment is not None and attachment.is_image:
            image = attachment
        elif attachment is not None:
            prefix = prompt + "\n\n" if prompt else ""
            prompt = prefix + attachment.prompt_section()
        context = session.plain_text()[:CONTEXT_CHAR_LIMIT]

        def apply(result: str) -> None:
            if session.is_code:
                session.append_code("\n" + result)
            else:
                session.insert_at_cursor(result + "&nbsp;", markup=True)

        return await self._run(
            AIAction.CUSTOM,
            session,
            lambda: self.service.custom_generate(prompt, context, image),
            apply,
        )
