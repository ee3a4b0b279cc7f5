"""MCP server exposing the MagicNotes notebook as tools."""

import atexit
import json
import logging
import uuid
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from magicnotes.ai.attachments import read_attachment
from magicnotes.ai.client import AIService
from magicnotes.ai.orchestrator import AIAction, OutcomeStatus
from magicnotes.config import config
from magicnotes.editor.session import Scheduler
from magicnotes.exceptions import MagicNotesError, ValidationError
from magicnotes.models.schema import CodeNote, NoteBase
from magicnotes.observability import metrics, timed_operation
from magicnotes.services.notebook_service import NotebookService
from magicnotes.services.view_filter import ViewSelector
from magicnotes.storage.base import KeyValueStore

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500
MAX_CONTENT_LENGTH = 1_000_000  # 1 MB


def _validate_input_lengths(
    title: Optional[str] = None, content: Optional[str] = None
) -> None:
    """Validate input string lengths at the MCP boundary."""
    if title and len(title) > MAX_TITLE_LENGTH:
        raise ValueError(
            f"Title exceeds maximum length of {MAX_TITLE_LENGTH} characters"
        )
    if content and len(content) > MAX_CONTENT_LENGTH:
        raise ValueError(
            f"Content exceeds maximum length of {MAX_CONTENT_LENGTH} characters"
        )


def _split_ids(note_ids: str) -> List[str]:
    return [i.strip() for i in note_ids.split(",") if i.strip()]


def _format_note_line(note: NoteBase) -> str:
    flags = " ★" if note.is_favorite else ""
    folder = f" [folder: {note.folder_id}]" if note.folder_id else ""
    return (
        f"- {note.display_title()}{flags} (ID: {note.id}) "
        f"[{note.category.value}]{folder} updated {note.updated_at.isoformat()}"
    )


def _format_note(note: NoteBase) -> str:
    lines = [
        f"# {note.display_title()}",
        f"ID: {note.id}",
        f"Category: {note.category.value}",
    ]
    if note.folder_id:
        lines.append(f"Folder: {note.folder_id}")
    if isinstance(note, CodeNote):
        lines.append(f"Language: {note.code_language.label}")
    lines.append(f"Favorite: {'yes' if note.is_favorite else 'no'}")
    lines.append(f"Created: {note.created_at.isoformat()}")
    lines.append(f"Updated: {note.updated_at.isoformat()}")
    lines.append("")
    lines.append(note.content)
    return "\n".join(lines)


class MagicNotesMcpServer:
    """MCP server for MagicNotes."""

    def __init__(
        self,
        port: Optional[KeyValueStore] = None,
        ai_service: Optional[AIService] = None,
        scheduler: Optional[Scheduler] = None,
    ):
        """Initialize the MCP server.

        Args:
            port: Persistence port. When None, the SQLite store from config
                  is used.
            ai_service: AI backend. When None, the OpenRouter adapter is used.
            scheduler: Timer source for editor autosave.
        """
        self.mcp = FastMCP(config.server_name)
        self.notebook = NotebookService(port=port, ai_service=ai_service, scheduler=scheduler)
        self.initialize()
        atexit.register(self._shutdown)
        self._register_tools()

    def initialize(self) -> None:
        """Initialize services."""
        logger.info("MagicNotes MCP server initialized")

    def _shutdown(self) -> None:
        """Commit any open editor draft on exit."""
        self.notebook.close_editor()

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred

        Returns:
            Formatted error message with appropriate level of detail
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, MagicNotesError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        elif isinstance(error, (IOError, OSError)):
            logger.error(f"File system error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: A file system error occurred (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _format_notices(self) -> str:
        notices = self.notebook.drain_notices()
        if not notices:
            return ""
        return "\n" + "\n".join(f"Notice: {n.message}" for n in notices)

    def _register_tools(self) -> None:
        """Register MCP tools."""

        # List notes in a view
        @self.mcp.tool(name="mn_list_notes")
        def mn_list_notes(view: str = "all", query: str = "") -> str:
            """List the notes visible in a view, newest first.
            Args:
                view: "all", "category:<personal|work|ideas|journal>", "folder:<id>" or "private"
                query: Optional search text, matched against titles and content
            """
            with timed_operation("mn_list_notes", view=view) as op:
                try:
                    selector = ViewSelector.parse(view)
                    if selector.is_private:
                        if not self.notebook.vault.is_unlocked:
                            return "The private area is locked. Use mn_unlock_private first."
                        self.notebook.vault.request_access()
                    else:
                        self.notebook.select_view(selector)
                    self.notebook.set_search(query)
                    notes = self.notebook.visible_notes()
                    op["count"] = len(notes)
                    if not notes:
                        return "No notes found."
                    lines = [f"Found {len(notes)} notes:"]
                    lines.extend(_format_note_line(n) for n in notes)
                    return "\n".join(lines)
                except Exception as e:
                    return self.format_error_response(e)

        # Get a note by ID
        @self.mcp.tool(name="mn_get_note")
        def mn_get_note(note_id: str) -> str:
            """Retrieve a note by ID.
            Args:
                note_id: The ID of the note
            """
            with timed_operation("mn_get_note", note_id=note_id) as op:
                try:
                    note = self.notebook.store.get(note_id)
                    if note is None or (note.is_secret and not self.notebook.vault.is_unlocked):
                        op["found"] = False
                        return f"Note not found: {note_id}"
                    op["found"] = True
                    return _format_note(note)
                except Exception as e:
                    return self.format_error_response(e)

        # Create a note
        @self.mcp.tool(name="mn_create_note")
        async def mn_create_note(
            title: str = "",
            content: str = "",
            category: Optional[str] = None,
            folder_id: Optional[str] = None,
            code_language: Optional[str] = None,
        ) -> str:
            """Create a note. Defaults for category and folder come from the current view.
            Args:
                title: The title of the note
                content: HTML markup, or raw source text when code_language is set
                category: personal, work, ideas or journal (optional)
                folder_id: Folder to file the note in (optional)
                code_language: html, css, js, ts, php, py, java, cpp, sql or json for a code note
            """
            with timed_operation("mn_create_note", title=title[:30]) as op:
                try:
                    _validate_input_lengths(title=title, content=content)
                    session = self.notebook.open_editor()
                    try:
                        if code_language:
                            session.set_code_language(code_language)
                        session.set_title(title)
                        session.set_content(content)
                        if category:
                            session.set_category(category)
                        if folder_id:
                            session.set_folder(folder_id)
                    except Exception:
                        # Drop the blank note rather than keep a half-built one
                        self.notebook.close_editor(commit=False)
                        self.notebook.delete_note(session.note_id, confirmed=True)
                        raise
                    note = self.notebook.close_editor()
                    if note is None:
                        return "Error: Note could not be saved." + self._format_notices()
                    op["note_id"] = note.id
                    return f"Note created successfully with ID: {note.id}"
                except Exception as e:
                    return self.format_error_response(e)

        # Update a note
        @self.mcp.tool(name="mn_update_note")
        async def mn_update_note(
            note_id: str,
            title: Optional[str] = None,
            content: Optional[str] = None,
            category: Optional[str] = None,
            folder_id: Optional[str] = None,
            unfile: bool = False,
            code_language: Optional[str] = None,
            paper_color: Optional[str] = None,
            paper_style: Optional[str] = None,
        ) -> str:
            """Update a note. Only the given fields change.
            Args:
                note_id: The ID of the note
                title: New title
                content: New content (markup for rich notes, raw text for code notes)
                category: New category
                folder_id: Folder to move the note into
                unfile: Remove the note from its folder
                code_language: A language to switch to code mode, or "rich" to switch back
                paper_color: Page colour, e.g. "#fef3c7"
                paper_style: plain, lined, grid or dotted
            """
            with timed_operation("mn_update_note", note_id=note_id) as op:
                try:
                    _validate_input_lengths(title=title, content=content)
                    session = self.notebook.open_editor(note_id)
                    try:
                        if code_language:
                            session.set_code_language(code_language)
                        if title is not None:
                            session.set_title(title)
                        if content is not None:
                            session.set_content(content)
                        if category:
                            session.set_category(category)
                        if unfile:
                            session.set_folder(None)
                        elif folder_id:
                            session.set_folder(folder_id)
                        if paper_color:
                            session.set_paper_color(paper_color)
                        if paper_style:
                            session.set_paper_style(paper_style)
                    except Exception:
                        self.notebook.close_editor(commit=False)
                        raise
                    note = self.notebook.close_editor()
                    if note is None:
                        return "Error: Note could not be saved." + self._format_notices()
                    op["updated"] = True
                    return f"Note updated successfully: {note.id}"
                except Exception as e:
                    return self.format_error_response(e)

        # Delete a note
        @self.mcp.tool(name="mn_delete_note")
        def mn_delete_note(note_id: str, confirm: bool = False) -> str:
            """Delete a note permanently.
            Args:
                note_id: The ID of the note
                confirm: Must be true; deletion cannot be undone
            """
            with timed_operation("mn_delete_note", note_id=note_id):
                try:
                    self.notebook.delete_note(note_id, confirmed=confirm)
                    return f"Note deleted successfully: {note_id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="mn_toggle_favorite")
        def mn_toggle_favorite(note_id: str) -> str:
            """Mark or unmark a note as favorite.
            Args:
                note_id: The ID of the note
            """
            with timed_operation("mn_toggle_favorite", note_id=note_id):
                try:
                    note = self.notebook.toggle_favorite(note_id)
                    state = "added to" if note.is_favorite else "removed from"
                    return f"Note {note.id} {state} favorites"
                except Exception as e:
                    return self.format_error_response(e)

        # Folders
        @self.mcp.tool(name="mn_list_folders")
        def mn_list_folders() -> str:
            """List all folders."""
            with timed_operation("mn_list_folders") as op:
                try:
                    folders = self.notebook.list_folders()
                    op["count"] = len(folders)
                    if not folders:
                        return "No folders."
                    lines = [f"{len(folders)} folders:"]
                    for folder in folders:
                        desc = f": {folder.description}" if folder.description else ""
                        lines.append(f"- {folder.name} (ID: {folder.id}){desc}")
                    return "\n".join(lines)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="mn_create_folder")
        def mn_create_folder(name: str, description: str = "") -> str:
            """Create a folder and make it the current view.
            Args:
                name: Folder name (required)
                description: Optional description
            """
            with timed_operation("mn_create_folder", name=name[:30]) as op:
                try:
                    folder = self.notebook.create_folder(name, description)
                    op["folder_id"] = folder.id
                    return f"Folder created successfully with ID: {folder.id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="mn_delete_folder")
        def mn_delete_folder(folder_id: str, confirm: bool = False) -> str:
            """Delete a folder. Its notes are kept without a folder.
            Args:
                folder_id: The ID of the folder
                confirm: Must be true
            """
            with timed_operation("mn_delete_folder", folder_id=folder_id):
                try:
                    cleared = self.notebook.delete_folder(folder_id, confirmed=confirm)
                    return f"Folder deleted: {folder_id} ({cleared} notes unfiled)"
                except Exception as e:
                    return self.format_error_response(e)

        # Bulk operations
        @self.mcp.tool(name="mn_bulk_delete")
        def mn_bulk_delete(note_ids: str, confirm: bool = False) -> str:
            """Delete several notes at once.
            Args:
                note_ids: Comma-separated note IDs
                confirm: Must be true; deletion cannot be undone
            """
            with timed_operation("mn_bulk_delete") as op:
                try:
                    selection = self._select(note_ids)
                    try:
                        removed = self.notebook.bulk_delete(confirmed=confirm)
                    finally:
                        selection.exit()
                    op["removed"] = removed
                    return f"Deleted {removed} notes"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="mn_bulk_move")
        def mn_bulk_move(note_ids: str, folder_id: Optional[str] = None) -> str:
            """Move several notes into a folder, or out of any folder.
            Args:
                note_ids: Comma-separated note IDs
                folder_id: Target folder; omit to unfile the notes, which also resets their category to personal
            """
            with timed_operation("mn_bulk_move", folder_id=folder_id) as op:
                try:
                    selection = self._select(note_ids)
                    try:
                        moved = self.notebook.bulk_move(folder_id or None)
                    finally:
                        selection.exit()
                    op["moved"] = moved
                    return f"Moved {moved} notes"
                except Exception as e:
                    return self.format_error_response(e)

        # Private area
        @self.mcp.tool(name="mn_unlock_private")
        def mn_unlock_private(password: str) -> str:
            """Unlock the private area. The first call sets the password.
            Args:
                password: The private-area password (at least 4 characters)
            """
            with timed_operation("mn_unlock_private"):
                try:
                    vault = self.notebook.vault
                    if vault.is_unlocked:
                        return "The private area is already unlocked."
                    first_use = not vault.has_password
                    vault.request_access()
                    try:
                        vault.submit_password(password)
                    except MagicNotesError:
                        vault.cancel()
                        raise
                    if first_use:
                        return "Password set. The private area is unlocked."
                    return "The private area is unlocked."
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="mn_lock_private")
        def mn_lock_private() -> str:
            """Lock the private area."""
            with timed_operation("mn_lock_private"):
                try:
                    self.notebook.lock_vault()
                    return "The private area is locked."
                except Exception as e:
                    return self.format_error_response(e)

        # AI assistance
        @self.mcp.tool(name="mn_ai_assist")
        async def mn_ai_assist(
            note_id: str,
            action: str,
            prompt: str = "",
            attachment_path: Optional[str] = None,
        ) -> str:
            """Run an AI action on a note and save the result into it.
            Args:
                note_id: The ID of the note
                action: title, summary, continue, grammar or custom
                prompt: Instruction for the custom action
                attachment_path: Image or text file to send with a custom action (max 5 MB)
            """
            with timed_operation("mn_ai_assist", note_id=note_id, action=action) as op:
                try:
                    try:
                        ai_action = AIAction(action.lower())
                    except ValueError:
                        return f"Invalid action: {action}. Valid actions are: {', '.join(a.value for a in AIAction)}"
                    attachment = None
                    if attachment_path:
                        if ai_action != AIAction.CUSTOM:
                            raise ValidationError("Attachments are only used by the custom action")
                        attachment = await read_attachment(attachment_path)

                    orchestrator = self.notebook.ai
                    if orchestrator.is_processing:
                        op["status"] = OutcomeStatus.REJECTED_BUSY.value
                        return f"AI {ai_action.value}: {OutcomeStatus.REJECTED_BUSY.value} (AI is busy)"
                    session = self.notebook.open_editor(note_id)
                    if ai_action == AIAction.TITLE:
                        outcome = await orchestrator.generate_title(session)
                    elif ai_action == AIAction.SUMMARY:
                        outcome = await orchestrator.summarize(session)
                    elif ai_action == AIAction.CONTINUE:
                        outcome = await orchestrator.continue_writing(session)
                    elif ai_action == AIAction.GRAMMAR:
                        outcome = await orchestrator.fix_grammar(session)
                    else:
                        outcome = await orchestrator.custom_generate(session, prompt, attachment)

                    if self.notebook.session is session:
                        self.notebook.close_editor()
                    op["status"] = outcome.status.value
                    result = f"AI {ai_action.value}: {outcome.status.value}"
                    if outcome.message:
                        result += f" ({outcome.message})"
                    if outcome.ok:
                        result += f"\n{outcome.text}"
                    return result + self._format_notices()
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="mn_get_metrics")
        def mn_get_metrics() -> str:
            """Return operation metrics for this server process."""
            return json.dumps(
                {"summary": metrics.get_summary(), "operations": metrics.get_metrics()},
                indent=2,
            )

    def _select(self, note_ids: str):
        ids = _split_ids(note_ids)
        if not ids:
            raise ValidationError("No note IDs given", field="note_ids")
        selection = self.notebook.selection
        if not selection.active:
            selection.toggle()
        try:
            for note_id in ids:
                if not selection.is_selected(note_id):
                    selection.toggle_member(note_id)
        except MagicNotesError:
            selection.exit()
            raise
        return selection

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
