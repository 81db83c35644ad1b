"""
Tool wizard state machine.

Drives one chat through:
    IDLE -> AWAITING_DETAIL_CHOICE -> SELECTING_TYPES -> SELECTING_API_TIER
         -> SELECTING_PAYMENT -> AWAITING_SUMMARY_CONFIRMATION -> (reset)
with CONFIRMING_CANCEL reachable from the interactive steps.

Every callback passes the freshness gate, then the ownership gate, then the
step's transition table, before its handler runs. Handlers mutate the chat's
WizardSession and talk to Telegram and the record store; edits and deletes
of prompts are best-effort, sends of new prompts and persistence are not.
"""
import html
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, FrozenSet, Optional, Tuple

from pydantic import BaseModel

from backend.app.core.config import Settings, settings as default_settings
from backend.app.core.errors import (
    AuthorizationError, ExpiryError, InputError, MessageNotModifiedError,
    PersistenceError, RateLimitedError, TransportError, ValidationError,
)
from backend.app.core.logger_config import setup_logger
from backend.app.core.prompts import MessageCatalog, messages as default_messages
from backend.app.models.events import (
    Action, DETAILS_YES, NAV_API, NAV_START, NAV_TYPES,
    SUMMARY_APPROVE, SUMMARY_CANCEL, SUMMARY_EDIT, Selection, decode,
)
from backend.app.models.telegram import CallbackQuery, Message
from backend.app.models.tool import (
    API_TIERS, PAYMENT_OPTIONS, PUBLIC, TOOL_TYPES, CompleteTool,
)
from backend.app.models.wizard_session import (
    PendingSummary, WizardSession, WizardStep, cancel_return_target,
)
from backend.app.services import presentation
from backend.app.services.parser import parse_save_tool_command
from backend.app.services.record_store import RecordStore
from backend.app.services.scheduler import AsyncioScheduler, HandledFlag, Scheduler, TimerHandle
from backend.app.services.session_store import SessionStore
from backend.app.services.telegram import ChatTransport

logger = setup_logger(__name__)

Step = WizardStep

ALLOWED_ACTIONS: Dict[WizardStep, FrozenSet[Action]] = {
    Step.IDLE: frozenset(),
    Step.AWAITING_DETAIL_CHOICE: frozenset({Action.CONFIRM_DETAILS, Action.CANCEL}),
    Step.SELECTING_TYPES: frozenset({Action.TOGGLE_TYPE, Action.TYPES_DONE, Action.CANCEL}),
    Step.SELECTING_API_TIER: frozenset({
        Action.SELECT_API_TIER, Action.API_TIER_DONE, Action.NAVIGATE, Action.CANCEL,
    }),
    Step.SELECTING_PAYMENT: frozenset({
        Action.TOGGLE_PAYMENT, Action.PAYMENT_DONE, Action.NAVIGATE, Action.CANCEL,
    }),
    Step.AWAITING_SUMMARY_CONFIRMATION: frozenset({Action.SUMMARY}),
    Step.CONFIRMING_CANCEL: frozenset({Action.CANCEL_CONFIRM, Action.NAVIGATE}),
}

# "Back" targets reachable from the selection steps
BACK_TARGETS: Dict[WizardStep, str] = {
    Step.SELECTING_API_TIER: NAV_TYPES,
    Step.SELECTING_PAYMENT: NAV_API,
}


class CallbackContext(BaseModel):
    query_id: str
    chat_id: int
    user_id: int
    message_id: Optional[int] = None
    answered: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WizardController:
    def __init__(
        self,
        transport: ChatTransport,
        store: RecordStore,
        sessions: Optional[SessionStore] = None,
        scheduler: Optional[Scheduler] = None,
        catalog: MessageCatalog = default_messages,
        clock: Callable[[], datetime] = _utcnow,
        config: Settings = default_settings,
    ):
        self.transport = transport
        self.store = store
        self.sessions = sessions or SessionStore()
        self.scheduler = scheduler or AsyncioScheduler()
        self.catalog = catalog
        self.clock = clock
        self.config = config
        # (chat_id, message_id) of approved summaries still on screen -> approver
        self._final_summaries: Dict[Tuple[int, int], int] = {}

        self._handlers: Dict[Action, Callable[[CallbackContext, WizardSession, Selection], Awaitable[None]]] = {
            Action.CONFIRM_DETAILS: self._on_confirm_details,
            Action.NAVIGATE: self._on_navigate,
            Action.TOGGLE_TYPE: self._on_toggle_type,
            Action.TYPES_DONE: self._on_types_done,
            Action.SELECT_API_TIER: self._on_select_api_tier,
            Action.API_TIER_DONE: self._on_api_tier_done,
            Action.TOGGLE_PAYMENT: self._on_toggle_payment,
            Action.PAYMENT_DONE: self._on_payment_done,
            Action.SUMMARY: self._on_summary,
            Action.DELETE_SUMMARY: self._on_delete_summary,
            Action.CANCEL: self._on_cancel,
            Action.CANCEL_CONFIRM: self._on_cancel_confirm,
        }

    @property
    def handlers(self):
        return dict(self._handlers)

    # --- Commands ---

    async def handle_start(self, message: Message):
        await self.transport.send_message(message.chat.id, self.catalog.get("start"))

    async def handle_save_tool(self, message: Message):
        chat_id = message.chat.id
        if message.from_user is None:
            logger.warning("Ignoring /savetool without sender in chat %s", chat_id)
            return

        async with self.sessions.lock(chat_id):
            try:
                initial_tool = parse_save_tool_command(message.text or "")
                current = self.sessions.get(chat_id)
                if self._held_by_other(current, message.from_user.id):
                    logger.info(
                        "Chat %s is busy with user %s, refusing /savetool from %s",
                        chat_id, current.user_id, message.from_user.id,
                    )
                    await self.transport.send_message(chat_id, self.catalog.get("session_busy"))
                    return
                session = self.sessions.start(chat_id, message.from_user.id, initial_tool, self.clock())
                session.last_message_id = await self.transport.send_message(
                    chat_id,
                    presentation.tool_received_text(initial_tool, self.catalog),
                    presentation.detail_choice_keyboard(self.catalog),
                )
            except InputError as e:
                logger.warning("Command parse error in chat %s: %s", chat_id, e.message)
                await self._best_effort(
                    self.transport.send_message(chat_id, html.escape(e.message)),
                    "send usage message",
                )
            except Exception:
                logger.exception("Error starting wizard in chat %s", chat_id)
                await self._best_effort(
                    self.transport.send_message(chat_id, self.catalog.get("command_failed")),
                    "send command failure notice",
                )

    # --- Callbacks ---

    async def handle_callback(self, query: CallbackQuery):
        if query.message is None:
            logger.error("Callback %s without message, nothing to act on", query.id)
            await self._best_effort(self.transport.answer_callback(query.id), "answer callback")
            return

        ctx = CallbackContext(
            query_id=query.id,
            chat_id=query.message.chat.id,
            user_id=query.from_user.id,
            message_id=query.message.message_id,
        )
        try:
            selection = decode(query.data)
            if selection is None:
                logger.info("Ignoring unknown callback token %r in chat %s", query.data, ctx.chat_id)
            elif selection.action == Action.DELETE_SUMMARY:
                # Approved summaries outlive their session, so ownership is checked by the handler.
                await self._on_delete_summary(ctx, None, selection)
            else:
                async with self.sessions.lock(ctx.chat_id):
                    await self._process(ctx, selection)
        except Exception:
            logger.exception(
                "Error handling callback %r from user %s in chat %s", query.data, ctx.user_id, ctx.chat_id
            )
            await self._best_effort(
                self.transport.send_message(ctx.chat_id, self.catalog.get("generic_error")),
                "send error notice",
            )
        finally:
            if not ctx.answered:
                await self._answer(ctx)

    async def _process(self, ctx: CallbackContext, selection: Selection):
        session = self.sessions.get(ctx.chat_id)

        try:
            self._check_freshness(session)
            self._check_owner(session, ctx.user_id)
        except ExpiryError as e:
            logger.info("Session in chat %s expired (%s)", ctx.chat_id, e)
            await self._expire(ctx, session)
            return
        except AuthorizationError as e:
            logger.warning("Rejected %s in chat %s: %s", selection.token, ctx.chat_id, e)
            key = "session_inactive" if e.owner_id is None else "only_starter"
            await self._answer(ctx, self.catalog.get(key), alert=True)
            return

        if selection.action not in ALLOWED_ACTIONS[session.step]:
            logger.info("Ignoring stale %s at step %s in chat %s", selection.token, session.step.value, ctx.chat_id)
            return

        if not self._is_current_prompt(session, selection, ctx.message_id):
            logger.info("Ignoring %s pressed on old message %s in chat %s", selection.token, ctx.message_id, ctx.chat_id)
            return

        logger.info("Button clicked: %s (chat %s, step %s)", selection.token, ctx.chat_id, session.step.value)
        step = session.step
        try:
            await self._handlers[selection.action](ctx, session, selection)
        except ValidationError as e:
            await self._answer(ctx, e.message, alert=True)
        except PersistenceError as e:
            # Selections stay in the session so the user can press the button again.
            logger.error("Persistence failed at step %s in chat %s: %s", step.value, ctx.chat_id, e)
            await self._best_effort(
                self.transport.send_message(ctx.chat_id, self.catalog.get("save_failed")),
                "send save failure notice",
            )

    # --- Gates ---

    def _check_freshness(self, session: WizardSession):
        age = session.age_seconds(self.clock())
        if age is not None and age > self.config.SESSION_TIMEOUT_SECONDS:
            raise ExpiryError(age)

    def _check_owner(self, session: WizardSession, user_id: int):
        if session.user_id is None or session.user_id != user_id:
            raise AuthorizationError(user_id, session.user_id)

    def _held_by_other(self, session: WizardSession, user_id: int) -> bool:
        """True while another user's unexpired session occupies the chat."""
        if session.is_empty or session.user_id in (None, user_id):
            return False
        age = session.age_seconds(self.clock())
        return age is None or age <= self.config.SESSION_TIMEOUT_SECONDS

    @staticmethod
    def _is_current_prompt(session: WizardSession, selection: Selection, message_id: Optional[int]) -> bool:
        if selection.action == Action.SUMMARY:
            pending = session.pending_summary
            return pending is not None and pending.message_id == message_id
        return message_id == session.last_message_id

    async def _expire(self, ctx: CallbackContext, session: WizardSession):
        # A persisted summary still finalizes through its own timer.
        session.pending_summary = None
        self.sessions.reset(ctx.chat_id)
        notice_id = await self.transport.send_message(ctx.chat_id, self.catalog.get("session_expired"))
        self._schedule_delete(ctx.chat_id, notice_id, self.config.CLEANUP_MESSAGE_SECONDS, "expiry notice")

    # --- Step handlers ---

    async def _on_confirm_details(self, ctx: CallbackContext, session: WizardSession, selection: Selection):
        if selection.value == DETAILS_YES:
            await self._delete_last_prompt(ctx.chat_id, session)
            session.last_message_id = await self.transport.send_message(
                ctx.chat_id,
                self.catalog.get("select_types"),
                presentation.types_keyboard(session.types, self.catalog),
            )
            session.step = Step.SELECTING_TYPES
            return

        tool = CompleteTool.minimal(session.initial_tool)
        await self._persist_and_summarize(ctx, session, tool, "saved_minimal_header")

    async def _on_navigate(self, ctx: CallbackContext, session: WizardSession, selection: Selection):
        target = selection.value
        allowed = session.cancel_return if session.step == Step.CONFIRMING_CANCEL else BACK_TARGETS.get(session.step)
        if target != allowed:
            logger.info("Ignoring navigation to %s from %s", target, session.step.value)
            return

        if target == NAV_START:
            text = presentation.tool_received_text(session.initial_tool, self.catalog)
            keyboard = presentation.detail_choice_keyboard(self.catalog)
            step = Step.AWAITING_DETAIL_CHOICE
        elif target == NAV_TYPES:
            text = self.catalog.get("select_types")
            keyboard = presentation.types_keyboard(session.types, self.catalog)
            step = Step.SELECTING_TYPES
        else:
            text = self.catalog.get("select_api_tier")
            keyboard = presentation.api_tier_keyboard(session.api_tier, self.catalog)
            step = Step.SELECTING_API_TIER

        await self._redraw(ctx, session, text, keyboard)
        session.step = step
        session.cancel_return = None

    async def _on_toggle_type(self, ctx: CallbackContext, session: WizardSession, selection: Selection):
        label = TOOL_TYPES[selection.value]
        added = session.toggle_type(label)
        logger.info("%s type: %s", "Added" if added else "Removed", label)
        await self._redraw(
            ctx, session,
            self.catalog.get("select_types"),
            presentation.types_keyboard(session.types, self.catalog),
        )

    async def _on_types_done(self, ctx: CallbackContext, session: WizardSession, selection: Selection):
        if not session.types:
            raise ValidationError(self.catalog.get("types_required"))

        logger.info("Types selection completed: %s", session.types)
        await self._redraw(
            ctx, session,
            self.catalog.get("select_api_tier"),
            presentation.api_tier_keyboard(session.api_tier, self.catalog),
        )
        session.step = Step.SELECTING_API_TIER

    async def _on_select_api_tier(self, ctx: CallbackContext, session: WizardSession, selection: Selection):
        label = API_TIERS[selection.value]
        if session.api_tier == label:
            return

        session.api_tier = label
        logger.info("Selected API service: %s", label)
        await self._redraw(
            ctx, session,
            self.catalog.get("select_api_tier"),
            presentation.api_tier_keyboard(label, self.catalog),
        )

    async def _on_api_tier_done(self, ctx: CallbackContext, session: WizardSession, selection: Selection):
        if not session.api_tier:
            raise ValidationError(self.catalog.get("api_tier_required"))

        await self._redraw(
            ctx, session,
            self.catalog.get("select_payment"),
            presentation.payment_keyboard(session.payments, self.catalog),
        )
        session.step = Step.SELECTING_PAYMENT

    async def _on_toggle_payment(self, ctx: CallbackContext, session: WizardSession, selection: Selection):
        label = PAYMENT_OPTIONS[selection.value]
        added = session.toggle_payment(label)
        logger.info("%s payment type: %s", "Added" if added else "Removed", label)
        await self._best_effort(
            self.transport.edit_message_keyboard(
                ctx.chat_id, ctx.message_id, presentation.payment_keyboard(session.payments, self.catalog)
            ),
            "update payment keyboard",
            ctx.chat_id,
        )

    async def _on_payment_done(self, ctx: CallbackContext, session: WizardSession, selection: Selection):
        if not session.payments:
            raise ValidationError(self.catalog.get("payment_required"))
        if not session.api_tier:
            raise ValidationError(self.catalog.get("api_tier_required"))

        tool = CompleteTool(
            **session.initial_tool.model_dump(),
            types=list(session.types),
            state=PUBLIC,
            api_services=session.api_tier,
            is_paid=list(session.payments),
        )
        await self._persist_and_summarize(ctx, session, tool, "saved_full_header")

    async def _on_summary(self, ctx: CallbackContext, session: WizardSession, selection: Selection):
        pending = session.pending_summary
        if pending is None:
            return

        pending.disarm()
        if not pending.flag.claim():
            logger.info("Summary %s in chat %s was already auto-approved", pending.message_id, ctx.chat_id)
            await self._answer(ctx, self.catalog.get("already_finalized"))
            return
        session.pending_summary = None

        if selection.value == SUMMARY_CANCEL:
            await self._best_effort(
                self.transport.delete_message(ctx.chat_id, pending.message_id), "delete summary message"
            )
            self.sessions.reset(ctx.chat_id)
            await self.transport.send_message(ctx.chat_id, self.catalog.get("summary_cancelled"))
            logger.info("Tool save cancelled in chat %s", ctx.chat_id)

        elif selection.value == SUMMARY_APPROVE:
            await self._best_effort(
                self.transport.edit_message_text(
                    ctx.chat_id,
                    pending.message_id,
                    presentation.summary_text(pending.tool, "approved_header", self.catalog),
                    presentation.final_summary_keyboard(self.catalog),
                ),
                "show approved summary",
                ctx.chat_id,
            )
            self._final_summaries[(ctx.chat_id, pending.message_id)] = ctx.user_id
            self._schedule_delete(
                ctx.chat_id, pending.message_id, self.config.CLEANUP_MESSAGE_SECONDS, "approved summary"
            )
            self.sessions.reset(ctx.chat_id)
            logger.info("Tool '%s' approved in chat %s", pending.tool.name, ctx.chat_id)

        elif selection.value == SUMMARY_EDIT:
            await self._best_effort(
                self.transport.delete_message(ctx.chat_id, pending.message_id), "delete summary message"
            )
            await self._delete_record(session)
            fresh = self.sessions.start(ctx.chat_id, ctx.user_id, session.initial_tool, self.clock())
            fresh.last_message_id = await self.transport.send_message(
                ctx.chat_id,
                self.catalog.get("select_types"),
                presentation.types_keyboard((), self.catalog),
            )
            fresh.step = Step.SELECTING_TYPES
            logger.info("Editing tool '%s' in chat %s", pending.tool.name, ctx.chat_id)

    async def _on_delete_summary(self, ctx: CallbackContext, session: Optional[WizardSession], selection: Selection):
        key = (ctx.chat_id, ctx.message_id)
        owner_id = self._final_summaries.get(key)
        if owner_id != ctx.user_id:
            logger.warning("Rejected delete of summary %s in chat %s by user %s", ctx.message_id, ctx.chat_id, ctx.user_id)
            key_name = "session_inactive" if owner_id is None else "only_starter"
            await self._answer(ctx, self.catalog.get(key_name), alert=True)
            return

        del self._final_summaries[key]
        await self._best_effort(
            self.transport.delete_message(ctx.chat_id, ctx.message_id), "delete final summary"
        )

    async def _on_cancel(self, ctx: CallbackContext, session: WizardSession, selection: Selection):
        target = cancel_return_target(session)
        await self._redraw(
            ctx, session,
            self.catalog.get("cancel_question"),
            presentation.cancel_confirmation_keyboard(target, self.catalog),
        )
        session.cancel_return = target
        session.step = Step.CONFIRMING_CANCEL

    async def _on_cancel_confirm(self, ctx: CallbackContext, session: WizardSession, selection: Selection):
        await self._best_effort(
            self.transport.delete_message(ctx.chat_id, ctx.message_id), "delete cancel prompt"
        )
        self.sessions.reset(ctx.chat_id)
        notice_id = await self.transport.send_message(ctx.chat_id, self.catalog.get("operation_cancelled"))
        self._schedule_delete(ctx.chat_id, notice_id, self.config.SHORT_NOTICE_SECONDS, "cancel notice")
        logger.info("Wizard cancelled in chat %s", ctx.chat_id)

    # --- Persistence and auto-approve ---

    async def _persist_and_summarize(self, ctx: CallbackContext, session: WizardSession,
                                     tool: CompleteTool, header_key: str):
        session.last_record_id = await self.store.create(tool.to_fields())
        logger.info("Saved tool '%s' as record %s", tool.name, session.last_record_id)

        await self._delete_last_prompt(ctx.chat_id, session)
        summary_id = await self.transport.send_message(
            ctx.chat_id,
            presentation.summary_text(tool, header_key, self.catalog),
            presentation.summary_keyboard(self.catalog),
        )
        session.step = Step.AWAITING_SUMMARY_CONFIRMATION
        self._arm_auto_approve(ctx.chat_id, session, summary_id, tool)

    def _arm_auto_approve(self, chat_id: int, session: WizardSession, message_id: int, tool: CompleteTool):
        if session.pending_summary is not None:
            session.pending_summary.disarm()

        pending = PendingSummary(message_id=message_id, tool=tool, flag=HandledFlag())
        pending.timer = self.scheduler.call_later(
            self.config.AUTO_APPROVE_SECONDS,
            lambda: self._auto_approve(chat_id, pending),
            name=f"auto-approve {chat_id}:{message_id}",
        )
        session.pending_summary = pending

    async def _auto_approve(self, chat_id: int, pending: PendingSummary):
        if not pending.flag.claim():
            logger.info("Auto-approve skipped, summary %s already handled", pending.message_id)
            return

        logger.info("Auto-approving tool '%s' in chat %s", pending.tool.name, chat_id)
        if self.sessions.get(chat_id).pending_summary is pending:
            self.sessions.reset(chat_id)

        await self._best_effort(
            self.transport.edit_message_text(
                chat_id,
                pending.message_id,
                presentation.summary_text(pending.tool, "auto_approved_header", self.catalog),
            ),
            "show auto-approved summary",
        )
        self._schedule_delete(chat_id, pending.message_id, self.config.SHORT_NOTICE_SECONDS, "auto-approved summary")

    async def _delete_record(self, session: WizardSession):
        if not session.last_record_id:
            return
        try:
            await self.store.delete(session.last_record_id)
        except PersistenceError as e:
            logger.error("Failed to delete record %s: %s", session.last_record_id, e)
        session.last_record_id = None

    # --- Outbound helpers ---

    async def _redraw(self, ctx: CallbackContext, session: WizardSession, text: str, keyboard):
        """Replaces the current prompt in place."""
        await self._best_effort(
            self.transport.edit_message_text(ctx.chat_id, session.last_message_id, text, keyboard),
            "update prompt",
            ctx.chat_id,
        )

    async def _delete_last_prompt(self, chat_id: int, session: WizardSession):
        if session.last_message_id is None:
            return
        await self._best_effort(
            self.transport.delete_message(chat_id, session.last_message_id), "delete previous prompt"
        )
        session.last_message_id = None

    def _schedule_delete(self, chat_id: int, message_id: int, delay: float, what: str) -> TimerHandle:
        async def _delete():
            self._final_summaries.pop((chat_id, message_id), None)
            await self._best_effort(self.transport.delete_message(chat_id, message_id), f"delete {what}")

        return self.scheduler.call_later(delay, _delete, name=f"delete {what} {chat_id}:{message_id}")

    async def _answer(self, ctx: CallbackContext, text: Optional[str] = None, alert: bool = False):
        ctx.answered = True
        await self._best_effort(
            self.transport.answer_callback(ctx.query_id, text, alert), "answer callback query"
        )

    async def _best_effort(self, action: Awaitable, what: str, chat_id: Optional[int] = None):
        """
        Awaits a transport call and discards its failure after logging it.
        A rate limit is reported to the chat when chat_id is given.
        """
        try:
            return await action
        except MessageNotModifiedError:
            logger.debug("Skipped %s: message is not modified", what)
        except RateLimitedError as e:
            logger.warning("Rate limited while trying to %s (retry after %ss)", what, e.retry_after)
            if chat_id is not None:
                try:
                    await self.transport.send_message(
                        chat_id, self.catalog.get("rate_limited", seconds=e.retry_after)
                    )
                except TransportError as inner:
                    logger.error("Failed to send rate limit notice: %s", inner)
        except TransportError as e:
            logger.error("Failed to %s: %s", what, e)
        return None
