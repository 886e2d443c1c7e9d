"""Telegram channel adapter."""

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Tuple

from telegram import Bot, BotCommand, Update
from telegram.constants import ParseMode
from telegram.error import BadRequest
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from ..core.context import EventContext
from ..core.dispatcher import GUEST_FILTERS
from ..core.pipeline import AssistantPipeline, TurnContext
from ..core.references import match_by_name
from ..core.types import EventRef, ToolCall, ToolName
from ..db.models import get_audit_entries, get_org_for_chat, link_chat
from ..luma.client import DEFAULT_BASE_URL, LumaClient
from ..luma.errors import LumaAuthError, LumaError
from .errors import classify_error
from .escape import escape_markdown_v2, unescape_markdown_v2
from .outbound import split_message

logger = logging.getLogger("sonic.telegram")

LINK_FIRST_REPLY = (
    "This chat isn't linked to a Luma calendar yet. "
    "Send /link <API_KEY> (ideally in a direct chat with me) to connect one."
)

HELP_TEXT = """Available commands:

/start - Welcome message
/help - This help message
/link <API_KEY> - Connect this chat to your Luma calendar
/events - List known events
/next - Next three upcoming events
/search <term> - Find events by name
/guests <event> [status=pending_approval] - List guests of an event
/approve <event> <email> - Approve a guest
/reject <event> <email> - Decline a guest
/audit - Recent approvals and rejections

<event> can be an event id (evt-...) or part of its name.
Or just ask me in plain language, e.g. "who is still pending for the summit?\""""

UPCOMING_LIMIT = 3


# ============================================================
# EVENT LIST RENDERING (commands, no model involved)
# ============================================================

def _parse_start(event: EventRef) -> Optional[datetime]:
    if not event.start_at:
        return None
    try:
        start = datetime.fromisoformat(event.start_at.replace("Z", "+00:00"))
    except ValueError:
        return None
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    return start


def upcoming_events(events: list, now: Optional[datetime] = None, limit: int = UPCOMING_LIMIT) -> list:
    """Events starting at or after ``now``, soonest first."""
    now = now or datetime.now(timezone.utc)
    dated = [(start, e) for e in events if (start := _parse_start(e)) and start >= now]
    dated.sort(key=lambda pair: pair[0])
    return [e for _, e in dated[:limit]]


def format_event_list(events: list, header: str, empty: str) -> str:
    if not events:
        return empty
    lines = [header]
    for i, event in enumerate(events, 1):
        lines.append(f"{i}. {event.context_line()}")
    return "\n".join(lines)


def format_audit_entries(entries: list) -> str:
    if not entries:
        return "No approvals or rejections recorded yet."
    lines = ["Recent guest status changes:"]
    for entry in entries:
        details = entry.get("details") or {}
        ts = entry.get("timestamp")
        when = ts.strftime("%Y-%m-%d %H:%M") if hasattr(ts, "strftime") else str(ts)
        line = f"{when} {entry.get('action_type')}: {details.get('guest_email', '?')} @ {details.get('event_id', '?')}"
        if not entry.get("success") and details.get("error"):
            line += f" ({details['error']})"
        lines.append(line)
    return "\n".join(lines)


def event_params(token: str) -> dict:
    """Command argument → event reference params (id if it looks like one)."""
    token = token.strip()
    if re.fullmatch(r"evt-\S+", token):
        return {"event_id": token}
    return {"event_name": token}


def parse_guests_args(args: list) -> Tuple[str, Optional[str]]:
    """``/guests <event...> [status=x]`` → (event token, status filter)."""
    status = None
    rest = []
    for arg in args:
        if arg.lower().startswith("status="):
            status = arg.split("=", 1)[1] or None
        else:
            rest.append(arg)
    return " ".join(rest).strip(), status


def check_and_strip_mention(text: str, bot_username: str) -> Tuple[bool, str]:
    """Check if the bot is @-mentioned and strip the mention from text.

    Returns:
        Tuple of (is_mentioned, processed_text)
    """
    if not bot_username:
        return False, text
    username_pattern = re.compile(rf"@{re.escape(bot_username)}\b", re.IGNORECASE)
    if not username_pattern.search(text):
        return False, text
    stripped = username_pattern.sub("", text).strip()
    return True, stripped


class _TypingIndicator:
    """Keeps sending 'typing' action every 4s until cancelled.

    Usage:
        async with _TypingIndicator(bot, chat_id):
            await long_running_work()

    Auto-stops after max_duration seconds even if the wrapped coroutine
    hangs.
    """

    def __init__(self, bot: Bot, chat_id: int, interval: float = 4.0, max_duration: float = 120.0):
        self._bot = bot
        self._chat_id = chat_id
        self._interval = interval
        self._max_duration = max_duration
        self._task: Optional[asyncio.Task] = None

    async def _loop(self):
        start = time.monotonic()
        try:
            while time.monotonic() - start <= self._max_duration:
                await self._bot.send_chat_action(self._chat_id, "typing")
                await asyncio.sleep(self._interval)
            logger.warning(f"Typing indicator timeout ({self._max_duration}s) for chat {self._chat_id}")
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Typing indicator stopped for chat {self._chat_id}: {e}")

    async def __aenter__(self):
        self._task = asyncio.create_task(self._loop())
        return self

    async def __aexit__(self, *exc):
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass


class TelegramChannel:
    """Telegram bot adapter for Sonic."""

    def __init__(
        self,
        pipeline: AssistantPipeline,
        bot_token: str,
        luma_base_url: str = DEFAULT_BASE_URL,
        luma_timeout: float = 15.0,
    ):
        self.pipeline = pipeline
        self.bot_token = bot_token
        self.luma_base_url = luma_base_url
        self.luma_timeout = luma_timeout
        self.app: Optional[Application] = None
        self._bot_username: Optional[str] = None

    async def start(self):
        """Start the Telegram bot."""
        self.app = (
            Application.builder()
            .token(self.bot_token)
            .build()
        )

        # Command handlers
        self.app.add_handler(CommandHandler("start", self._cmd_start))
        self.app.add_handler(CommandHandler("help", self._cmd_help))
        self.app.add_handler(CommandHandler("link", self._cmd_link))
        self.app.add_handler(CommandHandler("events", self._cmd_events))
        self.app.add_handler(CommandHandler("next", self._cmd_next))
        self.app.add_handler(CommandHandler("search", self._cmd_search))
        self.app.add_handler(CommandHandler("guests", self._cmd_guests))
        self.app.add_handler(CommandHandler("approve", self._cmd_approve))
        self.app.add_handler(CommandHandler("reject", self._cmd_reject))
        self.app.add_handler(CommandHandler("audit", self._cmd_audit))

        # Message handler: all plain text messages
        self.app.add_handler(MessageHandler(
            filters.TEXT & ~filters.COMMAND,
            self._handle_message,
        ))

        # Error handler
        self.app.add_error_handler(self._handle_error)

        logger.info("Starting Telegram bot...")
        await self.app.initialize()
        await self.app.start()
        await self.app.updater.start_polling(drop_pending_updates=True)

        me = await self.app.bot.get_me()
        self._bot_username = me.username

        # Register bot commands menu (the "/" button in Telegram)
        await self.app.bot.set_my_commands([
            BotCommand("start", "Welcome message"),
            BotCommand("help", "Available commands"),
            BotCommand("link", "Connect a Luma API key"),
            BotCommand("events", "List known events"),
            BotCommand("next", "Next upcoming events"),
            BotCommand("search", "Find events by name"),
            BotCommand("guests", "List guests of an event"),
            BotCommand("approve", "Approve a guest"),
            BotCommand("reject", "Decline a guest"),
            BotCommand("audit", "Recent guest status changes"),
        ])

        logger.info(f"Telegram bot started as @{self._bot_username}.")

    async def stop(self):
        """Stop the Telegram bot."""
        if self.app:
            await self.app.updater.stop()
            await self.app.stop()
            await self.app.shutdown()
            logger.info("Telegram bot stopped.")

    # ============================================================
    # SENDING
    # ============================================================

    async def send_reply(self, bot: Bot, chat_id: int, text: str):
        """Escape once, send as MarkdownV2, split for Telegram's length limit.

        Falls back to plain text for any chunk Telegram refuses to parse.
        """
        if not text:
            return None
        last_msg = None
        for chunk in split_message(escape_markdown_v2(text)):
            try:
                last_msg = await bot.send_message(
                    chat_id=chat_id,
                    text=chunk,
                    parse_mode=ParseMode.MARKDOWN_V2,
                )
            except BadRequest as e:
                logger.warning(f"MarkdownV2 rejected for chat {chat_id} ({e}); sending plain text")
                last_msg = await bot.send_message(chat_id=chat_id, text=unescape_markdown_v2(chunk))
        return last_msg

    # ============================================================
    # TURN PLUMBING
    # ============================================================

    def _luma(self, api_key: str) -> LumaClient:
        return LumaClient(api_key, base_url=self.luma_base_url, timeout=self.luma_timeout)

    async def _turn_context(self, update: Update, text: str) -> Optional[TurnContext]:
        """Org lookup for the chat. None if the chat is not linked yet."""
        chat = update.effective_chat
        user = update.effective_user
        is_direct = chat.type == "private"
        org = await get_org_for_chat(user.id if user else None, chat.id, is_direct)
        if not org:
            return None
        return TurnContext(
            org_id=org["id"],
            chat_id=chat.id,
            is_direct=is_direct,
            text=text,
            luma=self._luma(org["luma_api_key"]),
            user_id=user.id if user else None,
        )

    async def _respond(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
        text: str,
        work: Callable[[TurnContext], Awaitable[str]],
    ):
        """Run one turn for a linked chat and send whatever it produced.

        Anything unexpected becomes a single apology; nothing propagates to
        the user as a stack trace.
        """
        chat_id = update.effective_chat.id
        async with _TypingIndicator(context.bot, chat_id):
            try:
                ctx = await self._turn_context(update, text)
                if ctx is None:
                    reply = LINK_FIRST_REPLY
                else:
                    reply = await work(ctx)
            except Exception as e:
                logger.error(f"Turn failed in chat {chat_id}: {type(e).__name__}: {e}", exc_info=True)
                reply = classify_error(e)
        await self.send_reply(context.bot, chat_id, reply)

    # ============================================================
    # MESSAGES
    # ============================================================

    async def _handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle incoming text messages."""
        if not update.message or not update.message.text:
            return

        chat = update.effective_chat
        user = update.effective_user
        text = update.message.text

        if chat.type != "private":
            is_mentioned, text = check_and_strip_mention(text, self._bot_username)
            if not is_mentioned:
                return

        text = text.strip()
        if not text:
            return

        logger.info(f"[{chat.type}] {user.first_name if user else '?'} ({user.id if user else '?'}): {text[:100]}")
        await self._respond(update, context, text, self.pipeline.handle_turn)

    # ============================================================
    # COMMANDS
    # ============================================================

    async def _cmd_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /start command."""
        welcome = (
            "Hi! I'm Sonic, your Luma events secretary.\n\n"
            "Link your Luma calendar with /link <API_KEY>, then ask me about "
            "your events and guests, or approve and decline registrations."
        )
        await self.send_reply(context.bot, update.effective_chat.id, welcome)

    async def _cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /help command."""
        await self.send_reply(context.bot, update.effective_chat.id, HELP_TEXT)

    async def _cmd_link(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /link <API_KEY> — validate the key and attach this chat to its org."""
        chat = update.effective_chat
        user = update.effective_user
        if not context.args:
            await self.send_reply(context.bot, chat.id, "Usage: /link <API_KEY>")
            return

        api_key = context.args[0].strip()
        is_direct = chat.type == "private"
        try:
            me = await self._luma(api_key).get_self()
            owner = me.get("user") if isinstance(me.get("user"), dict) else me
            owner_id = owner.get("api_id") or owner.get("id")
            if not owner_id:
                raise LumaError("get_self", detail="response has no user id")
            org_name = owner.get("name") or owner.get("email") or str(owner_id)

            await link_chat(
                org_id=str(owner_id),
                org_name=org_name,
                luma_api_key=api_key,
                chat_id=chat.id,
                is_direct=is_direct,
                user_id=user.id if user else None,
                first_name=user.first_name if user else None,
                username=user.username if user else None,
                group_name=None if is_direct else chat.title,
            )
        except LumaAuthError:
            await self.send_reply(context.bot, chat.id, "Luma rejected that API key. Please check it and try again.")
            return
        except Exception as e:
            logger.error(f"Link failed for chat {chat.id}: {type(e).__name__}: {e}", exc_info=True)
            await self.send_reply(context.bot, chat.id, classify_error(e))
            return

        logger.info(f"Linked chat {chat.id} ({chat.type}) to org {owner_id}")
        target = "your account" if is_direct else "this group"
        await self.send_reply(context.bot, chat.id, f"Linked {target} to the Luma calendar of {org_name}.")

    async def _cmd_events(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /events — list every event in the grounding context."""

        async def work(ctx: TurnContext) -> str:
            events = await self.pipeline.load_context(ctx)
            if not events.available:
                return events.render()
            reply = format_event_list(events.events, f"Found {len(events.events)} events:", "No events found.")
            if events.has_more:
                reply += "\n(more events exist beyond this list)"
            return reply

        await self._respond(update, context, "/events", work)

    async def _cmd_next(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /next — the next few upcoming events."""

        async def work(ctx: TurnContext) -> str:
            events: EventContext = await self.pipeline.load_context(ctx)
            if not events.available:
                return events.render()
            upcoming = upcoming_events(events.events)
            return format_event_list(upcoming, "Upcoming events:", "No upcoming events found.")

        await self._respond(update, context, "/next", work)

    async def _cmd_search(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /search <term>."""
        term = " ".join(context.args or []).strip()
        if not term:
            await self.send_reply(context.bot, update.effective_chat.id, "Usage: /search <term>")
            return

        async def work(ctx: TurnContext) -> str:
            events = await self.pipeline.load_context(ctx)
            if not events.available:
                return events.render()
            matches = match_by_name(events.events, term)
            return format_event_list(
                matches,
                f'Found {len(matches)} events matching "{term}":',
                f'No events match "{term}".',
            )

        await self._respond(update, context, f"/search {term}", work)

    async def _cmd_guests(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /guests <event> [status=...]."""
        token, status = parse_guests_args(context.args or [])
        if not token:
            await self.send_reply(
                context.bot, update.effective_chat.id,
                f"Usage: /guests <event> [status={'|'.join(GUEST_FILTERS)}]",
            )
            return

        call = ToolCall.build(ToolName.GET_GUESTS, {**event_params(token), "status_filter": status})
        await self._respond(update, context, f"/guests {token}", lambda ctx: self.pipeline.run_tool(ctx, call))

    async def _cmd_approve(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /approve <event> <email>."""
        await self._update_status(update, context, "approved", "/approve")

    async def _cmd_reject(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /reject <event> <email>."""
        await self._update_status(update, context, "declined", "/reject")

    async def _update_status(self, update: Update, context: ContextTypes.DEFAULT_TYPE, status: str, command: str):
        args = context.args or []
        if len(args) < 2:
            await self.send_reply(context.bot, update.effective_chat.id, f"Usage: {command} <event> <email>")
            return

        email = args[-1]
        token = " ".join(args[:-1])
        call = ToolCall.build(
            ToolName.UPDATE_GUEST_STATUS,
            {**event_params(token), "guest_email": email, "new_status": status},
        )
        await self._respond(update, context, f"{command} {token} {email}", lambda ctx: self.pipeline.run_tool(ctx, call))

    async def _cmd_audit(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /audit — the org's most recent guest status changes."""

        async def work(ctx: TurnContext) -> str:
            return format_audit_entries(await get_audit_entries(ctx.org_id, limit=10))

        await self._respond(update, context, "/audit", work)

    async def _handle_error(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        """Handle errors."""
        logger.error(f"Telegram error: {context.error}", exc_info=context.error)
