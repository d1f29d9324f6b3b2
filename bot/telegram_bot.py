"""
telegram_bot.py — Screen Mockup Generator Telegram Bot

Upload two images → generate → receive the composite.

Conversation flow:
  /start or /new
    → CONTEXT   (photo of a room with a screen, as photo or image file)
    → DESIGN    (image to show on that screen)
    → CONFIRM   (inline keyboard: Generate! / Start over)
    → GENERATING (background task, progress message edited per stage)
    → DONE      (photo + downloadable JPEG, or the error with "Try again")

Commands:
  /start  — start a new mockup
  /new    — alias for /start
  /reset  — discard both uploads and start over
  /cancel — cancel the current conversation
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from telegram import (
    Document,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    PhotoSize,
    Update,
)
from telegram.constants import ChatAction, ParseMode
from telegram.error import BadRequest
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    TypeHandler,
    filters,
)

from .pipeline_runner import CompositeRunner, RunResult
from .session import ComposeSession

# ── Logging ───────────────────────────────────────────────────────────────────

logger = logging.getLogger(__name__)

# ── Conversation states ───────────────────────────────────────────────────────

(
    CONTEXT,
    DESIGN,
    CONFIRM,
) = range(3)

# ── Keyboards ─────────────────────────────────────────────────────────────────

CONFIRM_KEYBOARD = InlineKeyboardMarkup([
    [InlineKeyboardButton("✨ Generate!", callback_data="confirm_go")],
    [InlineKeyboardButton("🔄 Start over", callback_data="confirm_reset")],
])

START_OVER_KEYBOARD = InlineKeyboardMarkup([
    [InlineKeyboardButton("🔄 Start over", callback_data="restart")],
])

TRY_AGAIN_KEYBOARD = InlineKeyboardMarkup([
    [InlineKeyboardButton("🔁 Try again", callback_data="restart")],
])

# ── Context keys ──────────────────────────────────────────────────────────────

SESSION_KEY = "session"
RUNNER_KEY = "runner"

DOWNLOAD_FILENAME = "home-canvas-context.jpg"
CAPTION_LIMIT = 900
CONVERSATION_TIMEOUT = 1800   # seconds idle before uploads are discarded

CONTEXT_QUESTION = (
    "*1\\. Upload context*\n"
    "Send a photo of a room with a monitor, TV or video wall in it\\."
)
DESIGN_QUESTION = (
    "*2\\. Upload design*\n"
    "Now send the image you want to see on that screen\\."
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def get_session(context: ContextTypes.DEFAULT_TYPE) -> ComposeSession:
    if SESSION_KEY not in context.user_data:
        context.user_data[SESSION_KEY] = ComposeSession()
    return context.user_data[SESSION_KEY]


def reset_session(context: ContextTypes.DEFAULT_TYPE) -> ComposeSession:
    """Drop any uploads from the previous attempt and start a fresh session."""
    old = context.user_data.get(SESSION_KEY)
    if isinstance(old, ComposeSession):
        old.cleanup()
    session = ComposeSession()
    context.user_data[SESSION_KEY] = session
    return session


def get_runner(context: ContextTypes.DEFAULT_TYPE) -> CompositeRunner:
    runner = context.bot_data.get(RUNNER_KEY)
    if runner is None:
        runner = CompositeRunner()
        context.bot_data[RUNNER_KEY] = runner
    return runner


async def send_typing(update: Update) -> None:
    await update.effective_chat.send_action(ChatAction.TYPING)


async def safe_edit(context: ContextTypes.DEFAULT_TYPE, chat_id: int, msg_id: int, text: str) -> None:
    """Edit a message, ignoring 'message is not modified' errors."""
    try:
        await context.bot.edit_message_text(
            chat_id=chat_id,
            message_id=msg_id,
            text=text,
            parse_mode=ParseMode.MARKDOWN_V2,
        )
    except BadRequest as exc:
        if "not modified" not in str(exc).lower():
            logger.warning("Could not update progress message: %s", exc)


def escape_md(text: str) -> str:
    """Escape special chars for Telegram MarkdownV2."""
    special = r"\_*[]()~`>#+-=|{}.!"
    return "".join(f"\\{c}" if c in special else c for c in text)


def truncate(text: str, limit: int = CAPTION_LIMIT) -> str:
    return text if len(text) <= limit else text[: limit - 1].rstrip() + "…"


def parse_chat_ids(raw: Optional[str]) -> list:
    """'123, 456' → [123, 456]. Empty or missing → [] (everyone allowed)."""
    if not raw:
        return []
    ids = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            ids.append(int(chunk))
        except ValueError:
            logger.warning("Ignoring invalid chat id in TELEGRAM_ALLOWED_CHAT_IDS: %r", chunk)
    return ids


# ── Image helpers ─────────────────────────────────────────────────────────────

async def _download_image(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    role: str,
) -> Optional[tuple]:
    """
    Download a photo or document-image from the current message into the
    session's temp dir. Returns (path, label), or None if no image found.
    """
    session = get_session(context)
    message = update.message

    if message.photo:
        photo: PhotoSize = message.photo[-1]
        label = f"{role}_photo.jpg"
        img_path = session.upload_path(role, label)
        file = await context.bot.get_file(photo.file_id)
        await file.download_to_drive(str(img_path))
        return img_path, label

    if message.document and (message.document.mime_type or "").startswith("image/"):
        doc: Document = message.document
        label = doc.file_name or f"{role}.jpg"
        img_path = session.upload_path(role, label)
        file = await context.bot.get_file(doc.file_id)
        await file.download_to_drive(str(img_path))
        return img_path, label

    return None


# ── /start ────────────────────────────────────────────────────────────────────

async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    reset_session(context)
    await update.message.reply_text(
        "👋 Welcome to *Screen Mockup Generator*\\!\n\n"
        "Send me a photo of a room with a screen in it, then the design you "
        "want on that screen\\. The AI will put the design on the screen "
        "with matching perspective and lighting\\.\n\n"
        + CONTEXT_QUESTION,
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    return CONTEXT


# ── /reset ────────────────────────────────────────────────────────────────────

async def cmd_reset(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    reset_session(context)
    await update.message.reply_text(
        "🔄 Uploads cleared\\. Starting over\\!\n\n" + CONTEXT_QUESTION,
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    return CONTEXT


# ── /cancel ───────────────────────────────────────────────────────────────────

async def cmd_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    reset_session(context)
    await update.message.reply_text(
        "👋 Cancelled\\. Send /start to begin again\\.",
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    return ConversationHandler.END


# ── "Start over" / "Try again" buttons ────────────────────────────────────────

async def cb_restart(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    reset_session(context)
    await context.bot.send_message(
        chat_id=update.effective_chat.id,
        text=CONTEXT_QUESTION,
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    return CONTEXT


# ── Idle timeout ──────────────────────────────────────────────────────────────

async def on_timeout(update: object, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Conversation went idle mid-upload: delete whatever was uploaded."""
    reset_session(context)
    logger.info("Conversation timed out, uploads discarded")
    return ConversationHandler.END


# ── Step 1: Context image ─────────────────────────────────────────────────────

async def step_context_image(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    await send_typing(update)
    downloaded = await _download_image(update, context, "context")
    if downloaded is None:
        await update.message.reply_text(
            "⚠️ That doesn't look like an image\\. " + CONTEXT_QUESTION,
            parse_mode=ParseMode.MARKDOWN_V2,
        )
        return CONTEXT

    path, label = downloaded
    get_session(context).set_context(path, label)
    logger.info("Context uploaded: %s", label)
    await update.message.reply_text(
        "✅ Context received\\.\n\n" + DESIGN_QUESTION,
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    return DESIGN


# ── Step 2: Design image ──────────────────────────────────────────────────────

async def step_design_image(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    await send_typing(update)
    downloaded = await _download_image(update, context, "design")
    if downloaded is None:
        await update.message.reply_text(
            "⚠️ That doesn't look like an image\\. " + DESIGN_QUESTION,
            parse_mode=ParseMode.MARKDOWN_V2,
        )
        return DESIGN

    path, label = downloaded
    session = get_session(context)
    session.set_design(path, label)
    logger.info("Design uploaded: %s", label)
    await update.message.reply_text(
        "✅ Design received\\.\n\n"
        f"```\n{escape_md(session.summary())}\n```\n"
        "*3\\. Generate\\!*",
        parse_mode=ParseMode.MARKDOWN_V2,
        reply_markup=CONFIRM_KEYBOARD,
    )
    return CONFIRM


# ── Text while waiting for an image ───────────────────────────────────────────

async def step_expect_context(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    await update.message.reply_text(
        "Upload a design and a context image to begin\\.\n\n" + CONTEXT_QUESTION,
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    return CONTEXT


async def step_expect_design(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    await update.message.reply_text(DESIGN_QUESTION, parse_mode=ParseMode.MARKDOWN_V2)
    return DESIGN


# ── Step 3: Confirm ───────────────────────────────────────────────────────────

async def step_confirm_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    if query.data == "confirm_reset":
        reset_session(context)
        await query.edit_message_text(
            "🔄 Starting over\\.\n\n" + CONTEXT_QUESTION,
            parse_mode=ParseMode.MARKDOWN_V2,
        )
        return CONTEXT

    session = get_session(context)
    if not session.is_ready():
        await query.edit_message_text(
            "❌ Please upload both a design and a context image first\\.\n\n" + CONTEXT_QUESTION,
            parse_mode=ParseMode.MARKDOWN_V2,
        )
        reset_session(context)
        return CONTEXT

    progress_msg = await query.edit_message_text(
        "⏳ *Starting\\.\\.\\.*\n\n_This usually takes under a minute\\._",
        parse_mode=ParseMode.MARKDOWN_V2,
    )

    # Hand the uploads over to the background task; the chat gets a clean session.
    context.user_data[SESSION_KEY] = ComposeSession()

    context.application.create_task(
        _run_pipeline_and_respond(
            context=context,
            chat_id=update.effective_chat.id,
            progress_msg_id=progress_msg.message_id,
            session=session,
        ),
        update=update,
    )
    return ConversationHandler.END


# ── Pipeline execution + result delivery ──────────────────────────────────────

async def _run_pipeline_and_respond(
    context: ContextTypes.DEFAULT_TYPE,
    chat_id: int,
    progress_msg_id: int,
    session: ComposeSession,
) -> None:
    """Run the pipeline, keep the progress message current, deliver the result."""
    loop = asyncio.get_running_loop()
    pending: List[concurrent.futures.Future] = []

    def on_progress(msg: str) -> None:
        """Sync callback from the worker thread → schedule an async edit."""
        pending.append(asyncio.run_coroutine_threadsafe(
            safe_edit(context, chat_id, progress_msg_id, f"⏳ *{escape_md(msg)}*"),
            loop,
        ))

    try:
        result = await get_runner(context).run(
            design_path=session.design_path,
            design_label=session.design_label,
            context_path=session.context_path,
            context_label=session.context_label,
            on_progress=on_progress,
        )
        # Progress edits must land before the final edit, not after it.
        await _flush_progress(pending)
        if result.success:
            await _deliver_result(context, chat_id, progress_msg_id, result)
        else:
            await _deliver_error(context, chat_id, progress_msg_id, result)
    finally:
        session.cleanup()


async def _flush_progress(pending: List[concurrent.futures.Future]) -> None:
    outcomes = await asyncio.gather(
        *(asyncio.wrap_future(f) for f in pending), return_exceptions=True
    )
    for outcome in outcomes:
        if isinstance(outcome, Exception):
            logger.warning("Progress update failed: %s", outcome)


async def _deliver_result(
    context: ContextTypes.DEFAULT_TYPE,
    chat_id: int,
    progress_msg_id: int,
    result: RunResult,
) -> None:
    await safe_edit(
        context, chat_id, progress_msg_id,
        f"✅ *Done\\!* {escape_md(f'{result.elapsed_seconds:.0f}s')}",
    )
    image = result.image
    await context.bot.send_photo(
        chat_id=chat_id,
        photo=image.data,
        caption=truncate(f"Your generated context\n\nTarget screen: {result.description}"),
    )
    await context.bot.send_document(
        chat_id=chat_id,
        document=image.data,
        filename=DOWNLOAD_FILENAME,
        caption=f"⬇️ Download ({image.width}×{image.height})",
        reply_markup=START_OVER_KEYBOARD,
    )


async def _deliver_error(
    context: ContextTypes.DEFAULT_TYPE,
    chat_id: int,
    progress_msg_id: int,
    result: RunResult,
) -> None:
    await safe_edit(context, chat_id, progress_msg_id, "❌ *An error occurred*")
    await context.bot.send_message(
        chat_id=chat_id,
        text=f"❌ Failed to generate the image\\. {escape_md(truncate(result.error, 500))}",
        parse_mode=ParseMode.MARKDOWN_V2,
        reply_markup=TRY_AGAIN_KEYBOARD,
    )


# ── Error handler ─────────────────────────────────────────────────────────────

async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Exception while handling update:", exc_info=context.error)
    if isinstance(update, Update) and update.effective_message:
        await update.effective_message.reply_text(
            "⚠️ Something went wrong\\. Send /cancel then /start to try again\\.",
            parse_mode=ParseMode.MARKDOWN_V2,
        )


# ── App builder ───────────────────────────────────────────────────────────────

def build_app(
    token: str,
    runner: Optional[CompositeRunner] = None,
    allowed_chat_ids: Optional[Iterable[int]] = None,
) -> Application:
    app = Application.builder().token(token).build()
    if runner is not None:
        app.bot_data[RUNNER_KEY] = runner

    allowed = list(allowed_chat_ids or [])
    chats = filters.Chat(chat_id=allowed) if allowed else filters.ALL
    images = chats & (filters.PHOTO | filters.Document.IMAGE)
    text = chats & filters.TEXT & ~filters.COMMAND

    conv = ConversationHandler(
        entry_points=[
            CommandHandler("start", cmd_start, filters=chats),
            CommandHandler("new", cmd_start, filters=chats),
            CommandHandler("reset", cmd_reset, filters=chats),
            CallbackQueryHandler(cb_restart, pattern="^restart$"),
        ],
        states={
            CONTEXT: [
                MessageHandler(images, step_context_image),
                MessageHandler(text, step_expect_context),
            ],
            DESIGN: [
                MessageHandler(images, step_design_image),
                MessageHandler(text, step_expect_design),
            ],
            CONFIRM: [CallbackQueryHandler(step_confirm_callback, pattern="^confirm_")],
            ConversationHandler.TIMEOUT: [TypeHandler(Update, on_timeout)],
        },
        fallbacks=[
            CommandHandler("cancel", cmd_cancel, filters=chats),
            CommandHandler("reset", cmd_reset, filters=chats),
        ],
        allow_reentry=True,
        conversation_timeout=CONVERSATION_TIMEOUT,
    )

    app.add_handler(conv)
    app.add_error_handler(error_handler)
    return app
