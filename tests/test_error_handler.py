"""
Domain errors raised by Telegram handlers reach the user as chat messages.
"""
from __future__ import annotations

import asyncio
import logging
from types import SimpleNamespace

from aiogram.exceptions import TelegramBadRequest

from tadone.domain.common.errors import ExternalServiceError, PreconditionError
from tadone.ui.telegram.main import handle_domain_error


class _Chat:
    def __init__(self):
        self.sent = []

    async def answer(self, text, **kwargs):
        self.sent.append(text)


class _AnsweredQuery:
    """A callback query the handler already answered once."""

    id = "q-1"

    def __init__(self, message):
        self.message = message
        self.answers = 0

    async def answer(self, *args, **kwargs):
        self.answers += 1
        raise TelegramBadRequest(method=None, message="query is too old and response timeout expired or query ID is invalid")


def _event(exc, query=None, message=None):
    return SimpleNamespace(exception=exc, update=SimpleNamespace(callback_query=query, message=message))


def test_error_after_answered_callback_still_reaches_chat():
    async def run():
        chat = _Chat()
        query = _AnsweredQuery(chat)

        await handle_domain_error(_event(ExternalServiceError("Transcription is not configured."), query=query))

        assert query.answers == 1
        assert chat.sent == ["Transcription is not configured."]

    asyncio.run(run())


def test_error_text_is_html_escaped():
    async def run():
        chat = _Chat()
        await handle_domain_error(_event(PreconditionError("Task <b> & co is archived."), message=chat))

        assert chat.sent == ["Task &lt;b&gt; &amp; co is archived."]

    asyncio.run(run())


def test_external_error_logs_cause(caplog):
    async def run():
        chat = _Chat()
        cause = OSError("disk full")
        with caplog.at_level(logging.WARNING, logger="tadone.ui.telegram.main"):
            await handle_domain_error(_event(ExternalServiceError("Could not store audio.", cause=cause), message=chat))

        assert "disk full" in caplog.text
        assert chat.sent == ["Could not store audio."]

    asyncio.run(run())
