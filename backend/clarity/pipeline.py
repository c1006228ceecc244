from __future__ import annotations

import logging

from starlette.concurrency import run_in_threadpool

from clarity import schemas
from clarity.ai.generator import generate
from clarity.ai.normalizer import record_answer_text, ui_from_generated, ui_from_record
from clarity.ai.providers.base import ChatProvider
from clarity.config.settings import ClaritySettings
from clarity.store.ingredients import IngredientStore


_logger = logging.getLogger(__name__)


async def answer_query(
    query: schemas.ClarityIn,
    *,
    store: IngredientStore,
    provider: ChatProvider,
    settings: ClaritySettings,
) -> schemas.ClarityOut:
    message = query.message.strip()
    found = await run_in_threadpool(store.search, message, page=query.page)

    record = found.best
    if record is not None:
        return schemas.DbResult(
            record=record,
            answer=record_answer_text(record),
            ui=ui_from_record(record, message, prefix=settings.article_prefix),
            pagination=found.pagination(),
        )

    _logger.info("no structured match, using generative fallback provider=%s", provider.name)
    outcome = await generate(
        provider,
        query,
        history_turns=settings.history_turns,
        history_chars=settings.history_chars,
    )
    return schemas.GptResult(
        answer=outcome.result,
        ui=ui_from_generated(outcome.result, message, degraded=outcome.degraded, prefix=settings.article_prefix),
        degraded=outcome.degraded,
    )
