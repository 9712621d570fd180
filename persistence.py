from typing import Callable, Optional

import logfire
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import store
from relay import CompletionRelay
from schemas import ReviewInput


def should_persist(owner_id: Optional[str], review_input: ReviewInput) -> bool:
    return bool(owner_id) and not review_input.is_demo


def persist_response(
    session_factory: Callable[[], Session],
    owner_id: Optional[str],
    review_input: ReviewInput,
    response_text: str,
) -> bool:
    """Save one reply. Failures are logged and reported as False, never raised."""
    if not should_persist(owner_id, review_input):
        return False

    db = session_factory()
    try:
        record = store.insert_response(db, owner_id, review_input, response_text)
        response_id = record.id
    except SQLAlchemyError as e:
        db.rollback()
        logfire.exception("failed to save response for {user_id}: {error}", user_id=owner_id, error=str(e))
        return False
    finally:
        db.close()

    logfire.info("saved response {response_id} for {user_id}", response_id=response_id, user_id=owner_id)
    return True


async def persist_after_stream(
    relay: CompletionRelay,
    session_factory: Callable[[], Session],
    owner_id: Optional[str],
    review_input: ReviewInput,
) -> bool:
    # A stream the caller abandoned or the provider broke off leaves no durable text.
    if not relay.completed:
        await relay.close()
        if should_persist(owner_id, review_input):
            logfire.warn("stream did not complete, skipping save for {user_id}", user_id=owner_id)
        return False
    return await run_in_threadpool(persist_response, session_factory, owner_id, review_input, relay.text)
