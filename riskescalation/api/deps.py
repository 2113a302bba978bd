"""
FastAPI dependencies.

The pipeline is built once per application and stored on ``app.state``;
request handlers reach the database through the pipeline's session
factory so tests and production share one wiring path.
"""

from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from riskescalation.db.engine import session_scope
from riskescalation.pipeline import EscalationPipeline


def get_pipeline(request: Request) -> EscalationPipeline:
    return request.app.state.pipeline


async def get_db(
    pipeline: EscalationPipeline = Depends(get_pipeline),
) -> AsyncGenerator[AsyncSession, None]:
    async with session_scope(pipeline.session_factory) as session:
        yield session


__all__ = ["get_db", "get_pipeline"]
