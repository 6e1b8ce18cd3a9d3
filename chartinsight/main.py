"""FastAPI application for ChartInsight - chart image analysis backend."""

import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from chartinsight import __version__
from chartinsight.agent.orchestrator import ChartAnalysisOrchestrator, get_orchestrator
from chartinsight.agent.providers.factory import close_providers, get_available_providers
from chartinsight.agent.schemas.streaming import StreamEvent
from chartinsight.config import get_settings
from chartinsight.middleware.rate_limit import limiter, rate_limit_ai, rate_limit_standard
from chartinsight.models.analysis import AnalysisResult
from chartinsight.models.request import (
    AnalyzeChartRequest,
    FeedbackRequest,
    PipelineKind,
    QuestionRequest,
)
from chartinsight.storage.analysis_store import AnalysisStore, get_analysis_store
from chartinsight.storage.database import init_database

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting ChartInsight backend...")
    logger.info(f"Environment: {settings.app_env}")

    available = [p.value for p in get_available_providers()]
    if available:
        logger.info(f"Model providers configured: {', '.join(available)}")
    else:
        logger.warning("No model provider API key configured - analyses will degrade")

    await init_database()
    logger.info("Database initialized")

    yield

    await close_providers()
    logger.info("Shutting down ChartInsight backend...")


app = FastAPI(
    title="ChartInsight API",
    description="Multi-stage AI analysis of trading chart images",
    version=__version__,
    lifespan=lifespan,
)

# Development: allow all origins
if settings.is_production and settings.cors_origin_list:
    cors_origins = settings.cors_origin_list
else:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


async def persist_result(
    store: AnalysisStore,
    body: AnalyzeChartRequest,
    result: AnalysisResult,
) -> Optional[str]:
    """Store a finished analysis; storage failures never reach the caller.

    Returns:
        The record id, or None when no user id was given or storing failed
    """
    if not body.user_id:
        return None
    try:
        return await store.store(
            user_id=body.user_id,
            image_ref=body.primary_image,
            result=result,
            trading_style=body.trading_style_label,
        )
    except Exception as e:
        logger.error(f"Failed to store analysis for user {body.user_id}: {e}", exc_info=True)
        return None


async def run_analysis(
    body: AnalyzeChartRequest,
    kind: Optional[PipelineKind],
    orchestrator: ChartAnalysisOrchestrator,
    store: AnalysisStore,
) -> dict:
    """Run one pipeline and wrap the result with its record id."""
    result = await orchestrator.analyze(body.to_analysis_request(), kind)
    logger.info(
        f"Analysis complete ({result.pipeline}): trend={result.trend}, "
        f"degraded={result.degraded}"
    )
    record_id = await persist_result(store, body, result)
    return {"record_id": record_id, "result": result.model_dump(mode="json")}


@app.get("/")
async def root():
    """Root endpoint - service info."""
    return {
        "service": "ChartInsight API",
        "version": __version__,
        "status": "operational",
        "pipelines": [kind.value for kind in PipelineKind],
        "endpoints": {
            "analyze": "/analyze",
            "analyze_single": "/analyze/single",
            "analyze_collaborative": "/analyze/collaborative",
            "analyze_multi_timeframe": "/analyze/multi-timeframe",
            "analyze_stream": "/analyze/stream",
            "questions": "/questions",
            "analyses": "/analyses",
            "analysis": "/analyses/{record_id}",
            "feedback": "/analyses/{record_id}/feedback",
            "health": "/health",
            "docs": "/docs",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "providers": [p.value for p in get_available_providers()],
    }


@app.post(
    "/analyze",
    summary="Analyze a chart image",
    description="""
    Analyze a chart image with the selected pipeline (chained by default).

    Pipeline failures never produce a 5xx: a failed analysis comes back as a
    degraded result carrying the failure reason.
    """,
)
@rate_limit_ai
async def analyze_chart(
    request: Request,
    body: AnalyzeChartRequest,
    orchestrator: ChartAnalysisOrchestrator = Depends(get_orchestrator),
    store: AnalysisStore = Depends(get_analysis_store),
):
    logger.info(f"Received analysis request (pipeline={body.pipeline.value if body.pipeline else 'default'})")
    return await run_analysis(body, body.pipeline, orchestrator, store)


@app.post("/analyze/single", summary="Single-prompt analysis")
@rate_limit_ai
async def analyze_single(
    request: Request,
    body: AnalyzeChartRequest,
    orchestrator: ChartAnalysisOrchestrator = Depends(get_orchestrator),
    store: AnalysisStore = Depends(get_analysis_store),
):
    return await run_analysis(body, PipelineKind.SINGLE_PROMPT, orchestrator, store)


@app.post(
    "/analyze/collaborative",
    summary="Debate analysis",
    description="Bullish and bearish personas, market structure and risk stages, then arbitration.",
)
@rate_limit_ai
async def analyze_collaborative(
    request: Request,
    body: AnalyzeChartRequest,
    orchestrator: ChartAnalysisOrchestrator = Depends(get_orchestrator),
    store: AnalysisStore = Depends(get_analysis_store),
):
    return await run_analysis(body, PipelineKind.DEBATE, orchestrator, store)


@app.post(
    "/analyze/multi-timeframe",
    summary="Multi-timeframe analysis",
    description="1-3 chart images ordered highest timeframe first; the highest timeframe sets the bias.",
)
@rate_limit_ai
async def analyze_multi_timeframe(
    request: Request,
    body: AnalyzeChartRequest,
    orchestrator: ChartAnalysisOrchestrator = Depends(get_orchestrator),
    store: AnalysisStore = Depends(get_analysis_store),
):
    return await run_analysis(body, PipelineKind.MULTI_TIMEFRAME, orchestrator, store)


@app.post(
    "/analyze/stream",
    summary="Analyze with streaming progress",
    description="""
    Server-Sent Events: pipeline_started, one stage_progress event per stage
    transition, then final_result with the AnalysisResult and record id.
    """,
)
@rate_limit_ai
async def analyze_stream(
    request: Request,
    body: AnalyzeChartRequest,
    orchestrator: ChartAnalysisOrchestrator = Depends(get_orchestrator),
    store: AnalysisStore = Depends(get_analysis_store),
):
    on_result = partial(persist_result, store, body)

    async def generate_stream():
        try:
            async for event in orchestrator.analyze_stream(
                body.to_analysis_request(), body.pipeline, on_result=on_result
            ):
                yield event.to_sse()
        except Exception as e:
            logger.error(f"Streaming analysis error: {e}", exc_info=True)
            yield StreamEvent.error(str(e)).to_sse()

    return StreamingResponse(
        generate_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@app.post("/questions", summary="Ask a follow-up question about a chart")
@rate_limit_ai
async def ask_question(
    request: Request,
    body: QuestionRequest,
    orchestrator: ChartAnalysisOrchestrator = Depends(get_orchestrator),
    store: AnalysisStore = Depends(get_analysis_store),
):
    answer = await orchestrator.answer_question(body)

    appended = False
    if body.record_id and not answer.degraded:
        try:
            appended = await store.append_qa(body.record_id, body.question, answer.answer)
        except Exception as e:
            logger.error(f"Failed to append Q&A to analysis {body.record_id}: {e}", exc_info=True)
        if not appended:
            logger.warning(f"Q&A not stored for analysis {body.record_id}")

    return {
        "record_id": body.record_id,
        "appended": appended,
        "answer": answer.model_dump(mode="json"),
    }


@app.get("/analyses", summary="List a user's stored analyses")
@rate_limit_standard
async def list_analyses(
    request: Request,
    user_id: str = Query(..., min_length=1, max_length=128),
    limit: int = Query(50, ge=1, le=200),
    store: AnalysisStore = Depends(get_analysis_store),
):
    try:
        records = await store.list_for_user(user_id, limit=limit)
    except Exception as e:
        logger.error(f"Error listing analyses for {user_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load analysis history",
        )
    return {"user_id": user_id, "count": len(records), "analyses": [r.summary() for r in records]}


@app.get("/analyses/{record_id}", summary="Get a stored analysis")
@rate_limit_standard
async def get_analysis(
    request: Request,
    record_id: str,
    store: AnalysisStore = Depends(get_analysis_store),
):
    try:
        record = await store.get(record_id)
    except Exception as e:
        logger.error(f"Error loading analysis {record_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load analysis",
        )
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Analysis {record_id} not found",
        )
    return record.to_dict()


@app.post("/analyses/{record_id}/feedback", summary="Rate a stored analysis")
@rate_limit_standard
async def submit_feedback(
    request: Request,
    record_id: str,
    body: FeedbackRequest,
    store: AnalysisStore = Depends(get_analysis_store),
):
    try:
        updated = await store.set_feedback(record_id, body.feedback)
    except Exception as e:
        logger.error(f"Error recording feedback for {record_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to record feedback",
        )
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Analysis {record_id} not found",
        )
    return {"record_id": record_id, "feedback": body.feedback}
