from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from config import Settings, get_settings
from models import ChatRequest, ChatResponse, ExplainRequest, ExplainResponse, TopicSummary
from question_bank import QuestionBankError, load_question_bank
from ai_gateway import AIGateway, CompletionClient
from logger import (
    setup_logging, get_logger,
    summarize_token_usage, set_request_id,
)

# Initialise structured, file-based logging
setup_logging(console_level=logging.INFO)
logger = get_logger("trivia")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the completion client's connection pool for the app's lifetime."""
    settings = get_settings()
    completion = CompletionClient(settings)
    app.state.gateway = AIGateway(completion, settings.gateway_messages)
    if settings.ai_configured:
        logger.info(f"🤖 Completion service: {settings.completion_url} (model={settings.completion_model})")
    else:
        logger.warning("⚠️  GROQ_API_KEY not set - AI replies will fall back to local text")

    try:
        yield
    finally:
        app.state.gateway = None
        await completion.aclose()


app = FastAPI(title="Rubber-Duck Trivia API", lifespan=lifespan)

# CORS - allow all origins for simplicity (adjust for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when using allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag every log line of a request with one correlation ID."""
    rid = set_request_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    return response


def get_gateway(request: Request) -> AIGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise RuntimeError("AI gateway not initialised; app lifespan has not run")
    return gateway


# --- Question bank ---

@app.get("/questions")
async def get_questions(settings: Settings = Depends(get_settings)):
    """Return the full topic -> questions mapping"""
    try:
        bank = load_question_bank(settings.questions_file)
    except QuestionBankError as e:
        logger.error(f"❌ /questions failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to load questions")

    return {topic: [q.model_dump() for q in questions] for topic, questions in bank.items()}


@app.get("/api/topics")
async def get_topics(settings: Settings = Depends(get_settings)):
    """List topic names with their question counts"""
    try:
        bank = load_question_bank(settings.questions_file)
    except QuestionBankError as e:
        logger.error(f"❌ /api/topics failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to load questions")

    topics = [TopicSummary(name=name, count=len(qs)) for name, qs in bank.items()]
    return {"topics": [t.model_dump() for t in topics]}


# --- AI Gateway ---

@app.post("/ai-chat", response_model=ChatResponse)
async def ai_chat(request: ChatRequest, gateway: AIGateway = Depends(get_gateway)):
    """Hint / duck-mode chat (no spoilers, correct index never sent to the model)"""
    return await gateway.chat(request)


@app.post("/ai-explain", response_model=ExplainResponse)
async def ai_explain(request: ExplainRequest, gateway: AIGateway = Depends(get_gateway)):
    """Explain the answer after the user has answered"""
    return await gateway.explain(request)


@app.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    """Health check endpoint"""
    return {"status": "ok", "ai_configured": settings.ai_configured}


# --- Token Usage / Logging Endpoint ---

@app.get("/api/token-usage")
async def get_token_usage(hours: float = 24):
    """Return aggregated completion token-usage stats from the JSONL log."""
    return summarize_token_usage(since_hours=hours)


if __name__ == "__main__":
    import uvicorn
    port = get_settings().port
    print(f"\n🦆 Rubber-Duck Trivia Server")
    print(f"   URL: http://localhost:{port}\n")
    uvicorn.run(app, host="0.0.0.0", port=port)
