# app.py
import logging
import json
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from asyncio import Lock

from config import DATABASE_URL, DEBUG
from prisma import Prisma

from core.intent import ChatTurn
from executors.conversation import ConversationExecutor
from executors.expense import ExpenseExecutor, PrismaExpenseActions, expense_from_row
from models.category import Category
from services.background import BackgroundWriter
from services.category_resolver import CategoryResolver
from services.dispatcher import ConversationContext, ConversationDispatcher
from services.resolution_store import PrismaResolutionStore
from services.spending_insights import PrismaSpendingInsights
from services.utils import json_payload

MAX_SESSIONS = 1000

# -----------------------------
# Structured Logging Setup
# -----------------------------
class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(
            {
                "time": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "name": record.name,
                "message": record.getMessage(),
                "exception": record.exc_text,
            }
        )


logger = logging.getLogger("expense_chatbot_api")
logger.setLevel(logging.INFO)
handler = logging.StreamHandler()
handler.setFormatter(JSONFormatter())
if not logger.handlers:
    logger.addHandler(handler)

# -----------------------------
# FastAPI App
# -----------------------------
app = FastAPI(title="Expense Chatbot API", version="3.0")

# -----------------------------
# Prisma + Collaborators (Lifecycle managed)
# -----------------------------
db = Prisma()
writer = BackgroundWriter()

resolver: CategoryResolver | None = None
actions: PrismaExpenseActions | None = None
insights: PrismaSpendingInsights | None = None
conversation_executor = ConversationExecutor()

# (user_id, session_id) -> dispatcher (one pending-confirmation slot per conversation)
sessions: "OrderedDict[Tuple[str, str], ConversationDispatcher]" = OrderedDict()

DB_CONNECTED: bool = False
DB_ERROR: str | None = None

# -----------------------------
# Metrics
# -----------------------------
metrics_lock = Lock()
request_counters = {
    "insert": 0,
    "defer": 0,
    "confirm": 0,
    "decline": 0,
    "update": 0,
    "search": 0,
    "export": 0,
    "budget_set": 0,
    "budget_remove": 0,
    "failed": 0,
    "conversation": 0,
    "corrections": 0,
    "total": 0,
    "errors": 0,
}

# -----------------------------
# Pydantic Models
# -----------------------------
class UserRequest(BaseModel):
    text: str
    user_id: str
    session_id: Optional[str] = None


class CategoryChangeRequest(BaseModel):
    user_id: str
    category_id: str


# -----------------------------
# Failure envelope
# -----------------------------
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"type": f"http_{exc.status_code}", "message": str(exc.detail)}},
    )


# -----------------------------
# Startup / Shutdown Events
# -----------------------------
@app.on_event("startup")
async def startup():
    global DB_CONNECTED, DB_ERROR
    global resolver, actions, insights

    if not DATABASE_URL:
        logger.warning("DATABASE_URL not set; DB functionality disabled.")
        DB_CONNECTED = False
        DB_ERROR = "DATABASE_URL not set"
        return

    try:
        await db.connect()
        DB_CONNECTED = True
        DB_ERROR = None
        logger.info("✅ Prisma DB connected")

        # Collaborators are created ONLY after DB is ready
        resolver = CategoryResolver(PrismaResolutionStore(db), writer=writer)
        actions = PrismaExpenseActions(db)
        insights = PrismaSpendingInsights(db)

    except Exception as e:
        DB_CONNECTED = False
        DB_ERROR = str(e)
        logger.exception("❌ Failed to connect Prisma DB")
        if DEBUG:
            raise


@app.on_event("shutdown")
async def shutdown():
    global DB_CONNECTED
    await writer.drain()
    if DB_CONNECTED:
        await db.disconnect()
        DB_CONNECTED = False
        logger.info("✅ Prisma DB disconnected")


# -----------------------------
# Helpers
# -----------------------------
async def load_categories(user_id: str) -> List[Category]:
    rows = await db.category.find_many(where={"user_id": user_id}, order={"name": "asc"})
    return [Category.model_validate(r, from_attributes=True) for r in rows]


async def load_context(user_id: str) -> ConversationContext:
    return ConversationContext(
        user_id=user_id,
        categories=await load_categories(user_id),
        expenses=await actions.reload_expenses(user_id),
    )


def get_dispatcher(user_id: str, session_id: str) -> ConversationDispatcher:
    key = (user_id, session_id)
    dispatcher = sessions.get(key)
    if dispatcher is None:
        dispatcher = ConversationDispatcher(resolver, actions, insights=insights)
        sessions[key] = dispatcher
        if len(sessions) > MAX_SESSIONS:
            sessions.popitem(last=False)
    else:
        sessions.move_to_end(key)
    return dispatcher


async def _count(key: str) -> None:
    async with metrics_lock:
        request_counters[key] = request_counters.get(key, 0) + 1


# -----------------------------
# API Endpoints
# -----------------------------
@app.get("/")
async def root():
    return {"message": "Expense Chatbot API is running."}


@app.get("/health")
async def health() -> Dict[str, Any]:
    info = {
        "status": "ok",
        "db_connected": DB_CONNECTED,
        "sessions": len(sessions),
        "pending_writes": writer.pending,
    }
    if DB_ERROR:
        info["db_error"] = DB_ERROR
    return info


@app.get("/metrics")
async def metrics() -> Dict[str, Any]:
    async with metrics_lock:
        return request_counters.copy()


@app.post("/process")
async def process_request(request: UserRequest):
    await _count("total")

    try:
        if not DB_CONNECTED:
            raise HTTPException(status_code=503, detail="Expense store unavailable")

        session_id = request.session_id or request.user_id
        logger.info(
            f"[REQUEST_START] user_id={request.user_id}, session_id={session_id}, "
            f"text_length={len(request.text)}"
        )

        turn = ChatTurn(user_id=request.user_id, raw_input=request.text, session_id=session_id)
        context = await load_context(request.user_id)

        # -----------------
        # Dispatcher first, conversation for everything else
        # -----------------
        executor = ExpenseExecutor(get_dispatcher(request.user_id, session_id), context)
        response = await executor.execute(turn)

        if not response["handled"]:
            response = await conversation_executor.execute(turn)
            await _count("conversation")
        else:
            await _count(response["action"])

        logger.info(
            f"[REQUEST_END] user_id={request.user_id}, type={response['type']}, action={response['action']}"
        )
        return response

    except HTTPException:
        await _count("errors")
        raise
    except Exception as e:
        await _count("errors")

        logger.exception(
            f"[ERROR] user_id={request.user_id}, exception={e}"
        )

        raise HTTPException(
            status_code=500,
            detail=str(e) if DEBUG else "An unexpected error occurred",
        )


@app.patch("/expenses/{expense_id}/category")
async def change_expense_category(expense_id: str, request: CategoryChangeRequest):
    """
    Manual recategorization. Runs the learning loop when the category
    actually changes.
    """
    if not DB_CONNECTED:
        raise HTTPException(status_code=503, detail="Expense store unavailable")

    try:
        row = await db.expense.find_unique(where={"id": expense_id}, include={"category": True})
        if row is None or row.user_id != request.user_id:
            raise HTTPException(status_code=404, detail=f"Expense {expense_id} not found")

        category = await db.category.find_unique(where={"id": request.category_id})
        if category is None or category.user_id != request.user_id:
            raise HTTPException(status_code=404, detail=f"Category {request.category_id} not found")

        expense = expense_from_row(row)
        if expense.category_id == category.id:
            return {"type": "expense", "data": json_payload(expense), "message": "Category unchanged"}

        updated = await db.expense.update(
            where={"id": expense_id},
            data={"category_id": category.id},
            include={"category": True},
        )
        override_saved = await resolver.record_correction(
            request.user_id, expense.merchant, category.name, expense.id
        )
        await _count("corrections")
        logger.info(
            f"[CORRECTION] user_id={request.user_id}, merchant={expense.merchant}, "
            f"{expense.category_name} -> {category.name}"
        )

        return {
            "type": "expense",
            "data": json_payload({"expense": expense_from_row(updated), "override_saved": override_saved}),
            "message": f"Moved {expense.merchant} to {category.name}. I'll remember that.",
        }

    except HTTPException:
        raise
    except Exception as e:
        await _count("errors")
        logger.exception(f"[ERROR] correction expense_id={expense_id}, exception={e}")
        raise HTTPException(
            status_code=500,
            detail=str(e) if DEBUG else "An unexpected error occurred",
        )


# -----------------------------
# Entrypoint
# -----------------------------
import os
import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("API_LAYER.app:app", host="0.0.0.0", port=port, workers=1)
