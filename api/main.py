import asyncio
from fastapi import FastAPI, Depends, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError, OperationalError, InterfaceError
from contextlib import asynccontextmanager
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Union
from db.session import get_db, engine
from services.exam_service import ExamService
from services.progress_service import ProgressService
from services.submission_service import SubmissionService
from services.scoring import SubmittedAnswer
from core.config import settings
from core.exceptions import ExamPlatformError
from core.logger import logger

# API Documentation
API_DESCRIPTION = """
## Staged Exam API

Students take exams made of ordered stages. A stage is unlocked only after
the previous one is passed with at least its passing score.

### Submitting a stage

`POST /api/exams/submit-stage` stores the answers, closes the attempt, scores
it and, on a pass, unlocks the next stage. The whole submission is one
transaction: on any error nothing is stored and the request can be retried.

### Errors

Errors are returned as `{"error": "<message>"}`.
4xx means the request must be fixed, 503 means it is safe to retry.
"""

TAGS_METADATA = [
    {
        "name": "exams",
        "description": "Published exams, stages and questions.",
    },
    {
        "name": "progress",
        "description": "Stage submission, unlocked stages and attempt history.",
    },
    {
        "name": "review",
        "description": "Answers given in completed attempts.",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await engine.dispose()


app = FastAPI(
    title="Staged Exam API",
    description=API_DESCRIPTION,
    version="1.0.0",
    openapi_tags=TAGS_METADATA,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Error handling ===

@app.exception_handler(ExamPlatformError)
async def handle_platform_error(request: Request, exc: ExamPlatformError):
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error_type=type(exc).__name__, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Missing or malformed fields", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(OperationalError)
@app.exception_handler(InterfaceError)
async def handle_store_unavailable(request: Request, exc: SQLAlchemyError):
    logger.error("Database unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"error": "Database unavailable, please retry"})


@app.exception_handler(SQLAlchemyError)
async def handle_database_error(request: Request, exc: SQLAlchemyError):
    logger.error("Database error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"error": "Server error"})


# asyncpg raises a bare timeout when command_timeout expires
@app.exception_handler(asyncio.TimeoutError)
@app.exception_handler(TimeoutError)
async def handle_timeout(request: Request, exc: Exception):
    logger.error("Database timeout", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"error": "Database timed out, please retry"})


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error", path=request.url.path, error_type=type(exc).__name__)
    return JSONResponse(status_code=500, content={"error": "Server error"})

# === Pydantic Models with Documentation ===

class AnswerIn(BaseModel):
    """One answer within a stage submission."""
    model_config = ConfigDict(populate_by_name=True)

    question_id: int = Field(..., alias="questionId", description="Question being answered")
    selected_answer: Optional[Union[str, int]] = Field(None, alias="selectedAnswer", description="Chosen option")
    is_correct: bool = Field(False, alias="isCorrect", description="Correctness as judged by the client")


class SubmitStageRequest(BaseModel):
    """Request body for submitting a stage."""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "studentId": 7,
                "examId": 1,
                "stageId": 3,
                "answers": [
                    {"questionId": 11, "selectedAnswer": "B", "isCorrect": True},
                    {"questionId": 12, "selectedAnswer": "D", "isCorrect": False},
                ],
            }
        },
    )

    student_id: int = Field(..., alias="studentId")
    exam_id: int = Field(..., alias="examId")
    stage_id: int = Field(..., alias="stageId")
    answers: List[AnswerIn] = Field(default_factory=list)


class SubmitStageResponse(BaseModel):
    """Result of a stage submission."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(True, description="Always true; failures are reported as errors")
    session_id: int = Field(..., alias="sessionId")
    score_percentage: float = Field(..., alias="scorePercentage")
    passed: bool
    unlocked_stage: int = Field(..., alias="unlockedStage")


class StageProgress(BaseModel):
    current_stage_order: int = Field(..., description="Highest stage the student may enter")

# === Routes ===

@app.get("/health", include_in_schema=False)
async def health():
    return {"status": "ok"}


@app.get("/api/exams", tags=["exams"], summary="List published exams")
async def list_exams(db: AsyncSession = Depends(get_db)):
    """Published exams with instructor name, stage count and total time in minutes."""
    return await ExamService(db).list_published_exams()


@app.get(
    "/api/exams/details/{exam_id}",
    tags=["exams"],
    summary="Get exam with its stages",
    responses={404: {"description": "Exam not found"}},
)
async def get_exam_details(exam_id: int, db: AsyncSession = Depends(get_db)):
    return await ExamService(db).get_exam_details(exam_id)


@app.get(
    "/api/exams/stages/{stage_id}",
    tags=["exams"],
    summary="Get stage with questions and options",
    responses={404: {"description": "Stage not found"}},
)
async def get_stage(stage_id: int, db: AsyncSession = Depends(get_db)):
    return await ExamService(db).get_stage(stage_id)


@app.get("/api/exams/progress/{student_id}", tags=["progress"], summary="List all attempts of a student")
async def get_student_progress(student_id: int, db: AsyncSession = Depends(get_db)):
    """Sessions of the student with exam title and publication flag, newest first."""
    return await ExamService(db).list_student_sessions(student_id)


@app.post(
    "/api/exams/submit-stage",
    response_model=SubmitStageResponse,
    response_model_by_alias=True,
    tags=["progress"],
    summary="Submit answers for a stage",
    responses={
        400: {"description": "Malformed body or unknown stage"},
        503: {"description": "Database unavailable; safe to retry"},
    },
)
async def submit_stage(payload: SubmitStageRequest, db: AsyncSession = Depends(get_db)):
    answers = [
        SubmittedAnswer(
            question_id=a.question_id,
            selected_answer=None if a.selected_answer is None else str(a.selected_answer),
            is_correct=a.is_correct,
        )
        for a in payload.answers
    ]
    result = await SubmissionService(db).submit_stage(payload.student_id, payload.exam_id, payload.stage_id, answers)
    return SubmitStageResponse(
        session_id=result.session_id,
        score_percentage=result.score.score_percentage,
        passed=result.score.passed,
        unlocked_stage=result.unlocked_stage,
    )


@app.get(
    "/api/exams/review",
    tags=["review"],
    summary="Review latest completed attempt at a stage",
    responses={404: {"description": "No completed session found"}},
)
async def review(
    student_id: int = Query(..., alias="studentId"),
    exam_id: int = Query(..., alias="examId"),
    stage_id: int = Query(..., alias="stageId"),
    db: AsyncSession = Depends(get_db),
):
    return await ExamService(db).get_review(student_id, exam_id, stage_id)


@app.get(
    "/api/exams/reviewdetails",
    tags=["review"],
    summary="Review latest completed attempt with question options",
    responses={404: {"description": "No completed session found"}},
)
async def review_details(
    student_id: int = Query(..., alias="studentId"),
    exam_id: int = Query(..., alias="examId"),
    stage_id: int = Query(..., alias="stageId"),
    db: AsyncSession = Depends(get_db),
):
    return await ExamService(db).get_review(student_id, exam_id, stage_id, with_options=True)


@app.get("/api/exams/{exam_id}/progress/{student_id}", tags=["progress"], summary="List attempts at one exam")
async def get_exam_progress(exam_id: int, student_id: int, db: AsyncSession = Depends(get_db)):
    return await ExamService(db).list_exam_sessions(exam_id, student_id)


@app.get(
    "/api/exams/{exam_id}/stage-progress/{student_id}",
    response_model=StageProgress,
    tags=["progress"],
    summary="Get highest unlocked stage",
    description="Returns 1 when the student has not passed any stage of the exam yet.",
)
async def get_stage_progress(exam_id: int, student_id: int, db: AsyncSession = Depends(get_db)):
    current = await ProgressService(db).get_unlocked_stage(student_id, exam_id)
    return StageProgress(current_stage_order=current)


@app.get("/", include_in_schema=False)
def read_root():
    return {"message": "API is running"}
