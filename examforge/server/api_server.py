"""FastAPI server that exposes examiner and participant endpoints."""

from __future__ import annotations

import logging

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from examforge.constants.network_constants import API_PREFIX
from examforge.core.config import Settings
from examforge.core.errors import ExamForgeError, ValidationError
from examforge.core.exam_manager import ExamManager
from examforge.server.auth import ExaminerAuth
from examforge.server.schemas import (
    AccessCodePayload,
    DevTokenPayload,
    ParticipantDetailOut,
    ParticipantOut,
    ParticipantTestOut,
    PoolCreatePayload,
    PoolOut,
    PoolQuestionsPayload,
    PoolUpdatePayload,
    QuestionImportOut,
    QuestionImportPayload,
    QuestionOut,
    QuestionPayload,
    SessionDetailOut,
    SessionLaunchPayload,
    SessionOut,
    SessionReportOut,
    SubmissionOut,
    SubmissionPayload,
    TemplateOut,
    TemplatePayload,
    TokenOut,
)

logger = logging.getLogger(__name__)


def _error_body(error_type: str, message: str) -> dict[str, object]:
    return {"error": {"type": error_type, "message": message}}


def _get_exam_manager_dependency(exam_manager: ExamManager):
    def dependency() -> ExamManager:
        return exam_manager

    return dependency


def _split_tags(tags: str | None) -> list[str] | None:
    if not tags:
        return None
    return [tag.strip() for tag in tags.split(",") if tag.strip()]


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ExamForgeError)
    async def handle_domain_error(request: Request, exc: ExamForgeError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(type(exc).__name__, exc.message),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request.")
        if location:
            message = f"{location}: {message}"
        return JSONResponse(status_code=400, content=_error_body("ValidationError", message))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
        )
        return JSONResponse(
            status_code=500,
            content=_error_body("InternalError", "An unexpected error occurred."),
        )


def create_api_app(exam_manager: ExamManager, settings: Settings) -> FastAPI:
    """Create a FastAPI application wired to the provided exam manager."""
    app = FastAPI(
        title=f"{settings.app_name} API",
        version=settings.app_version,
        description=settings.app_description,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _install_error_handlers(app)

    manager_dep = _get_exam_manager_dependency(exam_manager)
    auth = ExaminerAuth(settings)
    current_examiner = auth.dependency()

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "version": settings.app_version}

    # --- Questions ---

    questions = APIRouter(prefix=f"{API_PREFIX}/questions", tags=["questions"])

    @questions.post("", status_code=201, response_model=QuestionOut)
    def create_question(
        payload: QuestionPayload,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> QuestionOut:
        return QuestionOut.from_domain(manager.create_question(examiner_id, payload.to_input()))

    @questions.get("", response_model=list[QuestionOut])
    def list_questions(
        tags: str | None = Query(default=None, description="Comma separated; all must match"),
        search: str | None = None,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> list[QuestionOut]:
        found = manager.list_questions(examiner_id, tags=_split_tags(tags), search=search)
        return [QuestionOut.from_domain(q) for q in found]

    @questions.post("/import", status_code=201, response_model=QuestionImportOut)
    def import_questions(
        payload: QuestionImportPayload,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> QuestionImportOut:
        imported = manager.import_questions(examiner_id, payload.text)
        return QuestionImportOut(
            imported=len(imported),
            questions=[QuestionOut.from_domain(q) for q in imported],
        )

    @questions.get("/export", response_class=PlainTextResponse)
    def export_questions(
        tags: str | None = None,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> str:
        return manager.export_questions(examiner_id, tags=_split_tags(tags))

    @questions.get("/tags", response_model=list[str])
    def list_tags(
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> list[str]:
        return manager.list_tags(examiner_id)

    @questions.get("/{question_id}", response_model=QuestionOut)
    def get_question(
        question_id: str,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> QuestionOut:
        return QuestionOut.from_domain(manager.get_question(examiner_id, question_id))

    @questions.put("/{question_id}", response_model=QuestionOut)
    def update_question(
        question_id: str,
        payload: QuestionPayload,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> QuestionOut:
        updated = manager.update_question(examiner_id, question_id, payload.to_input())
        return QuestionOut.from_domain(updated)

    @questions.delete("/{question_id}", status_code=204)
    def delete_question(
        question_id: str,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> Response:
        manager.delete_question(examiner_id, question_id)
        return Response(status_code=204)

    # --- Pools ---

    pools = APIRouter(prefix=f"{API_PREFIX}/pools", tags=["pools"])

    @pools.post("", status_code=201, response_model=PoolOut)
    def create_pool(
        payload: PoolCreatePayload,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> PoolOut:
        return PoolOut.from_domain(manager.create_pool(examiner_id, payload.to_input()))

    @pools.get("", response_model=list[PoolOut])
    def list_pools(
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> list[PoolOut]:
        return [PoolOut.from_domain(p) for p in manager.list_pools(examiner_id)]

    @pools.get("/{pool_id}", response_model=PoolOut)
    def get_pool(
        pool_id: str,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> PoolOut:
        return PoolOut.from_domain(manager.get_pool(examiner_id, pool_id))

    @pools.put("/{pool_id}", response_model=PoolOut)
    def update_pool(
        pool_id: str,
        payload: PoolUpdatePayload,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> PoolOut:
        updated = manager.update_pool(examiner_id, pool_id, payload.name, payload.description)
        return PoolOut.from_domain(updated)

    @pools.delete("/{pool_id}", status_code=204)
    def delete_pool(
        pool_id: str,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> Response:
        manager.delete_pool(examiner_id, pool_id)
        return Response(status_code=204)

    @pools.post("/{pool_id}/questions", response_model=PoolOut)
    def add_pool_questions(
        pool_id: str,
        payload: PoolQuestionsPayload,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> PoolOut:
        updated = manager.add_questions_to_pool(examiner_id, pool_id, payload.question_ids)
        return PoolOut.from_domain(updated)

    @pools.delete("/{pool_id}/questions/{question_id}", response_model=PoolOut)
    def remove_pool_question(
        pool_id: str,
        question_id: str,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> PoolOut:
        updated = manager.remove_question_from_pool(examiner_id, pool_id, question_id)
        return PoolOut.from_domain(updated)

    # --- Templates ---

    templates = APIRouter(prefix=f"{API_PREFIX}/templates", tags=["templates"])

    @templates.post("", status_code=201, response_model=TemplateOut)
    def create_template(
        payload: TemplatePayload,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> TemplateOut:
        return TemplateOut.from_domain(manager.create_template(examiner_id, payload.to_input()))

    @templates.get("", response_model=list[TemplateOut])
    def list_templates(
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> list[TemplateOut]:
        return [TemplateOut.from_domain(t) for t in manager.list_templates(examiner_id)]

    @templates.get("/{template_id}", response_model=TemplateOut)
    def get_template(
        template_id: str,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> TemplateOut:
        return TemplateOut.from_domain(manager.get_template(examiner_id, template_id))

    @templates.put("/{template_id}", response_model=TemplateOut)
    def update_template(
        template_id: str,
        payload: TemplatePayload,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> TemplateOut:
        updated = manager.update_template(examiner_id, template_id, payload.to_input())
        return TemplateOut.from_domain(updated)

    @templates.delete("/{template_id}", status_code=204)
    def delete_template(
        template_id: str,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> Response:
        manager.delete_template(examiner_id, template_id)
        return Response(status_code=204)

    # --- Sessions ---

    sessions = APIRouter(prefix=f"{API_PREFIX}/sessions", tags=["sessions"])

    def _session_detail(manager: ExamManager, examiner_id: str, session_id: str) -> SessionDetailOut:
        session = manager.get_session(examiner_id, session_id)
        participants = manager.summarize_participants(
            manager.list_participants(examiner_id, session_id)
        )
        return SessionDetailOut(
            session=SessionOut.model_validate(session),
            participants=[ParticipantOut.model_validate(p) for p in participants],
        )

    @sessions.post("", status_code=201, response_model=SessionDetailOut)
    def launch_session(
        payload: SessionLaunchPayload,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> SessionDetailOut:
        session, _ = manager.launch_session(examiner_id, payload.to_input())
        return _session_detail(manager, examiner_id, session.id)

    @sessions.get("", response_model=list[SessionOut])
    def list_sessions(
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> list[SessionOut]:
        return [SessionOut.model_validate(s) for s in manager.list_sessions(examiner_id)]

    @sessions.get("/{session_id}", response_model=SessionDetailOut)
    def get_session(
        session_id: str,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> SessionDetailOut:
        return _session_detail(manager, examiner_id, session_id)

    @sessions.post("/{session_id}/close", response_model=SessionOut)
    def close_session(
        session_id: str,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> SessionOut:
        return SessionOut.model_validate(manager.close_session(examiner_id, session_id))

    @sessions.post("/{session_id}/cancel", response_model=SessionOut)
    def cancel_session(
        session_id: str,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> SessionOut:
        return SessionOut.model_validate(manager.cancel_session(examiner_id, session_id))

    @sessions.get("/{session_id}/report", response_model=SessionReportOut)
    def get_session_report(
        session_id: str,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> SessionReportOut:
        return SessionReportOut.model_validate(manager.get_session_report(examiner_id, session_id))

    @sessions.get("/{session_id}/participants/{participant_id}", response_model=ParticipantDetailOut)
    def get_participant_detail(
        session_id: str,
        participant_id: str,
        examiner_id: str = Depends(current_examiner),
        manager: ExamManager = Depends(manager_dep),
    ) -> ParticipantDetailOut:
        detail = manager.get_participant_detail(examiner_id, session_id, participant_id)
        return ParticipantDetailOut.from_domain(detail)

    # --- Participants ---

    participant = APIRouter(prefix=f"{API_PREFIX}/participant", tags=["participant"])

    @participant.post("/start", response_model=ParticipantTestOut)
    def start_test(
        payload: AccessCodePayload,
        manager: ExamManager = Depends(manager_dep),
    ) -> ParticipantTestOut:
        return ParticipantTestOut.model_validate(manager.redeem_access_code(payload.access_code))

    @participant.get("/test/{access_code}", response_model=ParticipantTestOut)
    def get_test(
        access_code: str,
        manager: ExamManager = Depends(manager_dep),
    ) -> ParticipantTestOut:
        return ParticipantTestOut.model_validate(manager.get_test_instance(access_code))

    @participant.post("/submit", response_model=SubmissionOut)
    def submit_test(
        payload: SubmissionPayload,
        manager: ExamManager = Depends(manager_dep),
    ) -> SubmissionOut:
        instance = manager.submit_answers(payload.access_code, payload.to_answers())
        return SubmissionOut.model_validate(instance)

    # --- Development login ---

    if settings.enable_dev_login:

        @app.post(f"{API_PREFIX}/auth/dev-token", response_model=TokenOut, tags=["auth"])
        def issue_dev_token(payload: DevTokenPayload) -> TokenOut:
            examiner_id = payload.examiner_id.strip()
            if not examiner_id:
                raise ValidationError("Examiner id is required.")
            logger.warning("Issued development token for examiner %s", examiner_id)
            return TokenOut(access_token=auth.create_access_token(examiner_id))

    for router in (questions, pools, templates, sessions, participant):
        app.include_router(router)

    return app


def start_api_server(
    exam_manager: ExamManager,
    settings: Settings,
) -> None:
    """Run the FastAPI server in the foreground until interrupted."""
    app = create_api_app(exam_manager, settings)
    config = uvicorn.Config(
        app=app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    server.run()
