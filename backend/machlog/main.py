from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select

from machlog.config import Settings, settings as default_settings
from machlog.core.database import BackendClient
from machlog.core.logging_config import setup_logging, get_logger
from machlog.data.checklist_questions import DEFAULT_QUESTIONS
from machlog.models import ChecklistQuestion, Profile, ProfileRole
from machlog.api.auth import router as auth_router
from machlog.api.checkins import router as checkins_router
from machlog.api.machines import router as machines_router
from machlog.api.scan import router as scan_router
from machlog.api.users import router as users_router
from machlog.services.auth_service import hash_password
from machlog.services.checklist_wizard import WizardStore

logger = get_logger(__name__)


async def ensure_superuser(backend: BackendClient, settings: Settings):
    """Создать администратора из настроек, если профиля с таким e-mail ещё нет."""
    email = settings.superuser_email.strip().lower()
    async with backend.session() as session:
        r = await session.execute(select(Profile).where(func.lower(Profile.email) == email))
        if r.scalar_one_or_none() is not None:
            return
        profile = Profile(
            email=email,
            full_name=settings.superuser_name,
            role=ProfileRole.ADMIN,
            password_hash=hash_password(settings.superuser_password),
            is_active=True,
        )
        session.add(profile)
        await session.commit()
        logger.info("Создан администратор: %s", email)


async def seed_checklist_questions(backend: BackendClient):
    """Заполнить вопросы осмотра из дефолтного списка, если таблица пуста."""
    async with backend.session() as session:
        r = await session.execute(select(ChecklistQuestion).limit(1))
        if r.scalar_one_or_none() is not None:
            return
        for item in DEFAULT_QUESTIONS:
            session.add(ChecklistQuestion(question=item["question"], category=item["category"]))
        await session.commit()
        logger.info("Вопросы осмотра заполнены из дефолтного списка (%s шт.)", len(DEFAULT_QUESTIONS))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.uses_placeholders:
            logger.warning("DATABASE_URL или JWT_SECRET не заданы, используются значения-заглушки")
        backend = BackendClient(settings.database_url)
        app.state.backend = backend
        app.state.wizards = WizardStore(max_age=settings.wizard_ttl_minutes * 60)
        try:
            await backend.create_schema()
            logger.info("Таблицы БД проверены/созданы")
        except Exception as e:
            logger.warning("БД недоступна, сервис работает без хранилища: %s", e)
        else:
            try:
                await ensure_superuser(backend, settings)
            except Exception as e:
                logger.warning("Администратор: %s", e)
            if settings.seed_checklist_questions:
                try:
                    await seed_checklist_questions(backend)
                except Exception as e:
                    logger.warning("Вопросы осмотра: %s", e)
        yield
        await backend.dispose()

    app = FastAPI(title="Machlog", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Необработанная ошибка: %s", exc)
        detail = "Внутренняя ошибка сервера"
        err_str = str(exc).lower()
        if "duplicate key" in err_str or "unique constraint" in err_str:
            detail = "Конфликт данных (дубликат). Обновите страницу и повторите."
        elif "foreign key" in err_str:
            detail = "Ошибка связи с данными (запись не найдена). Обновите страницу и повторите."
        elif "column" in err_str and "does not exist" in err_str:
            detail = "Устаревшая схема БД. Перезапустите сервис."
        elif "connect" in err_str or "refused" in err_str:
            detail = "Хранилище недоступно. Проверьте настройки подключения."
        return JSONResponse(status_code=500, content={"detail": detail})

    origins = settings.cors_origin_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(machines_router)
    app.include_router(users_router)
    app.include_router(checkins_router)
    app.include_router(scan_router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
