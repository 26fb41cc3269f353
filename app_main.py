"""Application entry point for the ExamForge server."""

from __future__ import annotations

from pathlib import Path

from examforge.core.config import Settings, get_settings
from examforge.core.exam_manager import ExamManager
from examforge.server.api_server import create_api_app, start_api_server
from examforge.storage.factory import create_repository
from examforge.utils.logging_config import configure_logging


def build_manager(settings: Settings) -> ExamManager:
    """Create the store and the manager, loading the optional seed file."""
    repository = create_repository(settings)
    manager = ExamManager.from_settings(repository, settings)
    if settings.seed_file and settings.seed_owner_id:
        manager.import_questions_from_file(settings.seed_owner_id, Path(settings.seed_file))
    return manager


def create_app():
    """Factory for ``uvicorn app_main:create_app --factory``."""
    settings = get_settings()
    configure_logging(settings.log_level)
    return create_api_app(build_manager(settings), settings)


def main() -> None:
    """Initialize logging, build the exam manager and serve the API."""
    settings = get_settings()
    logger = configure_logging(settings.log_level)
    logger.info("Starting %s %s (%s)…", settings.app_name, settings.app_version, settings.environment)

    exam_manager = build_manager(settings)
    if settings.enable_dev_login and settings.is_production():
        logger.warning("Development login is enabled in production.")
    logger.info("API available at http://%s:%s/", settings.host, settings.port)
    start_api_server(exam_manager=exam_manager, settings=settings)


if __name__ == "__main__":
    main()
