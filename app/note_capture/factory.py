"""
Factory for creating the note capture module.
"""
from pathlib import Path

from .processing_tracker import ProcessingTracker
from .routes import create_note_capture_routes
from .services import NoteCaptureService


def create_processing_tracker(data_dir: Path = None) -> ProcessingTracker:
    """Tracker shared by the capture flow and the status API."""
    persistence_file = None
    if data_dir:
        persistence_file = data_dir / "analysis_jobs.json"
    tracker = ProcessingTracker(persistence_file=persistence_file)
    tracker.cleanup_old_jobs()
    return tracker


def create_note_capture_module(
    knowledge_module: dict,
    topic_service,
    auth_service,
    processing_tracker: ProcessingTracker,
    analysis_config,
    llm_config,
    index_template: str,
    progress_template: str,
    analyze_template: str,
) -> dict:
    """Create note capture module with service and routes.

    Args:
        knowledge_module: Result of ``create_knowledge_module``
        topic_service: Shared ``TopicService``
        auth_service: Shared ``AuthService``
        processing_tracker: Shared tracker (also read by the status API)
        analysis_config: ``AnalysisConfig``
        llm_config: ``LLMConfig`` handed to the analyzer
        index_template: Template string for the home page
        progress_template: Template string for the progress page
        analyze_template: Template string for the analyze/review page

    Returns:
        Dictionary containing the service and blueprint
    """
    capture_service = NoteCaptureService(
        knowledge_service=knowledge_module["service"],
        tag_service=knowledge_module["tag_service"],
        topic_service=topic_service,
        processing_tracker=processing_tracker,
        analysis_config=analysis_config,
        llm_config=llm_config,
    )
    blueprint = create_note_capture_routes(
        capture_service,
        auth_service,
        index_template,
        progress_template,
        analyze_template,
    )
    return {
        "service": capture_service,
        "blueprint": blueprint,
    }
