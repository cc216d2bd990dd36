"""
Collaborator providers for route handlers.

Routes depend on these instead of constructing clients themselves, so tests
swap them through app.dependency_overrides.
"""
from resumeai.services.content_service import ContentGenerator, get_content_generator
from resumeai.services.payment_gateway import PaymentGateway, get_payment_gateway
from resumeai.services.pdf_service import PdfRenderer, get_pdf_renderer
from resumeai.services.storage_service import ArtifactStore, get_artifact_store


def payment_gateway_dep() -> PaymentGateway:
    return get_payment_gateway()


def content_generator_dep() -> ContentGenerator:
    return get_content_generator()


def pdf_renderer_dep() -> PdfRenderer:
    return get_pdf_renderer()


def artifact_store_dep() -> ArtifactStore:
    return get_artifact_store()
