"""Standalone content-type classifier.

Routes
------
POST /classify   Body: {"url", "title", "content"}  → {"content_type": ...}

Uses the ``other``-default classifier, not the one crawl jobs use.
"""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from harvester.scraper.classifier import detect_content_type

router = APIRouter()


class ClassifyRequest(BaseModel):
    url: str
    title: str = ""
    content: str = ""


class ClassifyResponse(BaseModel):
    content_type: str


@router.post("", response_model=ClassifyResponse)
def classify(body: ClassifyRequest) -> dict[str, str]:
    return {"content_type": detect_content_type(body.url, body.title, body.content)}
