from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, Field


ProjectStatus = Literal[
    "requested",
    "narrative_review",
    "brand_collection",
    "in_progress",
    "review",
    "revision",
    "live",
    "on_hold",
]


class Project(BaseModel):
    project_id: str
    project_name: str
    company_name: str = ""
    owner_id: str
    status: ProjectStatus = "requested"
    description: str = ""
    target_audience: Optional[str] = None
    revision_cooldown_until: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    metadata: dict = Field(default_factory=dict)


class ProjectCreate(BaseModel):
    project_name: str
    company_name: str = ""
    owner_id: str
    status: ProjectStatus = "requested"
    description: str = ""
    target_audience: Optional[str] = None


class ManifestSection(BaseModel):
    section_id: str
    label: str
    headline: str = ""
    copy_text: str = ""
    notes: Optional[str] = None


class Manifest(BaseModel):
    project_id: str
    sections: List[ManifestSection] = Field(default_factory=list)
    design_tokens: Dict[str, str] = Field(default_factory=dict)


class NarrativeSection(BaseModel):
    number: int
    label: str
    headline: str = ""
    body: str = ""


NarrativeStatus = Literal["draft", "pending_review", "approved", "superseded"]


class Narrative(BaseModel):
    """One version of the story arc written for a project before the build starts."""

    narrative_id: str
    project_id: str
    version: int = 1
    content: str = ""
    sections: List[NarrativeSection] = Field(default_factory=list)
    status: NarrativeStatus = "pending_review"
    created_at: datetime


class MessageAttachment(BaseModel):
    asset_id: Optional[str] = None
    file_name: str
    mime_type: str
    file_size: int = 0
    storage_path: str = ""


Role = Literal["user", "assistant"]


class ConversationTurn(BaseModel):
    turn_id: str
    project_id: str
    author_id: Optional[str] = None
    role: Role
    content: str
    created_at: datetime
    attachments: List[MessageAttachment] = Field(default_factory=list)
    edit_brief_md: Optional[str] = None


class Notification(BaseModel):
    notification_id: str
    user_id: str
    project_id: str
    turn_id: str
    type: str
    title: str
    body: str
    created_at: datetime


class BrandAsset(BaseModel):
    asset_id: str
    project_id: str
    category: str
    source: str = "upload"
    file_name: str
    mime_type: str
    file_size: int
    storage_path: str
    linked_message_id: Optional[str] = None
    created_at: datetime


class StoredObject(BaseModel):
    name: str
    size: int = 0
    created_at: Optional[datetime] = None


class ScoutRequest(BaseModel):
    project_id: Optional[str] = None
    message: Optional[str] = None
    attachments: List[MessageAttachment] = Field(default_factory=list)


class UploadRequest(BaseModel):
    file_name: str = Field(min_length=1)
    file_size: int = Field(ge=0)
    file_type: str
    category: Optional[str] = None
    source: str = "upload"


class UploadTicket(BaseModel):
    bucket: str
    path: str
    signed_url: str
    token: str
    asset: Optional[BrandAsset] = None
