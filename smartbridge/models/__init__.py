"""Pydantic models for the project document and API bodies."""
from __future__ import annotations

from smartbridge.models.base import CamelModel, DocumentModel
from smartbridge.models.project import (
    Album,
    Catalog,
    Connection,
    InvalidProjectDocumentError,
    MasterBlock,
    MasterSaveBlock,
    Meta,
    MetaSong,
    NftMix,
    ProjectDocument,
    PublishBlock,
    SaveStatus,
    SectionName,
    Song,
    SongsWorksheet,
    coerce_project,
    default_project,
    derive_section_completeness,
    normalize_connections,
    normalize_meta_slots,
    normalize_song_slots,
    to_wire,
)
from smartbridge.models.requests import MasterSaveRequest, PublishRequest, SectionPatchRequest

__all__ = [
    "Album",
    "CamelModel",
    "Catalog",
    "Connection",
    "DocumentModel",
    "InvalidProjectDocumentError",
    "MasterBlock",
    "MasterSaveBlock",
    "MasterSaveRequest",
    "Meta",
    "MetaSong",
    "NftMix",
    "ProjectDocument",
    "PublishBlock",
    "PublishRequest",
    "SaveStatus",
    "SectionName",
    "SectionPatchRequest",
    "Song",
    "SongsWorksheet",
    "coerce_project",
    "default_project",
    "derive_section_completeness",
    "normalize_connections",
    "normalize_meta_slots",
    "normalize_song_slots",
    "to_wire",
]
