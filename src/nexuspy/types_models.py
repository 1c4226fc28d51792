"""
types_models.py

Typed dataclasses for the Nexus Mods API responses.

- Every class has a `from_dict()` factory converting the raw JSON dict.
- The raw payload is kept in `.data` for fields not mapped here.
- No validation beyond presence; unknown or missing fields become None.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional, List, Dict, Any

import dateutil.parser as _dateutil_parser


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp as sent by the API; None when absent or unparseable."""
    if not value:
        return None
    try:
        return _dateutil_parser.isoparse(value)
    except (ValueError, OverflowError):
        try:
            return _dateutil_parser.parse(value)
        except (ValueError, OverflowError):
            return None


@dataclass
class ValidateKeyResult:
    """
    Result of an API key validation.

    Attributes
    ----------
    user_id : Optional[int]
    key : Optional[str]
    name : Optional[str]
        Account name.
    email : Optional[str]
    profile_url : Optional[str]
    is_premium : bool
        Premium accounts get the larger request quota.
    is_supporter : bool
    data : Dict[str, Any]
        Raw JSON.
    """
    user_id: Optional[int] = None
    key: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    profile_url: Optional[str] = None
    is_premium: bool = False
    is_supporter: bool = False
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ValidateKeyResult":
        d = d or {}
        return cls(
            user_id=d.get("user_id"),
            key=d.get("key"),
            name=d.get("name"),
            email=d.get("email"),
            profile_url=d.get("profile_url"),
            # the API spells the flags with a trailing question mark
            is_premium=bool(d.get("is_premium?", d.get("is_premium", False))),
            is_supporter=bool(d.get("is_supporter?", d.get("is_supporter", False))),
            data=d,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Category:
    category_id: Optional[int] = None
    name: Optional[str] = None
    parent_category: Optional[Any] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Category":
        d = d or {}
        return cls(
            category_id=d.get("category_id"),
            name=d.get("name"),
            parent_category=d.get("parent_category"),
            data=d,
        )


@dataclass
class Game:
    """
    A game supported by the site.

    `categories` is only filled by the game info endpoint; the game list
    leaves it empty.
    """
    id: Optional[int] = None
    domain_name: Optional[str] = None
    name: Optional[str] = None
    forum_url: Optional[str] = None
    nexusmods_url: Optional[str] = None
    genre: Optional[str] = None
    mods: Optional[int] = None
    file_count: Optional[int] = None
    downloads: Optional[int] = None
    approved_date: Optional[int] = None
    categories: List[Category] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Game":
        d = d or {}
        return cls(
            id=d.get("id"),
            domain_name=d.get("domain_name"),
            name=d.get("name"),
            forum_url=d.get("forum_url"),
            nexusmods_url=d.get("nexusmods_url"),
            genre=d.get("genre"),
            mods=d.get("mods"),
            file_count=d.get("file_count"),
            downloads=d.get("downloads"),
            approved_date=d.get("approved_date"),
            categories=[Category.from_dict(c) for c in d.get("categories") or []],
            data=d,
        )

    def __repr__(self) -> str:
        return f"<Game id={self.id} domain={self.domain_name!r} name={self.name!r}>"


@dataclass
class Endorsement:
    endorse_status: Optional[str] = None
    timestamp: Optional[int] = None
    version: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> Optional["Endorsement"]:
        if not d:
            return None
        return cls(endorse_status=d.get("endorse_status"), timestamp=d.get("timestamp"), version=d.get("version"))


@dataclass
class ModInfo:
    """
    Details about a mod.

    Attributes
    ----------
    mod_id, game_id : Optional[int]
    domain_name : Optional[str]
        Game domain the mod belongs to.
    name, summary, description, version, author : Optional[str]
    picture_url : Optional[str]
    created_time, updated_time : Optional[datetime]
        Parsed from the ISO strings of the API.
    endorsement_count : Optional[int]
    endorsement : Optional[Endorsement]
        The current user's endorsement (only for authenticated requests).
    available : Optional[bool]
    status : Optional[str]
    contains_adult_content : Optional[bool]
    data : Dict[str, Any]
    """
    mod_id: Optional[int] = None
    game_id: Optional[int] = None
    domain_name: Optional[str] = None
    category_id: Optional[int] = None
    name: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    version: Optional[str] = None
    author: Optional[str] = None
    uploaded_by: Optional[str] = None
    picture_url: Optional[str] = None
    created_time: Optional[datetime] = None
    updated_time: Optional[datetime] = None
    endorsement_count: Optional[int] = None
    endorsement: Optional[Endorsement] = None
    available: Optional[bool] = None
    status: Optional[str] = None
    contains_adult_content: Optional[bool] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ModInfo":
        d = d or {}
        return cls(
            mod_id=d.get("mod_id"),
            game_id=d.get("game_id"),
            domain_name=d.get("domain_name"),
            category_id=d.get("category_id"),
            name=d.get("name"),
            summary=d.get("summary"),
            description=d.get("description"),
            version=d.get("version"),
            author=d.get("author"),
            uploaded_by=d.get("uploaded_by"),
            picture_url=d.get("picture_url"),
            created_time=_parse_time(d.get("created_time")),
            updated_time=_parse_time(d.get("updated_time")),
            endorsement_count=d.get("endorsement_count"),
            endorsement=Endorsement.from_dict(d.get("endorsement")),
            available=d.get("available"),
            status=d.get("status"),
            contains_adult_content=d.get("contains_adult_content"),
            data=d,
        )

    def __repr__(self) -> str:
        return f"<ModInfo mod_id={self.mod_id} name={self.name!r} version={self.version!r}>"


@dataclass
class FileInfo:
    """Details about one uploaded file of a mod. `size_kb` is in kilobytes as sent by the API."""
    file_id: Optional[int] = None
    name: Optional[str] = None
    version: Optional[str] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    is_primary: Optional[bool] = None
    size: Optional[int] = None
    size_kb: Optional[int] = None
    file_name: Optional[str] = None
    uploaded_timestamp: Optional[int] = None
    uploaded_time: Optional[datetime] = None
    mod_version: Optional[str] = None
    external_virus_scan_url: Optional[str] = None
    description: Optional[str] = None
    changelog_html: Optional[str] = None
    content_preview_link: Optional[str] = None
    md5: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "FileInfo":
        d = d or {}
        return cls(
            file_id=d.get("file_id"),
            name=d.get("name"),
            version=d.get("version"),
            category_id=d.get("category_id"),
            category_name=d.get("category_name"),
            is_primary=d.get("is_primary"),
            size=d.get("size"),
            size_kb=d.get("size_kb"),
            file_name=d.get("file_name"),
            uploaded_timestamp=d.get("uploaded_timestamp"),
            uploaded_time=_parse_time(d.get("uploaded_time")),
            mod_version=d.get("mod_version"),
            external_virus_scan_url=d.get("external_virus_scan_url"),
            description=d.get("description"),
            changelog_html=d.get("changelog_html"),
            content_preview_link=d.get("content_preview_link"),
            md5=d.get("md5"),
            data=d,
        )

    def __repr__(self) -> str:
        return f"<FileInfo file_id={self.file_id} file_name={self.file_name!r}>"


@dataclass
class FileUpdate:
    old_file_id: Optional[int] = None
    new_file_id: Optional[int] = None
    old_file_name: Optional[str] = None
    new_file_name: Optional[str] = None
    uploaded_timestamp: Optional[int] = None
    uploaded_time: Optional[datetime] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "FileUpdate":
        d = d or {}
        return cls(
            old_file_id=d.get("old_file_id"),
            new_file_id=d.get("new_file_id"),
            old_file_name=d.get("old_file_name"),
            new_file_name=d.get("new_file_name"),
            uploaded_timestamp=d.get("uploaded_timestamp"),
            uploaded_time=_parse_time(d.get("uploaded_time")),
        )


@dataclass
class ModFiles:
    files: List[FileInfo] = field(default_factory=list)
    file_updates: List[FileUpdate] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ModFiles":
        d = d or {}
        return cls(
            files=[FileInfo.from_dict(f) for f in d.get("files") or []],
            file_updates=[FileUpdate.from_dict(u) for u in d.get("file_updates") or []],
            data=d,
        )


@dataclass
class DownloadURL:
    """One mirror for a file download."""
    uri: Optional[str] = None
    name: Optional[str] = None
    short_name: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DownloadURL":
        d = d or {}
        return cls(uri=d.get("URI"), name=d.get("name"), short_name=d.get("short_name"))


@dataclass
class MD5Result:
    """A file matching an md5 search, with the mod it belongs to."""
    mod: Optional[ModInfo] = None
    file_details: Optional[FileInfo] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MD5Result":
        d = d or {}
        return cls(
            mod=ModInfo.from_dict(d["mod"]) if d.get("mod") else None,
            file_details=FileInfo.from_dict(d["file_details"]) if d.get("file_details") else None,
            data=d,
        )


@dataclass
class Issue:
    id: Optional[int] = None
    title: Optional[str] = None
    state: Optional[str] = None
    issue_number: Optional[int] = None
    grouping_key: Optional[str] = None
    last_activity: Optional[datetime] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Issue":
        d = d or {}
        return cls(
            id=d.get("id"),
            title=d.get("title"),
            state=d.get("state"),
            issue_number=d.get("issue_number"),
            grouping_key=d.get("grouping_key"),
            last_activity=_parse_time(d.get("last_activity")),
            data=d,
        )


@dataclass
class FeedbackResponse:
    success: Optional[bool] = None
    issue_number: Optional[int] = None
    github_issue: Optional[Dict[str, Any]] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "FeedbackResponse":
        d = d or {}
        issue = d.get("github_issue")
        return cls(
            success=d.get("success"),
            issue_number=(issue or {}).get("issue_number") if isinstance(issue, dict) else None,
            github_issue=issue if isinstance(issue, dict) else None,
            data=d,
        )


__all__ = [
    "ValidateKeyResult", "Category", "Game", "Endorsement", "ModInfo",
    "FileInfo", "FileUpdate", "ModFiles", "DownloadURL", "MD5Result",
    "Issue", "FeedbackResponse",
]
