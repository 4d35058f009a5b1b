from dataclasses import dataclass, field
from typing import Any, Dict, List

from .utils import parse_tag_ids, serialize_tag_ids

VARIANTS = ("primary", "testReport", "coverage", "screenshots")
VARIANT_STATES = ("none", "uploaded", "processing", "ready")
TAG_TYPES = ("branch", "pr", "ticket")
DEFAULT_BRANCH = "main"


@dataclass
class Project:
    id: str
    name: str = ""
    gitHubRepository: str = ""
    gitHubDefaultBranch: str = DEFAULT_BRANCH
    latestBuildId: str = ""
    purgeRetentionDays: int = 30
    createdAt: str = ""
    updatedAt: str = ""

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Project":
        return cls(
            id=str(doc.get("id") or ""),
            name=str(doc.get("name") or ""),
            gitHubRepository=str(doc.get("gitHubRepository") or ""),
            gitHubDefaultBranch=str(doc.get("gitHubDefaultBranch") or DEFAULT_BRANCH),
            latestBuildId=str(doc.get("latestBuildId") or ""),
            purgeRetentionDays=int(doc.get("purgeRetentionDays") or 30),
            createdAt=str(doc.get("createdAt") or ""),
            updatedAt=str(doc.get("updatedAt") or ""),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "gitHubRepository": self.gitHubRepository,
            "gitHubDefaultBranch": self.gitHubDefaultBranch,
            "latestBuildId": self.latestBuildId,
            "purgeRetentionDays": self.purgeRetentionDays,
            "createdAt": self.createdAt,
            "updatedAt": self.updatedAt,
        }


@dataclass
class Tag:
    id: str
    type: str = "branch"
    value: str = ""
    buildsCount: int = 0
    latestBuildId: str = ""
    createdAt: str = ""
    updatedAt: str = ""

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Tag":
        tag_type = str(doc.get("type") or "branch")
        return cls(
            id=str(doc.get("id") or ""),
            type=tag_type if tag_type in TAG_TYPES else "branch",
            value=str(doc.get("value") or doc.get("id") or ""),
            buildsCount=max(int(doc.get("buildsCount") or 0), 0),
            latestBuildId=str(doc.get("latestBuildId") or ""),
            createdAt=str(doc.get("createdAt") or ""),
            updatedAt=str(doc.get("updatedAt") or ""),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "value": self.value,
            "buildsCount": self.buildsCount,
            "latestBuildId": self.latestBuildId,
            "createdAt": self.createdAt,
            "updatedAt": self.updatedAt,
        }


@dataclass
class Build:
    id: str
    tag_ids: List[str] = field(default_factory=list)
    variants: Dict[str, str] = field(default_factory=lambda: {variant: "none" for variant in VARIANTS})
    message: str = ""
    authorName: str = ""
    authorEmail: str = ""
    createdAt: str = ""
    updatedAt: str = ""

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Build":
        variants = {}
        for variant in VARIANTS:
            state = str(doc.get(variant) or "none")
            variants[variant] = state if state in VARIANT_STATES else "none"
        return cls(
            id=str(doc.get("id") or ""),
            tag_ids=parse_tag_ids(doc.get("tagIds")),
            variants=variants,
            message=str(doc.get("message") or ""),
            authorName=str(doc.get("authorName") or ""),
            authorEmail=str(doc.get("authorEmail") or ""),
            createdAt=str(doc.get("createdAt") or ""),
            updatedAt=str(doc.get("updatedAt") or ""),
        )

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "id": self.id,
            "tagIds": serialize_tag_ids(self.tag_ids),
            "message": self.message,
            "authorName": self.authorName,
            "authorEmail": self.authorEmail,
            "createdAt": self.createdAt,
            "updatedAt": self.updatedAt,
        }
        for variant in VARIANTS:
            doc[variant] = self.variants.get(variant, "none")
        return doc

    def to_payload(self) -> Dict[str, Any]:
        payload = self.to_document()
        payload["tagIds"] = list(self.tag_ids)
        return payload

    def state(self, variant: str) -> str:
        return self.variants.get(variant, "none")
