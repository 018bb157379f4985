"""Wire models for the Kubernetes admission API (AdmissionReview v1 / v1beta1).

Design note:
- `object` / `oldObject` stay raw (`Any`) on purpose. A malformed node payload must
  reach the label extractor and produce a policy denial, not fail envelope parsing.
- Envelope models allow extra fields; the API server sends plenty we never read.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ADMISSION_API_VERSION = "admission.k8s.io/v1"
ADMISSION_API_VERSIONS = ("admission.k8s.io/v1", "admission.k8s.io/v1beta1")


class BaseModelAllowExtra(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class GroupVersionKind(BaseModelAllowExtra):
    group: str = ""
    version: str = ""
    kind: str = ""


class UserInfo(BaseModelAllowExtra):
    username: str = ""
    uid: Optional[str] = None
    groups: List[str] = Field(default_factory=list)

    @field_validator("groups", mode="before")
    @classmethod
    def _none_groups_to_empty(cls, v: Any) -> Any:
        # The API server omits `groups` for some service identities.
        return [] if v is None else v


class AdmissionRequest(BaseModelAllowExtra):
    uid: str
    kind: Optional[GroupVersionKind] = None
    resource: Optional[Dict[str, Any]] = None
    name: Optional[str] = None
    operation: str
    user_info: UserInfo = Field(default_factory=UserInfo, alias="userInfo")
    object: Optional[Any] = None
    old_object: Optional[Any] = Field(default=None, alias="oldObject")
    dry_run: Optional[bool] = Field(default=None, alias="dryRun")

    @field_validator("operation")
    @classmethod
    def _upper_operation(cls, v: str) -> str:
        return (v or "").strip().upper()


class AdmissionReview(BaseModelAllowExtra):
    api_version: str = Field(default=ADMISSION_API_VERSION, alias="apiVersion")
    kind: str = "AdmissionReview"
    request: AdmissionRequest


class NodeMetadata(BaseModelAllowExtra):
    name: Optional[str] = None
    labels: Optional[Dict[str, str]] = None


class NodeObject(BaseModelAllowExtra):
    """The slice of a `core/v1 Node` we care about: its kind and labels."""

    api_version: Optional[str] = Field(default=None, alias="apiVersion")
    kind: Optional[str] = None
    metadata: NodeMetadata = Field(default_factory=NodeMetadata)
