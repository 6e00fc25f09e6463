"""
Fetch plan — which collection to walk and which sub-resources to attach.

The plan is data, not code: it is read from ``config/fetch_plan.yaml`` when
present, otherwise the built-in Lever opportunity plan is used.

★ YAML 格式
============

::

    collection:
      name: opportunities
      path: /opportunities
      expand: [applications, stage, owner]
      limit: 100

    sub_resources:
      notes:
        path: /opportunities/{id}/notes
        limit: 100
      archivedReason:
        path: /archive_reasons/{archived_reason}
        kind: singleton
        trigger: archived_reason
      applications:
        path: /opportunities/{id}/applications/{first_application_id}
        kind: singleton
        trigger: has_applications
        expand: [posting]
        as_list: true

★ 佔位符
========

path 模板中的 {id}, {archived_reason}, {first_application_id} 由 record 帶入。
模板用到的值在 record 中不存在時，該 sub-resource 不會被觸發。
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Callable

import yaml
from pydantic import BaseModel, Field, ValidationError

from lever_export.core.config import settings
from lever_export.core.enums import SubResourceKind, TriggerType
from lever_export.fetchers.base import Record, Request

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


def _archived_reason(record: Record) -> Any:
    archived = record.get("archived")
    if isinstance(archived, dict):
        return archived.get("reason")
    return None


def _first_application_id(record: Record) -> Any:
    applications = record.get("applications")
    if not applications:
        return None
    first = applications[0]
    if isinstance(first, dict):
        return first.get("id")
    # expand=applications 未展開時只有 id 字串
    return first


_TRIGGERS: dict[TriggerType, Callable[[Record], bool]] = {
    TriggerType.ALWAYS: lambda record: True,
    TriggerType.ARCHIVED_REASON: lambda record: bool(_archived_reason(record)),
    TriggerType.HAS_APPLICATIONS: lambda record: bool(record.get("applications")),
}


def record_variables(record: Record) -> dict[str, Any]:
    """Placeholder values a path template may use."""
    return {
        "id": record.get("id"),
        "archived_reason": _archived_reason(record),
        "first_application_id": _first_application_id(record),
    }


class CollectionPlan(BaseModel):
    """The top-level paginated collection."""

    name: str = "opportunities"
    path: str = "/opportunities"
    expand: list[str] = Field(default_factory=list)
    limit: int | None = None

    def request(self, default_limit: int | None = None) -> Request:
        return Request.build(
            self.path,
            expand=self.expand,
            limit=self.limit if self.limit is not None else default_limit,
        )


class SubResourcePlan(BaseModel):
    """
    One named sub-fetch per top-level record.

    Attributes:
        name: 結果寫入 ExpandedRecord 的欄位名（target 未設定時）
        path: path 模板（含佔位符）
        kind: paginated → walk_all；singleton → 單次 execute 取 data
        trigger: 何種 record 形狀才觸發
        expand: 重複的 expand query params
        limit: 分頁大小（None = 不帶 limit）
        target: 寫入的欄位名，預設同 name
        as_list: singleton 結果以單元素 list 取代 target 欄位
    """

    name: str
    path: str
    kind: SubResourceKind = SubResourceKind.PAGINATED
    trigger: TriggerType = TriggerType.ALWAYS
    expand: list[str] = Field(default_factory=list)
    limit: int | None = None
    target: str | None = None
    as_list: bool = False

    @property
    def field_name(self) -> str:
        return self.target or self.name

    def applies_to(self, record: Record) -> bool:
        """Trigger predicate plus: every placeholder has a value."""
        if not _TRIGGERS[self.trigger](record):
            return False
        variables = record_variables(record)
        return all(
            variables.get(name) not in (None, "")
            for name in _PLACEHOLDER_RE.findall(self.path)
        )

    def request_for(self, record: Record) -> Request:
        variables = record_variables(record)
        placeholders = set(_PLACEHOLDER_RE.findall(self.path))
        missing = placeholders - set(variables)
        if missing:
            raise ValueError(
                f"Unknown placeholder(s) {sorted(missing)} in path '{self.path}'"
            )
        path = self.path.format(**{k: variables[k] for k in placeholders})
        return Request.build(path, expand=self.expand, limit=self.limit)


class FetchPlan(BaseModel):
    """Top-level collection plus the ordered sub-resources per record."""

    collection: CollectionPlan = Field(default_factory=CollectionPlan)
    sub_resources: list[SubResourcePlan] = Field(default_factory=list)

    def top_level_request(self) -> Request:
        return self.collection.request(default_limit=settings.page_limit)

    def applicable(self, record: Record) -> list[SubResourcePlan]:
        return [s for s in self.sub_resources if s.applies_to(record)]

    @property
    def field_names(self) -> list[str]:
        return [s.field_name for s in self.sub_resources]


def default_fetch_plan(page_limit: int | None = None) -> FetchPlan:
    """The Lever opportunity export: seven sub-collections plus two details."""
    limit = page_limit or settings.page_limit
    paginated = [
        SubResourcePlan(name="feedback", path="/opportunities/{id}/feedback", limit=limit),
        SubResourcePlan(name="panels", path="/opportunities/{id}/panels", limit=limit),
        SubResourcePlan(name="notes", path="/opportunities/{id}/notes", limit=limit),
        SubResourcePlan(
            name="offers", path="/opportunities/{id}/offers",
            expand=["creator"], limit=limit,
        ),
        SubResourcePlan(name="forms", path="/opportunities/{id}/forms", limit=limit),
        SubResourcePlan(name="files", path="/opportunities/{id}/files"),
        SubResourcePlan(name="resumes", path="/opportunities/{id}/resumes"),
    ]
    details = [
        SubResourcePlan(
            name="archivedReason",
            path="/archive_reasons/{archived_reason}",
            kind=SubResourceKind.SINGLETON,
            trigger=TriggerType.ARCHIVED_REASON,
        ),
        SubResourcePlan(
            name="applications",
            path="/opportunities/{id}/applications/{first_application_id}",
            kind=SubResourceKind.SINGLETON,
            trigger=TriggerType.HAS_APPLICATIONS,
            expand=["posting"],
            as_list=True,
        ),
    ]
    return FetchPlan(
        collection=CollectionPlan(
            name="opportunities",
            path="/opportunities",
            expand=[
                "applications", "stage", "owner",
                "sourcedBy", "contact", "followers",
            ],
            limit=limit,
        ),
        sub_resources=paginated + details,
    )


def parse_fetch_plan(config: dict[str, Any] | None) -> FetchPlan:
    """
    Build a FetchPlan from an already-loaded YAML mapping.

    Raises:
        ValueError: on unknown kind/trigger values or malformed entries
    """
    if not config:
        return default_fetch_plan()

    collection = CollectionPlan(**(config.get("collection") or {}))

    sub_resources: list[SubResourcePlan] = []
    for name, sc in (config.get("sub_resources") or {}).items():
        if not sc:
            sc = {}
        if not sc.get("enabled", True):
            logger.info("Skipping disabled sub-resource: %s", name)
            continue
        if "path" not in sc:
            raise ValueError(f"Sub-resource '{name}' has no path")
        fields = {k: v for k, v in sc.items() if k != "enabled"}
        try:
            sub_resources.append(SubResourcePlan(name=name, **fields))
        except ValidationError as e:
            raise ValueError(f"Invalid sub-resource '{name}': {e}") from e

    return FetchPlan(collection=collection, sub_resources=sub_resources)


def load_fetch_plan(path: str | Path | None = None) -> FetchPlan:
    """
    Load the fetch plan from YAML, falling back to the built-in Lever plan.

    Returns:
        FetchPlan
    """
    plan_path = Path(path or settings.fetch_plan_path)
    if not plan_path.exists():
        logger.info("%s not found, using built-in Lever fetch plan", plan_path)
        return default_fetch_plan()

    with open(plan_path, encoding="utf-8") as f:
        config = yaml.safe_load(f)

    plan = parse_fetch_plan(config)
    logger.info(
        "Loaded fetch plan for %s with %d sub-resource(s): %s",
        plan.collection.name, len(plan.sub_resources), plan.field_names,
    )
    return plan
