"""Set-to-match reconciliation of a thesis's related collections.

Each helper takes the desired state sent by the client, validates any
catalog ids it references, and rewrites the stored rows through the
transaction-bound repositories. A ``None`` request means "leave the
collection alone"; an empty list means "clear it".

- Co-supervisors: diffed against the stored set, rewritten only on change
- SDGs: deduplicated by goal id, "primary" always wins, full replace
- Keywords: catalog ids plus trimmed free text, full replace
- Embargo: delete then recreate, motivations deduplicated by id
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from typing_extensions import TypedDict

from thesisflow.errors import IncompleteEmbargoError, NotFoundError
from thesisflow.models import (
    EmbargoMotivation,
    Keyword,
    SustainableDevelopmentGoal,
    Teacher,
    ThesisEmbargo,
    ThesisEmbargoMotivation,
)
from thesisflow.repository import Repositories
from thesisflow.types import SdgLevel, SupervisorScope

logger = logging.getLogger(__name__)

MSG_CO_SUPERVISORS_NOT_FOUND = "One or more co-supervisors not found"
MSG_SDGS_NOT_FOUND = "One or more sustainable development goals not found"
MSG_MOTIVATIONS_NOT_FOUND = "One or more embargo motivations not found"
MSG_EMBARGO_INCOMPLETE = "Embargo data is incomplete"
MSG_EMBARGO_DURATION_REQUIRED = "Embargo duration is required"


class NormalizedSdg(TypedDict):
    id: Optional[int]
    level: Optional[str]


class NormalizedMotivation(TypedDict):
    id: Optional[int]
    other: Optional[str]


def to_int(value: Any) -> Optional[int]:
    """Parse an integer id; None for anything that is not one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _unique(values: Iterable[Any]) -> List[Any]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def normalize_teacher_ids(items: Iterable[Any]) -> List[Optional[int]]:
    raw = [item.get("id") if isinstance(item, dict) else item for item in items]
    return _unique(to_int(value) for value in raw if value is not None)


def reconcile_co_supervisors(
    repos: Repositories,
    thesis_id: int,
    requested: Optional[List[Any]],
    scope: SupervisorScope = SupervisorScope.LIVE,
) -> bool:
    """Make the thesis's co-supervisors in ``scope`` equal ``requested``.

    Returns:
        True when rows were rewritten, False when the stored set already matched

    Raises:
        NotFoundError: A requested teacher does not exist
    """
    if requested is None:
        return False

    ids = normalize_teacher_ids(requested)
    supervisor_ids = {
        row.teacher_id
        for row in repos.thesis_supervisors.find_all(thesis_id=thesis_id, is_supervisor=True, scope=scope.value)
    }
    # the supervisor is already linked and never stored again as co-supervisor
    wanted = [teacher_id for teacher_id in ids if teacher_id not in supervisor_ids]
    current = {
        row.teacher_id
        for row in repos.thesis_supervisors.find_all(thesis_id=thesis_id, is_supervisor=False, scope=scope.value)
    }
    if None not in ids and current == set(wanted):
        return False

    if None in ids or (ids and repos.teachers.count(Teacher.id.in_(ids)) != len(ids)):
        raise NotFoundError(MSG_CO_SUPERVISORS_NOT_FOUND)

    repos.thesis_supervisors.destroy(thesis_id=thesis_id, is_supervisor=False, scope=scope.value)
    repos.thesis_supervisors.bulk_create(
        {"thesis_id": thesis_id, "teacher_id": teacher_id, "scope": scope.value, "is_supervisor": False}
        for teacher_id in wanted
    )
    return True


def normalize_sdgs(items: Iterable[Any]) -> List[NormalizedSdg]:
    """Turn ids or ``{goalId|id, level}`` objects into NormalizedSdg entries.

    An id that is missing or not an integer is kept as None so that the
    caller can reject it.
    """
    normalized: List[NormalizedSdg] = []
    for item in items:
        if isinstance(item, dict):
            goal_id = to_int(item.get("goalId", item.get("id")))
            level = item.get("level")
        else:
            goal_id = to_int(item)
            level = None
        normalized.append({"id": goal_id, "level": level})
    return normalized


def dedupe_sdgs(normalized: Iterable[NormalizedSdg], default_level: Optional[str] = None) -> List[NormalizedSdg]:
    """One entry per goal id; a primary entry replaces any other, whatever the order."""
    by_goal: Dict[int, NormalizedSdg] = {}
    for goal in normalized:
        previous = by_goal.get(goal["id"])
        if previous is None or goal["level"] == SdgLevel.PRIMARY.value:
            by_goal[goal["id"]] = {"id": goal["id"], "level": goal["level"] or default_level}
    return list(by_goal.values())


def reconcile_sdgs(
    repos: Repositories,
    thesis_id: int,
    requested: Optional[List[Any]],
    default_level: Optional[str] = None,
) -> List[NormalizedSdg]:
    """Replace the thesis's SDG set.

    Raises:
        NotFoundError: A requested goal does not exist
    """
    if requested is None:
        return []

    normalized = normalize_sdgs(requested)
    goal_ids = _unique(goal["id"] for goal in normalized)
    if None in goal_ids:
        raise NotFoundError(MSG_SDGS_NOT_FOUND)
    if goal_ids and repos.sdgs.count(SustainableDevelopmentGoal.id.in_(goal_ids)) != len(goal_ids):
        raise NotFoundError(MSG_SDGS_NOT_FOUND)

    deduped = dedupe_sdgs(normalized, default_level)
    repos.thesis_sdgs.destroy(thesis_id=thesis_id)
    repos.thesis_sdgs.bulk_create(
        {"thesis_id": thesis_id, "goal_id": goal["id"], "sdg_level": goal["level"]} for goal in deduped
    )
    return deduped


def reconcile_keywords(repos: Repositories, thesis_id: int, requested: Optional[List[Any]]) -> None:
    """Replace the thesis's keywords with catalog ids and free-text entries.

    Catalog ids that do not exist are dropped with a warning.
    """
    if requested is None:
        return

    catalog_ids = _unique(
        to_int(item.get("id") if isinstance(item, dict) else item)
        for item in requested
        if not isinstance(item, str)
    )
    catalog_ids = [kid for kid in catalog_ids if kid is not None and kid != -1]
    free_text = _unique(item.strip() for item in requested if isinstance(item, str) and item.strip())

    existing = {kw.id for kw in repos.keywords.find_all(Keyword.id.in_(catalog_ids))} if catalog_ids else set()
    missing = [kid for kid in catalog_ids if kid not in existing]
    if missing:
        logger.warning("Dropping unknown keyword ids %s for thesis %s", missing, thesis_id)

    repos.thesis_keywords.destroy(thesis_id=thesis_id)
    repos.thesis_keywords.bulk_create(
        {"thesis_id": thesis_id, "keyword_id": kid} for kid in catalog_ids if kid in existing
    )
    repos.thesis_keywords.bulk_create({"thesis_id": thesis_id, "keyword_other": text} for text in free_text)


def normalize_motivations(items: Optional[Iterable[Any]]) -> List[NormalizedMotivation]:
    """Keep positive ids only; per id, an entry with free text wins.

    Entries without an id or with an id of zero or less are skipped. An id
    that is present but not an integer is kept as None so that the caller
    can reject it.
    """
    by_id: Dict[Optional[int], NormalizedMotivation] = {}
    for item in items or []:
        if isinstance(item, dict):
            raw_id = item.get("motivationId", item.get("motivation_id"))
            other = item.get("otherMotivation", item.get("other_motivation"))
        else:
            raw_id = item
            other = None
        if raw_id is None:
            continue
        motivation_id = to_int(raw_id)
        if motivation_id is not None and motivation_id <= 0:
            continue
        other = other.strip() if isinstance(other, str) and other.strip() else None
        if motivation_id not in by_id or other:
            by_id[motivation_id] = {"id": motivation_id, "other": other}
    return list(by_id.values())


def clear_embargo(repos: Repositories, thesis_id: int) -> int:
    """Delete the thesis's embargo rows, motivations first."""
    embargo_ids = [embargo.id for embargo in repos.embargoes.find_all(thesis_id=thesis_id)]
    if not embargo_ids:
        return 0
    repos.embargo_motivation_links.destroy(ThesisEmbargoMotivation.thesis_embargo_id.in_(embargo_ids))
    return repos.embargoes.destroy(ThesisEmbargo.id.in_(embargo_ids))


def replace_embargo(
    repos: Repositories,
    thesis_id: int,
    duration: str,
    motivations: List[NormalizedMotivation],
) -> ThesisEmbargo:
    """Delete any embargo and create a new one with ``motivations``.

    Raises:
        NotFoundError: A motivation id does not exist
    """
    motivation_ids = [m["id"] for m in motivations]
    if None in motivation_ids:
        raise NotFoundError(MSG_MOTIVATIONS_NOT_FOUND)
    if motivation_ids and repos.embargo_motivations.count(
        EmbargoMotivation.id.in_(motivation_ids)
    ) != len(motivation_ids):
        raise NotFoundError(MSG_MOTIVATIONS_NOT_FOUND)

    clear_embargo(repos, thesis_id)
    embargo = repos.embargoes.create(thesis_id=thesis_id, duration=duration)
    repos.embargo_motivation_links.bulk_create(
        {"thesis_embargo_id": embargo.id, "motivation_id": m["id"], "other_motivation": m["other"]}
        for m in motivations
    )
    return embargo


def reconcile_embargo(
    repos: Repositories,
    thesis_id: int,
    embargo: Optional[Dict[str, Any]],
) -> Optional[ThesisEmbargo]:
    """Apply the embargo of a conclusion request.

    No embargo clears any stored one. A present embargo must carry a
    duration and at least one motivation; it is always recreated, so its id
    changes on every submission.

    Raises:
        IncompleteEmbargoError: Missing duration or motivations
        NotFoundError: A motivation id does not exist
    """
    if embargo is None:
        clear_embargo(repos, thesis_id)
        return None

    duration = embargo.get("duration")
    motivations = normalize_motivations(embargo.get("motivations"))
    if not duration and not motivations:
        raise IncompleteEmbargoError(MSG_EMBARGO_INCOMPLETE)
    if not duration:
        raise IncompleteEmbargoError(MSG_EMBARGO_DURATION_REQUIRED)
    if not motivations:
        raise IncompleteEmbargoError(MSG_EMBARGO_INCOMPLETE)

    return replace_embargo(repos, thesis_id, duration, motivations)


__all__ = [
    "NormalizedSdg",
    "NormalizedMotivation",
    "to_int",
    "normalize_teacher_ids",
    "reconcile_co_supervisors",
    "normalize_sdgs",
    "dedupe_sdgs",
    "reconcile_sdgs",
    "reconcile_keywords",
    "normalize_motivations",
    "clear_embargo",
    "replace_embargo",
    "reconcile_embargo",
]
