"""
Reconciliation of stored upload files against resource records.

An orphan is an object under the uploads prefix that no ``resources.file_path``
points at, e.g. an upload whose database insert failed or whose row was
removed by hand. Admins list orphans with whatever metadata the object key
lets us infer, then either publish them as resources or delete them.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import PurePosixPath

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.utils import normalize_course_code
from app.models.resource import Resource, ResourceType
from app.services.storage import StorageBackend, StoredObject
from app.services.user_service import full_names_by_id

logger = logging.getLogger(__name__)

_UUID_PREFIX = re.compile(r"^[0-9a-f]{32}_")
_USER_SEGMENT = re.compile(r"[0-9]+")
_YEAR = re.compile(r"(?<!\d)((?:19|20)\d{2})(?!\d)", re.ASCII)
_QUESTION_HINTS = re.compile(r"exam(?!ple)|question|quiz|mid-?term|(?<![a-z])(test|pq)(?![a-z])", re.IGNORECASE)


@dataclass
class InferredMetadata:
    file_name: str
    title: str
    resource_type: str
    course_code: str | None = None
    year: str | None = None
    contributor_id: int | None = None


@dataclass
class Orphan:
    object: StoredObject
    inferred: InferredMetadata
    contributor_name: str | None = None


def infer_from_key(key: str, prefix: str | None = None) -> InferredMetadata:
    """Guess resource metadata from an object key.

    Expected layout is ``<prefix>/<COURSE-SLUG>/<user_id>/<uuid>_<name>``;
    keys that deviate still yield a title and a type from the file name.
    """
    prefix = (settings.uploads_prefix if prefix is None else prefix).strip("/")
    parts = PurePosixPath(key).parts
    if prefix and parts and parts[0] == prefix:
        parts = parts[1:]

    raw_name = parts[-1] if parts else key
    file_name = _UUID_PREFIX.sub("", raw_name)
    folders = parts[:-1]

    course_code = None
    contributor_id = None
    if len(folders) >= 1:
        course_code = normalize_course_code(folders[0].replace("-", " ").replace("_", " "))
    if len(folders) >= 2 and _USER_SEGMENT.fullmatch(folders[1]):
        contributor_id = int(folders[1])

    stem = PurePosixPath(file_name).stem
    title = " ".join(re.split(r"[_\-.\s]+", stem)).strip() or file_name
    resource_type = ResourceType.QUESTION.value if _QUESTION_HINTS.search(stem) else ResourceType.NOTE.value
    year_match = _YEAR.search(stem)

    return InferredMetadata(
        file_name=file_name,
        title=title,
        resource_type=resource_type,
        course_code=course_code,
        year=year_match.group(1) if year_match else None,
        contributor_id=contributor_id,
    )


def _modified_ts(orphan: Orphan) -> float:
    modified = orphan.object.last_modified
    return modified.timestamp() if modified else float("-inf")


def linked_paths(db: Session) -> set[str]:
    return {row[0] for row in db.query(Resource.file_path).all()}


def find_orphans(db: Session, storage: StorageBackend) -> list[Orphan]:
    """Walk every page of the uploads prefix and keep objects with no resource row.

    Contributors are resolved against existing users; ids of deleted users are dropped.
    """
    known = linked_paths(db)
    orphans = []
    for obj in storage.iter_objects(settings.uploads_prefix):
        if obj.key in known:
            continue
        orphans.append(Orphan(object=obj, inferred=infer_from_key(obj.key)))

    names = full_names_by_id(db, (o.inferred.contributor_id for o in orphans))
    for orphan in orphans:
        cid = orphan.inferred.contributor_id
        if cid is not None and cid not in names:
            orphan.inferred.contributor_id = None
        elif cid is not None:
            orphan.contributor_name = names[cid]

    # Newest first, ties by key; objects without timestamps sink to the end
    orphans.sort(key=lambda o: o.object.key)
    orphans.sort(key=_modified_ts, reverse=True)
    logger.info(f"Reconciliation found {len(orphans)} orphaned upload(s) out of {len(known)} linked")
    return orphans


def filter_orphans(
    orphans: list[Orphan],
    search: str | None = None,
    course_code: str | None = None,
    contributor_id: int | None = None,
) -> list[Orphan]:
    result = orphans
    if search:
        term = search.strip().lower()
        result = [
            o for o in result
            if term in o.object.key.lower()
            or term in o.inferred.title.lower()
            or (o.contributor_name and term in o.contributor_name.lower())
        ]
    if course_code:
        code = normalize_course_code(course_code)
        result = [o for o in result if o.inferred.course_code == code]
    if contributor_id is not None:
        result = [o for o in result if o.inferred.contributor_id == contributor_id]
    return result
