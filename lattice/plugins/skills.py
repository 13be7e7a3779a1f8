"""Bundled skill payloads shipped inside ``lattice/skills/<slug>/SKILL.md``.

Skill modules that name a ``slug`` get the payload copied into
``.lattice/skills/<slug>/SKILL.md`` before the agent is prompted, so the
agent always reads a file inside the project.
"""

from __future__ import annotations

import logging
from importlib import resources
from pathlib import Path

from lattice.core.filesystem import FileSystem
from lattice.errors import ArtifactIOError, DefinitionError

logger = logging.getLogger(__name__)

SKILL_FILENAME = "SKILL.md"
_PACKAGE = "lattice.skills"


def bundled_skills() -> list[str]:
    """Slugs of every skill packaged with Lattice."""
    root = resources.files(_PACKAGE)
    return sorted(
        entry.name
        for entry in root.iterdir()
        if entry.is_dir() and entry.joinpath(SKILL_FILENAME).is_file()
    )


def is_bundled(slug: str) -> bool:
    return slug.strip() in bundled_skills()


def read_skill(slug: str) -> bytes:
    """Raw payload for ``slug``; raises ``DefinitionError`` if not bundled."""
    slug = slug.strip()
    if not is_bundled(slug):
        raise DefinitionError(f"skill {slug!r} is not bundled")
    return resources.files(_PACKAGE).joinpath(slug, SKILL_FILENAME).read_bytes()


def materialize(fs: FileSystem, skills_dir: Path, slug: str) -> Path:
    """Write the bundled ``slug`` under ``skills_dir`` and return its path."""
    data = read_skill(slug)
    target_dir = Path(skills_dir) / slug.strip()
    target = target_dir / SKILL_FILENAME
    try:
        fs.make_dirs(target_dir)
        fs.write_bytes(target, data)
    except OSError as exc:
        raise ArtifactIOError(f"cannot write skill {slug}: {exc}") from exc
    logger.debug("Materialized skill %s at %s", slug, target)
    return target


def materialize_all(fs: FileSystem, skills_dir: Path) -> list[Path]:
    return [materialize(fs, skills_dir, slug) for slug in bundled_skills()]
