"""
Ordered, immutable catalog of migrations.

The registry is built once from static definitions and passed to the
runner explicitly, so tests can supply their own.
"""

from typing import Iterable, Iterator, Optional

from ..exceptions import RegistryError
from .base import Migration


class MigrationRegistry:
    """
    Migrations sorted ascending by version, validated on construction.

    Raises RegistryError if a version is not a positive integer, a version
    is registered twice, or the sequence has a gap. The sequence must start
    at 1 unless its first migration is a baseline.
    """

    def __init__(self, migrations: Iterable[Migration] = ()):
        ordered = sorted(migrations, key=self._sort_key)
        self._validate(ordered)
        self._migrations: tuple[Migration, ...] = tuple(ordered)
        self._by_version = {m.version: m for m in self._migrations}

    @staticmethod
    def _sort_key(migration: Migration):
        version = migration.version
        if isinstance(version, bool) or not isinstance(version, int):
            raise RegistryError(f"Migration version must be an integer, got {version!r} ({migration.description})")
        return version

    @staticmethod
    def _validate(ordered: list[Migration]) -> None:
        seen: set[int] = set()
        for migration in ordered:
            if migration.version <= 0:
                raise RegistryError(f"Migration version must be positive, got {migration.version}")
            if migration.version in seen:
                raise RegistryError(f"Duplicate migration version {migration.version}")
            seen.add(migration.version)

        for index, migration in enumerate(ordered):
            if migration.baseline and index != 0:
                raise RegistryError(f"Baseline migration {migration.version} must be the first migration")

        if not ordered:
            return

        first = ordered[0]
        if first.version != 1 and not first.baseline:
            raise RegistryError(
                f"Migrations start at version {first.version} but no baseline is declared"
            )
        for previous, current in zip(ordered, ordered[1:]):
            if current.version != previous.version + 1:
                raise RegistryError(
                    f"Gap in migration versions between {previous.version} and {current.version}"
                )

    def all(self) -> tuple[Migration, ...]:
        return self._migrations

    def latest_version(self) -> int:
        return self._migrations[-1].version if self._migrations else 0

    @property
    def baseline(self) -> Optional[Migration]:
        """The baseline migration, if the registry starts with one."""
        if self._migrations and self._migrations[0].baseline:
            return self._migrations[0]
        return None

    def get(self, version: int) -> Optional[Migration]:
        return self._by_version.get(version)

    def pending(self, current_version: int) -> list[Migration]:
        """Migrations above current_version, in the order they must be applied."""
        return [m for m in self._migrations if m.version > current_version]

    def __iter__(self) -> Iterator[Migration]:
        return iter(self._migrations)

    def __len__(self) -> int:
        return len(self._migrations)

    def __repr__(self) -> str:
        return f"<MigrationRegistry {len(self)} migrations, latest {self.latest_version()}>"
