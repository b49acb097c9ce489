"""Per-platform external identifiers carried by canonical entities.

The authoritative correlation lives in the identity mapping store; this is the
in-memory view of it that travels with an entity through one sync cycle.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping

from stocksync.domain.model.enums import Platform

type PlatformIdPairs = Iterable[tuple[Platform | str, str]] | Mapping[Platform, str]


class PlatformIds(Mapping[Platform, str]):
    """Immutable ``Platform -> external ID`` mapping.

    Order is irrelevant; iteration is sorted by platform name so that anything
    derived from it is reproducible. Construction rejects a platform that
    appears twice and blank IDs.
    """

    __slots__ = ("_ids",)

    def __init__(self, pairs: PlatformIdPairs = ()) -> None:
        items = pairs.items() if isinstance(pairs, Mapping) else pairs
        ids: dict[Platform, str] = {}
        for raw_platform, external_id in items:
            platform = Platform(raw_platform)
            if platform in ids:
                raise ValueError(f"platform {platform} appears more than once")
            value = str(external_id).strip()
            if not value:
                raise ValueError(f"blank external id for platform {platform}")
            ids[platform] = value
        self._ids = dict(sorted(ids.items()))

    def __getitem__(self, platform: Platform) -> str:
        return self._ids[platform]

    def __iter__(self) -> Iterator[Platform]:
        return iter(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __hash__(self) -> int:
        return hash(frozenset(self._ids.items()))

    def __repr__(self) -> str:
        inner = ", ".join(f"{platform}={value!r}" for platform, value in self._ids.items())
        return f"PlatformIds({inner})"

    def with_id(self, platform: Platform, external_id: str) -> PlatformIds:
        """Return a copy with ``platform`` set (or replaced)."""

        merged = {key: value for key, value in self._ids.items() if key != platform}
        merged[platform] = external_id
        return PlatformIds(merged)

    def merged(self, other: Mapping[Platform, str]) -> PlatformIds:
        merged = dict(self._ids)
        merged.update(other)
        return PlatformIds(merged)

    def only(self, platform: Platform) -> PlatformIds:
        value = self._ids.get(platform)
        return PlatformIds() if value is None else PlatformIds({platform: value})
