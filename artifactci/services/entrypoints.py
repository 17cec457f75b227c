"""
Entrypoint inference over a flat list of file paths.

Every path resolves to itself. ``dir/index.html`` additionally resolves from
``dir`` and any other ``dir/name.html`` from ``dir/name``. Those shortened
aliases are also the candidates for "the page to open first", ranked so that
an ``index.html`` beats a plain ``.html`` file and shallower paths beat deeper
ones.
"""

import posixpath
from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional, Sequence

INDEX_SCORE = 2
HTML_SCORE = 1
FALLBACK_SCORE = -1


class Entrypoint(NamedTuple):
    path: str
    shortened: str
    score: float


@dataclass
class PathAliases:
    original: str
    paths: List[str]


@dataclass
class EntrypointResult:
    aliases: List[PathAliases] = field(default_factory=list)
    entrypoints: List[Entrypoint] = field(default_factory=list)
    flat_aliases: List[str] = field(default_factory=list)

    @property
    def best(self) -> Optional[Entrypoint]:
        return self.entrypoints[0] if self.entrypoints else None

    @property
    def paths(self) -> List[str]:
        return [e.path for e in self.entrypoints]


def _length_penalty(pathname: str) -> float:
    return len(pathname) / 1_000_000


def _candidates(pathname: str) -> List[Entrypoint]:
    directory, base = posixpath.split(pathname)
    name, ext = posixpath.splitext(base)

    if base == "index.html":
        if not directory:
            # A root index.html has no shorter alias but is still the best page to open
            return [Entrypoint(pathname, pathname, INDEX_SCORE - _length_penalty(pathname))]
        return [Entrypoint(pathname, directory, INDEX_SCORE - _length_penalty(pathname))]

    if ext == ".html" and name:
        shortened = posixpath.join(directory, name) if directory else name
        return [Entrypoint(pathname, shortened, HTML_SCORE - _length_penalty(pathname))]

    return []


def _rank_key(entrypoint: Entrypoint):
    return (-entrypoint.score, len(entrypoint.path), entrypoint.path)


def resolve_entrypoints(
    pathnames: Sequence[str],
    requested_entrypoints: Optional[Sequence[str]] = None,
) -> EntrypointResult:
    """
    Compute aliases and ranked entrypoints for ``pathnames``.

    With ``requested_entrypoints``, only those present among the aliases are
    returned; when none are, the single best candidate (or the first pathname)
    is returned instead.
    """
    if not pathnames:
        return EntrypointResult()

    aliases: List[PathAliases] = []
    flat_aliases: List[str] = []
    seen = set()
    best_by_alias: Dict[str, Entrypoint] = {}
    origin_of: Dict[str, str] = {}

    for pathname in pathnames:
        paths = [pathname]
        for candidate in _candidates(pathname):
            if candidate.shortened != pathname:
                paths.append(candidate.shortened)
            current = best_by_alias.get(candidate.shortened)
            if current is None or _rank_key(candidate) < _rank_key(current):
                best_by_alias[candidate.shortened] = candidate

        aliases.append(PathAliases(original=pathname, paths=paths))
        for alias in paths:
            origin_of.setdefault(alias, pathname)
            if alias not in seen:
                seen.add(alias)
                flat_aliases.append(alias)

    ranked = sorted(best_by_alias.values(), key=_rank_key)
    fallback = ranked[:1] or [Entrypoint(pathnames[0], pathnames[0], FALLBACK_SCORE)]

    if requested_entrypoints is None:
        entrypoints = ranked or fallback
    else:
        entrypoints = []
        for requested in dict.fromkeys(requested_entrypoints):
            if requested not in seen:
                continue
            scored = best_by_alias.get(requested)
            if scored is not None:
                entrypoints.append(scored)
            else:
                entrypoints.append(Entrypoint(origin_of[requested], requested, 0))
        entrypoints = entrypoints or fallback

    return EntrypointResult(aliases=aliases, entrypoints=entrypoints, flat_aliases=flat_aliases)
