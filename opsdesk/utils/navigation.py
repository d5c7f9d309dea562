"""Breadcrumb derivation for dashboard paths.

    >>> build_breadcrumbs("/projects/8c1d2e3f-0000-4a5b-9c6d-7e8f90a1b2c3/phases")
    [{'label': 'Projects', 'href': '/projects'},
     {'label': 'Details', 'href': '/projects/8c1d2e3f-0000-4a5b-9c6d-7e8f90a1b2c3/phases'},
     {'label': 'Phases', 'href': '/projects/8c1d2e3f-0000-4a5b-9c6d-7e8f90a1b2c3/phases'}]
"""
import re

ROUTE_LABELS = {
    "chat": "Chat",
    "clients": "Clients",
    "projects": "Projects",
    "phases": "Phases",
    "credentials": "Credentials",
    "team": "Team",
    "audit-logs": "Audit Logs",
    "account": "Account",
    "organization": "Organization",
    "notifications": "Notifications",
}

# Links for an ID segment under these parents point at a sub-page
DETAIL_SUFFIX = {
    "projects": "/phases",
    "clients": "/overview",
}

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_NUMERIC_RE = re.compile(r"[0-9]{6,}")


def is_id_segment(segment: str) -> bool:
    return bool(_UUID_RE.match(segment)) or bool(_NUMERIC_RE.fullmatch(segment))


def _label(segment: str) -> str:
    if segment in ROUTE_LABELS:
        return ROUTE_LABELS[segment]
    return segment[:1].upper() + segment[1:]


def build_breadcrumbs(path) -> list[dict]:
    segments = [s for s in str(path or "").split("/") if s]
    if not segments:
        return [{"label": "Projects"}]

    crumbs = []
    for idx, segment in enumerate(segments):
        prev = segments[idx - 1] if idx > 0 else None
        if segment == "overview" and prev is not None and is_id_segment(prev):
            continue

        href = "/" + "/".join(segments[: idx + 1])
        if is_id_segment(segment):
            is_last = idx == len(segments) - 1
            if not is_last and prev in DETAIL_SUFFIX:
                href += DETAIL_SUFFIX[prev]
            crumbs.append({"label": "Details", "href": href})
        else:
            crumbs.append({"label": _label(segment), "href": href})
    return crumbs
