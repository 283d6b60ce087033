from __future__ import annotations


def paginate(query, page: int | None, per_page: int | None, *, serializer=None, default_per_page: int = 20, max_per_page: int = 100) -> dict:
    """
    Apply page/per_page to a query and shape the list envelope.

    page=None returns every row (no pagination block).
    """
    serializer = serializer or (lambda row: row.to_dict())

    if page is None:
        rows = query.all()
        return {"items": [serializer(r) for r in rows], "count": len(rows)}

    per_page = max(1, min(per_page or default_per_page, max_per_page))
    page = max(page, 1)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serializer(r) for r in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
