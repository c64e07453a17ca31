"""Repository query helpers."""

PAGE_SIZE = 100


def fetch_all(repository, order_by=None, **filters) -> list:
    """Return every record matching ``filters``, following pagination."""
    records = []
    offset = 0
    while True:
        query = repository._dao.query
        if filters:
            query = query.filter(**filters)
        if order_by:
            query = query.order_by(order_by)
        page = query.offset(offset).limit(PAGE_SIZE).all()
        records.extend(page.items)
        offset += PAGE_SIZE
        if offset >= page.total or not page.items:
            return records
