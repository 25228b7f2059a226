def row_to_dict(row) -> dict:
    # serialize all DB columns exactly as they are now
    return {c.name: getattr(row, c.name) for c in row.__table__.columns}
