def reject_explicit_nulls(data, fields: tuple[str, ...]):
    """Omitting a field leaves it unchanged; sending null for a required column is an error."""
    if isinstance(data, dict):
        nulled = sorted(field for field in fields if field in data and data[field] is None)
        if nulled:
            raise ValueError(f"Field(s) cannot be null: {', '.join(nulled)}")
    return data
