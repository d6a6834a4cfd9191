import pprint

# chat surfaces cap messages around 2000 characters
MAX_DISPLAY_LENGTH = 1990


def inspect_value(value, depth: int = 0) -> str:
    """Render ``value`` showing ``depth`` levels of nesting below the top level."""
    return pprint.pformat(value, depth=depth + 1, sort_dicts=False)


def format_result(value) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    shallow = inspect_value(value, depth=0)
    if len(shallow) > MAX_DISPLAY_LENGTH:
        return inspect_value(value, depth=1)
    return shallow
