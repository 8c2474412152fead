def mask_value(value: str) -> str:
    return f"{value[:4]}****" if value else value


def mask_cookie(set_cookie: str) -> str:
    """Hide the cookie value of a ``Set-Cookie`` line for logging."""
    pair, sep, rest = set_cookie.partition(";")
    name, eq, value = pair.partition("=")
    if not eq:
        return set_cookie
    return f"{name}={mask_value(value.strip())}{sep}{rest}"
