from urllib.parse import urlsplit, urlunsplit


def redact_url(url: str) -> str:
    """Hide the password part of any userinfo embedded in a URL for logs."""
    if not url or "@" not in url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if parts.password is None:
        return url
    userinfo, _, hostport = parts.netloc.rpartition("@")
    username = userinfo.split(":", 1)[0]
    return urlunsplit(parts._replace(netloc=f"{username}:****@{hostport}"))
