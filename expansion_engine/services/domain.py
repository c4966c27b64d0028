"""
Domain hygiene — canonical join key for customers, telemetry and events.
"""
import re

MAX_DOMAIN_LENGTH = 253

_SCHEME_RE = re.compile(r'^[a-z][a-z0-9+.-]*://')


def normalize_domain(raw) -> str:
    """
    Canonicalize a domain or URL string.

    "HTTPS://www.Acme.com/about?x=1" → "acme.com". Returns "" when nothing
    usable remains or the host is longer than 253 characters.
    """
    if raw is None:
        return ''
    value = str(raw).strip().lower()
    if not value:
        return ''

    value = _SCHEME_RE.sub('', value)
    for sep in ('/', '?', '#'):
        value = value.split(sep, 1)[0]

    # userinfo and port
    value = value.rsplit('@', 1)[-1]
    value = value.split(':', 1)[0]

    if value.startswith('www.'):
        value = value[4:]
    value = value.rstrip('.').strip()

    if not value or len(value) > MAX_DOMAIN_LENGTH:
        return ''
    return value
