"""
Current location and navigation for the client (history replace vs. full redirect).
Also parses the OAuth callback parameters out of a location.
"""
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

CALLBACK_PARAMS = ("code", "state", "error", "error_description", "session_state")


def extract_authorization_code(url: str | None) -> str | None:
    if not url:
        return None
    params = parse_qs(urlsplit(url).query, keep_blank_values=False)
    code_list = params.get("code")
    return code_list[0] if code_list else None


def strip_callback_params(url: str) -> str:
    """Remove OAuth callback parameters so a reload does not repeat the exchange."""
    parts = urlsplit(url)
    params = parse_qs(parts.query, keep_blank_values=True)
    kept = [(k, v) for k, values in params.items() if k not in CALLBACK_PARAMS for v in values]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(kept), parts.fragment))


class Navigator:
    def __init__(self, current_url: str = "/"):
        self.current_url = current_url
        self.redirected_to: str | None = None

    def replace(self, url: str) -> None:
        """Rewrite the current location without navigating (history.replaceState)."""
        self.current_url = url

    def assign(self, url: str) -> None:
        """Full navigation; recorded so the HTTP layer can turn it into a redirect."""
        self.current_url = url
        self.redirected_to = url

    def consume_redirect(self) -> str | None:
        target, self.redirected_to = self.redirected_to, None
        return target
