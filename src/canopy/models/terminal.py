"""Terminal applications Canopy can open worktrees in."""

from enum import Enum
from urllib.parse import quote

# Characters left unescaped in a URL query component.
_QUERY_SAFE = "/:@!$&'()*+,;=?~-._"


class Terminal(Enum):
    """Supported terminal applications, keyed by their persisted name."""

    ITERM2 = "iterm2"
    WARP = "warp"

    @property
    def display_name(self) -> str:
        return {Terminal.ITERM2: "iTerm2", Terminal.WARP: "Warp"}[self]

    def launch_url(self, path: str) -> str:
        """
        Build the URL that opens a new session of this terminal at ``path``.

        Args:
            path: Directory to open

        Returns:
            str: URL-scheme invocation with the percent-encoded path
        """
        encoded_path = quote(path, safe=_QUERY_SAFE)
        if self is Terminal.ITERM2:
            return f"iterm2:///command?d={encoded_path}"
        return f"warp://action/new_window?path={encoded_path}"

    @classmethod
    def from_string(cls, value: str | None) -> "Terminal":
        try:
            return cls(value)
        except ValueError:
            return cls.WARP
