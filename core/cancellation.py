"""
Session Cancellation Tokens

Every session-affecting operation (new search, interval change, exchange
switch) mints a token from the session's TokenSource. Minting invalidates all
earlier tokens. Asynchronous work captures its token and checks it at every
resumption point before touching shared state, so a slow, stale request can
never overwrite fresher state.
"""

from core.errors import CancellationObsolete


class TokenSource:
    """Monotonic generation counter shared by one session."""

    def __init__(self) -> None:
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def mint(self) -> "CancellationToken":
        """Invalidate the current token and return a fresh one."""
        self._generation += 1
        return CancellationToken(self, self._generation)


class CancellationToken:
    """Opaque handle; valid while its generation is the source's latest."""

    __slots__ = ("_source", "generation")

    def __init__(self, source: TokenSource, generation: int) -> None:
        self._source = source
        self.generation = generation

    @property
    def cancelled(self) -> bool:
        return self._source.generation != self.generation

    def check(self) -> None:
        """
        Raises:
            CancellationObsolete: If a newer token has been minted
        """
        if self.cancelled:
            raise CancellationObsolete(
                f"token {self.generation} superseded by {self._source.generation}"
            )

    def __repr__(self) -> str:
        return f"<CancellationToken(generation={self.generation}, cancelled={self.cancelled})>"
