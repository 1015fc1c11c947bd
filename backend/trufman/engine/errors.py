from __future__ import annotations


class TrufmanError(ValueError):
    """Base class for rule violations reported back to the proposer."""

    code = "TRUFMAN_ERROR"


class InvalidBid(TrufmanError):
    code = "INVALID_BID"


class IllegalPlay(TrufmanError):
    code = "ILLEGAL_PLAY"


class IncompleteBidding(TrufmanError):
    code = "INCOMPLETE_BIDDING"


class AgentEvaluationFailure(TrufmanError):
    """Raised inside the agent when scoring candidates fails.

    Never escapes the agent: the caller falls back to the deterministic policy.
    """

    code = "AGENT_EVALUATION_FAILURE"


class RoundInProgress(TrufmanError):
    code = "ROUND_IN_PROGRESS"


class SpectatorOnly(TrufmanError):
    code = "SPECTATOR_ONLY"
