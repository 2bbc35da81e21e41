from .mcsr import MatchHistoryProvider, McsrApiClient, parse_match

__all__ = [
    "MatchHistoryProvider",
    "McsrApiClient",
    "parse_match",
]
