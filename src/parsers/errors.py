"""Error taxonomy shared by discovery, enrichment and trading."""


class RadarError(Exception):
    pass


class ParseError(RadarError):
    """Transaction shape does not match a Raydium pool initialisation. Never retried."""


class RpcError(RadarError):
    """Transient node or network failure."""


class NotFoundError(RadarError):
    """Account, transaction or pool is absent on chain."""


class SwapError(RadarError):
    """Swap could not be built, submitted or confirmed."""


class InvalidTradeTransition(ValueError):
    """Trade status change outside pending→success / pending→failed."""
