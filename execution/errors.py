# execution/errors.py


class SettlementError(Exception):
    """
    Base class for every synchronous settlement / order failure.
    """


class PositionAlreadyOpen(SettlementError):
    pass


class NoOpenPosition(SettlementError):
    pass


class InsufficientBalance(SettlementError):
    pass


class InvalidRisk(SettlementError, ValueError):
    pass


class RewardRiskTooLow(SettlementError, ValueError):
    pass


class UnsupportedPendingOrder(SettlementError):
    pass


class UnsupportedPartialOrFlip(SettlementError):
    pass


class PriceUnavailable(SettlementError):
    pass
