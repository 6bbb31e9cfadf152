"""
Top-level package for the lottery commission core.

Resolution surfaces live in `lottery_commission.commission`; snapshot reads,
validation and aggregation live in `lottery_commission.reporting`.
"""

__all__: list[str] = []
