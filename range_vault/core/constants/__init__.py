# Q64.96 sqrt prices
Q96 = 1 << 96

MAX_UINT128 = (1 << 128) - 1
MAX_UINT160 = (1 << 160) - 1
MAX_UINT256 = (1 << 256) - 1

MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

# Parts-per-million denominator for protocol fee and price impact
GLOBAL_DIVISOR = 1_000_000

# Scale of reward-per-share accumulators and of the universal multiplier
PRECISION = 10**18

SHARE_DECIMALS = 18
